"""Row types shared by the catalog, selection and chain tracking modules."""

from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from polyvagal import PolyvagalState

MEDIA_TYPES = ("video", "audio")


def parse_timestamp(timestamp: Optional[str]) -> Optional[datetime.datetime]:
    if not timestamp:
        return None
    if isinstance(timestamp, datetime.datetime):
        return timestamp
    try:
        return datetime.datetime.fromisoformat(str(timestamp).replace("Z", "+00:00"))
    except ValueError:
        return None


def _optional_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class Block:
    """A practice asset from ``somi_blocks``. Read-only for the engine."""

    id: int
    canonical_name: str
    name: str
    media_url: Optional[str]
    media_type: str = "video"
    state_target: Optional[PolyvagalState] = None
    intensity: Optional[int] = None
    active: bool = True
    is_routine_only: bool = False
    description: str = ""
    block_type: Optional[str] = None
    energy_delta: Optional[int] = None
    safety_delta: Optional[int] = None
    thumbnail_url: Optional[str] = None

    @property
    def playable(self) -> bool:
        return self.active and bool(self.media_url)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Block":
        try:
            state_target = PolyvagalState.parse(row.get("state_target"))
        except ValueError:
            state_target = None
        media_type = (row.get("media_type") or "video").lower()
        return cls(
            id=int(row["id"]),
            canonical_name=row.get("canonical_name") or "",
            name=row.get("name") or row.get("canonical_name") or "",
            media_url=row.get("media_url") or None,
            media_type=media_type if media_type in MEDIA_TYPES else "video",
            state_target=state_target,
            intensity=_optional_int(row.get("intensity")),
            active=bool(row.get("active", True)),
            is_routine_only=bool(row.get("is_routine_only", False)),
            description=row.get("description") or "",
            block_type=row.get("block_type"),
            energy_delta=_optional_int(row.get("energy_delta")),
            safety_delta=_optional_int(row.get("safety_delta")),
            thumbnail_url=row.get("thumbnail_url"),
        )


@dataclass(frozen=True)
class EmbodimentCheck:
    id: int
    chain_id: Optional[int]
    slider_value: int
    polyvagal_state: Optional[PolyvagalState]
    journal_entry: Optional[str] = None
    created_at: Optional[datetime.datetime] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "EmbodimentCheck":
        try:
            state = PolyvagalState.parse(row.get("polyvagal_state_code"))
        except ValueError:
            state = None
        return cls(
            id=int(row["id"]),
            chain_id=_optional_int(row.get("somi_chain_id")),
            slider_value=int(row.get("embodiment_level") or 0),
            polyvagal_state=state,
            journal_entry=row.get("journal_entry"),
            created_at=parse_timestamp(row.get("created_at")),
        )


@dataclass(frozen=True)
class CompletedBlock:
    id: int
    chain_id: Optional[int]
    block_id: int
    seconds_elapsed: int
    order_index: int
    created_at: Optional[datetime.datetime] = None
    block: Optional[Block] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any], block: Optional[Block] = None) -> "CompletedBlock":
        return cls(
            id=int(row["id"]),
            chain_id=_optional_int(row.get("somi_chain_id")),
            block_id=int(row["somi_block_id"]),
            seconds_elapsed=int(row.get("seconds_elapsed") or 0),
            order_index=int(row.get("order_index") or 0),
            created_at=parse_timestamp(row.get("created_at")),
            block=block,
        )


@dataclass
class Chain:
    """One practice session with its check-ins and completed blocks."""

    id: int
    flow_type: str = "daily_flow"
    created_at: Optional[datetime.datetime] = None
    embodiment_checks: List[EmbodimentCheck] = field(default_factory=list)
    completed_blocks: List[CompletedBlock] = field(default_factory=list)

    @property
    def total_seconds(self) -> int:
        return sum(entry.seconds_elapsed for entry in self.completed_blocks)

    @property
    def score_delta(self) -> Optional[int]:
        """Change between the first and last check-in, when there are two."""
        if len(self.embodiment_checks) < 2:
            return None
        return self.embodiment_checks[-1].slider_value - self.embodiment_checks[0].slider_value

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Chain":
        return cls(
            id=int(row["id"]),
            flow_type=row.get("flow_type") or "daily_flow",
            created_at=parse_timestamp(row.get("created_at")),
        )

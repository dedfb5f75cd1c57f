"""Polyvagal states and the embodiment score scale."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Union

SCORE_MIN = 0
SCORE_MAX = 100
BUCKET_WIDTH = 20


class PolyvagalState(str, Enum):
    """Five self-reported nervous-system states, from dysregulated to connected.

    Declaration order is the regulation axis: neighbours are "close" states.
    """

    WITHDRAWN = "withdrawn"
    STIRRING = "stirring"
    ACTIVATED = "activated"
    SETTLING = "settling"
    CONNECTED = "connected"

    @property
    def ordinal(self) -> int:
        return STATE_ORDER.index(self)

    @property
    def code(self) -> int:
        """Numeric code stored in embodiment_checks.polyvagal_state_code (1..5)."""
        return self.ordinal + 1

    @property
    def meta(self) -> "StateMeta":
        return STATE_META[self]

    @classmethod
    def from_code(cls, code: int) -> "PolyvagalState":
        if not 1 <= int(code) <= len(STATE_ORDER):
            raise ValueError(f"Unknown polyvagal state code: {code}")
        return STATE_ORDER[int(code) - 1]

    @classmethod
    def parse(cls, value: Union[str, int, "PolyvagalState", None]) -> Optional["PolyvagalState"]:
        """Accept an enum member, a state name, or a 1..5 code. None stays None."""
        if value is None or value == "":
            return None
        if isinstance(value, PolyvagalState):
            return value
        if isinstance(value, int) or (isinstance(value, str) and value.isdigit()):
            return cls.from_code(int(value))
        return cls(str(value).strip().lower())


STATE_ORDER: List[PolyvagalState] = list(PolyvagalState)


@dataclass(frozen=True)
class StateMeta:
    label: str
    color: str
    emoji: str
    description: str


STATE_META: Dict[PolyvagalState, StateMeta] = {
    PolyvagalState.WITHDRAWN: StateMeta(
        "Withdrawn", "#7b68ee", "🌑", "Drained and shut down. Dorsal vagal, low energy."
    ),
    PolyvagalState.STIRRING: StateMeta(
        "Stirring", "#9d7be8", "🌘", "Foggy, starting to wake. Moving out of shutdown."
    ),
    PolyvagalState.ACTIVATED: StateMeta(
        "Activated", "#b88ddc", "⚡", "Wired. Sympathetic fight-or-flight energy."
    ),
    PolyvagalState.SETTLING: StateMeta(
        "Settling", "#68c9ba", "🌤", "Steadying. Sympathetic activation easing toward safety."
    ),
    PolyvagalState.CONNECTED: StateMeta(
        "Connected", "#4ecdc4", "🌕", "Glowing. Ventral vagal, safe and socially engaged."
    ),
}


def validate_score(score: Union[int, float]) -> int:
    """Round a slider value and make sure it lies on the 0-100 scale."""
    value = int(round(score))
    if not SCORE_MIN <= value <= SCORE_MAX:
        raise ValueError(f"Embodiment score must be between {SCORE_MIN} and {SCORE_MAX}, got {score}")
    return value


def score_to_state(score: Union[int, float]) -> PolyvagalState:
    """Map an embodiment score onto a state in buckets of 20.

    Buckets are half-open except the last, so 100 lands in ``connected``.
    """
    value = validate_score(score)
    index = min(value // BUCKET_WIDTH, len(STATE_ORDER) - 1)
    return STATE_ORDER[index]


def state_distance(a: PolyvagalState, b: PolyvagalState) -> int:
    return abs(a.ordinal - b.ordinal)

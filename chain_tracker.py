"""Practice-session ("chain") tracking with best-effort persistence.

A chain groups the check-ins and completed blocks of one practice session.
The active chain id lives in a device-local key/value store so a session
survives app restarts; ending a session only forgets that pointer.

Every write is best-effort: a Supabase failure is logged and the caller gets
``None`` (or an empty result), so a practice flow is never blocked by
telemetry.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List, Optional, Union

from supabase import Client

import db_supabase
import events as ev
from errors import BackingStoreUnavailable
from events import EventBus
from local_store import KeyValueStore
from models import Block, Chain, CompletedBlock, EmbodimentCheck
from polyvagal import PolyvagalState, score_to_state, validate_score

logger = logging.getLogger(__name__)

ACTIVE_CHAIN_KEY = "active_somi_chain_id"


class ChainTracker:
    def __init__(
        self,
        client: Optional[Client],
        store: KeyValueStore,
        events: Optional[EventBus] = None,
        flow_type: str = "daily_flow",
        active_chain_key: str = ACTIVE_CHAIN_KEY,
    ):
        self.client = client
        self.store = store
        self.events = events or EventBus()
        self.flow_type = flow_type
        self.active_chain_key = active_chain_key
        self._create_lock = threading.Lock()
        self._recent_lock = threading.Lock()
        self._recent: Dict[int, List[int]] = {}

    # ------------------------------------------------------------------
    # Active chain pointer
    # ------------------------------------------------------------------

    def active_chain_id(self) -> Optional[int]:
        """The locally stored pointer, without touching the network."""
        try:
            raw = self.store.get(self.active_chain_key)
        except Exception:
            logger.exception("Could not read the active chain pointer")
            return None
        if raw in (None, ""):
            return None
        try:
            return int(raw)
        except (TypeError, ValueError):
            logger.warning("Discarding malformed active chain pointer %r", raw)
            self._clear_pointer()
            return None

    def _clear_pointer(self) -> None:
        try:
            self.store.clear(self.active_chain_key)
        except Exception:
            logger.exception("Could not clear the active chain pointer")

    def get_or_create_active_chain(self) -> Optional[int]:
        """Return the active chain id, creating and remembering one if needed."""
        if self.client is None:
            logger.warning("Supabase is not configured; practice will not be recorded")
            return self.active_chain_id()
        with self._create_lock:
            chain_id = self.active_chain_id()
            if chain_id is not None:
                try:
                    if db_supabase.chain_exists(self.client, chain_id):
                        return chain_id
                except BackingStoreUnavailable:
                    logger.warning("Could not verify chain %s, keeping it active", chain_id, exc_info=True)
                    return chain_id
                logger.info("Stored chain %s no longer exists, starting a new one", chain_id)
                self._clear_pointer()

            try:
                row = db_supabase.create_chain(self.client, self.flow_type)
            except BackingStoreUnavailable:
                logger.error("Could not create a practice chain", exc_info=True)
                return None
            chain_id = int(row["id"])
            try:
                self.store.set(self.active_chain_key, str(chain_id))
            except Exception:
                logger.exception("Could not persist active chain %s", chain_id)
        self.events.emit(ev.CHAIN_STARTED, chain_id=chain_id)
        return chain_id

    def end_active_chain(self) -> None:
        """Detach the active chain. Its data stays in the backing store."""
        chain_id = self.active_chain_id()
        self._clear_pointer()
        with self._recent_lock:
            if chain_id is not None:
                self._recent.pop(chain_id, None)
        if chain_id is not None:
            self.events.emit(ev.CHAIN_ENDED, chain_id=chain_id)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def save_embodiment_check(
        self,
        score: Union[int, float],
        state: Union[PolyvagalState, str, int, None] = None,
        journal_entry: Optional[str] = None,
    ) -> Optional[EmbodimentCheck]:
        slider_value = validate_score(score)
        polyvagal_state = PolyvagalState.parse(state) or score_to_state(slider_value)
        chain_id = self.get_or_create_active_chain()
        if chain_id is None:
            return None
        if self.client is None:
            return None
        try:
            row = db_supabase.insert_embodiment_check(
                self.client, chain_id, slider_value, polyvagal_state.code, journal_entry
            )
        except BackingStoreUnavailable:
            logger.error("Dropped embodiment check (%s, %s)", slider_value, polyvagal_state.value, exc_info=True)
            return None
        check = EmbodimentCheck.from_row(row)
        self.events.emit(ev.CHECK_IN_SAVED, check=check)
        return check

    def save_completed_block(
        self,
        block_id: int,
        seconds_elapsed: Union[int, float],
        order_index: int = 0,
        chain_id: Optional[int] = None,
    ) -> Optional[CompletedBlock]:
        if seconds_elapsed < 0:
            raise ValueError("seconds_elapsed cannot be negative")
        if chain_id is None:
            chain_id = self.get_or_create_active_chain()
            if chain_id is None:
                return None
        if self.client is None:
            return None
        try:
            row = db_supabase.insert_completed_block(
                self.client, chain_id, int(block_id), int(round(seconds_elapsed)), int(order_index)
            )
        except BackingStoreUnavailable:
            logger.error("Dropped completed block %s for chain %s", block_id, chain_id, exc_info=True)
            return None
        with self._recent_lock:
            # Unseeded chains are read back from the store on the next lookup.
            if chain_id in self._recent:
                self._recent[chain_id].append(int(block_id))
        completed = CompletedBlock.from_row(row)
        self.events.emit(ev.BLOCK_COMPLETED, completed=completed)
        return completed

    def recent_block_ids(self, limit: int = 3) -> List[int]:
        """Blocks completed in the active chain, newest first.

        The first lookup for a chain reads its completed blocks from the store,
        so plays from before a restart still count. Later completions are
        tracked in memory.
        """
        chain_id = self.active_chain_id()
        if chain_id is None or limit <= 0:
            return []
        return list(reversed(self._played_in_chain(chain_id)))[:limit]

    def _played_in_chain(self, chain_id: int) -> List[int]:
        with self._recent_lock:
            if chain_id in self._recent:
                return list(self._recent[chain_id])
        if self.client is None:
            return []
        try:
            rows = db_supabase.list_completed_blocks(self.client, [chain_id])
        except BackingStoreUnavailable:
            logger.warning("Could not load recent plays for chain %s", chain_id, exc_info=True)
            return []
        rows.sort(key=lambda row: (str(row.get("created_at") or ""), int(row["id"])))
        played = [int(row["somi_block_id"]) for row in rows]
        with self._recent_lock:
            return list(self._recent.setdefault(chain_id, played))

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def chain_history(self, limit: int = 30, flow_type: Optional[str] = None) -> List[Chain]:
        """Recent chains with their check-ins and completed blocks attached."""
        if self.client is None:
            return []
        try:
            chain_rows = db_supabase.list_chains(self.client, limit=limit, flow_type=flow_type)
            return self._hydrate(chain_rows)
        except BackingStoreUnavailable:
            logger.error("Could not load chain history", exc_info=True)
            return []

    def latest_chain(self, flow_type: Optional[str] = None) -> Optional[Chain]:
        if self.client is None:
            return None
        try:
            row = db_supabase.latest_chain(self.client, flow_type=flow_type)
            if row is None:
                return None
            return self._hydrate([row])[0]
        except BackingStoreUnavailable:
            logger.error("Could not load the latest chain", exc_info=True)
            return None

    def _hydrate(self, chain_rows: List[Dict[str, Any]]) -> List[Chain]:
        chains = [Chain.from_row(row) for row in chain_rows]
        if not chains:
            return []
        chain_ids = [chain.id for chain in chains]
        check_rows = db_supabase.list_embodiment_checks(self.client, chain_ids)
        entry_rows = db_supabase.list_completed_blocks(self.client, chain_ids)
        block_rows = db_supabase.fetch_blocks_by_ids(self.client, [row["somi_block_id"] for row in entry_rows])
        blocks = {int(row["id"]): Block.from_row(row) for row in block_rows}

        by_id = {chain.id: chain for chain in chains}
        for row in check_rows:
            chain = by_id.get(int(row["somi_chain_id"]))
            if chain is not None:
                chain.embodiment_checks.append(EmbodimentCheck.from_row(row))
        for row in entry_rows:
            chain = by_id.get(int(row["somi_chain_id"]))
            if chain is not None:
                chain.completed_blocks.append(
                    CompletedBlock.from_row(row, block=blocks.get(int(row["somi_block_id"])))
                )
        for chain in chains:
            chain.completed_blocks.sort(key=lambda entry: entry.order_index)
        return chains

    def most_played_blocks(self, limit: int = 10) -> List[Dict[str, Any]]:
        """``{"block": Block, "play_count": int}`` for the most completed blocks."""
        if self.client is None:
            return []
        try:
            counts = db_supabase.completed_block_counts(self.client)
            top = sorted(counts.items(), key=lambda item: (-item[1], item[0]))[:limit]
            rows = db_supabase.fetch_blocks_by_ids(self.client, [block_id for block_id, _ in top])
        except BackingStoreUnavailable:
            logger.error("Could not load play counts", exc_info=True)
            return []
        blocks = {int(row["id"]): Block.from_row(row) for row in rows}
        return [
            {"block": blocks[block_id], "play_count": count}
            for block_id, count in top
            if block_id in blocks
        ]

    def delete_chain(self, chain_id: int) -> bool:
        if self.client is None:
            return False
        try:
            db_supabase.delete_chain(self.client, chain_id)
        except BackingStoreUnavailable:
            logger.error("Could not delete chain %s", chain_id, exc_info=True)
            return False
        if self.active_chain_id() == chain_id:
            self.end_active_chain()
        logger.info("Deleted chain %s", chain_id)
        return True

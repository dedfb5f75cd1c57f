"""UI-facing entry points that never raise.

Each call picks or records practice content through the catalog cache, the
selection rules and the chain tracker, and degrades to a fallback asset, an
empty result or ``None`` when something underneath fails. Problems the user
should hear about are announced on the event bus.
"""

from __future__ import annotations

import logging
from functools import partial
from typing import List, Optional, Union

import events as ev
from catalog_cache import CatalogCache
from chain_tracker import ChainTracker
from errors import ConfigurationMissing, NoContentAvailable
from flow_builder import Flow, generate_flow
from models import Block, CompletedBlock, EmbodimentCheck
from polyvagal import PolyvagalState, score_to_state
from recommender import (
    FALLBACK_BLOCK,
    SOS_CANONICAL_NAME,
    SOS_FALLBACK_BLOCK,
    select_next_video,
    select_sos_video,
)
from routine_ai import DEFAULT_MODEL, design_routine
from routines import build_routine_queue, require_routine_config

logger = logging.getLogger(__name__)

StateLike = Union[PolyvagalState, str, int, None]


class MediaService:
    def __init__(
        self,
        catalog: CatalogCache,
        tracker: ChainTracker,
        events: Optional[ev.EventBus] = None,
        sos_canonical_name: str = SOS_CANONICAL_NAME,
        recent_window: int = 3,
        openai_api_key: Optional[str] = None,
        openai_model: str = DEFAULT_MODEL,
    ):
        self.catalog = catalog
        self.tracker = tracker
        self.events = events or tracker.events
        self.sos_canonical_name = sos_canonical_name
        self.recent_window = recent_window
        self.openai_api_key = openai_api_key
        self.openai_model = openai_model

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def media_for_check_in(self, score: int, state: StateLike = None) -> Block:
        try:
            polyvagal_state = PolyvagalState.parse(state) or score_to_state(score)
            return select_next_video(
                self.catalog.get_catalog(),
                polyvagal_state,
                score,
                recent_block_ids=self.tracker.recent_block_ids(self.recent_window),
            )
        except (NoContentAvailable, ValueError) as exc:
            logger.error("Falling back to the default video: %s", exc)
            self.events.emit(ev.FALLBACK_USED, block=FALLBACK_BLOCK, reason=str(exc))
            return FALLBACK_BLOCK

    def sos_media(self) -> Block:
        try:
            return select_sos_video(self.catalog.get_catalog(), self.sos_canonical_name)
        except NoContentAvailable as exc:
            logger.error("Falling back to the built-in SOS video: %s", exc)
            self.events.emit(ev.FALLBACK_USED, block=SOS_FALLBACK_BLOCK, reason=str(exc))
            return SOS_FALLBACK_BLOCK

    def library(self) -> List[Block]:
        return self.catalog.library()

    # ------------------------------------------------------------------
    # Routines and flows
    # ------------------------------------------------------------------

    def routine_queue(self, routine_type: str, block_count: int) -> Optional[List[Block]]:
        try:
            names = require_routine_config(routine_type, block_count)
        except ConfigurationMissing as exc:
            logger.error("%s", exc)
            self._abort(f"A {block_count}-block {routine_type} routine isn't available yet.")
            return None
        queue = build_routine_queue(self.catalog.get_catalog(), names)
        if not queue:
            self._abort("We couldn't load the videos for this routine. Please try again shortly.")
            return None
        return queue

    def generate_flow(
        self,
        state: StateLike,
        duration_minutes: int,
        body_scan_start: bool = False,
        body_scan_end: bool = False,
        use_ai: bool = False,
        seed: Optional[int] = None,
    ) -> Optional[Flow]:
        designer = None
        if use_ai:
            designer = partial(design_routine, api_key=self.openai_api_key, model=self.openai_model)
        try:
            flow = generate_flow(
                self.catalog.get_catalog(),
                state,
                duration_minutes,
                body_scan_start=body_scan_start,
                body_scan_end=body_scan_end,
                use_ai=use_ai,
                seed=seed,
                designer=designer,
            )
        except ValueError as exc:
            logger.error("Could not build flow: %s", exc)
            self._abort(str(exc))
            return None
        if not flow.blocks:
            self._abort("No practice videos are available right now.")
            return None
        return flow

    def _abort(self, message: str) -> None:
        self.events.emit(ev.FLOW_ABORTED, message=message)

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def check_in(self, score: int, state: StateLike = None, journal_entry: Optional[str] = None) -> Optional[EmbodimentCheck]:
        try:
            return self.tracker.save_embodiment_check(score, state, journal_entry)
        except ValueError as exc:
            logger.error("Ignoring invalid check-in: %s", exc)
            return None

    def complete_block(
        self, block: Block, seconds_elapsed: int, order_index: int = 0
    ) -> Optional[CompletedBlock]:
        try:
            return self.tracker.save_completed_block(block.id, seconds_elapsed, order_index)
        except ValueError as exc:
            logger.error("Ignoring invalid completion for %s: %s", block.canonical_name, exc)
            return None

    def end_session(self) -> None:
        self.tracker.end_active_chain()

# Rule-based next-practice selection for SoMi check-ins
from __future__ import annotations

import logging
import random
from typing import Dict, Iterable, List, Optional, Sequence

from errors import NoContentAvailable
from models import Block
from polyvagal import PolyvagalState, state_distance, validate_score

logger = logging.getLogger(__name__)

SOS_CANONICAL_NAME = "vagus_reset_lying_down"

FALLBACK_BLOCK = Block(
    id=1,
    canonical_name="fallback",
    name="Fallback Video",
    media_url="https://qujifwhwntqxziymqdwu.supabase.co/storage/v1/object/public/test/output_tiktok.mp4",
    media_type="video",
)

SOS_FALLBACK_BLOCK = Block(
    id=16,
    canonical_name=SOS_CANONICAL_NAME,
    name="Vagus Reset (Lying Down)",
    media_url="https://qujifwhwntqxziymqdwu.supabase.co/storage/v1/object/public/test/output_tiktok.mp4",
    media_type="video",
    state_target=PolyvagalState.ACTIVATED,
)


def playable_blocks(catalog: Iterable[Block]) -> List[Block]:
    return [block for block in catalog if block.playable]


def bucket_by_state(blocks: Iterable[Block]) -> Dict[PolyvagalState, List[Block]]:
    buckets: Dict[PolyvagalState, List[Block]] = {}
    for block in blocks:
        if block.state_target is not None:
            buckets.setdefault(block.state_target, []).append(block)
    return buckets


def nearest_populated_state(
    state: PolyvagalState, populated: Iterable[PolyvagalState]
) -> Optional[PolyvagalState]:
    """Closest state along the regulation axis; ties go to the more regulated one."""
    options = set(populated)
    if not options:
        return None
    return min(options, key=lambda s: (state_distance(state, s), -s.ordinal))


def select_next_video(
    catalog: Sequence[Block],
    state: PolyvagalState,
    score: int,
    recent_block_ids: Iterable[int] = (),
    rng: Optional[random.Random] = None,
) -> Block:
    """Pick the next practice block for a user in ``state``.

    Candidates are the blocks targeting ``state``, or the nearest populated
    state when none do. Recently played blocks are skipped unless nothing
    else is left. The lowest id wins, unless a seeded ``rng`` is passed.

    Raises ``NoContentAvailable`` when nothing in the catalog is playable.
    """
    state = PolyvagalState.parse(state)
    if state is None:
        raise ValueError("A polyvagal state is required")
    score = validate_score(score)

    playable = playable_blocks(catalog)
    if not playable:
        raise NoContentAvailable(f"No playable blocks among {len(catalog)} catalog entries")

    buckets = bucket_by_state(playable)
    target = state if state in buckets else nearest_populated_state(state, buckets)
    if target is None:
        # Nothing carries a state target; every playable block qualifies.
        candidates = playable
    else:
        candidates = buckets[target]

    recent = set(recent_block_ids)
    fresh = [block for block in candidates if block.id not in recent]
    if fresh:
        candidates = fresh

    ordered = sorted(candidates, key=lambda block: block.id)
    chosen = rng.choice(ordered) if rng is not None else ordered[0]
    logger.info(
        "Selected %s (id=%s) for state=%s score=%s via %s bucket, %s option(s)",
        chosen.canonical_name,
        chosen.id,
        state.value,
        score,
        target.value if target else "untargeted",
        len(ordered),
    )
    return chosen


def select_sos_video(catalog: Sequence[Block], canonical_name: str = SOS_CANONICAL_NAME) -> Block:
    """The designated emergency-calming block, whatever the user's state."""
    for block in catalog:
        if block.canonical_name == canonical_name and block.playable:
            return block
    raise NoContentAvailable(f"SOS block {canonical_name!r} is not in the active catalog")


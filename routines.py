"""Fixed routine sequences (morning / night) keyed by block count."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from errors import ConfigurationMissing
from models import Block

logger = logging.getLogger(__name__)

MORNING = "morning"
NIGHT = "night"
ROUTINE_TYPES = (MORNING, NIGHT)

# Session length in minutes -> number of blocks
TIME_TO_BLOCK_COUNT: Dict[int, int] = {5: 2, 10: 6, 15: 10}

ROUTINE_CONFIGS: Dict[str, Dict[int, List[str]]] = {
    MORNING: {
        2: ["vagus_reset", "arm_shoulder_hand_circles"],
        6: [
            "vagus_reset",
            "heart_opener",
            "self_havening",
            "body_tapping",
            "freeze_roll",
            "arm_shoulder_hand_circles",
        ],
        10: [
            "vagus_reset",
            "heart_opener",
            "upward_gaze",
            "self_havening",
            "humming",
            "ear_stretch",
            "body_tapping",
            "shaking",
            "freeze_roll",
            "arm_shoulder_hand_circles",
        ],
    },
    NIGHT: {
        2: ["eye_covering", "self_hug_swaying"],
        6: [
            "eye_covering",
            "self_havening",
            "humming",
            "brain_hold",
            "squeeze_hands_release",
            "self_hug_swaying",
        ],
        10: [
            "vagus_reset_lying_down",
            "eye_covering",
            "upward_gaze",
            "self_havening",
            "humming",
            "ear_stretch",
            "brain_hold",
            "body_tapping",
            "squeeze_hands_release",
            "self_hug_swaying",
        ],
    },
}


def get_routine_config(routine_type: str, block_count: int) -> Optional[List[str]]:
    """Canonical block names for a routine, or None when the pair is not configured."""
    config = ROUTINE_CONFIGS.get(routine_type)
    if config is None:
        return None
    names = config.get(block_count)
    return list(names) if names is not None else None


def require_routine_config(routine_type: str, block_count: int) -> List[str]:
    names = get_routine_config(routine_type, block_count)
    if names is None:
        raise ConfigurationMissing(routine_type, block_count)
    return names


def get_auto_routine_type(hour: int) -> str:
    """Night from 18:00 until 04:59, morning the rest of the day."""
    if hour >= 18 or hour < 5:
        return NIGHT
    return MORNING


def build_routine_queue(catalog: Iterable[Block], canonical_names: List[str]) -> List[Block]:
    """Resolve names to catalog blocks in routine order, skipping unknown names."""
    by_name = {block.canonical_name: block for block in catalog}
    queue = [by_name[name] for name in canonical_names if name in by_name]
    missing = [name for name in canonical_names if name not in by_name]
    if missing:
        logger.warning("Routine blocks missing from catalog: %s", ", ".join(missing))
    return queue

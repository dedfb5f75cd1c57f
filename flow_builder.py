"""Generated practice flows: warm-up, main and integration sections.

A flow is a timed sequence of segments. Each chosen block is preceded by a
short micro-integration pause, and optional body scans bracket the whole
flow. Blocks come from the algorithm below or, when requested, from the AI
routine designer with the algorithm as the fallback.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from models import Block
from polyvagal import PolyvagalState

logger = logging.getLogger(__name__)

BODY_SCAN_SECONDS = 60
MICRO_INTEGRATION_SECONDS = 20
BLOCK_SECONDS = 60
SECONDS_PER_BLOCK = MICRO_INTEGRATION_SECONDS + BLOCK_SECONDS
BODY_SCAN_MIN_MINUTES = 8
MIN_DURATION_MINUTES = 1
MAX_DURATION_MINUTES = 60
FLOW_BLOCK_TYPE = "vagal_toning"

WARM_UP = "warm_up"
MAIN = "main"
INTEGRATION = "integration"

BODY_SCAN = "body_scan"
MICRO_INTEGRATION = "micro_integration"
SOMI_BLOCK = "somi_block"


@dataclass(frozen=True)
class FlowSegment:
    type: str
    section: str
    duration_seconds: int
    block: Optional[Block] = None


@dataclass
class Flow:
    state: PolyvagalState
    segments: List[FlowSegment] = field(default_factory=list)
    reasoning: str = ""
    source: str = "algorithm"

    @property
    def actual_duration_seconds(self) -> int:
        return sum(segment.duration_seconds for segment in self.segments)

    @property
    def blocks(self) -> List[Block]:
        return [segment.block for segment in self.segments if segment.block is not None]


# Energy/safety filters per state. Missing deltas count as zero.
_STATE_FILTERS: Dict[PolyvagalState, Callable[[Block], bool]] = {
    PolyvagalState.WITHDRAWN: lambda b: (b.energy_delta or 0) >= 0 and (b.safety_delta or 0) >= 0,
    PolyvagalState.STIRRING: lambda b: (b.energy_delta or 0) > 0,
    PolyvagalState.ACTIVATED: lambda b: (b.safety_delta or 0) > 0,
    PolyvagalState.SETTLING: lambda b: True,
    PolyvagalState.CONNECTED: lambda b: (b.safety_delta or 0) >= 0,
}

_STATE_INTROS = {
    PolyvagalState.WITHDRAWN: "Your nervous system is in a quieter, more withdrawn place right now. "
    "It needs gentle warmth and slow activation.",
    PolyvagalState.STIRRING: "Your body is starting to stir but still feels foggy. "
    "It could use a bit more energy and spark.",
    PolyvagalState.ACTIVATED: "Your system is running hot. There's activation that needs grounding and safety.",
    PolyvagalState.SETTLING: "You're centered and balanced. Your nervous system is in its window of tolerance.",
    PolyvagalState.CONNECTED: "You're in an expansive state, energized and safe. Let's honour that.",
}

_MAIN_GOALS = {
    PolyvagalState.WITHDRAWN: "slowly build upward arousal",
    PolyvagalState.STIRRING: "gently energize your system",
    PolyvagalState.ACTIVATED: "help your system settle and ground",
    PolyvagalState.SETTLING: "explore a balanced mix of movement",
    PolyvagalState.CONNECTED: "celebrate and sustain this energy",
}


def compute_block_count(
    duration_minutes: int, body_scan_start: bool = False, body_scan_end: bool = False
) -> Tuple[int, bool]:
    """Blocks that fit in the session and whether body scans are allowed."""
    if not MIN_DURATION_MINUTES <= duration_minutes <= MAX_DURATION_MINUTES:
        raise ValueError(
            f"duration_minutes must be between {MIN_DURATION_MINUTES} and {MAX_DURATION_MINUTES}"
        )
    scans_enabled = duration_minutes >= BODY_SCAN_MIN_MINUTES
    scan_seconds = 0
    if scans_enabled:
        scan_seconds = BODY_SCAN_SECONDS * (int(body_scan_start) + int(body_scan_end))
    remaining = duration_minutes * 60 - scan_seconds
    return max(1, remaining // SECONDS_PER_BLOCK), scans_enabled


def filter_blocks_for_state(blocks: Sequence[Block], state: PolyvagalState) -> List[Block]:
    keep = _STATE_FILTERS.get(state, lambda b: True)
    filtered = [block for block in blocks if keep(block)]
    return filtered if filtered else list(blocks)


def select_blocks(pool: Sequence[Block], count: int, rng: random.Random) -> List[Block]:
    """Shuffle without replacement, reshuffling when exhausted.

    The same block never plays twice in a row while the pool has more than one.
    """
    if not pool or count <= 0:
        return []
    selected: List[Block] = []
    shuffled = list(pool)
    rng.shuffle(shuffled)
    idx = 0
    for _ in range(count):
        if idx >= len(shuffled):
            shuffled = list(pool)
            rng.shuffle(shuffled)
            idx = 0
            if len(shuffled) > 1 and selected and shuffled[0].id == selected[-1].id:
                swap = rng.randrange(1, len(shuffled))
                shuffled[0], shuffled[swap] = shuffled[swap], shuffled[0]
        if selected and shuffled[idx].id == selected[-1].id and idx + 1 < len(shuffled):
            shuffled[idx], shuffled[idx + 1] = shuffled[idx + 1], shuffled[idx]
        selected.append(shuffled[idx])
        idx += 1
    return selected


def assign_sections(blocks: Sequence[Block]) -> List[Tuple[Block, str]]:
    n = len(blocks)
    sectioned = []
    for i, block in enumerate(blocks):
        if n == 1:
            section = MAIN
        elif n == 2:
            section = WARM_UP if i == 0 else MAIN
        elif i == 0:
            section = WARM_UP
        elif i == n - 1:
            section = INTEGRATION
        else:
            section = MAIN
        sectioned.append((block, section))
    return sectioned


def assemble_segments(
    sectioned: Sequence[Tuple[Block, str]], scan_start: bool = False, scan_end: bool = False
) -> List[FlowSegment]:
    segments: List[FlowSegment] = []
    if scan_start:
        segments.append(FlowSegment(BODY_SCAN, WARM_UP, BODY_SCAN_SECONDS))
    for block, section in sectioned:
        segments.append(FlowSegment(MICRO_INTEGRATION, section, MICRO_INTEGRATION_SECONDS))
        segments.append(FlowSegment(SOMI_BLOCK, section, BLOCK_SECONDS, block))
    if scan_end:
        segments.append(FlowSegment(BODY_SCAN, INTEGRATION, BODY_SCAN_SECONDS))
    return segments


def generate_explanation(state: PolyvagalState, segments: Sequence[FlowSegment]) -> str:
    parts = [_STATE_INTROS.get(state, _STATE_INTROS[PolyvagalState.SETTLING])]
    block_segments = [s for s in segments if s.type == SOMI_BLOCK and s.block is not None]
    warm_up = [s for s in block_segments if s.section == WARM_UP]
    main = [s for s in block_segments if s.section == MAIN]
    integration = [s for s in block_segments if s.section == INTEGRATION]

    if warm_up:
        parts.append(f"We're starting with {warm_up[0].block.name} to gently orient your attention inward.")
    if main:
        plural = "s" if len(main) > 1 else ""
        parts.append(f"Building through {len(main)} exercise{plural} chosen to {_MAIN_GOALS[state]}.")
    if integration:
        parts.append(f"Closing with {integration[0].block.name} to help your system settle.")
    return " ".join(parts)


def flow_pool(catalog: Sequence[Block]) -> List[Block]:
    """Playable vagal-toning blocks, or every playable block if none are typed."""
    playable = [block for block in catalog if block.playable]
    typed = [block for block in playable if block.block_type == FLOW_BLOCK_TYPE]
    return typed or playable


def sections_from_design(design: Dict, catalog: Sequence[Block]) -> List[Tuple[Block, str]]:
    """Flatten an AI design's sections into (block, section) pairs."""
    by_name = {block.canonical_name: block for block in catalog}
    sectioned = []
    for section in design.get("sections") or []:
        name = str(section.get("name") or MAIN).replace("-", "_")
        if name not in (WARM_UP, MAIN, INTEGRATION):
            name = MAIN
        for item in section.get("blocks") or []:
            block = by_name.get(item.get("canonical_name"))
            if block is not None:
                sectioned.append((block, name))
    return sectioned


Designer = Callable[..., Dict]


def generate_flow(
    catalog: Sequence[Block],
    state: PolyvagalState,
    duration_minutes: int,
    body_scan_start: bool = False,
    body_scan_end: bool = False,
    use_ai: bool = False,
    seed: Optional[int] = None,
    designer: Optional[Designer] = None,
) -> Flow:
    """Build a timed flow for ``state``. Pass ``seed`` for a reproducible pick."""
    state = PolyvagalState.parse(state)
    if state is None:
        raise ValueError("A polyvagal state is required")
    block_count, scans_enabled = compute_block_count(duration_minutes, body_scan_start, body_scan_end)
    scan_start = scans_enabled and body_scan_start
    scan_end = scans_enabled and body_scan_end
    pool = flow_pool(catalog)

    if use_ai and designer is not None and pool:
        try:
            design = designer(
                state=state,
                duration_minutes=duration_minutes,
                block_count=block_count,
                available=[block.canonical_name for block in pool],
            )
            sectioned = sections_from_design(design, pool)
            if not sectioned:
                raise ValueError("AI design contained no known blocks")
            segments = assemble_segments(sectioned, scan_start, scan_end)
            reasoning = design.get("reasoning") or generate_explanation(state, segments)
            return Flow(state=state, segments=segments, reasoning=reasoning, source="ai")
        except Exception:
            logger.warning("AI routine design failed, falling back to the algorithm", exc_info=True)

    rng = random.Random(seed)
    selected = select_blocks(filter_blocks_for_state(pool, state), block_count, rng)
    segments = assemble_segments(assign_sections(selected), scan_start, scan_end)
    return Flow(state=state, segments=segments, reasoning=generate_explanation(state, segments))

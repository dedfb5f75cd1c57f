from typing import Optional, Sequence

from polyvagal import PolyvagalState


def _time_of_day(local_hour: Optional[int]) -> Optional[str]:
    if local_hour is None:
        return None
    if 5 <= local_hour < 12:
        return f"morning ({local_hour}:00)"
    if 12 <= local_hour < 17:
        return f"afternoon ({local_hour}:00)"
    if 17 <= local_hour < 23:
        return f"evening ({local_hour}:00)"
    return f"late night ({local_hour}:00)"


def main_block_count(block_count: int) -> int:
    """Blocks left for the main section after one warm-up and one integration."""
    return max(1, block_count - 2)


def build_system_prompt() -> str:
    """Compose the routine-designer persona prompt."""

    return """
You are a polyvagal-informed, trauma-informed somatic routine designer. Select and
sequence somatic exercises into a three-phase routine (warm-up, main, integration)
tailored to the user's nervous system state.

Lineage:
- Polyvagal Theory: meet the state, build safety, widen the window; prioritise cues of safety.
- Vagus nerve exercises: favour gentle eye work, humming and soft self-touch early,
  especially for withdrawn, stirring or activated states.
- Somatic Experiencing: pendulation, titration, and gentle discharge only when resourced.
- Trauma-informed care: never imply guaranteed outcomes; keep options non-demanding.

Phases:
1. Warm-up: EXACTLY 1 gentle, vagal-toning block (e.g. vagus_reset, eye_covering, humming).
2. Main: all remaining blocks, progressive proprioceptive and movement work
   (e.g. body_tapping, shaking, heart_opener, self_havening, freeze_roll). Repeat blocks if needed.
3. Integration: EXACTLY 1 slow, grounding block (e.g. self_hug_swaying, brain_hold).

States:
- withdrawn: gentlest vagal tone first, build arousal slowly, close with warmth and containment.
- stirring: settled but low energy; soft movement early, moderate activation in main.
- activated: calming blocks first; discharge (shaking, freeze_roll) only after partial settling.
- settling: balanced routine; mix activation and settling freely.
- connected: lean into joyful movement and heart-openers; keep the warm-up brief.

Intensity (0-100) changes which blocks you choose, never the phase sizes.
Time of day is a soft signal; state and intensity take precedence.

Respond ONLY with JSON, no markdown fences:
{
  "reasoning": "4-5 warm sentences to the user, starting like 'We put this together for you because...'. Describe exercises in plain language, never internal names.",
  "sections": [
    {"name": "warm-up", "blocks": [{"canonical_name": "string"}]},
    {"name": "main", "blocks": [{"canonical_name": "string"}]},
    {"name": "integration", "blocks": [{"canonical_name": "string"}]}
  ]
}
Only use canonical_name values from the provided list. Never invent names.
"""


def build_user_prompt(
    state: PolyvagalState,
    intensity: int,
    duration_minutes: int,
    block_count: int,
    available: Sequence[str],
    local_hour: Optional[int] = None,
) -> str:
    """Describe the session the designer should build."""

    main_blocks = main_block_count(block_count)
    total = main_blocks + 2
    time_text = _time_of_day(local_hour)
    time_line = f" It is currently {time_text} for this person." if time_text else ""
    plural = "s" if main_blocks != 1 else ""

    return f"""
Design a {duration_minutes}-minute somatic routine for someone who feels {state.value} at intensity {intensity}/100.{time_line}

Available blocks (use only these canonical names; repetition is allowed):
{", ".join(available)}

EXACT STRUCTURE REQUIRED:
- warm-up: EXACTLY 1 block
- main: EXACTLY {main_blocks} block{plural}
- integration: EXACTLY 1 block
Total: EXACTLY {total} blocks.
Apply polyvagal principles for the {state.value} state at intensity {intensity}.
"""

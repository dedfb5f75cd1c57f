import json
import logging
import re
from typing import Any, Dict, List, Optional, Sequence

from openai import OpenAI

from polyvagal import PolyvagalState
from routine_prompt import build_system_prompt, build_user_prompt

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4.1-mini"
_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```\s*$", re.IGNORECASE)


def _resolve_api_key(provided: Optional[str]) -> Optional[str]:
    """Resolve an API key from (in order) provided arg, secrets, env handled by OpenAI."""
    if provided:
        return provided
    try:
        import streamlit as st  # type: ignore
    except Exception:
        return None
    try:
        if "SOMI_OPENAI_API_KEY" in st.secrets:
            return st.secrets.get("SOMI_OPENAI_API_KEY")
        block = st.secrets.get("openai", {})
    except Exception:
        return None
    if hasattr(block, "get"):
        return block.get("api_key") or block.get("key")
    return None


def _build_client(api_key: Optional[str], timeout: Optional[float] = None) -> OpenAI:
    resolved = _resolve_api_key(api_key)
    kwargs: Dict[str, Any] = {}
    if timeout is not None:
        kwargs["timeout"] = timeout
    if resolved:
        return OpenAI(api_key=resolved, **kwargs)
    # Fall back to default OpenAI resolution (env vars, config files)
    return OpenAI(**kwargs)


def chat_completion(
    messages: List[Dict[str, str]],
    *,
    api_key: Optional[str] = None,
    model: str = DEFAULT_MODEL,
    temperature: float = 0.7,
    max_tokens: int = 1024,
    timeout: Optional[float] = 20.0,
) -> str:
    """Invoke OpenAI Chat Completions for the routine designer."""
    client = _build_client(api_key, timeout)
    response = client.chat.completions.create(
        model=model,
        temperature=temperature,
        max_tokens=max_tokens,
        messages=messages,
    )
    return response.choices[0].message.content or ""


def parse_design(raw_text: str, available: Sequence[str]) -> Dict[str, Any]:
    """Parse the model's JSON, tolerating code fences, and drop unknown block names."""
    cleaned = _FENCE_RE.sub("", (raw_text or "").strip()).strip()
    design = json.loads(cleaned)
    if not isinstance(design, dict) or not isinstance(design.get("sections"), list):
        raise ValueError("Routine design is missing its sections")
    known = set(available)
    for section in design["sections"]:
        blocks = section.get("blocks") or []
        section["blocks"] = [b for b in blocks if isinstance(b, dict) and b.get("canonical_name") in known]
    return design


def design_routine(
    state: PolyvagalState,
    duration_minutes: int,
    block_count: int,
    available: Sequence[str],
    *,
    intensity: int = 50,
    local_hour: Optional[int] = None,
    api_key: Optional[str] = None,
    model: str = DEFAULT_MODEL,
    completion=chat_completion,
) -> Dict[str, Any]:
    """Ask the model for a sectioned routine built only from ``available`` names."""
    messages = [
        {"role": "system", "content": build_system_prompt()},
        {
            "role": "user",
            "content": build_user_prompt(state, intensity, duration_minutes, block_count, available, local_hour),
        },
    ]
    raw = completion(messages, api_key=api_key, model=model)
    design = parse_design(raw, available)
    logger.info("AI routine reasoning: %s", design.get("reasoning") or "(none)")
    return design

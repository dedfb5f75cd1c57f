"""Runtime configuration: environment variables first, then Streamlit secrets."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional

from supabase import Client, ClientOptions, create_client

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def get_config(name: str, default: Optional[str] = None) -> Optional[str]:
    env_value = os.getenv(name)
    if env_value:
        return env_value
    try:
        import streamlit as st  # type: ignore
    except Exception:
        return default
    try:
        return st.secrets.get(name, default)
    except Exception:
        return default


def _get_int(name: str, default: int) -> int:
    raw = get_config(name)
    if raw in (None, ""):
        return default
    try:
        return int(raw)
    except (TypeError, ValueError):
        logger.warning("Ignoring non-integer %s=%r, using %s", name, raw, default)
        return default


def _get_float(name: str, default: float) -> float:
    raw = get_config(name)
    if raw in (None, ""):
        return default
    try:
        return float(raw)
    except (TypeError, ValueError):
        logger.warning("Ignoring non-numeric %s=%r, using %s", name, raw, default)
        return default


@dataclass(frozen=True)
class Settings:
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4.1-mini"
    catalog_ttl_seconds: int = 300
    request_timeout_seconds: float = 5.0
    catalog_media_type: Optional[str] = "video"
    sos_canonical_name: str = "vagus_reset_lying_down"
    active_chain_key: str = "active_somi_chain_id"
    recent_window: int = 3
    state_file: Optional[str] = None

    @property
    def supabase_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)


def load_settings() -> Settings:
    media_type = (get_config("SOMI_CATALOG_MEDIA_TYPE", "video") or "").strip().lower()
    return Settings(
        supabase_url=get_config("SUPABASE_URL"),
        supabase_key=get_config("SUPABASE_SERVICE_ROLE_KEY") or get_config("SUPABASE_ANON_KEY"),
        openai_api_key=get_config("SOMI_OPENAI_API_KEY") or get_config("OPENAI_API_KEY"),
        openai_model=get_config("SOMI_OPENAI_MODEL", "gpt-4.1-mini") or "gpt-4.1-mini",
        catalog_ttl_seconds=_get_int("SOMI_CATALOG_TTL_SECONDS", 300),
        request_timeout_seconds=_get_float("SOMI_REQUEST_TIMEOUT_SECONDS", 5.0),
        catalog_media_type=media_type if media_type not in {"", "any", "all"} else None,
        sos_canonical_name=get_config("SOMI_SOS_CANONICAL_NAME", "vagus_reset_lying_down")
        or "vagus_reset_lying_down",
        active_chain_key=get_config("SOMI_ACTIVE_CHAIN_KEY", "active_somi_chain_id") or "active_somi_chain_id",
        recent_window=_get_int("SOMI_RECENT_WINDOW", 3),
        state_file=get_config("SOMI_STATE_FILE"),
    )


def create_supabase_client(settings: Settings) -> Optional[Client]:
    """Build a Supabase client with bounded request timeouts, or None when unconfigured."""
    if not settings.supabase_configured:
        return None
    try:
        return create_client(
            settings.supabase_url,
            settings.supabase_key,
            options=ClientOptions(
                postgrest_client_timeout=settings.request_timeout_seconds,
                storage_client_timeout=int(max(1, settings.request_timeout_seconds)),
            ),
        )
    except Exception:
        logger.exception("Could not create Supabase client for %s", settings.supabase_url)
        return None


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=(level or get_config("SOMI_LOG_LEVEL", "INFO") or "INFO").upper(),
        format=LOG_FORMAT,
    )

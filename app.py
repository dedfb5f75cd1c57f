import datetime
from typing import List, Optional

import streamlit as st
from supabase import Client

import db_supabase
import events as ev
from catalog_cache import CatalogCache
from chain_tracker import ChainTracker
from config import Settings, configure_logging, create_supabase_client, load_settings
from flow_builder import SOMI_BLOCK, Flow
from history_view import render_chain, render_practice_summary
from local_store import JsonFileKeyValueStore
from media_service import MediaService
from models import Block
from polyvagal import STATE_ORDER, PolyvagalState, score_to_state
from routines import MORNING, NIGHT, TIME_TO_BLOCK_COUNT, get_auto_routine_type

APP_NAME = "SoMi"
NAV_TABS = ("Check-in", "Routines", "History")

configure_logging()


class SessionStateStore:
    """Keeps the active chain pointer in Streamlit session state."""

    def get(self, key: str) -> Optional[str]:
        return st.session_state.get(f"kv:{key}")

    def set(self, key: str, value: str) -> None:
        st.session_state[f"kv:{key}"] = str(value)

    def clear(self, key: str) -> None:
        st.session_state.pop(f"kv:{key}", None)


@st.cache_resource(show_spinner=False)
def get_settings() -> Settings:
    return load_settings()


@st.cache_resource(show_spinner=False)
def get_supabase_client() -> Optional[Client]:
    return create_supabase_client(get_settings())


@st.cache_resource(show_spinner=False)
def get_catalog_cache() -> CatalogCache:
    settings = get_settings()
    client = get_supabase_client()

    def fetch() -> List[dict]:
        if client is None:
            return []
        return db_supabase.fetch_blocks(client, settings.catalog_media_type)

    return CatalogCache(fetch, ttl_seconds=settings.catalog_ttl_seconds)


def _on_fallback(block: Block, reason: str) -> None:
    st.toast(f"Playing {block.name} while the library is unavailable.")


def _on_abort(message: str) -> None:
    st.session_state["flow_message"] = message


def _on_block_completed(completed) -> None:
    st.toast("Nice work. Block saved.", icon="✅")


def get_media_service() -> MediaService:
    if "media_service" in st.session_state:
        return st.session_state["media_service"]
    settings = get_settings()
    bus = ev.EventBus()
    bus.subscribe(ev.FALLBACK_USED, _on_fallback)
    bus.subscribe(ev.FLOW_ABORTED, _on_abort)
    bus.subscribe(ev.BLOCK_COMPLETED, _on_block_completed)
    store = JsonFileKeyValueStore(settings.state_file) if settings.state_file else SessionStateStore()
    tracker = ChainTracker(get_supabase_client(), store, events=bus, active_chain_key=settings.active_chain_key)
    service = MediaService(
        get_catalog_cache(),
        tracker,
        events=bus,
        sos_canonical_name=settings.sos_canonical_name,
        recent_window=settings.recent_window,
        openai_api_key=settings.openai_api_key,
        openai_model=settings.openai_model,
    )
    st.session_state["media_service"] = service
    return service


def render_player(block: Block, order_index: int, key: str) -> None:
    st.markdown(f"#### {block.name}")
    if block.description:
        st.caption(block.description)
    if block.media_url:
        if block.media_type == "audio":
            st.audio(block.media_url)
        else:
            st.video(block.media_url)
    seconds = st.number_input("Seconds practiced", min_value=0, max_value=3600, value=60, step=10, key=f"{key}_secs")
    if st.button("Mark complete", key=f"{key}_done"):
        get_media_service().complete_block(block, int(seconds), order_index)


def render_check_in_tab() -> None:
    service = get_media_service()
    st.markdown("### How embodied do you feel right now?")
    score = st.slider("Embodiment", min_value=0, max_value=100, value=50, key="embodiment_score")
    derived = score_to_state(score)
    labels = [f"{s.meta.emoji} {s.meta.label}" for s in STATE_ORDER]
    choice = st.radio("Polyvagal state", labels, index=derived.ordinal, horizontal=True)
    state = STATE_ORDER[labels.index(choice)]
    st.caption(state.meta.description)

    col1, col2 = st.columns(2)
    with col1:
        if st.button("Check in & get my practice", type="primary"):
            service.check_in(score, state)
            st.session_state["current_block"] = service.media_for_check_in(score, state)
    with col2:
        if st.button("🆘 SOS"):
            st.session_state["current_block"] = service.sos_media()

    block = st.session_state.get("current_block")
    if block is not None:
        render_player(block, order_index=len(service.tracker.recent_block_ids(limit=100)), key="check_in")

    if st.button("End session"):
        service.end_session()
        st.session_state.pop("current_block", None)
        st.success("Session closed. Take a breath before moving on.")


def render_flow(flow: Flow) -> None:
    st.info(flow.reasoning)
    st.caption(f"{flow.actual_duration_seconds // 60} min · {'AI designed' if flow.source == 'ai' else 'Curated'}")
    order = 0
    for i, segment in enumerate(flow.segments):
        if segment.type == SOMI_BLOCK and segment.block is not None:
            with st.expander(f"{segment.section.replace('_', ' ').title()} · {segment.block.name}"):
                render_player(segment.block, order, key=f"flow_{i}")
            order += 1
        else:
            st.write(f"· {segment.type.replace('_', ' ')} ({segment.duration_seconds}s)")


def render_routines_tab() -> None:
    service = get_media_service()
    st.markdown("### Quick routines")
    default_type = get_auto_routine_type(datetime.datetime.now().hour)
    routine_type = st.radio("Routine", (MORNING, NIGHT), index=(MORNING, NIGHT).index(default_type), horizontal=True)
    minutes = st.select_slider("Length (minutes)", options=sorted(TIME_TO_BLOCK_COUNT), value=10)
    if st.button("Build routine"):
        st.session_state.pop("flow_message", None)
        st.session_state["routine_queue"] = service.routine_queue(routine_type, TIME_TO_BLOCK_COUNT[minutes])

    queue = st.session_state.get("routine_queue")
    if queue:
        for i, block in enumerate(queue):
            with st.expander(f"{i + 1}. {block.name}"):
                render_player(block, i, key=f"routine_{i}")

    st.markdown("### Generated flow")
    state = PolyvagalState(st.selectbox("State", [s.value for s in STATE_ORDER], index=3))
    duration = st.slider("Duration (minutes)", min_value=1, max_value=60, value=10)
    scan_start = st.checkbox("Body scan first")
    scan_end = st.checkbox("Body scan last")
    use_ai = st.toggle("Let AI design it", value=False)
    if st.button("Generate flow"):
        st.session_state.pop("flow_message", None)
        with st.spinner("Designing your flow..."):
            st.session_state["flow"] = service.generate_flow(state, duration, scan_start, scan_end, use_ai=use_ai)

    if st.session_state.get("flow_message"):
        st.warning(st.session_state["flow_message"])
    flow = st.session_state.get("flow")
    if flow is not None:
        render_flow(flow)


@st.cache_data(ttl=60, show_spinner=False)
def cached_history(limit: int = 30):
    tracker = ChainTracker(get_supabase_client(), SessionStateStore())
    return tracker.chain_history(limit)


def render_history_tab() -> None:
    if get_supabase_client() is None:
        st.warning("Add SUPABASE_URL and SUPABASE_ANON_KEY to secrets to keep a practice history.")
        return
    chains = cached_history()
    render_practice_summary(chains)
    for chain in chains:
        render_chain(chain)
    if st.button("Refresh"):
        cached_history.clear()
        st.rerun()


def main() -> None:
    st.set_page_config(page_title=APP_NAME, page_icon="🌿", layout="centered")
    st.title(f"🌿 {APP_NAME}")
    if get_supabase_client() is None:
        st.error("Supabase is not configured. Practice videos and history are unavailable.")

    selected_tab = st.segmented_control("Navigate", options=NAV_TABS, default=NAV_TABS[0], label_visibility="collapsed")
    selected_tab = selected_tab or NAV_TABS[0]
    if selected_tab == "Check-in":
        render_check_in_tab()
    elif selected_tab == "Routines":
        render_routines_tab()
    else:
        render_history_tab()


if __name__ == "__main__":
    main()

# Render recent practice chains using Streamlit native elements.
from typing import List

import streamlit as st

from models import Chain


def render_practice_summary(chains: List[Chain]):
    st.markdown('### 🌿 Your practice')
    sessions = len(chains)
    minutes = sum(chain.total_seconds for chain in chains) // 60
    deltas = [chain.score_delta for chain in chains if chain.score_delta is not None]
    col1, col2, col3 = st.columns(3)
    with col1:
        st.metric('Sessions', sessions)
    with col2:
        st.metric('Minutes practiced', minutes)
    with col3:
        avg = sum(deltas) / len(deltas) if deltas else 0
        st.metric('Avg. shift', f"{avg:+.0f}")
    st.caption('Shift compares your first and last check-in within a session.')


def render_chain(chain: Chain):
    when = chain.created_at.strftime('%b %d, %H:%M') if chain.created_at else 'Unknown time'
    with st.expander(f"{when} · {len(chain.completed_blocks)} blocks · {chain.total_seconds // 60} min"):
        for check in chain.embodiment_checks:
            meta = check.polyvagal_state.meta if check.polyvagal_state else None
            label = f"{meta.emoji} {meta.label}" if meta else 'Unrecorded state'
            st.write(f"Check-in: {check.slider_value}/100 · {label}")
        for entry in chain.completed_blocks:
            name = entry.block.name if entry.block else f"Block #{entry.block_id}"
            st.write(f"{entry.order_index + 1}. {name} ({entry.seconds_elapsed}s)")

"""Flatten practice chains into rows for the Snowflake reporting tables."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List

from models import Chain

TABLE_SPECS = {
    "somi_chains": """
        chain_id INTEGER,
        flow_type STRING,
        created_at TIMESTAMP_NTZ,
        total_seconds INTEGER,
        block_count INTEGER,
        first_score INTEGER,
        last_score INTEGER
    """,
    "embodiment_checks": """
        check_id INTEGER,
        chain_id INTEGER,
        slider_value INTEGER,
        polyvagal_state STRING,
        created_at TIMESTAMP_NTZ
    """,
    "completed_somi_blocks": """
        entry_id INTEGER,
        chain_id INTEGER,
        block_id INTEGER,
        canonical_name STRING,
        seconds_elapsed INTEGER,
        order_index INTEGER,
        created_at TIMESTAMP_NTZ
    """,
}

TABLE_COLUMNS = {
    "somi_chains": ["chain_id", "flow_type", "created_at", "total_seconds", "block_count", "first_score", "last_score"],
    "embodiment_checks": ["check_id", "chain_id", "slider_value", "polyvagal_state", "created_at"],
    "completed_somi_blocks": [
        "entry_id", "chain_id", "block_id", "canonical_name", "seconds_elapsed", "order_index", "created_at",
    ],
}


def _ts(value) -> Any:
    return value.replace(tzinfo=None).isoformat(sep=" ") if value is not None else None


def flatten_chains(chains: Iterable[Chain]) -> Dict[str, List[Dict[str, Any]]]:
    tables: Dict[str, List[Dict[str, Any]]] = {name: [] for name in TABLE_SPECS}
    for chain in chains:
        checks = chain.embodiment_checks
        tables["somi_chains"].append({
            "chain_id": chain.id,
            "flow_type": chain.flow_type,
            "created_at": _ts(chain.created_at),
            "total_seconds": chain.total_seconds,
            "block_count": len(chain.completed_blocks),
            "first_score": checks[0].slider_value if checks else None,
            "last_score": checks[-1].slider_value if checks else None,
        })
        for check in checks:
            tables["embodiment_checks"].append({
                "check_id": check.id,
                "chain_id": chain.id,
                "slider_value": check.slider_value,
                "polyvagal_state": check.polyvagal_state.value if check.polyvagal_state else None,
                "created_at": _ts(check.created_at),
            })
        for entry in chain.completed_blocks:
            tables["completed_somi_blocks"].append({
                "entry_id": entry.id,
                "chain_id": chain.id,
                "block_id": entry.block_id,
                "canonical_name": entry.block.canonical_name if entry.block else None,
                "seconds_elapsed": entry.seconds_elapsed,
                "order_index": entry.order_index,
                "created_at": _ts(entry.created_at),
            })
    return tables

"""Supabase persistence helpers for SoMi blocks, chains and check-ins."""

from __future__ import annotations

from collections import Counter
from typing import Any, Dict, Iterable, List, Optional

from supabase import Client

from errors import BackingStoreUnavailable

BLOCKS_TABLE = "somi_blocks"
CHAINS_TABLE = "somi_chains"
CHECKS_TABLE = "embodiment_checks"
COMPLETED_TABLE = "completed_somi_blocks"

BLOCK_COLUMNS = (
    "id, canonical_name, name, description, media_url, media_type, block_type, "
    "state_target, intensity, active, is_routine_only, energy_delta, safety_delta, thumbnail_url"
)


def _execute(query: Any, action: str) -> List[Dict[str, Any]]:
    """Run a PostgREST query and return its rows, wrapping any failure."""
    try:
        response = query.execute()
    except Exception as exc:
        raise BackingStoreUnavailable(f"Could not {action}: {exc}") from exc
    return list(getattr(response, "data", None) or [])


def _first(rows: List[Dict[str, Any]], action: str) -> Dict[str, Any]:
    if not rows:
        raise BackingStoreUnavailable(f"Could not {action}: no row returned")
    return rows[0]


# ============================================================================
# Catalog (somi_blocks)
# ============================================================================

def fetch_blocks(client: Client, media_type: Optional[str] = "video") -> List[Dict[str, Any]]:
    """Active, playable, non-timer blocks."""
    query = (
        client.table(BLOCKS_TABLE)
        .select(BLOCK_COLUMNS)
        .eq("active", True)
        .not_.is_("media_url", "null")
        .neq("block_type", "timer")
    )
    if media_type:
        query = query.eq("media_type", media_type)
    return _execute(query.order("id"), "fetch somi blocks")


def fetch_blocks_by_ids(client: Client, block_ids: Iterable[int]) -> List[Dict[str, Any]]:
    ids = list(dict.fromkeys(block_ids))
    if not ids:
        return []
    query = client.table(BLOCKS_TABLE).select(BLOCK_COLUMNS).in_("id", ids)
    return _execute(query, "fetch blocks by id")


# ============================================================================
# Chains (somi_chains)
# ============================================================================

def create_chain(client: Client, flow_type: str = "daily_flow") -> Dict[str, Any]:
    """Insert a chain header and return the stored row."""
    rows = _execute(client.table(CHAINS_TABLE).insert({"flow_type": flow_type}), "create chain")
    return _first(rows, "create chain")


def chain_exists(client: Client, chain_id: int) -> bool:
    rows = _execute(
        client.table(CHAINS_TABLE).select("id").eq("id", chain_id).limit(1),
        f"look up chain {chain_id}",
    )
    return bool(rows)


def list_chains(client: Client, limit: int = 30, flow_type: Optional[str] = None) -> List[Dict[str, Any]]:
    """Most recent chains first."""
    query = client.table(CHAINS_TABLE).select("*")
    if flow_type:
        query = query.eq("flow_type", flow_type)
    return _execute(query.order("created_at", desc=True).limit(limit), "list chains")


def latest_chain(client: Client, flow_type: Optional[str] = None) -> Optional[Dict[str, Any]]:
    rows = list_chains(client, limit=1, flow_type=flow_type)
    return rows[0] if rows else None


def delete_chain(client: Client, chain_id: int) -> None:
    """Delete a chain and its events. Blocks themselves are never touched."""
    _execute(client.table(CHECKS_TABLE).delete().eq("somi_chain_id", chain_id), "delete embodiment checks")
    _execute(client.table(COMPLETED_TABLE).delete().eq("somi_chain_id", chain_id), "delete completed blocks")
    _execute(client.table(CHAINS_TABLE).delete().eq("id", chain_id), "delete chain")


# ============================================================================
# Embodiment checks (embodiment_checks)
# ============================================================================

def insert_embodiment_check(
    client: Client,
    chain_id: Optional[int],
    slider_value: int,
    state_code: int,
    journal_entry: Optional[str] = None,
) -> Dict[str, Any]:
    rows = _execute(
        client.table(CHECKS_TABLE).insert({
            "somi_chain_id": chain_id,
            "embodiment_level": slider_value,
            "polyvagal_state_code": state_code,
            "journal_entry": journal_entry,
        }),
        "save embodiment check",
    )
    return _first(rows, "save embodiment check")


def list_embodiment_checks(client: Client, chain_ids: Iterable[int]) -> List[Dict[str, Any]]:
    ids = list(chain_ids)
    if not ids:
        return []
    query = client.table(CHECKS_TABLE).select("*").in_("somi_chain_id", ids).order("created_at")
    return _execute(query, "list embodiment checks")


# ============================================================================
# Completed blocks (completed_somi_blocks)
# ============================================================================

def insert_completed_block(
    client: Client,
    chain_id: Optional[int],
    block_id: int,
    seconds_elapsed: int,
    order_index: int = 0,
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "somi_block_id": block_id,
        "seconds_elapsed": seconds_elapsed,
        "order_index": order_index,
    }
    # A block watched outside any session is stored without a chain.
    if chain_id is not None:
        payload["somi_chain_id"] = chain_id
    rows = _execute(client.table(COMPLETED_TABLE).insert(payload), "save completed block")
    return _first(rows, "save completed block")


def list_completed_blocks(client: Client, chain_ids: Iterable[int]) -> List[Dict[str, Any]]:
    ids = list(chain_ids)
    if not ids:
        return []
    query = client.table(COMPLETED_TABLE).select("*").in_("somi_chain_id", ids).order("order_index")
    return _execute(query, "list completed blocks")


def completed_block_counts(client: Client) -> Dict[int, int]:
    """How many times each block has been completed, across all chains."""
    rows = _execute(client.table(COMPLETED_TABLE).select("somi_block_id"), "count completed blocks")
    return dict(Counter(int(row["somi_block_id"]) for row in rows if row.get("somi_block_id") is not None))

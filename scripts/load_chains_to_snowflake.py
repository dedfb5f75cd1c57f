#!/usr/bin/env python3
"""
Copy recent practice chains from Supabase into the Snowflake reporting tables.

Required environment variables:
  SUPABASE_URL, SUPABASE_SERVICE_ROLE_KEY (or SUPABASE_ANON_KEY)
  SNOWFLAKE_ACCOUNT
  SNOWFLAKE_USER
  SNOWFLAKE_PASSWORD
  SNOWFLAKE_WAREHOUSE
  SNOWFLAKE_DATABASE
  SNOWFLAKE_SCHEMA

Usage:
  python3 scripts/load_chains_to_snowflake.py [--limit 500]
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Iterable

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from chain_tracker import ChainTracker  # noqa: E402
from config import configure_logging, create_supabase_client, load_settings  # noqa: E402
from local_store import MemoryKeyValueStore  # noqa: E402
from warehouse import TABLE_COLUMNS, TABLE_SPECS, flatten_chains  # noqa: E402

from init_snowflake_schema import connect, get_params  # noqa: E402

logger = logging.getLogger("load_chains_to_snowflake")


def insert_rows(cursor, table: str, rows: Iterable[Dict[str, Any]]) -> None:
    rows = list(rows)
    if not rows:
        return
    columns = TABLE_COLUMNS.get(table) or list(rows[0].keys())
    placeholders = ", ".join(["%s"] * len(columns))
    insert_sql = f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})"
    payload = [[row.get(col) for col in columns] for row in rows]
    cursor.executemany(insert_sql, payload)


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--limit", type=int, default=500, help="How many recent chains to copy")
    args = parser.parse_args()
    configure_logging()

    client = create_supabase_client(load_settings())
    if client is None:
        raise SystemExit("Supabase is not configured (SUPABASE_URL / key missing).")
    chains = ChainTracker(client, MemoryKeyValueStore()).chain_history(limit=args.limit)
    tables = flatten_chains(chains)

    conn = connect(get_params())
    try:
        cursor = conn.cursor()
        for table, columns in TABLE_SPECS.items():
            cursor.execute(f"CREATE OR REPLACE TABLE {table} ({columns})")
            insert_rows(cursor, table, tables[table])
            logger.info("Loaded %s rows into %s", len(tables[table]), table)
        conn.commit()
    finally:
        conn.close()
    print("Snowflake load complete.")


if __name__ == "__main__":
    main()

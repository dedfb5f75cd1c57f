"""Create the SoMi practice reporting tables in Snowflake if they are missing.

Usage:
    python scripts/init_snowflake_schema.py

Connection settings come from SNOWFLAKE_ACCOUNT, SNOWFLAKE_USER,
SNOWFLAKE_PASSWORD, SNOWFLAKE_WAREHOUSE, SNOWFLAKE_DATABASE and
SNOWFLAKE_SCHEMA, plus SNOWFLAKE_ROLE when a non-default role is needed.
"""

import os
import sys
from pathlib import Path

import snowflake.connector

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from warehouse import TABLE_SPECS  # noqa: E402

# connector keyword -> environment variable
CONNECTION_ENV = {
    "account": "SNOWFLAKE_ACCOUNT",
    "user": "SNOWFLAKE_USER",
    "password": "SNOWFLAKE_PASSWORD",
    "warehouse": "SNOWFLAKE_WAREHOUSE",
    "database": "SNOWFLAKE_DATABASE",
    "schema": "SNOWFLAKE_SCHEMA",
}


def get_params() -> dict:
    params = {key: os.getenv(env) for key, env in CONNECTION_ENV.items()}
    missing = [CONNECTION_ENV[key] for key, value in params.items() if not value]
    if missing:
        sys.exit(f"Missing Snowflake environment variables: {', '.join(missing)}")
    if os.getenv("SNOWFLAKE_ROLE"):
        params["role"] = os.getenv("SNOWFLAKE_ROLE")
    return params


def connect(params: dict):
    return snowflake.connector.connect(**params)


def main() -> None:
    conn = connect(get_params())
    cur = conn.cursor()
    try:
        for table, columns in TABLE_SPECS.items():
            cur.execute(f"CREATE TABLE IF NOT EXISTS {table} ({columns})")
        print(f"✅ Ensured {len(TABLE_SPECS)} SoMi reporting tables.")
    finally:
        cur.close()
        conn.close()


if __name__ == "__main__":
    main()

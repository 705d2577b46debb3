#!/usr/bin/env python3
"""Emit deterministic SQL for the PostgreSQL lifecycle store."""

from __future__ import annotations

import argparse
import re

from lifecycle.services.postgres_store import SCHEMA_SQL


SCHEMA_NAME_RE = re.compile(r"^[a-z_][a-z0-9_]*$")


def _quote_sql(value: str) -> str:
    escaped = value.replace("'", "''")
    return f"'{escaped}'"


def render_sql(*, schema: str | None, drop_existing: bool) -> str:
    lines = ["-- Lifecycle store schema", "-- Run in a privileged Postgres session before starting the API.", ""]
    if schema:
        lines.append(f"create schema if not exists {schema};")
        lines.append(f"set search_path to {_quote_sql(schema)};")
        lines.append("")
    if drop_existing:
        lines.append("drop table if exists lifecycle_records;")
        lines.append("")
    lines.append(SCHEMA_SQL.strip())
    return "\n".join(lines) + "\n"


def _schema_name(value: str) -> str:
    if not SCHEMA_NAME_RE.match(value):
        raise argparse.ArgumentTypeError(f"invalid schema name: {value}")
    return value


def main() -> None:
    parser = argparse.ArgumentParser(description="Emit SQL creating the lifecycle_records table.")
    parser.add_argument("--schema", type=_schema_name, help="Target Postgres schema (defaults to the session search_path)")
    parser.add_argument(
        "--drop-existing",
        action="store_true",
        help="Drop lifecycle_records before creating it (destroys audit history)",
    )
    args = parser.parse_args()

    print(render_sql(schema=args.schema, drop_existing=args.drop_existing))


if __name__ == "__main__":
    main()

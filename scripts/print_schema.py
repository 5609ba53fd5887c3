#!/usr/bin/env python3
"""
Print Schema Script

Renders the migrations as one plain SQL script, for environments where
Alembic is not available (managed databases, DBA review).

Usage:
    $ python -m scripts.print_schema | psql "$DSN"
    $ python -m scripts.print_schema --dimension 768 --no-rls > schema.sql
"""

from __future__ import annotations

import argparse
import sys

from app.core.config import settings
from app.models.ddl import (
    HNSW_INDEX,
    base_schema_statements,
    render_script,
    tenant_policy_statements,
)


def build_statements(dimension: int, hnsw: bool = True, rls: bool = True) -> list[str]:
    """Statements of every migration, in upgrade order."""
    statements = base_schema_statements(dimension)
    if hnsw:
        statements.append(HNSW_INDEX)
    if rls:
        statements += tenant_policy_statements()
    return statements


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Print the RAG schema as SQL")
    parser.add_argument(
        "--dimension",
        type=int,
        default=settings.EMBEDDING_DIMENSION,
        help="Size of chunks.embedding (default: EMBEDDING_DIMENSION)",
    )
    parser.add_argument("--no-hnsw", action="store_true", help="Skip the HNSW index")
    parser.add_argument("--no-rls", action="store_true", help="Skip tenant policies")
    args = parser.parse_args(argv)

    try:
        statements = build_statements(
            args.dimension, hnsw=not args.no_hnsw, rls=not args.no_rls
        )
    except ValueError as e:
        parser.error(str(e))

    sys.stdout.write(render_script(statements))
    return 0


if __name__ == "__main__":
    sys.exit(main())

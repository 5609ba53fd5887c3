#!/usr/bin/env python3
"""
Ingest Directory Script

Walks a directory and runs every supported file through the ingestion
pipeline directly against the database (no API round-trip).

Usage:
    Requires the schema (alembic upgrade head):
    $ python -m scripts.ingest_dir ./docs
    $ python -m scripts.ingest_dir ./docs --tenant 6f1c... --recursive
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import uuid
from pathlib import Path

from app.core.config import settings
from app.core.database import dispose_engine, tenant_session
from app.core.exceptions import RAGError
from app.core.logging import setup_logging
from app.services.ingestion import is_supported
from app.services.rag_pipeline import RAGPipeline

logger = logging.getLogger("app.scripts.ingest_dir")


def collect_files(root: Path, recursive: bool = False) -> list[Path]:
    """Supported files under ``root``, sorted by path."""
    pattern = "**/*" if recursive else "*"
    return sorted(p for p in root.glob(pattern) if p.is_file() and is_supported(p.name))


async def ingest_files(files: list[Path], tenant_id: uuid.UUID) -> tuple[int, int, int]:
    """
    Ingest ``files`` one by one.

    Returns:
        (ingested, duplicates, failed) counts.
    """
    pipeline = RAGPipeline()
    ingested = duplicates = failed = 0

    for path in files:
        async with tenant_session(tenant_id) as session:
            try:
                result = await pipeline.ingest_file(
                    session,
                    path.name,
                    path.read_bytes(),
                    tenant_id,
                    path=str(path),
                )
            except (ValueError, RAGError) as e:
                failed += 1
                logger.error("Failed: %s (%s)", path, e)
                continue

        if result.is_duplicate:
            duplicates += 1
            logger.info("Skipped duplicate: %s", path)
        else:
            ingested += 1
            logger.info("Ingested: %s (%d chunks)", path, result.chunks_count)

    return ingested, duplicates, failed


async def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Ingest a directory of documents")
    parser.add_argument("directory", type=Path)
    parser.add_argument(
        "--tenant",
        type=uuid.UUID,
        default=settings.DEFAULT_TENANT_ID,
        help="Owning tenant UUID (default: DEFAULT_TENANT_ID)",
    )
    parser.add_argument("--recursive", "-r", action="store_true")
    args = parser.parse_args(argv)

    setup_logging()

    if not args.directory.is_dir():
        logger.error("Not a directory: %s", args.directory)
        return 1

    files = collect_files(args.directory, recursive=args.recursive)
    if not files:
        logger.warning("No supported files in %s", args.directory)
        return 0

    try:
        ingested, duplicates, failed = await ingest_files(files, args.tenant)
    finally:
        await dispose_engine()

    logger.info(
        "Done: %d ingested, %d duplicates, %d failed", ingested, duplicates, failed
    )
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))

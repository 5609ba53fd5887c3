"""
RAG Repository

Data access layer for the storage and retrieval pipeline.
Provides persistence of sources, documents and chunks plus the two
candidate queries behind hybrid search: pgvector cosine distance and
PostgreSQL full-text rank.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import NamedTuple

from sqlalchemy import delete, func, literal_column, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import DuplicateChunkError, DuplicateSourceError
from app.models.orm import (
    CHUNK_ORDINAL_CONSTRAINT,
    SOURCE_HASH_CONSTRAINT,
    ChunkRecord,
    DocumentRecord,
    IngestionStatus,
    SourceRecord,
)

logger = logging.getLogger(__name__)

TS_CONFIG = literal_column("'english'::regconfig")


class ChunkContext(NamedTuple):
    """A chunk with the fields of its parents needed for display."""

    chunk: ChunkRecord
    document_title: str | None
    source_id: uuid.UUID
    file_name: str


def _violated_constraint(exc: IntegrityError) -> str | None:
    """Name of the violated constraint, if the driver reports one."""
    orig = exc.orig
    for candidate in (orig, getattr(orig, "__cause__", None)):
        name = getattr(candidate, "constraint_name", None)
        if name:
            return name
    message = str(orig)
    for name in (SOURCE_HASH_CONSTRAINT, CHUNK_ORDINAL_CONSTRAINT):
        if name in message:
            return name
    return None


class RAGRepository:
    """
    Repository for source / document / chunk persistence and search.

    All methods expect an externally managed ``AsyncSession``
    (injected via FastAPI dependency or created in a service layer).

    Key guarantees:
        - ``create_source``: the content hash is unique; a concurrent
          duplicate surfaces as ``DuplicateSourceError``.
        - ``save_document_with_chunks``: atomic, the document AND all
          chunks are persisted, or nothing is.
        - Candidate queries are tenant-scoped and return ids with raw
          scores, best first.
    """

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------

    async def get_source_by_hash(
        self,
        session: AsyncSession,
        file_hash: str,
    ) -> SourceRecord | None:
        """Look up a source by its SHA-256 content hash."""
        stmt = select(SourceRecord).where(SourceRecord.hash == file_hash)
        result = await session.execute(stmt)
        return result.scalars().first()

    async def get_source(
        self,
        session: AsyncSession,
        source_id: uuid.UUID,
        tenant_id: uuid.UUID | None = None,
    ) -> SourceRecord | None:
        """Look up a source by id, optionally restricted to a tenant."""
        stmt = select(SourceRecord).where(SourceRecord.id == source_id)
        if tenant_id is not None:
            stmt = stmt.where(SourceRecord.tenant_id == tenant_id)
        result = await session.execute(stmt)
        return result.scalars().first()

    async def create_source(
        self,
        session: AsyncSession,
        source: SourceRecord,
    ) -> SourceRecord:
        """
        Insert a source row and commit.

        Raises:
            DuplicateSourceError: Another source already has this hash.
        """
        session.add(source)
        try:
            await session.commit()
        except IntegrityError as e:
            await session.rollback()
            if _violated_constraint(e) == SOURCE_HASH_CONSTRAINT:
                raise DuplicateSourceError(source.hash) from e
            raise

        logger.info(
            "Created source '%s' (id=%s, hash=%s)",
            source.file_name,
            source.id,
            source.hash[:12],
        )
        return source

    async def set_source_status(
        self,
        session: AsyncSession,
        source_id: uuid.UUID,
        status: IngestionStatus,
        error: str | None = None,
    ) -> None:
        """Record an ingestion status transition and commit."""
        values: dict[str, object] = {
            "ingestion_status": status.value,
            "ingestion_error": error,
            "updated_at": func.now(),
        }
        if status is IngestionStatus.COMPLETED:
            values["ingested_at"] = datetime.now(UTC)

        stmt = update(SourceRecord).where(SourceRecord.id == source_id).values(**values)
        await session.execute(stmt)
        await session.commit()

    async def delete_source(
        self,
        session: AsyncSession,
        source_id: uuid.UUID,
        tenant_id: uuid.UUID,
    ) -> bool:
        """
        Delete a source; its documents and chunks go with it (FK cascade).

        Returns:
            True if a row was deleted.
        """
        stmt = delete(SourceRecord).where(
            SourceRecord.id == source_id,
            SourceRecord.tenant_id == tenant_id,
        )
        result = await session.execute(stmt)
        await session.commit()
        deleted = (result.rowcount or 0) > 0
        if deleted:
            logger.info("Deleted source %s (cascade)", source_id)
        return deleted

    # ------------------------------------------------------------------
    # Documents and chunks
    # ------------------------------------------------------------------

    async def save_document_with_chunks(
        self,
        session: AsyncSession,
        *,
        document: DocumentRecord,
        chunks: list[ChunkRecord],
    ) -> DocumentRecord:
        """
        Persist a document and its chunks atomically.

        Raises:
            DuplicateChunkError: Two chunks share a ``chunk_index``.
        """
        session.add(document)
        session.add_all(chunks)
        try:
            await session.flush()
            await session.commit()
        except IntegrityError as e:
            await session.rollback()
            if _violated_constraint(e) == CHUNK_ORDINAL_CONSTRAINT:
                raise DuplicateChunkError(
                    f"Duplicate chunk_index within document {document.id}"
                ) from e
            raise

        logger.info(
            "Saved document '%s' with %d chunks",
            document.title,
            len(chunks),
        )
        return document

    async def list_documents_by_source(
        self,
        session: AsyncSession,
        source_id: uuid.UUID,
    ) -> Sequence[DocumentRecord]:
        stmt = (
            select(DocumentRecord)
            .where(DocumentRecord.source_id == source_id)
            .order_by(DocumentRecord.created_at)
        )
        result = await session.execute(stmt)
        return result.scalars().all()

    async def count_chunks_by_source(
        self,
        session: AsyncSession,
        source_id: uuid.UUID,
    ) -> int:
        stmt = (
            select(func.count(ChunkRecord.id))
            .join(DocumentRecord, ChunkRecord.document_id == DocumentRecord.id)
            .where(DocumentRecord.source_id == source_id)
        )
        result = await session.execute(stmt)
        return int(result.scalar_one())

    async def get_chunks_by_document(
        self,
        session: AsyncSession,
        document_id: uuid.UUID,
    ) -> Sequence[ChunkRecord]:
        """Get all chunks for a document, ordered by index."""
        stmt = (
            select(ChunkRecord)
            .where(ChunkRecord.document_id == document_id)
            .order_by(ChunkRecord.chunk_index)
        )
        result = await session.execute(stmt)
        return result.scalars().all()

    async def get_chunk_contexts(
        self,
        session: AsyncSession,
        chunk_ids: Sequence[uuid.UUID],
    ) -> dict[uuid.UUID, ChunkContext]:
        """Load chunks with their document title and source filename."""
        if not chunk_ids:
            return {}
        stmt = (
            select(
                ChunkRecord,
                DocumentRecord.title,
                SourceRecord.id,
                SourceRecord.file_name,
            )
            .join(DocumentRecord, ChunkRecord.document_id == DocumentRecord.id)
            .join(SourceRecord, DocumentRecord.source_id == SourceRecord.id)
            .where(ChunkRecord.id.in_(list(chunk_ids)))
        )
        result = await session.execute(stmt)
        return {
            chunk.id: ChunkContext(chunk, title, source_id, file_name)
            for chunk, title, source_id, file_name in result.all()
        }

    # ------------------------------------------------------------------
    # Retrieval candidates
    # ------------------------------------------------------------------

    async def vector_candidates(
        self,
        session: AsyncSession,
        query_embedding: list[float],
        tenant_id: uuid.UUID,
        limit: int = 100,
    ) -> list[tuple[uuid.UUID, float]]:
        """
        Nearest chunks by cosine distance (pgvector ``<=>``).

        The distance is converted to a similarity score:
        ``score = 1 - distance`` (range: [-1, 1], higher = more similar).

        Returns:
            ``(chunk_id, similarity)`` pairs, most similar first.
        """
        distance = ChunkRecord.embedding.cosine_distance(query_embedding).label(
            "distance"
        )
        stmt = (
            select(ChunkRecord.id, distance)
            .where(
                ChunkRecord.tenant_id == tenant_id,
                ChunkRecord.embedding.isnot(None),
            )
            .order_by(distance, ChunkRecord.id)
            .limit(limit)
        )
        result = await session.execute(stmt)
        return [(row[0], 1.0 - float(row[1])) for row in result.all()]

    async def text_candidates(
        self,
        session: AsyncSession,
        query_text: str,
        tenant_id: uuid.UUID,
        limit: int = 100,
    ) -> list[tuple[uuid.UUID, float]]:
        """
        Best full-text matches ranked by ``ts_rank_cd``.

        The query is parsed with ``websearch_to_tsquery`` so user input
        (quotes, ``or``, ``-term``) never raises a syntax error.

        Returns:
            ``(chunk_id, rank)`` pairs, most relevant first.
        """
        tsquery = func.websearch_to_tsquery(TS_CONFIG, query_text)
        rank = func.ts_rank_cd(ChunkRecord.search_vector, tsquery).label("rank")
        stmt = (
            select(ChunkRecord.id, rank)
            .where(
                ChunkRecord.tenant_id == tenant_id,
                ChunkRecord.search_vector.op("@@")(tsquery),
            )
            .order_by(rank.desc(), ChunkRecord.id)
            .limit(limit)
        )
        result = await session.execute(stmt)
        return [(row[0], float(row[1])) for row in result.all()]

    async def fuzzy_title_search(
        self,
        session: AsyncSession,
        query_text: str,
        tenant_id: uuid.UUID,
        limit: int = 10,
        min_similarity: float = 0.1,
    ) -> list[tuple[DocumentRecord, float]]:
        """
        Documents whose title is similar to ``query_text`` (pg_trgm).

        Tolerates typos and partial words that full-text search misses.
        """
        similarity = func.similarity(DocumentRecord.title, query_text).label(
            "similarity"
        )
        stmt = (
            select(DocumentRecord, similarity)
            .where(
                DocumentRecord.tenant_id == tenant_id,
                DocumentRecord.title.isnot(None),
                similarity >= min_similarity,
            )
            .order_by(similarity.desc(), DocumentRecord.id)
            .limit(limit)
        )
        result = await session.execute(stmt)
        return [(row[0], float(row[1])) for row in result.all()]


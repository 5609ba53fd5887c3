"""
RAG Pipeline Orchestrator

Coordinates the document lifecycle: dedup → extraction → chunking →
embedding → storage, and routes search queries to the hybrid retriever.

This is the single entry point for the API layer and scripts. It composes
the individual services (FileProcessor, TextChunker, EmbeddingService,
RAGRepository, HybridRetriever) into cohesive workflows.
"""

from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import Any, NamedTuple

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import DuplicateSourceError
from app.models.orm import (
    ChunkRecord,
    DocumentRecord,
    DocumentStatus,
    IngestionStatus,
    SourceRecord,
)
from app.models.schemas import ExtractedFile
from app.repositories.rag import RAGRepository
from app.schemas.rag import SearchHit
from app.services.chunking import TextChunker, find_headings
from app.services.embeddings import EmbeddingService
from app.services.fusion import FusionMethod
from app.services.ingestion import FILE_TYPES, FileProcessor, compute_hash, is_supported
from app.services.retrieval import HybridRetriever

logger = logging.getLogger(__name__)

EXCERPT_MAX_CHARS: int = 500
ERROR_MAX_CHARS: int = 2000


class IngestResult(NamedTuple):
    """Return value of an ingestion."""

    source_id: uuid.UUID
    document_id: uuid.UUID | None
    chunks_count: int
    is_duplicate: bool


def can_retry_source(source: SourceRecord, tenant_id: uuid.UUID) -> bool:
    """A failed source of the same tenant is ingested again on re-upload."""
    return (
        source.ingestion_status == IngestionStatus.FAILED.value
        and source.tenant_id == tenant_id
    )


def derive_title(extracted: ExtractedFile) -> str:
    """First Markdown heading, else the filename without extension."""
    for page in extracted.pages:
        headings = find_headings(page.text)
        if headings:
            return headings[0][1]
    return Path(extracted.metadata.filename).stem


def derive_excerpt(content: str, max_chars: int = EXCERPT_MAX_CHARS) -> str | None:
    """First non-heading paragraph, truncated to ``max_chars``."""
    for paragraph in content.split("\n\n"):
        stripped = paragraph.strip()
        if stripped and not stripped.startswith("#"):
            if len(stripped) > max_chars:
                return stripped[: max_chars - 3].rstrip() + "..."
            return stripped
    return None


class RAGPipeline:
    """
    Orchestrates ingestion and search.

    **Ingestion** (``ingest_file``):
        bytes → hash dedup → SourceRecord(pending) → FileProcessor →
        TextChunker → EmbeddingService → DocumentRecord + ChunkRecords →
        SourceRecord(completed)

    **Search** (``search``):
        query → HybridRetriever → SearchHits

    Usage::

        pipeline = RAGPipeline()
        async with tenant_session(tenant_id) as session:
            result = await pipeline.ingest_file(session, "policy.pdf", raw, tenant_id)
            hits = await pipeline.search(session, "retention period", tenant_id)
    """

    def __init__(
        self,
        processor: FileProcessor | None = None,
        chunker: TextChunker | None = None,
        embeddings: EmbeddingService | None = None,
        repository: RAGRepository | None = None,
        retriever: HybridRetriever | None = None,
    ) -> None:
        self._processor = processor or FileProcessor()
        self._chunker = chunker or TextChunker()
        self._embeddings = embeddings or EmbeddingService()
        self._repository = repository or RAGRepository()
        self._retriever = retriever or HybridRetriever(
            repository=self._repository,
            embeddings=self._embeddings,
        )

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    async def ingest_file(
        self,
        session: AsyncSession,
        filename: str,
        file_bytes: bytes,
        tenant_id: uuid.UUID,
        path: str | None = None,
        metadata: dict[str, Any] | None = None,
        source_id: uuid.UUID | None = None,
    ) -> IngestResult:
        """
        Process a file through the full ingestion pipeline.

        Re-ingesting identical content is a no-op that returns the
        existing source with ``is_duplicate=True``, unless that source
        failed: its row is reused and ingestion runs again.

        Args:
            session: Active async database session.
            filename: Original filename with extension.
            file_bytes: Raw file content.
            tenant_id: Owning tenant.
            path: Location in the originating system (defaults to filename).
            metadata: Extra JSON metadata stored on the source row.
            source_id: Id for the new source row, so callers can report it
                before ingestion finishes (generated when omitted).

        Raises:
            ValueError: Unsupported file type, undecodable or empty file.
            EmbeddingProviderError, EmbeddingDimensionError: Embedding failed.
            Any database error other than the duplicate hash.
        """
        if not is_supported(filename):
            raise ValueError(f"Unsupported file type: '{filename}'")

        # --- Step 1: Fast dedup check ---
        file_hash = compute_hash(file_bytes)
        existing = await self._repository.get_source_by_hash(session, file_hash)
        if existing is not None and not can_retry_source(existing, tenant_id):
            return await self._duplicate(session, existing, filename)

        # --- Step 2: Register source (or reuse a failed one) ---
        if existing is not None:
            source_id = existing.id
            logger.info("Retrying failed source %s for '%s'", source_id, filename)
        else:
            suffix = Path(filename).suffix.lower()
            source = SourceRecord(
                id=source_id or uuid.uuid4(),
                path=path or filename,
                file_name=filename,
                doc_type=suffix.lstrip("."),
                mime_type=FILE_TYPES[suffix][1],
                hash=file_hash,
                file_size_bytes=len(file_bytes),
                tenant_id=tenant_id,
                ingestion_status=IngestionStatus.PENDING.value,
                extra_metadata=metadata or {},
            )
            try:
                await self._repository.create_source(session, source)
            except DuplicateSourceError:
                # Lost a race with a concurrent upload of the same bytes
                existing = await self._repository.get_source_by_hash(session, file_hash)
                if existing is None:
                    raise
                return await self._duplicate(session, existing, filename)
            source_id = source.id

        await self._repository.set_source_status(
            session, source_id, IngestionStatus.PROCESSING
        )

        # --- Steps 3-5: Extract, chunk, embed, persist ---
        try:
            document_id, chunks_count = await self._build_and_store(
                session, source_id, tenant_id, filename, file_bytes
            )
        except Exception as e:
            await session.rollback()
            logger.error("Ingestion failed for '%s': %s", filename, e)
            await self._repository.set_source_status(
                session,
                source_id,
                IngestionStatus.FAILED,
                error=f"{type(e).__name__}: {e}"[:ERROR_MAX_CHARS],
            )
            raise

        await self._repository.set_source_status(
            session, source_id, IngestionStatus.COMPLETED
        )
        logger.info(
            "Ingested '%s' -> %d chunks (source=%s)", filename, chunks_count, source_id
        )
        return IngestResult(
            source_id=source_id,
            document_id=document_id,
            chunks_count=chunks_count,
            is_duplicate=False,
        )

    async def _build_and_store(
        self,
        session: AsyncSession,
        source_id: uuid.UUID,
        tenant_id: uuid.UUID,
        filename: str,
        file_bytes: bytes,
    ) -> tuple[uuid.UUID, int]:
        extracted = await self._processor.process_bytes(filename, file_bytes)

        drafts = self._chunker.split(extracted)
        if not drafts:
            raise ValueError(f"No extractable text in '{filename}'")

        embeddings = await self._embeddings.embed_texts([d.content for d in drafts])
        logger.info("Generated %d embeddings for '%s'", len(embeddings), filename)

        content = extracted.content
        document = DocumentRecord(
            id=extracted.id,
            source_id=source_id,
            tenant_id=tenant_id,
            title=derive_title(extracted),
            excerpt=derive_excerpt(content),
            full_text=content,
            status=DocumentStatus.ACTIVE.value,
            extra_metadata=extracted.metadata.model_dump(),
        )
        chunk_records = [
            ChunkRecord(
                id=draft.id,
                document_id=document.id,
                tenant_id=tenant_id,
                chunk_index=draft.chunk_index,
                page_number=draft.page_number,
                section_heading=draft.section_heading,
                content=draft.content,
                token_count=draft.token_count,
                embedding=embedding,
                extra_metadata=dict(draft.metadata),
            )
            for draft, embedding in zip(drafts, embeddings, strict=True)
        ]

        await self._repository.save_document_with_chunks(
            session,
            document=document,
            chunks=chunk_records,
        )
        return document.id, len(chunk_records)

    async def _duplicate(
        self,
        session: AsyncSession,
        existing: SourceRecord,
        filename: str,
    ) -> IngestResult:
        chunks_count = await self._repository.count_chunks_by_source(session, existing.id)
        logger.info(
            "Duplicate detected: '%s' (hash=%s, existing='%s')",
            filename,
            existing.hash[:12],
            existing.file_name,
        )
        return IngestResult(
            source_id=existing.id,
            document_id=None,
            chunks_count=chunks_count,
            is_duplicate=True,
        )

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def search(
        self,
        session: AsyncSession,
        query: str,
        tenant_id: uuid.UUID,
        k: int = 5,
        method: FusionMethod = FusionMethod.HYBRID_WEIGHTED,
        alpha: float | None = None,
        rrf_k: int | None = None,
    ) -> list[SearchHit]:
        """Hybrid search; see ``HybridRetriever.search``."""
        return await self._retriever.search(
            session,
            query,
            tenant_id,
            k=k,
            method=method,
            alpha=alpha,
            rrf_k=rrf_k,
        )

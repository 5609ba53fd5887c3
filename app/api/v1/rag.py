"""
RAG API Router

HTTP endpoints for ingestion and hybrid retrieval.

Endpoints:
    POST   /ingest               Upload a file for async ingestion (202).
    POST   /search               Hybrid search across ingested chunks.
    GET    /sources/{source_id}  Ingestion status of a source.
    DELETE /sources/{source_id}  Delete a source with its documents/chunks.

Every request is scoped to a tenant taken from the ``X-Tenant-ID`` header
(DEFAULT_TENANT_ID when absent).
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import AsyncGenerator

from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    Header,
    HTTPException,
    Response,
    UploadFile,
    status,
)
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import bind_tenant, get_db, tenant_session
from app.core.exceptions import EmbeddingProviderError
from app.repositories.rag import RAGRepository
from app.schemas.rag import IngestResponse, SearchHit, SearchRequest, SourceStatus
from app.services.ingestion import SUPPORTED_EXTENSIONS, compute_hash, is_supported
from app.services.rag_pipeline import RAGPipeline, can_retry_source

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def get_tenant_id(
    x_tenant_id: uuid.UUID | None = Header(default=None),
) -> uuid.UUID:
    """Tenant from the X-Tenant-ID header (422 if not a UUID)."""
    return x_tenant_id or settings.DEFAULT_TENANT_ID


async def get_tenant_db(
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_db),
) -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session with row-level security bound to the tenant."""
    bind_tenant(db, tenant_id)
    yield db


def _get_pipeline() -> RAGPipeline:
    """FastAPI dependency: returns a RAGPipeline instance."""
    return RAGPipeline()


def _get_repository() -> RAGRepository:
    """FastAPI dependency: returns a RAGRepository instance."""
    return RAGRepository()


# ---------------------------------------------------------------------------
# Background task
# ---------------------------------------------------------------------------


async def _run_ingest(
    filename: str,
    file_bytes: bytes,
    tenant_id: uuid.UUID,
    source_id: uuid.UUID,
) -> None:
    """
    Background task that runs the full ingestion pipeline.

    Creates its own database session because FastAPI background tasks
    execute after the HTTP response is sent: the request-scoped
    session is already closed by then. Failures are recorded on the
    source row by the pipeline.
    """
    async with tenant_session(tenant_id) as session:
        try:
            pipeline = RAGPipeline()
            result = await pipeline.ingest_file(
                session, filename, file_bytes, tenant_id, source_id=source_id
            )
            logger.info(
                "Ingestion complete: '%s' → %d chunks (dup=%s)",
                filename,
                result.chunks_count,
                result.is_duplicate,
            )
        except Exception:
            logger.exception("Ingestion failed for '%s'", filename)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post(
    "/ingest",
    response_model=IngestResponse,
    summary="Upload a file for ingestion",
    responses={
        200: {"description": "File already ingested (duplicate)"},
        202: {"description": "File accepted for background processing"},
    },
)
async def ingest_file(
    file: UploadFile,
    response: Response,
    background_tasks: BackgroundTasks,
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_tenant_db),
    repo: RAGRepository = Depends(_get_repository),
) -> IngestResponse:
    """
    Upload a PDF, Markdown or text file for ingestion.

    The file content is hashed (SHA-256) for deduplication. If the content
    has already been ingested, returns 200 with the existing source.
    Otherwise the pipeline runs in the background and the endpoint
    returns 202 immediately with the id of the source row, which
    ``GET /sources/{source_id}`` reports on. A source whose ingestion
    failed is retried under the same id when its bytes are uploaded again.
    """
    raw = await file.read()
    filename = file.filename or "unknown"

    if not is_supported(filename):
        raise HTTPException(
            status_code=422,
            detail=(
                f"Unsupported file type: '{filename}'. "
                f"Accepted: {', '.join(sorted(SUPPORTED_EXTENSIONS))}"
            ),
        )
    if not raw:
        raise HTTPException(status_code=422, detail="Uploaded file is empty")

    # --- Fast dedup check (hash + indexed lookup) ---
    file_hash = compute_hash(raw)
    existing = await repo.get_source_by_hash(db, file_hash)

    if existing is not None and not can_retry_source(existing, tenant_id):
        chunks_count = await repo.count_chunks_by_source(db, existing.id)
        response.status_code = status.HTTP_200_OK
        return IngestResponse(
            source_id=existing.id,
            filename=filename,
            chunks_count=chunks_count,
            status="duplicate",
            message=f"File already ingested as '{existing.file_name}'.",
        )

    # --- New (or previously failed) file → background processing ---
    source_id = existing.id if existing is not None else uuid.uuid4()
    background_tasks.add_task(_run_ingest, filename, raw, tenant_id, source_id)

    response.status_code = status.HTTP_202_ACCEPTED
    return IngestResponse(
        source_id=source_id,
        filename=filename,
        status="processing",
        message=f"'{filename}' accepted for processing.",
    )


@router.post(
    "/search",
    response_model=list[SearchHit],
    summary="Hybrid search across documents",
)
async def search(
    request: SearchRequest,
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_tenant_db),
    pipeline: RAGPipeline = Depends(_get_pipeline),
) -> list[SearchHit]:
    """
    Search ingested chunks.

    ``hybrid_weighted`` combines min-max normalised cosine similarity and
    text rank as ``alpha * vector + (1 - alpha) * text``; ``hybrid_rrf``
    sums ``1 / (rrf_k + rank)``; ``vector`` and ``text`` use one channel.

    Raises:
        HTTPException 502: If the embedding service is unavailable.
    """
    try:
        return await pipeline.search(
            db,
            request.query,
            tenant_id,
            k=request.k,
            method=request.method,
            alpha=request.alpha,
            rrf_k=request.rrf_k,
        )
    except EmbeddingProviderError as e:
        # 502 Bad Gateway: upstream AI service failure
        raise HTTPException(status_code=502, detail=str(e)) from e


@router.get(
    "/sources/{source_id}",
    response_model=SourceStatus,
    summary="Ingestion status of a source",
)
async def get_source(
    source_id: uuid.UUID,
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_tenant_db),
    repo: RAGRepository = Depends(_get_repository),
) -> SourceStatus:
    source = await repo.get_source(db, source_id, tenant_id=tenant_id)
    if source is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Source not found"
        )
    chunks_count = await repo.count_chunks_by_source(db, source.id)
    return SourceStatus.model_validate(source).model_copy(
        update={"chunks_count": chunks_count}
    )


@router.delete(
    "/sources/{source_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a source and everything derived from it",
)
async def delete_source(
    source_id: uuid.UUID,
    tenant_id: uuid.UUID = Depends(get_tenant_id),
    db: AsyncSession = Depends(get_tenant_db),
    repo: RAGRepository = Depends(_get_repository),
) -> Response:
    """Documents and chunks are removed by the database's ON DELETE CASCADE."""
    if not await repo.delete_source(db, source_id, tenant_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Source not found"
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)

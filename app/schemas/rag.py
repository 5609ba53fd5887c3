"""
RAG API Schemas

Pydantic models for the ingestion and hybrid search request/response cycle.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.core.config import settings
from app.services.fusion import FusionMethod


class SearchRequest(BaseModel):
    """Request body for hybrid search."""

    query: str = Field(
        ...,
        min_length=1,
        max_length=2000,
        description="Natural language search query",
    )
    k: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Number of results to return",
    )
    method: FusionMethod = Field(
        default=FusionMethod.HYBRID_WEIGHTED,
        description="Fusion policy, or a single retrieval channel",
    )
    alpha: float = Field(
        default=settings.HYBRID_ALPHA,
        ge=0.0,
        le=1.0,
        description="Vector weight for hybrid_weighted (1.0 = vector only)",
    )
    rrf_k: int = Field(
        default=settings.HYBRID_RRF_K,
        ge=1,
        description="Smoothing constant for hybrid_rrf",
    )


class SearchHit(BaseModel):
    """Single search result returned to the client."""

    chunk_id: UUID
    document_id: UUID = Field(description="Parent document identifier")
    source_id: UUID
    content: str = Field(description="Chunk text content")
    score: float = Field(description="Fused score (higher = more relevant)")
    source: str = Field(description="Source filename")
    title: str | None = Field(default=None, description="Document title")
    chunk_index: int = Field(description="Position within source document (0-based)")
    page_number: int | None = None
    section_heading: str | None = None
    vector_rank: int | None = Field(default=None, description="1-based rank by vector")
    text_rank: int | None = Field(default=None, description="1-based rank by text")
    vector_score: float | None = Field(default=None, description="Cosine similarity")
    text_score: float | None = Field(default=None, description="ts_rank_cd value")


class IngestResponse(BaseModel):
    """Response for the file ingestion endpoint."""

    source_id: UUID | None = Field(
        default=None,
        description="Source UUID; poll GET /sources/{source_id} for ingestion status",
    )
    filename: str = Field(description="Original filename")
    chunks_count: int = Field(
        default=0,
        description="Number of chunks stored (0 while processing)",
    )
    status: str = Field(
        description="Processing status: 'processing', 'duplicate'",
    )
    message: str = Field(description="Human-readable status message")


class SourceStatus(BaseModel):
    """Ingestion state of a source."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    file_name: str
    path: str
    hash: str
    tenant_id: UUID
    ingestion_status: str | None
    ingestion_error: str | None
    ingested_at: datetime | None
    created_at: datetime | None
    chunks_count: int = 0

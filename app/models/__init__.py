"""Models package: Pydantic schemas and SQLAlchemy ORM for the RAG service."""

from app.models.base import Base, MetadataMixin, TimestampMixin
from app.models.orm import (
    EMBEDDING_DIMENSION,
    ChunkRecord,
    DocumentRecord,
    DocumentStatus,
    IngestionStatus,
    SourceRecord,
)
from app.models.schemas import ChunkDraft, ExtractedFile, FileMetadata, PageText

__all__ = [
    # Pydantic schemas (ingestion pipeline)
    "ChunkDraft",
    "ExtractedFile",
    "FileMetadata",
    "PageText",
    # SQLAlchemy ORM (persistence layer)
    "Base",
    "ChunkRecord",
    "DocumentRecord",
    "DocumentStatus",
    "EMBEDDING_DIMENSION",
    "IngestionStatus",
    "MetadataMixin",
    "SourceRecord",
    "TimestampMixin",
]

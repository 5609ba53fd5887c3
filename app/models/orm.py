"""
RAG Database Models

SQLAlchemy 2.0 ORM models for the source / document / chunk storage layer.
Uses pgvector for similarity search on chunk embeddings and PostgreSQL
full-text search (tsvector + GIN) for keyword ranking.

Tables:
    sources   Raw ingested files, unique content hash for deduplication.
    documents Logical documents derived from a source.
    chunks    Document fragments with embeddings and search vectors.

The ``search_vector`` columns are maintained by database triggers (see
``app.models.ddl``) and are never written from Python.
"""

from __future__ import annotations

import enum
import uuid
from datetime import date, datetime

from pgvector.sqlalchemy import Vector
from sqlalchemy import (
    BigInteger,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.dialects.postgresql import TSVECTOR
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.config import settings
from app.models.base import Base, MetadataMixin, TimestampMixin

EMBEDDING_DIMENSION: int = settings.EMBEDDING_DIMENSION

# PostgreSQL default names for the two declared uniqueness constraints
SOURCE_HASH_CONSTRAINT = "sources_hash_key"
CHUNK_ORDINAL_CONSTRAINT = "chunks_document_id_chunk_index_key"


class IngestionStatus(str, enum.Enum):
    """Lifecycle of a source row (stored as plain text)."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class DocumentStatus(str, enum.Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    ARCHIVED = "archived"
    SUPERSEDED = "superseded"


class SourceRecord(Base, TimestampMixin, MetadataMixin):
    """
    A raw ingested file.

    The ``hash`` column (SHA-256 of the raw bytes) is globally unique:
    re-ingesting identical content is rejected by the database, which
    makes ingestion idempotent at the storage layer.

    Attributes:
        id: UUID primary key (server default ``gen_random_uuid()``).
        path: Location in the originating system.
        file_name: Original filename.
        hash: SHA-256 hex digest, unique.
        tenant_id: Owning tenant.
        ingestion_status: pending / processing / completed / failed.
        documents: Derived documents (cascade delete).
    """

    __tablename__ = "sources"
    __table_args__ = (
        UniqueConstraint("hash", name=SOURCE_HASH_CONSTRAINT),
        Index("idx_sources_tenant_id", "tenant_id"),
        Index("idx_sources_hash", "hash"),
        Index("idx_sources_created_at", text("created_at DESC")),
        Index(
            "idx_sources_ingestion_status",
            "ingestion_status",
            postgresql_where=text("ingestion_status IS NOT NULL"),
        ),
        Index("idx_sources_metadata", "metadata", postgresql_using="gin"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    path: Mapped[str] = mapped_column(Text, nullable=False)
    file_name: Mapped[str] = mapped_column(Text, nullable=False)
    doc_type: Mapped[str | None] = mapped_column(Text)
    mime_type: Mapped[str | None] = mapped_column(Text)

    hash: Mapped[str] = mapped_column(Text, nullable=False)
    file_size_bytes: Mapped[int | None] = mapped_column(BigInteger)
    version: Mapped[str | None] = mapped_column(Text)

    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)

    ingested_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    ingestion_status: Mapped[str | None] = mapped_column(Text)
    ingestion_error: Mapped[str | None] = mapped_column(Text)

    documents: Mapped[list[DocumentRecord]] = relationship(
        back_populates="source",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return (
            f"<SourceRecord(id={self.id!s:.8}, file_name='{self.file_name}', "
            f"status={self.ingestion_status})>"
        )


class DocumentRecord(Base, TimestampMixin, MetadataMixin):
    """
    A logical document extracted from a source.

    One source may yield several documents (e.g. sections of a large PDF).
    ``search_vector`` is the weighted concatenation of title (A),
    excerpt (B) and full text (C), kept current by a trigger.
    """

    __tablename__ = "documents"
    __table_args__ = (
        Index("idx_documents_source_id", "source_id"),
        Index("idx_documents_tenant_id", "tenant_id"),
        Index("idx_documents_created_at", text("created_at DESC")),
        Index("idx_documents_effective_date", text("effective_date DESC")),
        Index("idx_documents_classification", "classification"),
        Index("idx_documents_document_type", "document_type"),
        Index("idx_documents_status", "status"),
        Index("idx_documents_metadata", "metadata", postgresql_using="gin"),
        Index("idx_documents_search_vector", "search_vector", postgresql_using="gin"),
        Index(
            "idx_documents_title_trgm",
            "title",
            postgresql_using="gin",
            postgresql_ops={"title": "gin_trgm_ops"},
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    source_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("sources.id", ondelete="CASCADE"),
        nullable=False,
    )

    title: Mapped[str | None] = mapped_column(Text)
    full_text: Mapped[str | None] = mapped_column(Text)
    excerpt: Mapped[str | None] = mapped_column(Text)

    classification: Mapped[str | None] = mapped_column(Text)
    document_type: Mapped[str | None] = mapped_column(Text)
    effective_date: Mapped[date | None] = mapped_column(Date)
    expiration_date: Mapped[date | None] = mapped_column(Date)
    version: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str | None] = mapped_column(Text)

    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)

    author: Mapped[str | None] = mapped_column(Text)
    department: Mapped[str | None] = mapped_column(Text)
    owner_email: Mapped[str | None] = mapped_column(Text)
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Trigger-maintained; never assigned from Python
    search_vector: Mapped[str | None] = mapped_column(TSVECTOR, deferred=True)

    source: Mapped[SourceRecord] = relationship(back_populates="documents")
    chunks: Mapped[list[ChunkRecord]] = relationship(
        back_populates="document",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ChunkRecord.chunk_index",
    )

    def __repr__(self) -> str:
        return f"<DocumentRecord(id={self.id!s:.8}, title='{self.title}')>"


class ChunkRecord(Base, TimestampMixin, MetadataMixin):
    """
    A fragment of a document with its embedding vector.

    Attributes:
        document_id: Parent document (CASCADE delete).
        chunk_index: Zero-based position, unique per document.
        page_number: Source page (PDF only).
        section_heading: Heading of the enclosing section, if any.
        content: Chunk text.
        token_count: Tokens in ``content`` (cl100k_base).
        embedding: Vector of ``EMBEDDING_DIMENSION`` floats (nullable).
        search_vector: heading (B) + content (C), trigger-maintained.
    """

    __tablename__ = "chunks"
    __table_args__ = (
        UniqueConstraint(
            "document_id",
            "chunk_index",
            name=CHUNK_ORDINAL_CONSTRAINT,
        ),
        Index("idx_chunks_document_id", "document_id"),
        Index("idx_chunks_tenant_id", "tenant_id"),
        Index("idx_chunks_created_at", text("created_at DESC")),
        Index("idx_chunks_metadata", "metadata", postgresql_using="gin"),
        Index("idx_chunks_search_vector", "search_vector", postgresql_using="gin"),
        Index(
            "idx_chunks_content_trgm",
            "content",
            postgresql_using="gin",
            postgresql_ops={"content": "gin_trgm_ops"},
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
    )

    chunk_index: Mapped[int] = mapped_column(Integer, nullable=False)
    page_number: Mapped[int | None] = mapped_column(Integer)
    section_heading: Mapped[str | None] = mapped_column(Text)

    content: Mapped[str] = mapped_column(Text, nullable=False)
    token_count: Mapped[int | None] = mapped_column(Integer)

    embedding: Mapped[list[float] | None] = mapped_column(
        Vector(EMBEDDING_DIMENSION),
        nullable=True,
    )

    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)

    search_vector: Mapped[str | None] = mapped_column(TSVECTOR, deferred=True)

    document: Mapped[DocumentRecord] = relationship(back_populates="chunks")

    def __repr__(self) -> str:
        return (
            f"<ChunkRecord(id={self.id!s:.8}, "
            f"doc={self.document_id!s:.8}, idx={self.chunk_index})>"
        )

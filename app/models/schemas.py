"""
Ingestion Schemas

Pydantic models for the ingestion pipeline. Defines the data structures
flowing from file extraction through chunking to persistence.
"""

from __future__ import annotations

from datetime import UTC, datetime
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class PageText(BaseModel):
    """Text of one page (PDF) or of the whole file (text formats)."""

    number: int | None = Field(
        default=None,
        ge=1,
        description="1-based page number, None for unpaginated formats",
    )
    text: str


class FileMetadata(BaseModel):
    """Metadata extracted during file processing."""

    filename: str = Field(description="Original filename with extension")
    file_size: int = Field(ge=0, description="File size in bytes")
    page_count: int | None = Field(
        default=None,
        ge=1,
        description="Number of pages (PDF only, None for other formats)",
    )
    file_type: str = Field(description="Format identifier: 'pdf', 'markdown', 'text'")
    mime_type: str = Field(description="MIME type recorded on the source row")


class ExtractedFile(BaseModel):
    """
    Extracted file ready for chunking and embedding.

    Produced by FileProcessor. The file_hash field enables idempotent
    processing: files with the same hash are considered duplicates.

    Attributes:
        id: Identifier reused for the persisted document row.
        pages: Extracted text, one entry per page.
        file_hash: SHA-256 hex digest of raw file bytes.
        metadata: File-level metadata (name, size, page count).
    """

    id: UUID = Field(default_factory=uuid4)
    pages: list[PageText] = Field(min_length=1)
    file_hash: str = Field(
        min_length=64,
        max_length=64,
        description="SHA-256 hex digest for deduplication",
    )
    metadata: FileMetadata
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def content(self) -> str:
        """Full text, pages separated by blank lines."""
        return "\n\n".join(page.text for page in self.pages)


class ChunkDraft(BaseModel):
    """
    A segment of a document prepared for embedding.

    Attributes:
        document_id: Parent document identifier.
        chunk_index: Zero-based position within the document.
        page_number: Page the chunk was cut from (PDF only).
        section_heading: Nearest preceding Markdown heading.
        token_count: Tokens in ``content``.
    """

    id: UUID = Field(default_factory=uuid4)
    document_id: UUID
    content: str = Field(min_length=1)
    chunk_index: int = Field(ge=0)
    page_number: int | None = Field(default=None, ge=1)
    section_heading: str | None = None
    token_count: int = Field(ge=0)
    metadata: dict[str, str | int | float | bool | None] = Field(default_factory=dict)

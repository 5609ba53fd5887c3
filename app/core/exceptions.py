"""
Domain Exceptions

The only failure conditions declared by the schema are the two uniqueness
constraints (source content hash, chunk ordinal). The repository maps the
corresponding database errors onto these types; every other database error
propagates unchanged.
"""

from __future__ import annotations


class RAGError(Exception):
    """Base class for errors raised by the RAG service."""


class DuplicateSourceError(RAGError):
    """A source with the same content hash already exists."""

    def __init__(self, file_hash: str) -> None:
        super().__init__(f"Source with hash {file_hash[:12]}... already exists")
        self.file_hash = file_hash


class DuplicateChunkError(RAGError):
    """Two chunks of one document share the same ``chunk_index``."""


class EmbeddingDimensionError(RAGError):
    """The embedding provider returned vectors of an unexpected size."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(
            f"Embedding dimension mismatch: expected {expected}, got {actual}. "
            "Check EMBEDDING_MODEL against EMBEDDING_DIMENSION."
        )
        self.expected = expected
        self.actual = actual


class EmbeddingProviderError(RAGError):
    """The embedding provider is misconfigured or failed to respond."""

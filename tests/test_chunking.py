"""
Chunking Service Unit Tests

Verifies TextChunker behaviour: splitting logic, chunk indices across
pages, page and section locators, overlap handling, token accounting,
edge cases, and metadata propagation.

No external services required; runs entirely offline (token counts
use a word-count stand-in instead of tiktoken).
"""

from __future__ import annotations

from uuid import UUID, uuid4

import pytest
import tiktoken

from app.models.schemas import ChunkDraft, ExtractedFile
from app.services import chunking
from app.services.chunking import (
    DEFAULT_CHUNK_OVERLAP,
    DEFAULT_CHUNK_SIZE,
    TextChunker,
    count_tokens,
    find_headings,
)

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def chunker(token_counter) -> TextChunker:
    """Default-sized TextChunker."""
    return TextChunker(token_counter=token_counter)


@pytest.fixture
def small_chunker(token_counter) -> TextChunker:
    """TextChunker with small settings for deterministic testing."""
    return TextChunker(chunk_size=50, chunk_overlap=10, token_counter=token_counter)


@pytest.fixture
def long_document(make_extracted) -> ExtractedFile:
    """Document long enough to require multiple chunks (~2500 chars)."""
    paragraphs = [
        f"Paragraph {i}. " + "This is filler text for testing purposes. " * 8
        for i in range(7)
    ]
    return make_extracted("\n\n".join(paragraphs), filename="long_doc.md")


# ---------------------------------------------------------------------------
# Basic splitting
# ---------------------------------------------------------------------------


class TestBasicSplitting:
    """Tests for core splitting functionality."""

    def test_long_document_produces_multiple_chunks(
        self, chunker: TextChunker, long_document: ExtractedFile
    ) -> None:
        chunks = chunker.split(long_document)

        assert len(chunks) > 1
        assert all(isinstance(c, ChunkDraft) for c in chunks)

    def test_short_document_produces_single_chunk(
        self, chunker: TextChunker, make_extracted
    ) -> None:
        doc = make_extracted("Short content that fits in one chunk.")
        chunks = chunker.split(doc)

        assert len(chunks) == 1
        assert chunks[0].content == "Short content that fits in one chunk."

    def test_all_content_preserved(
        self, chunker: TextChunker, long_document: ExtractedFile
    ) -> None:
        chunks = chunker.split(long_document)

        for paragraph in long_document.content.split("\n\n"):
            trimmed = paragraph.strip()
            if trimmed:
                found = any(trimmed[:40] in c.content for c in chunks)
                assert found, f"Content lost: {trimmed[:40]}..."

    def test_empty_file_produces_no_chunks(
        self, chunker: TextChunker, make_extracted
    ) -> None:
        assert chunker.split(make_extracted("")) == []


# ---------------------------------------------------------------------------
# Chunk indices and references
# ---------------------------------------------------------------------------


class TestChunkMetadata:
    """Tests for chunk indices, document references, and metadata."""

    def test_indices_are_sequential(
        self, chunker: TextChunker, long_document: ExtractedFile
    ) -> None:
        chunks = chunker.split(long_document)

        assert [c.chunk_index for c in chunks] == list(range(len(chunks)))

    def test_indices_continue_across_pages(
        self, small_chunker: TextChunker, make_extracted
    ) -> None:
        page = "alpha beta gamma delta epsilon zeta eta theta iota kappa lambda mu"
        doc = make_extracted(page, page, page, paginated=True)

        chunks = small_chunker.split(doc)

        assert [c.chunk_index for c in chunks] == list(range(len(chunks)))
        assert {c.page_number for c in chunks} == {1, 2, 3}

    def test_page_numbers_follow_pages(
        self, chunker: TextChunker, make_extracted
    ) -> None:
        doc = make_extracted("First page.", "Second page.", paginated=True)

        chunks = chunker.split(doc)

        assert [(c.page_number, c.content) for c in chunks] == [
            (1, "First page."),
            (2, "Second page."),
        ]

    def test_unpaginated_file_has_no_page_number(
        self, chunker: TextChunker, long_document: ExtractedFile
    ) -> None:
        assert all(c.page_number is None for c in chunker.split(long_document))

    def test_document_id_propagated(
        self, chunker: TextChunker, long_document: ExtractedFile
    ) -> None:
        for chunk in chunker.split(long_document):
            assert chunk.document_id == long_document.id

    def test_document_id_override(
        self, chunker: TextChunker, long_document: ExtractedFile
    ) -> None:
        parent = uuid4()

        for chunk in chunker.split(long_document, document_id=parent):
            assert chunk.document_id == parent

    def test_chunk_ids_are_unique(
        self, chunker: TextChunker, long_document: ExtractedFile
    ) -> None:
        ids = [c.id for c in chunker.split(long_document)]

        assert len(set(ids)) == len(ids)
        assert all(isinstance(cid, UUID) for cid in ids)

    def test_metadata_fields(
        self, chunker: TextChunker, long_document: ExtractedFile
    ) -> None:
        for chunk in chunker.split(long_document):
            assert chunk.metadata["source_filename"] == "long_doc.md"
            assert chunk.metadata["chunk_size"] == len(chunk.content)
            start = chunk.metadata["char_start"]
            assert long_document.pages[0].text[start:].startswith(chunk.content)

    def test_token_count_uses_counter(
        self, chunker: TextChunker, long_document: ExtractedFile
    ) -> None:
        for chunk in chunker.split(long_document):
            assert chunk.token_count == len(chunk.content.split())


# ---------------------------------------------------------------------------
# Section headings
# ---------------------------------------------------------------------------


class TestSectionHeadings:
    """Tests for the nearest-preceding-heading locator."""

    def test_find_headings(self) -> None:
        text = "# Title\n\nBody\n\n## Sub Section ##\n\nMore\n#not-a-heading"

        assert [title for _, title in find_headings(text)] == ["Title", "Sub Section"]

    def test_chunks_take_nearest_heading(self, token_counter, make_extracted) -> None:
        chunker = TextChunker(chunk_size=30, chunk_overlap=5, token_counter=token_counter)
        doc = make_extracted("# Intro\n\nAlpha para.\n\n## Details\n\nBeta para.")

        chunks = chunker.split(doc)

        assert [(c.content, c.section_heading) for c in chunks] == [
            ("# Intro\n\nAlpha para.", "Intro"),
            ("## Details\n\nBeta para.", "Details"),
        ]

    def test_text_before_first_heading_has_none(
        self, chunker: TextChunker, make_extracted
    ) -> None:
        chunks = chunker.split(make_extracted("Preface only, no headings."))

        assert chunks[0].section_heading is None

    def test_heading_carries_across_pages(
        self, chunker: TextChunker, make_extracted
    ) -> None:
        doc = make_extracted(
            "# Chapter One\n\nOpening text.",
            "Continuation without a heading.",
            paginated=True,
        )

        chunks = chunker.split(doc)

        assert chunks[-1].page_number == 2
        assert chunks[-1].section_heading == "Chapter One"


# ---------------------------------------------------------------------------
# Chunk size and overlap
# ---------------------------------------------------------------------------


class TestChunkSizing:
    """Tests for chunk size limits and overlap behaviour."""

    def test_chunks_respect_max_size(
        self, chunker: TextChunker, long_document: ExtractedFile
    ) -> None:
        for chunk in chunker.split(long_document):
            # LangChain may slightly exceed chunk_size at separator boundaries
            assert len(chunk.content) <= chunker.chunk_size + 50

    def test_custom_chunk_size(
        self, token_counter, long_document: ExtractedFile
    ) -> None:
        chunker = TextChunker(chunk_size=200, chunk_overlap=50, token_counter=token_counter)

        # Smaller chunks → more splits
        assert len(chunker.split(long_document)) > 5

    def test_overlap_creates_shared_content(
        self, small_chunker: TextChunker, make_extracted
    ) -> None:
        doc = make_extracted(" ".join(f"word{i}" for i in range(50)))

        chunks = small_chunker.split(doc)

        assert len(chunks) >= 2
        for i in range(len(chunks) - 1):
            tail = chunks[i].content[-small_chunker.chunk_overlap :]
            head = chunks[i + 1].content[: small_chunker.chunk_overlap]
            shared = set(tail.split()) & set(head.split())
            assert shared, f"No overlap found between chunks {i} and {i + 1}"

    def test_default_config_values(self) -> None:
        assert DEFAULT_CHUNK_SIZE == 1000
        assert DEFAULT_CHUNK_OVERLAP == 150

    def test_properties_match_config(self, token_counter) -> None:
        chunker = TextChunker(chunk_size=300, chunk_overlap=75, token_counter=token_counter)
        assert chunker.chunk_size == 300
        assert chunker.chunk_overlap == 75


# ---------------------------------------------------------------------------
# Edge cases and validation
# ---------------------------------------------------------------------------


class TestEdgeCases:
    """Tests for boundary conditions and error handling."""

    def test_single_character_content(
        self, chunker: TextChunker, make_extracted
    ) -> None:
        chunks = chunker.split(make_extracted("X"))

        assert len(chunks) == 1
        assert chunks[0].content == "X"

    def test_whitespace_heavy_content(
        self, chunker: TextChunker, make_extracted
    ) -> None:
        chunks = chunker.split(make_extracted("Hello\n\n\n\n\nWorld"))

        combined = " ".join(c.content for c in chunks)
        assert "Hello" in combined
        assert "World" in combined

    def test_overlap_must_be_less_than_size(self) -> None:
        with pytest.raises(ValueError, match="chunk_overlap"):
            TextChunker(chunk_size=100, chunk_overlap=100)

    def test_overlap_greater_than_size_raises(self) -> None:
        with pytest.raises(ValueError, match="chunk_overlap"):
            TextChunker(chunk_size=100, chunk_overlap=200)


# ---------------------------------------------------------------------------
# Token counting
# ---------------------------------------------------------------------------


@pytest.fixture
def byte_encoding(monkeypatch: pytest.MonkeyPatch) -> tiktoken.Encoding:
    """Offline byte-level encoding with one special token, replacing cl100k_base."""
    encoding = tiktoken.Encoding(
        name="bytes_with_eot",
        pat_str=r"\S+|\s+",
        mergeable_ranks={bytes([i]): i for i in range(256)},
        special_tokens={"<|endoftext|>": 256},
    )
    monkeypatch.setattr(chunking, "_encoding", lambda: encoding)
    return encoding


class TestTokenCounting:
    def test_counts_tokens(self, byte_encoding: tiktoken.Encoding) -> None:
        assert count_tokens("retention") == len(b"retention")

    def test_special_token_text_is_ordinary(
        self, byte_encoding: tiktoken.Encoding
    ) -> None:
        text = "The model emits <|endoftext|> at the end."

        assert count_tokens(text) == len(text.encode())

    def test_document_quoting_special_token_splits(
        self, byte_encoding: tiktoken.Encoding, make_extracted
    ) -> None:
        chunker = TextChunker(chunk_size=40, chunk_overlap=5)

        chunks = chunker.split(
            make_extracted("# Sampling\n\nThe model emits <|endoftext|> at the end.")
        )

        assert chunks
        assert any("<|endoftext|>" in c.content for c in chunks)
        assert all(c.token_count == len(c.content.encode()) for c in chunks)

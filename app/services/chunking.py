"""
Chunking Service

Splits extracted files into Chunks suitable for embedding and hybrid
retrieval. Uses LangChain's RecursiveCharacterTextSplitter for boundary
detection and tiktoken for token accounting.

Each page is split on its own so every chunk keeps a page locator.
Chunk indices run across the whole document, starting at 0.
"""

from __future__ import annotations

import bisect
import logging
import re
from collections.abc import Callable
from functools import lru_cache
from uuid import UUID

import tiktoken
from langchain_text_splitters import RecursiveCharacterTextSplitter

from app.core.config import settings
from app.models.schemas import ChunkDraft, ExtractedFile

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE: int = settings.CHUNK_SIZE
DEFAULT_CHUNK_OVERLAP: int = settings.CHUNK_OVERLAP
TOKEN_ENCODING: str = "cl100k_base"

_HEADING_RE = re.compile(r"^\s{0,3}#{1,6}\s+(.+?)\s*#*\s*$", re.MULTILINE)

TokenCounter = Callable[[str], int]


@lru_cache(maxsize=1)
def _encoding() -> tiktoken.Encoding:
    return tiktoken.get_encoding(TOKEN_ENCODING)


def count_tokens(text: str) -> int:
    """
    Token count under the cl100k_base encoding (OpenAI embedding models).

    Special-token text such as ``<|endoftext|>`` is counted as ordinary
    text; documents about language models quote it.
    """
    return len(_encoding().encode_ordinary(text))


def find_headings(text: str) -> list[tuple[int, str]]:
    """Markdown ATX headings as ``(offset, title)`` pairs, in order."""
    return [(m.start(), m.group(1).strip()) for m in _HEADING_RE.finditer(text)]


class TextChunker:
    """
    Splits an ExtractedFile into overlapping ChunkDrafts.

    Uses recursive character splitting with separators that prefer
    paragraph > line > sentence > word boundaries.

    Usage::

        chunker = TextChunker()
        drafts = chunker.split(extracted)

    Args:
        chunk_size: Maximum characters per chunk.
        chunk_overlap: Characters shared between consecutive chunks.
        token_counter: Callable returning the token count of a string.
    """

    def __init__(
        self,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
        token_counter: TokenCounter = count_tokens,
    ) -> None:
        if chunk_overlap >= chunk_size:
            raise ValueError(
                f"chunk_overlap ({chunk_overlap}) must be less than "
                f"chunk_size ({chunk_size})"
            )

        self._splitter = RecursiveCharacterTextSplitter(
            chunk_size=chunk_size,
            chunk_overlap=chunk_overlap,
            length_function=len,
            separators=["\n\n", "\n", ". ", " ", ""],
        )
        self._chunk_size = chunk_size
        self._chunk_overlap = chunk_overlap
        self._count_tokens = token_counter

    @property
    def chunk_size(self) -> int:
        """Maximum characters per chunk."""
        return self._chunk_size

    @property
    def chunk_overlap(self) -> int:
        """Characters shared between consecutive chunks."""
        return self._chunk_overlap

    def split(
        self,
        extracted: ExtractedFile,
        document_id: UUID | None = None,
    ) -> list[ChunkDraft]:
        """
        Split every page of ``extracted`` into ChunkDrafts.

        Args:
            extracted: Output of FileProcessor.
            document_id: Parent document id (defaults to ``extracted.id``).

        Returns:
            Chunks with sequential indices across pages. Empty when the
            file holds no text.
        """
        parent_id = document_id or extracted.id
        chunks: list[ChunkDraft] = []
        # A heading stays in effect across page breaks
        current_heading: str | None = None

        for page in extracted.pages:
            headings = find_headings(page.text)
            offsets = [offset for offset, _ in headings]
            cursor = 0

            for text in self._splitter.split_text(page.text):
                start = page.text.find(text, cursor)
                if start < 0:
                    start = cursor
                else:
                    cursor = start + 1

                pos = bisect.bisect_right(offsets, start)
                heading = headings[pos - 1][1] if pos else current_heading

                chunks.append(
                    ChunkDraft(
                        document_id=parent_id,
                        content=text,
                        chunk_index=len(chunks),
                        page_number=page.number,
                        section_heading=heading,
                        token_count=self._count_tokens(text),
                        metadata={
                            "source_filename": extracted.metadata.filename,
                            "char_start": start,
                            "chunk_size": len(text),
                        },
                    )
                )

            if headings:
                current_heading = headings[-1][1]

        logger.info(
            "Split '%s' into %d chunks (size=%d, overlap=%d)",
            extracted.metadata.filename,
            len(chunks),
            self._chunk_size,
            self._chunk_overlap,
        )

        return chunks

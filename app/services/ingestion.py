"""
File Extraction Service

File processing step of the ingestion pipeline.
Extracts text from PDF, Markdown and plain-text files, computes SHA-256
hashes for idempotent processing, and collects file metadata.

Supported formats:
    - PDF (.pdf): Per-page text extraction via PyMuPDF (fitz)
    - Markdown (.md, .markdown): Raw UTF-8 text decoding
    - Plain text (.txt): Raw UTF-8 text decoding
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
from pathlib import Path
from typing import Final

import fitz  # PyMuPDF

from app.models.schemas import ExtractedFile, FileMetadata, PageText

logger = logging.getLogger(__name__)

# extension -> (file_type, mime_type)
FILE_TYPES: Final[dict[str, tuple[str, str]]] = {
    ".pdf": ("pdf", "application/pdf"),
    ".md": ("markdown", "text/markdown"),
    ".markdown": ("markdown", "text/markdown"),
    ".txt": ("text", "text/plain"),
}
SUPPORTED_EXTENSIONS: Final[frozenset[str]] = frozenset(FILE_TYPES)


def compute_hash(data: bytes) -> str:
    """SHA-256 hex digest of raw bytes (the source dedup key)."""
    return hashlib.sha256(data).hexdigest()


def is_supported(filename: str) -> bool:
    return Path(filename).suffix.lower() in SUPPORTED_EXTENSIONS


def strip_nul(text: str) -> str:
    """Drop NUL characters; PostgreSQL TEXT columns reject them."""
    return text.replace("\x00", "")


class FileProcessor:
    """
    Async file processor for document ingestion.

    Computes a SHA-256 content hash for deduplication and extracts text
    with metadata. Blocking work (file reads, PDF parsing) is offloaded
    to a thread pool via asyncio.to_thread.

    Usage::

        processor = FileProcessor()
        extracted = await processor.process(Path("report.pdf"))
        print(extracted.file_hash, extracted.metadata.page_count)
    """

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def process(self, file_path: Path) -> ExtractedFile:
        """
        Read a file from disk and extract it.

        Raises:
            FileNotFoundError: If the file does not exist.
            ValueError: If the file extension is not supported.
        """
        if not file_path.exists():
            raise FileNotFoundError(f"File not found: {file_path}")

        self._check_supported(file_path.name)
        raw = await asyncio.to_thread(file_path.read_bytes)
        return await self.process_bytes(file_path.name, raw)

    async def process_bytes(self, filename: str, raw: bytes) -> ExtractedFile:
        """
        Extract an in-memory upload.

        Args:
            filename: Original filename; its extension selects the parser.
            raw: File content.

        Raises:
            ValueError: If the extension is not supported or a text file
                is not valid UTF-8.
        """
        suffix = self._check_supported(filename)
        file_type, mime_type = FILE_TYPES[suffix]
        file_hash = compute_hash(raw)

        if file_type == "pdf":
            pages = await asyncio.to_thread(self._extract_pdf_pages, raw)
            page_count: int | None = len(pages)
        else:
            pages = [PageText(number=None, text=self._decode_text(filename, raw))]
            page_count = None

        logger.info(
            "Extracted %s: %s (%s pages, %d bytes, hash=%s)",
            file_type,
            filename,
            page_count if page_count is not None else "-",
            len(raw),
            file_hash[:12],
        )

        return ExtractedFile(
            pages=pages,
            file_hash=file_hash,
            metadata=FileMetadata(
                filename=filename,
                file_size=len(raw),
                page_count=page_count,
                file_type=file_type,
                mime_type=mime_type,
            ),
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _check_supported(filename: str) -> str:
        suffix = Path(filename).suffix.lower()
        if suffix not in SUPPORTED_EXTENSIONS:
            raise ValueError(
                f"Unsupported file type: '{suffix}'. "
                f"Supported: {', '.join(sorted(SUPPORTED_EXTENSIONS))}"
            )
        return suffix

    @staticmethod
    def _decode_text(filename: str, raw: bytes) -> str:
        try:
            return strip_nul(raw.decode("utf-8-sig"))
        except UnicodeDecodeError as e:
            raise ValueError(f"'{filename}' is not valid UTF-8: {e}") from e

    @staticmethod
    def _extract_pdf_pages(raw: bytes) -> list[PageText]:
        """
        Extract text of every page from PDF bytes.

        This is a *synchronous* helper: always call via
        ``asyncio.to_thread`` to keep the event loop free.
        """
        doc = fitz.open(stream=raw, filetype="pdf")
        try:
            return [
                PageText(number=i, text=strip_nul(page.get_text()))
                for i, page in enumerate(doc, start=1)
            ]
        finally:
            doc.close()

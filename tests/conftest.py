"""
Pytest Configuration and Fixtures

Shared fixtures for the unit suite (offline) and the integration suite
(requires PostgreSQL with pgvector).
"""

import os

from dotenv import load_dotenv

# ---------------------------------------------------------------------------
# Test environment defaults, MUST be before any app imports.
#
# 1. Load .env first so that local database credentials are available.
# 2. setdefault fills in anything still missing (CI runners, fresh clones
#    without a .env file) so that pydantic Settings validation doesn't crash.
# ---------------------------------------------------------------------------
load_dotenv()  # .env → os.environ (no-op if file is missing)

_test_env = {
    "POSTGRES_USER": "rag",
    "POSTGRES_PASSWORD": "rag_password",
    "POSTGRES_HOST": "localhost",
    "POSTGRES_PORT": "5432",
    "POSTGRES_DB": "rag_db",
    "POSTGRES_SSLMODE": "disable",
    "EMBEDDING_PROVIDER": "mock",
}
for _key, _value in _test_env.items():
    os.environ.setdefault(_key, _value)

# ---------------------------------------------------------------------------
# Imports (safe now that env vars are set)
# ---------------------------------------------------------------------------
import uuid  # noqa: E402

import pytest  # noqa: E402

from app.models.schemas import ExtractedFile, FileMetadata, PageText  # noqa: E402

TENANT_A = uuid.UUID("11111111-1111-1111-1111-111111111111")


def _word_count(text: str) -> int:
    return len(text.split())


def _make_extracted(
    *pages: str,
    filename: str = "test.md",
    paginated: bool = False,
) -> ExtractedFile:
    """Build an ExtractedFile from page texts."""
    page_models = [
        PageText(number=i if paginated else None, text=text)
        for i, text in enumerate(pages, start=1)
    ]
    size = sum(len(text.encode()) for text in pages)
    return ExtractedFile(
        pages=page_models,
        file_hash="a" * 64,
        metadata=FileMetadata(
            filename=filename,
            file_size=size,
            page_count=len(pages) if paginated else None,
            file_type="pdf" if paginated else "markdown",
            mime_type="application/pdf" if paginated else "text/markdown",
        ),
    )


@pytest.fixture
def tenant_id() -> uuid.UUID:
    return TENANT_A


@pytest.fixture
def token_counter():
    """Offline token counter (tiktoken downloads its encoding on first use)."""
    return _word_count


@pytest.fixture
def make_extracted():
    """Factory fixture: ``make_extracted("page 1", "page 2", paginated=True)``."""
    return _make_extracted

"""
Application Configuration

Centralized settings for the RAG storage and retrieval service.
All values are loaded from environment variables or a ``.env`` file.

Secrets (database password, API keys) are plain strings here. They are
injected by the hosting platform from its secret store and are never
parsed beyond type coercion.
"""

from __future__ import annotations

import uuid
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL

EmbeddingProvider = Literal["openai", "azure", "local", "mock"]


class Settings(BaseSettings):
    """
    Service settings with environment variable binding.

    Required env vars (no defaults):
        POSTGRES_USER, POSTGRES_PASSWORD, POSTGRES_HOST, POSTGRES_DB

    Optional env vars:
        POSTGRES_PORT (5432), POSTGRES_SSLMODE (prefer), LOG_LEVEL (INFO),
        EMBEDDING_* , CHUNK_* and HYBRID_* tuning knobs (see below).
    """

    PROJECT_NAME: str = "RAG Platform"
    ENVIRONMENT: str = "local"

    # Database
    POSTGRES_USER: str
    POSTGRES_PASSWORD: str
    POSTGRES_HOST: str
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str
    # Managed PostgreSQL servers reject non-TLS connections
    POSTGRES_SSLMODE: str = "prefer"
    DB_POOL_SIZE: int = 5

    # Multi-tenancy: used when a request carries no X-Tenant-ID header
    DEFAULT_TENANT_ID: uuid.UUID = uuid.UUID(int=0)

    # Embeddings
    EMBEDDING_PROVIDER: EmbeddingProvider = "mock"
    EMBEDDING_MODEL: str = "text-embedding-3-small"
    EMBEDDING_DIMENSION: int = Field(default=1536, ge=1)
    EMBEDDING_BATCH_SIZE: int = Field(default=64, ge=1)
    OPENAI_API_KEY: str | None = None
    AZURE_OPENAI_ENDPOINT: str | None = None
    AZURE_OPENAI_API_KEY: str | None = None
    AZURE_OPENAI_API_VERSION: str = "2024-02-01"

    # Chunking
    CHUNK_SIZE: int = Field(default=1000, ge=1)
    CHUNK_OVERLAP: int = Field(default=150, ge=0)

    # Hybrid retrieval
    HYBRID_ALPHA: float = Field(default=0.5, ge=0.0, le=1.0)
    HYBRID_RRF_K: int = Field(default=60, ge=1)
    HYBRID_CANDIDATE_LIMIT: int = Field(default=100, ge=1)

    # Logging
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )

    @property
    def DATABASE_URL(self) -> str:
        """
        Async PostgreSQL connection string using asyncpg driver.

        Built with ``URL.create`` so credentials are escaped: a password
        from a secret store may contain ``@``, ``/``, ``:`` or ``#``.
        """
        return self.database_url("postgresql+asyncpg").render_as_string(
            hide_password=False
        )

    def database_url(self, drivername: str) -> URL:
        """Escaped connection URL; plain ``postgresql`` suits raw asyncpg."""
        return URL.create(
            drivername=drivername,
            username=self.POSTGRES_USER,
            password=self.POSTGRES_PASSWORD,
            host=self.POSTGRES_HOST,
            port=self.POSTGRES_PORT,
            database=self.POSTGRES_DB,
        )

    @property
    def connect_args(self) -> dict[str, str]:
        """asyncpg connect arguments (TLS mode)."""
        if self.POSTGRES_SSLMODE == "disable":
            return {}
        return {"ssl": self.POSTGRES_SSLMODE}


settings = Settings()  # type: ignore[call-arg]

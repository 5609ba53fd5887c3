"""
Embedding Service

Generates chunk and query embeddings for vector retrieval.

Providers (EMBEDDING_PROVIDER):
    - openai: OpenAI embeddings API (``text-embedding-3-small``, 1536 dims).
    - azure:  Azure OpenAI deployment; EMBEDDING_MODEL is the deployment name.
    - local:  sentence-transformers model loaded in-process (lazy).
    - mock:   deterministic pseudo-random unit vectors seeded by the text
              hash. No network, no API costs; used in dev and tests.

Every vector is checked against EMBEDDING_DIMENSION so a model / schema
mismatch fails at ingestion time rather than at INSERT.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import math
import random
from typing import Any, ClassVar

from openai import AsyncAzureOpenAI, AsyncOpenAI, OpenAIError

from app.core.config import EmbeddingProvider, settings
from app.core.exceptions import EmbeddingDimensionError, EmbeddingProviderError

logger = logging.getLogger(__name__)


def mock_embedding(text: str, dimension: int) -> list[float]:
    """Unit vector derived from the SHA-256 of ``text``; same text, same vector."""
    seed = int.from_bytes(hashlib.sha256(text.encode("utf-8")).digest()[:8], "big")
    rng = random.Random(seed)
    vector = [rng.gauss(0.0, 1.0) for _ in range(dimension)]
    norm = math.sqrt(sum(v * v for v in vector)) or 1.0
    return [v / norm for v in vector]


class EmbeddingService:
    """
    Async embedding client over the configured provider.

    Usage::

        service = EmbeddingService()
        vectors = await service.embed_texts(["hello", "world"])
        query_vector = await service.embed_query("greeting")

    Args:
        provider: Override of EMBEDDING_PROVIDER.
        model: Override of EMBEDDING_MODEL.
        dimension: Override of EMBEDDING_DIMENSION.
        batch_size: Texts per provider request.
        client: Pre-built OpenAI-compatible client (tests, custom transports).
    """

    # sentence-transformers models, loaded once per process and shared
    _local_models: ClassVar[dict[str, Any]] = {}

    def __init__(
        self,
        provider: EmbeddingProvider | None = None,
        model: str | None = None,
        dimension: int | None = None,
        batch_size: int | None = None,
        client: Any = None,
    ) -> None:
        self._provider: EmbeddingProvider = provider or settings.EMBEDDING_PROVIDER
        self._model = model or settings.EMBEDDING_MODEL
        self._dimension = dimension or settings.EMBEDDING_DIMENSION
        self._batch_size = batch_size or settings.EMBEDDING_BATCH_SIZE
        self._client = client

    @property
    def provider(self) -> EmbeddingProvider:
        return self._provider

    @property
    def dimension(self) -> int:
        return self._dimension

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def embed_texts(self, texts: list[str]) -> list[list[float]]:
        """
        Embed a batch of texts, preserving order.

        Raises:
            EmbeddingProviderError: Provider misconfigured or request failed.
            EmbeddingDimensionError: Vector size differs from the schema.
        """
        if not texts:
            return []

        vectors: list[list[float]] = []
        for start in range(0, len(texts), self._batch_size):
            batch = texts[start : start + self._batch_size]
            vectors.extend(await self._embed_batch(batch))

        for vector in vectors:
            if len(vector) != self._dimension:
                raise EmbeddingDimensionError(self._dimension, len(vector))

        logger.debug(
            "Embedded %d texts (provider=%s, model=%s)",
            len(texts),
            self._provider,
            self._model,
        )
        return vectors

    async def embed_query(self, query: str) -> list[float]:
        """Embed a single search query."""
        vectors = await self.embed_texts([query])
        return vectors[0]

    # ------------------------------------------------------------------
    # Providers
    # ------------------------------------------------------------------

    async def _embed_batch(self, batch: list[str]) -> list[list[float]]:
        if self._provider == "mock":
            return [mock_embedding(text, self._dimension) for text in batch]
        if self._provider == "local":
            return await asyncio.to_thread(self._encode_local, batch)
        return await self._embed_remote(batch)

    async def _embed_remote(self, batch: list[str]) -> list[list[float]]:
        client = self._get_client()
        # OpenAI recommends single-line input
        cleaned = [text.replace("\n", " ") for text in batch]
        try:
            response = await client.embeddings.create(input=cleaned, model=self._model)
        except OpenAIError as e:
            logger.error("Embedding request failed (%s): %s", self._provider, e)
            raise EmbeddingProviderError(f"Embedding request failed: {e}") from e

        # Responses carry an index per item; do not rely on ordering
        items = sorted(response.data, key=lambda item: item.index)
        return [list(item.embedding) for item in items]

    def _get_client(self) -> Any:
        if self._client is not None:
            return self._client

        if self._provider == "openai":
            if not settings.OPENAI_API_KEY:
                raise EmbeddingProviderError("OPENAI_API_KEY is not set")
            self._client = AsyncOpenAI(api_key=settings.OPENAI_API_KEY)
        elif self._provider == "azure":
            if not settings.AZURE_OPENAI_ENDPOINT or not settings.AZURE_OPENAI_API_KEY:
                raise EmbeddingProviderError(
                    "AZURE_OPENAI_ENDPOINT and AZURE_OPENAI_API_KEY must be set"
                )
            self._client = AsyncAzureOpenAI(
                azure_endpoint=settings.AZURE_OPENAI_ENDPOINT,
                api_key=settings.AZURE_OPENAI_API_KEY,
                api_version=settings.AZURE_OPENAI_API_VERSION,
            )
        else:
            raise EmbeddingProviderError(f"Unknown embedding provider: {self._provider}")
        return self._client

    def _encode_local(self, batch: list[str]) -> list[list[float]]:
        """
        Synchronous sentence-transformers inference.

        CPU-bound: always call via ``asyncio.to_thread``. The import is
        deferred so the package is only needed when this provider is used.
        """
        model = self._local_models.get(self._model)
        if model is None:
            from sentence_transformers import SentenceTransformer

            logger.info("Loading embedding model: %s ...", self._model)
            model = SentenceTransformer(self._model)
            self._local_models[self._model] = model
        embeddings = model.encode(batch, normalize_embeddings=True)
        result: list[list[float]] = embeddings.tolist()
        return result

    def warm_up(self) -> None:
        """Load the local model ahead of the first request (no-op otherwise)."""
        if self._provider == "local":
            self._encode_local(["warm-up"])

    async def close(self) -> None:
        """Release the HTTP client."""
        if self._client is not None and hasattr(self._client, "close"):
            await self._client.close()
        self._client = None

    @classmethod
    def reset(cls) -> None:
        """Release cached local models from memory."""
        cls._local_models.clear()
        logger.info("Local embedding models released")

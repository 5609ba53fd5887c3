"""
Hybrid Retrieval Service

Runs the two candidate queries (pgvector cosine distance, full-text
``ts_rank_cd``), fuses them with the requested policy and hydrates the
winners with document and source context.

Each candidate list is capped at HYBRID_CANDIDATE_LIMIT before fusion to
bound cost; the fused list is then cut to ``k``.
"""

from __future__ import annotations

import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.repositories.rag import RAGRepository
from app.schemas.rag import SearchHit
from app.services.embeddings import EmbeddingService
from app.services.fusion import (
    Candidate,
    FusedHit,
    FusionMethod,
    rank_candidates,
    reciprocal_rank_fusion,
    single_channel,
    weighted_sum_fusion,
)

logger = logging.getLogger(__name__)


class HybridRetriever:
    """
    Vector + full-text retrieval with score fusion.

    Usage::

        retriever = HybridRetriever()
        hits = await retriever.search(
            session, "data retention policy", tenant_id, k=5,
            method=FusionMethod.HYBRID_RRF,
        )
    """

    def __init__(
        self,
        repository: RAGRepository | None = None,
        embeddings: EmbeddingService | None = None,
        candidate_limit: int | None = None,
    ) -> None:
        self._repository = repository or RAGRepository()
        self._embeddings = embeddings or EmbeddingService()
        self._candidate_limit = candidate_limit or settings.HYBRID_CANDIDATE_LIMIT

    async def search(
        self,
        session: AsyncSession,
        query: str,
        tenant_id: uuid.UUID,
        k: int = 5,
        method: FusionMethod = FusionMethod.HYBRID_WEIGHTED,
        alpha: float | None = None,
        rrf_k: int | None = None,
    ) -> list[SearchHit]:
        """
        Retrieve the ``k`` best chunks for ``query``.

        Args:
            session: Active async database session.
            query: Natural language query (embedded and parsed as tsquery).
            tenant_id: Only this tenant's chunks are considered.
            k: Number of results.
            method: Fusion policy or single channel.
            alpha: Vector weight for weighted-sum fusion.
            rrf_k: Smoothing constant for reciprocal rank fusion.

        Raises:
            ValueError: Invalid ``k``, ``alpha`` or ``rrf_k``.
        """
        alpha = settings.HYBRID_ALPHA if alpha is None else alpha
        rrf_k = settings.HYBRID_RRF_K if rrf_k is None else rrf_k

        vector: list[Candidate] = []
        text: list[Candidate] = []
        if method != FusionMethod.TEXT:
            query_embedding = await self._embeddings.embed_query(query)
            vector = rank_candidates(
                await self._repository.vector_candidates(
                    session,
                    query_embedding,
                    tenant_id,
                    limit=self._candidate_limit,
                )
            )
        if method != FusionMethod.VECTOR:
            text = rank_candidates(
                await self._repository.text_candidates(
                    session,
                    query,
                    tenant_id,
                    limit=self._candidate_limit,
                )
            )

        fused = self._fuse(vector, text, method=method, k=k, alpha=alpha, rrf_k=rrf_k)
        logger.info(
            "Search '%s' (%s): %d vector + %d text candidates -> %d hits",
            query[:50],
            method.value,
            len(vector),
            len(text),
            len(fused),
        )
        return await self._hydrate(session, fused)

    @staticmethod
    def _fuse(
        vector: list[Candidate],
        text: list[Candidate],
        *,
        method: FusionMethod,
        k: int,
        alpha: float,
        rrf_k: int,
    ) -> list[FusedHit]:
        if method == FusionMethod.HYBRID_WEIGHTED:
            return weighted_sum_fusion(vector, text, alpha=alpha, top_n=k)
        if method == FusionMethod.HYBRID_RRF:
            return reciprocal_rank_fusion(vector, text, k=rrf_k, top_n=k)
        if method == FusionMethod.VECTOR:
            return single_channel(vector, channel=method, top_n=k)
        return single_channel(text, channel=method, top_n=k)

    async def _hydrate(
        self,
        session: AsyncSession,
        fused: list[FusedHit],
    ) -> list[SearchHit]:
        ids = [hit.key for hit in fused]
        contexts = await self._repository.get_chunk_contexts(session, ids)

        results: list[SearchHit] = []
        for hit in fused:
            ctx = contexts.get(hit.key)
            if ctx is None:
                # Deleted between candidate query and hydration
                continue
            results.append(
                SearchHit(
                    chunk_id=ctx.chunk.id,
                    document_id=ctx.chunk.document_id,
                    source_id=ctx.source_id,
                    content=ctx.chunk.content,
                    score=round(hit.score, 6),
                    source=ctx.file_name,
                    title=ctx.document_title,
                    chunk_index=ctx.chunk.chunk_index,
                    page_number=ctx.chunk.page_number,
                    section_heading=ctx.chunk.section_heading,
                    vector_rank=hit.vector_rank,
                    text_rank=hit.text_rank,
                    vector_score=hit.vector_score,
                    text_score=hit.text_score,
                )
            )
        return results

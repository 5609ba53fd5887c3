"""
Hybrid Score Fusion

Combines independently ranked candidate lists (vector similarity and
full-text relevance) into one ranking.

Two policies:

Weighted sum:
    Each list's raw scores are min-max normalised into [0, 1]; a candidate
    missing from a list gets 0 for it.
    ``score = alpha * vector + (1 - alpha) * text``

Reciprocal Rank Fusion:
    ``score = sum(1 / (k + rank))`` over the lists that contain the
    candidate (ranks are 1-based).

Both sort by score descending and cut at ``top_n``. Ties go to the better
rank in the dominant list (vector for RRF and ``alpha >= 0.5``, text
otherwise), then the other list, then the id. With ``alpha == 1.0`` the
order is exactly the vector order, with ``alpha == 0.0`` the text order.

Pure functions, no I/O.
"""

from __future__ import annotations

import enum
import math
from collections.abc import Hashable, Sequence
from dataclasses import dataclass

DEFAULT_ALPHA: float = 0.5
DEFAULT_RRF_K: int = 60


class FusionMethod(str, enum.Enum):
    """Retrieval mode exposed on the search API."""

    HYBRID_WEIGHTED = "hybrid_weighted"
    HYBRID_RRF = "hybrid_rrf"
    VECTOR = "vector"
    TEXT = "text"


@dataclass(frozen=True)
class Candidate:
    """
    One entry of a ranked candidate list.

    Attributes:
        key: Identity shared across lists (chunk id).
        score: Raw channel score; higher is better.
        rank: 1-based position in its list.
    """

    key: Hashable
    score: float
    rank: int


@dataclass
class FusedHit:
    """
    A fused result with per-channel provenance.

    ``vector_score`` / ``text_score`` hold raw scores, ``None`` when the
    candidate was not retrieved by that channel.
    """

    key: Hashable
    score: float
    vector_rank: int | None = None
    text_rank: int | None = None
    vector_score: float | None = None
    text_score: float | None = None


def rank_candidates(scored: Sequence[tuple[Hashable, float]]) -> list[Candidate]:
    """Turn an ordered ``(key, score)`` sequence into 1-based Candidates."""
    return [
        Candidate(key=key, score=float(score), rank=i)
        for i, (key, score) in enumerate(scored, start=1)
    ]


def min_max_normalize(scores: Sequence[float]) -> list[float]:
    """
    Scale scores into [0, 1].

    A list whose scores are all equal (including a single score) maps to
    1.0 everywhere: every member is the best of its list.
    """
    if not scores:
        return []
    lo, hi = min(scores), max(scores)
    span = hi - lo
    if span <= 0 or not math.isfinite(span):
        return [1.0 for _ in scores]
    return [(s - lo) / span for s in scores]


def weighted_sum_fusion(
    vector: Sequence[Candidate],
    text: Sequence[Candidate],
    *,
    alpha: float = DEFAULT_ALPHA,
    top_n: int = 10,
) -> list[FusedHit]:
    """
    Fuse two lists with ``alpha * vector + (1 - alpha) * text``.

    Raises:
        ValueError: If alpha is outside [0, 1] or top_n < 1.
    """
    if not 0.0 <= alpha <= 1.0:
        raise ValueError(f"alpha must be within [0, 1], got {alpha}")
    _check_top_n(top_n)

    hits = _merge(vector, text)
    v_norm = _normalized_by_key(vector)
    t_norm = _normalized_by_key(text)

    for hit in hits.values():
        v = v_norm.get(hit.key, 0.0)
        t = t_norm.get(hit.key, 0.0)
        hit.score = alpha * v + (1.0 - alpha) * t

    return _order(hits.values(), vector_first=alpha >= 0.5)[:top_n]


def reciprocal_rank_fusion(
    vector: Sequence[Candidate],
    text: Sequence[Candidate],
    *,
    k: int = DEFAULT_RRF_K,
    top_n: int = 10,
) -> list[FusedHit]:
    """
    Fuse two lists with Reciprocal Rank Fusion.

    Raises:
        ValueError: If k <= 0 or top_n < 1.
    """
    if k <= 0:
        raise ValueError(f"k must be positive, got {k}")
    _check_top_n(top_n)

    hits = _merge(vector, text)
    for hit in hits.values():
        score = 0.0
        if hit.vector_rank is not None:
            score += 1.0 / (k + hit.vector_rank)
        if hit.text_rank is not None:
            score += 1.0 / (k + hit.text_rank)
        hit.score = score

    return _order(hits.values(), vector_first=True)[:top_n]


def single_channel(
    candidates: Sequence[Candidate],
    *,
    channel: FusionMethod,
    top_n: int = 10,
) -> list[FusedHit]:
    """Pass one list through unchanged (pure vector or pure text mode)."""
    _check_top_n(top_n)
    if channel == FusionMethod.VECTOR:
        hits = _merge(candidates, [])
        for hit in hits.values():
            hit.score = hit.vector_score or 0.0
    elif channel == FusionMethod.TEXT:
        hits = _merge([], candidates)
        for hit in hits.values():
            hit.score = hit.text_score or 0.0
    else:
        raise ValueError(f"Not a single-channel method: {channel}")
    return _order(hits.values(), vector_first=channel == FusionMethod.VECTOR)[:top_n]


# ----------------------------------------------------------------------
# Internal helpers
# ----------------------------------------------------------------------


def _check_top_n(top_n: int) -> None:
    if top_n < 1:
        raise ValueError(f"top_n must be at least 1, got {top_n}")


def _normalized_by_key(candidates: Sequence[Candidate]) -> dict[Hashable, float]:
    normalized = min_max_normalize([c.score for c in candidates])
    result: dict[Hashable, float] = {}
    for c, value in zip(candidates, normalized):
        result.setdefault(c.key, value)
    return result


def _merge(
    vector: Sequence[Candidate],
    text: Sequence[Candidate],
) -> dict[Hashable, FusedHit]:
    hits: dict[Hashable, FusedHit] = {}
    for c in vector:
        hit = hits.setdefault(c.key, FusedHit(key=c.key, score=0.0))
        # Keep the best occurrence if a list repeats a key
        if hit.vector_rank is None:
            hit.vector_rank, hit.vector_score = c.rank, c.score
    for c in text:
        hit = hits.setdefault(c.key, FusedHit(key=c.key, score=0.0))
        if hit.text_rank is None:
            hit.text_rank, hit.text_score = c.rank, c.score
    return hits


def _order(hits, *, vector_first: bool) -> list[FusedHit]:
    def sort_key(hit: FusedHit):
        v = hit.vector_rank if hit.vector_rank is not None else math.inf
        t = hit.text_rank if hit.text_rank is not None else math.inf
        primary, secondary = (v, t) if vector_first else (t, v)
        return (-hit.score, primary, secondary, str(hit.key))

    return sorted(hits, key=sort_key)

"""
Score Fusion Unit Tests

Verifies weighted-sum and reciprocal rank fusion: normalisation, the
alpha boundaries (pure vector / pure text order), tie-breaking, channel
provenance and argument validation.
"""

from __future__ import annotations

import pytest

from app.services.fusion import (
    Candidate,
    FusionMethod,
    min_max_normalize,
    rank_candidates,
    reciprocal_rank_fusion,
    single_channel,
    weighted_sum_fusion,
)

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def vector() -> list[Candidate]:
    """Cosine similarities, best first."""
    return rank_candidates([("a", 0.9), ("b", 0.8), ("c", 0.7)])


@pytest.fixture
def text() -> list[Candidate]:
    """Full-text ranks, best first."""
    return rank_candidates([("c", 5.0), ("d", 4.0), ("a", 1.0)])


def _keys(hits) -> list[str]:
    return [hit.key for hit in hits]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestHelpers:
    def test_rank_candidates_is_one_based(self) -> None:
        ranked = rank_candidates([("x", 3), ("y", 2)])

        assert ranked == [Candidate("x", 3.0, 1), Candidate("y", 2.0, 2)]

    def test_min_max_normalize(self) -> None:
        assert min_max_normalize([3.0, 1.0, 2.0]) == [1.0, 0.0, 0.5]

    def test_min_max_normalize_equal_scores(self) -> None:
        assert min_max_normalize([0.4, 0.4]) == [1.0, 1.0]
        assert min_max_normalize([7.0]) == [1.0]

    def test_min_max_normalize_empty(self) -> None:
        assert min_max_normalize([]) == []


# ---------------------------------------------------------------------------
# Weighted sum
# ---------------------------------------------------------------------------


class TestWeightedSum:
    def test_alpha_one_is_vector_order(self, vector, text) -> None:
        fused = weighted_sum_fusion(vector, text, alpha=1.0)

        assert _keys(fused)[:3] == ["a", "b", "c"]

    def test_alpha_zero_is_text_order(self, vector, text) -> None:
        fused = weighted_sum_fusion(vector, text, alpha=0.0)

        assert _keys(fused)[:3] == ["c", "d", "a"]

    def test_balanced_scores(self, vector, text) -> None:
        fused = weighted_sum_fusion(vector, text, alpha=0.5)
        scores = {hit.key: hit.score for hit in fused}

        assert scores == pytest.approx({"a": 0.5, "b": 0.25, "c": 0.5, "d": 0.375})

    def test_tie_goes_to_dominant_list(self, vector, text) -> None:
        """a and c both score 0.5; a ranks higher in the vector list."""
        fused = weighted_sum_fusion(vector, text, alpha=0.5)

        assert _keys(fused) == ["a", "c", "d", "b"]

    def test_provenance(self, vector, text) -> None:
        hits = {hit.key: hit for hit in weighted_sum_fusion(vector, text)}

        assert (hits["a"].vector_rank, hits["a"].text_rank) == (1, 3)
        assert (hits["a"].vector_score, hits["a"].text_score) == (0.9, 1.0)
        assert hits["b"].text_rank is None
        assert hits["d"].vector_score is None

    def test_top_n_cuts(self, vector, text) -> None:
        assert len(weighted_sum_fusion(vector, text, top_n=2)) == 2

    def test_one_empty_list(self, vector) -> None:
        fused = weighted_sum_fusion(vector, [], alpha=0.3)

        assert _keys(fused) == ["a", "b", "c"]

    def test_both_empty(self) -> None:
        assert weighted_sum_fusion([], []) == []

    @pytest.mark.parametrize("alpha", [-0.1, 1.5])
    def test_alpha_out_of_range(self, vector, text, alpha: float) -> None:
        with pytest.raises(ValueError, match="alpha"):
            weighted_sum_fusion(vector, text, alpha=alpha)

    def test_top_n_must_be_positive(self, vector, text) -> None:
        with pytest.raises(ValueError, match="top_n"):
            weighted_sum_fusion(vector, text, top_n=0)


# ---------------------------------------------------------------------------
# Reciprocal rank fusion
# ---------------------------------------------------------------------------


class TestReciprocalRankFusion:
    def test_scores(self, vector, text) -> None:
        hits = {hit.key: hit.score for hit in reciprocal_rank_fusion(vector, text, k=60)}

        assert hits["a"] == pytest.approx(1 / 61 + 1 / 63)
        assert hits["b"] == pytest.approx(1 / 62)
        assert hits["d"] == pytest.approx(1 / 62)

    def test_order_with_ties(self, vector, text) -> None:
        fused = reciprocal_rank_fusion(vector, text)

        assert _keys(fused) == ["a", "c", "b", "d"]

    def test_candidate_in_both_lists_beats_single_list(self) -> None:
        vector = rank_candidates([("solo", 0.99), ("both", 0.5)])
        text = rank_candidates([("both", 2.0)])

        assert _keys(reciprocal_rank_fusion(vector, text))[0] == "both"

    def test_k_must_be_positive(self, vector, text) -> None:
        with pytest.raises(ValueError, match="k must be positive"):
            reciprocal_rank_fusion(vector, text, k=0)

    def test_duplicate_key_keeps_best_rank(self) -> None:
        vector = rank_candidates([("x", 0.9), ("x", 0.1)])

        (hit,) = reciprocal_rank_fusion(vector, [])

        assert hit.vector_rank == 1
        assert hit.score == pytest.approx(1 / 61)


# ---------------------------------------------------------------------------
# Single channel
# ---------------------------------------------------------------------------


class TestSingleChannel:
    def test_vector_passthrough(self, vector) -> None:
        fused = single_channel(vector, channel=FusionMethod.VECTOR)

        assert [(h.key, h.score) for h in fused] == [("a", 0.9), ("b", 0.8), ("c", 0.7)]
        assert all(h.text_rank is None for h in fused)

    def test_text_passthrough(self, text) -> None:
        fused = single_channel(text, channel=FusionMethod.TEXT, top_n=2)

        assert [(h.key, h.text_rank) for h in fused] == [("c", 1), ("d", 2)]

    def test_rejects_hybrid_method(self, vector) -> None:
        with pytest.raises(ValueError, match="single-channel"):
            single_channel(vector, channel=FusionMethod.HYBRID_RRF)

# © 2026 Crest Advisory Group LLC. All rights reserved.
# PROPRIETARY AND CONFIDENTIAL. Unauthorized copying, distribution, or use is strictly prohibited.

"""
Unit tests for result fusion: normalization, dynamic weights, agreement
bonuses, near-tie ordering and single-channel scoring.

All tests are pure logic: no network calls, no database, no LLM.
"""

import pytest

from src.services.retrieval.fusion import fuse_results, score_single_channel
from src.services.retrieval.models import RetrievalWeights
from tests.helpers import make_scored

WEIGHTS = RetrievalWeights()


class TestFuseResults:
    def test_passage_in_both_channels_ranks_first(self) -> None:
        """P1 in both channels outranks P2 (vector only) and P3 (lexical only)."""
        vector = [
            make_scored("P1", "alpha beta alpha", vector_score=0.9),
            make_scored("P2", "gamma delta", vector_score=0.4),
        ]
        lexical = [
            make_scored("P1", "alpha beta alpha", keyword_score=3),
            make_scored("P3", "beta only here", keyword_score=1),
        ]
        fused = fuse_results(vector, lexical, ["alpha", "beta"], limit=10, weights=WEIGHTS)

        assert fused[0].id == "P1"
        assert {p.id for p in fused} == {"P1", "P2", "P3"}
        assert all(0.0 <= p.hybrid_score <= 1.0 for p in fused)
        assert fused[0].in_both_channels
        assert fused[0].vector_score == pytest.approx(0.9)
        assert fused[0].keyword_score == 3

    def test_near_tie_broken_by_match_ratio(self) -> None:
        """P2 and P3 both normalize to 0; P3 matches a term so it comes first."""
        vector = [make_scored("P1", "alpha beta", vector_score=0.9), make_scored("P2", "gamma", vector_score=0.4)]
        lexical = [make_scored("P1", "alpha beta", keyword_score=3), make_scored("P3", "beta", keyword_score=1)]
        fused = fuse_results(vector, lexical, ["alpha", "beta"], limit=10, weights=WEIGHTS)
        assert [p.id for p in fused] == ["P1", "P3", "P2"]

    def test_vector_only_fusion_has_no_bonus(self) -> None:
        vector = [make_scored("A", "one", vector_score=0.9), make_scored("B", "two", vector_score=0.5)]
        fused = fuse_results(vector, [], [], limit=10, weights=WEIGHTS)

        assert fused[0].id == "A"
        assert fused[0].hybrid_score == pytest.approx(0.6)
        assert fused[1].hybrid_score == pytest.approx(0.0)
        assert not any(p.in_both_channels for p in fused)

    def test_lexical_only_fusion_uses_keyword_weight(self) -> None:
        lexical = [make_scored("A", "x", keyword_score=4), make_scored("B", "y", keyword_score=2)]
        fused = fuse_results([], lexical, [], limit=10, weights=WEIGHTS)
        assert fused[0].hybrid_score == pytest.approx(0.4)
        assert fused[1].hybrid_score == pytest.approx(0.0)

    def test_single_vector_score_normalizes_to_one(self) -> None:
        fused = fuse_results([make_scored("A", "x", vector_score=0.7)], [], [], limit=5, weights=WEIGHTS)
        assert fused[0].normalized_vector_score == pytest.approx(1.0)

    def test_equal_vector_scores_keep_raw_similarity(self) -> None:
        vector = [make_scored("A", "x", vector_score=0.4), make_scored("B", "y", vector_score=0.4)]
        fused = fuse_results(vector, [], [], limit=5, weights=WEIGHTS)
        for p in fused:
            assert p.normalized_vector_score == pytest.approx(0.4)
            assert p.hybrid_score == pytest.approx(0.24)

    def test_collapsed_keyword_range_divides_by_cap(self) -> None:
        lexical = [make_scored("A", "x", keyword_score=3), make_scored("B", "y", keyword_score=3)]
        fused = fuse_results([], lexical, [], limit=5, weights=WEIGHTS)
        for p in fused:
            assert p.normalized_keyword_score == pytest.approx(0.6)
            assert p.hybrid_score == pytest.approx(0.24)

    def test_collapsed_keyword_range_clamps_at_one(self) -> None:
        fused = fuse_results([], [make_scored("A", "x", keyword_score=9)], [], limit=5, weights=WEIGHTS)
        assert fused[0].normalized_keyword_score == pytest.approx(1.0)

    def test_dual_channel_bonus_is_monotone(self) -> None:
        """Same vector score: the passage also found lexically scores at least as high."""
        vector = [
            make_scored("A", "zeta text", vector_score=0.8),
            make_scored("B", "other text", vector_score=0.8),
            make_scored("C", "more", vector_score=0.5),
        ]
        lexical = [make_scored("A", "zeta text", keyword_score=2)]
        fused = {p.id: p for p in fuse_results(vector, lexical, ["zeta"], limit=10, weights=WEIGHTS)}
        assert fused["A"].hybrid_score >= fused["B"].hybrid_score
        assert fused["A"].hybrid_score == pytest.approx(0.9)

    def test_high_match_ratio_shifts_weights_and_adds_bonus(self) -> None:
        """ratio 1.0 → weights 0.5/0.5 plus a 0.1 ratio bonus."""
        vector = [make_scored("X", "unrelated", vector_score=0.8)]
        lexical = [make_scored("Y", "kappa kappa kappa kappa kappa", keyword_score=5)]
        fused = fuse_results(vector, lexical, ["kappa"], limit=10, weights=WEIGHTS)

        scores = {p.id: p.hybrid_score for p in fused}
        assert scores["X"] == pytest.approx(0.6)
        assert scores["Y"] == pytest.approx(0.6)
        # Near-tie: Y matches every term, so it is ordered first
        assert [p.id for p in fused] == ["Y", "X"]

    def test_match_ratio_counts_substrings_case_insensitively(self) -> None:
        fused = fuse_results(
            [make_scored("A", "The ALPHA report", vector_score=0.5)], [], ["alpha", "Beta"], limit=5, weights=WEIGHTS
        )
        assert fused[0].keyword_match_ratio == pytest.approx(0.5)

    def test_gap_equal_to_epsilon_is_a_tie(self) -> None:
        """Scores exactly epsilon apart are ordered by match ratio."""
        weights = WEIGHTS.with_overrides(
            vector_weight=1.0,
            keyword_weight=0.0,
            boosted_vector_weight=1.0,
            boosted_keyword_weight=0.0,
            match_ratio_bonus_scale=0.0,
            tie_epsilon=0.5,
        )
        vector = [
            make_scored("A", "alpha", vector_score=0.75),
            make_scored("B", "beta", vector_score=0.5),
            make_scored("C", "gamma", vector_score=0.25),
        ]
        fused = fuse_results(vector, [], ["beta"], limit=5, weights=weights)
        assert [p.hybrid_score for p in fused] == [0.5, 1.0, 0.0]
        assert [p.id for p in fused] == ["B", "A", "C"]

    def test_duplicate_ids_merged(self) -> None:
        vector = [make_scored("A", "x", vector_score=0.9), make_scored("A", "x", vector_score=0.9)]
        lexical = [make_scored("A", "x", keyword_score=1)]
        fused = fuse_results(vector, lexical, [], limit=10, weights=WEIGHTS)
        assert [p.id for p in fused] == ["A"]

    def test_truncates_to_limit(self) -> None:
        vector = [make_scored(f"v{i}", "x", vector_score=0.9 - i * 0.1) for i in range(5)]
        assert len(fuse_results(vector, [], [], limit=2, weights=WEIGHTS)) == 2

    def test_both_channels_empty(self) -> None:
        assert fuse_results([], [], ["alpha"], limit=5, weights=WEIGHTS) == []

    def test_inputs_not_mutated(self) -> None:
        vector = [make_scored("A", "alpha", vector_score=0.9)]
        lexical = [make_scored("A", "alpha", keyword_score=2)]
        fuse_results(vector, lexical, ["alpha"], limit=5, weights=WEIGHTS)
        assert vector[0].keyword_score == 0
        assert vector[0].hybrid_score == 0.0

    def test_scores_bounded_for_mixed_inputs(self) -> None:
        vector = [make_scored(f"v{i}", f"alpha beta {i}", vector_score=0.31 + i * 0.07) for i in range(10)]
        lexical = [make_scored(f"v{i}", f"alpha beta {i}", keyword_score=i + 1) for i in range(0, 10, 2)]
        lexical += [make_scored(f"k{i}", "alpha", keyword_score=20) for i in range(3)]
        fused = fuse_results(vector, lexical, ["alpha", "beta", "gamma"], limit=20, weights=WEIGHTS)
        for p in fused:
            assert 0.0 <= p.hybrid_score <= 1.0
            assert 0.0 <= p.keyword_match_ratio <= 1.0

    def test_weights_override(self) -> None:
        weights = WEIGHTS.with_overrides(vector_weight=1.0, keyword_weight=0.0)
        fused = fuse_results([make_scored("A", "x", vector_score=0.5)], [], [], limit=5, weights=weights)
        assert fused[0].hybrid_score == pytest.approx(1.0)


class TestScoreSingleChannel:
    def test_vector_channel_uses_similarity(self) -> None:
        vector = [make_scored("A", "x", vector_score=0.9), make_scored("B", "y", vector_score=0.5)]
        scored = score_single_channel(vector, [], limit=5, weights=WEIGHTS)
        assert [p.id for p in scored] == ["A", "B"]
        assert [p.hybrid_score for p in scored] == pytest.approx([0.9, 0.5])

    def test_lexical_channel_uses_capped_keyword_score(self) -> None:
        lexical = [make_scored("A", "alpha", keyword_score=10), make_scored("B", "beta", keyword_score=2)]
        scored = score_single_channel(lexical, ["alpha"], limit=5, weights=WEIGHTS)
        assert [p.hybrid_score for p in scored] == pytest.approx([1.0, 0.4])
        assert scored[0].keyword_match_ratio == pytest.approx(1.0)
        assert scored[1].keyword_match_ratio == pytest.approx(0.0)

    def test_keeps_channel_order_and_truncates(self) -> None:
        lexical = [make_scored(f"k{i}", "x", keyword_score=1 + i) for i in range(4)]
        scored = score_single_channel(lexical, [], limit=2, weights=WEIGHTS)
        assert [p.id for p in scored] == ["k0", "k1"]

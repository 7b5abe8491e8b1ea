"""Unit tests for similarity scoring.

Tests the name scorer, the postcode adjustment and candidate ranking
without requiring database connections.

Run with: pytest tests/unit/test_scoring.py -v
"""

from uuid import uuid4

import pytest

from ehs_identity.resolution.scoring import (
    JARO_FLOOR_SCORE,
    LEGISLATION_MATCH_THRESHOLD,
    MATCH_THRESHOLD,
    MERGE_VALIDATION_THRESHOLD,
    POSTCODE_BOOST,
    MatchCandidate,
    apply_postcode_adjustment,
    find_best_match,
    jaccard_similarity,
    name_similarity,
    rank_candidates,
    similarity,
)


class TestThresholds:
    """Tests for the named threshold constants."""

    def test_threshold_values(self):
        assert MATCH_THRESHOLD == 0.7
        assert LEGISLATION_MATCH_THRESHOLD == 0.85
        assert MERGE_VALIDATION_THRESHOLD == 0.9
        assert POSTCODE_BOOST == 0.15


class TestNameSimilarity:
    """Tests for location-independent name scoring."""

    @pytest.mark.parametrize("name", ["ACME Ltd", "Big Co PLC", "x"])
    def test_identical_names_score_one(self, name):
        assert similarity(name, name) == 1.0

    def test_suffix_variants_score_one(self):
        assert name_similarity("ACME Ltd", "ACME LIMITED") == 1.0

    def test_empty_names_score_zero(self):
        assert name_similarity("", "") == 0.0
        assert name_similarity("  ", "...") == 0.0

    def test_non_strings_score_zero(self):
        assert name_similarity(None, "ACME Ltd") == 0.0

    def test_unrelated_names_score_low(self):
        assert name_similarity("ACME Limited", "Zenith Holdings PLC") < MATCH_THRESHOLD

    def test_jaro_floor_for_near_identical_names(self):
        """Test that small spelling differences are floored at the Jaro floor."""
        score = name_similarity("Smithson Engineering", "Smithsons Engineering")
        assert score >= JARO_FLOOR_SCORE

    def test_jaccard_on_tokens(self):
        assert jaccard_similarity("a b c", "a b d") == pytest.approx(0.5)
        assert jaccard_similarity("", "") == 0.0


class TestPostcodeAdjustment:
    """Tests for location-aware score adjustment."""

    def test_identical_names_differing_postcodes_score_zero(self):
        """Test that a postcode conflict means a different legal entity."""
        assert similarity("ACME Ltd", "ACME Ltd", "AB1 2CD", "ZZ9 9ZZ") == 0.0

    def test_matching_postcode_boosts(self):
        assert apply_postcode_adjustment(0.7, "AB1 2CD", "ab1 2cd ") == pytest.approx(0.85)

    def test_boost_capped_at_one(self):
        assert apply_postcode_adjustment(0.95, "AB1 2CD", "AB1 2CD") == 1.0

    def test_low_scores_not_boosted(self):
        assert apply_postcode_adjustment(0.5, "AB1 2CD", "AB1 2CD") == 0.5

    def test_missing_postcode_leaves_score(self):
        assert apply_postcode_adjustment(0.8, "AB1 2CD", None) == 0.8
        assert apply_postcode_adjustment(0.8, "", "AB1 2CD") == 0.8


class TestRanking:
    """Tests for candidate ranking."""

    def _candidate(self, name, postcode=None):
        return MatchCandidate(entity_id=uuid4(), name=name, postcode=postcode)

    def test_best_match_prefers_postcode_on_ties(self):
        """Test that equal scores prefer the candidate at the same postcode."""
        elsewhere = self._candidate("ACME Limited")
        here = self._candidate("ACME Limited", "AB1 2CD")

        best = find_best_match("ACME Ltd", "AB1 2CD", [elsewhere, here])

        assert best is not None
        assert best.candidate.entity_id == here.entity_id
        assert best.postcode_match is True

    def test_below_threshold_excluded(self):
        candidates = [self._candidate("Zenith Holdings PLC")]
        assert find_best_match("ACME Ltd", None, candidates) is None

    def test_conflicting_postcode_excluded(self):
        candidates = [self._candidate("ACME Limited", "ZZ9 9ZZ")]
        assert find_best_match("ACME Ltd", "AB1 2CD", candidates) is None

    def test_sorted_best_first(self):
        candidates = [
            self._candidate("ACME Construction Services Group"),
            self._candidate("ACME Construction Services Limited"),
        ]
        ranked = rank_candidates("ACME Construction Services Ltd", None, candidates, threshold=0.0)
        scores = [m.similarity for m in ranked]
        assert scores == sorted(scores, reverse=True)
        assert ranked[0].similarity == 1.0

"""Tests for name normalization and token-set similarity."""

from __future__ import annotations

import pytest

from trendpulse.services.similarity import (
    TokenSetSimilarity,
    normalize_brand,
    normalize_name,
    token_set_similarity,
    tokenize,
)


class TestTokenize:
    def test_lowercases_and_strips_punctuation(self):
        assert tokenize("CeraVe Moisturizing-Cream, 16oz!") == [
            "cerave",
            "moisturizing",
            "cream",
            "16oz",
        ]

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_empty_input_yields_no_tokens(self, value):
        assert tokenize(value) == []

    def test_normalize_name_collapses_whitespace(self):
        assert normalize_name("  The   Ordinary  Niacinamide ") == "the ordinary niacinamide"


class TestNormalizeBrand:
    def test_location_suffix_removed(self):
        assert normalize_brand("Laura Geller New York") == "laura geller"

    def test_stacked_suffixes_removed(self):
        assert normalize_brand("Acme Beauty Co.") == "acme"

    def test_single_token_brand_kept(self):
        assert normalize_brand("Beauty") == "beauty"

    def test_none_is_empty(self):
        assert normalize_brand(None) == ""


class TestTokenSetSimilarity:
    def test_identical_names_score_one(self):
        assert token_set_similarity("Snail Mucin Essence", "snail mucin essence") == 1.0

    def test_cerave_pair_jaccard(self):
        # {cerave, moisturizing} / {cerave, moisturizing, cream, daily, lotion}
        score = token_set_similarity(
            "CeraVe Moisturizing Cream", "CeraVe Daily Moisturizing Lotion"
        )
        assert score == pytest.approx(0.4)

    def test_disjoint_names_score_zero(self):
        assert token_set_similarity("Lip Oil", "Hair Mask") == 0.0

    def test_empty_side_scores_zero(self):
        assert token_set_similarity("", "Lip Oil") == 0.0

    def test_symmetric(self):
        a, b = "Vitamin C Serum", "Serum with Vitamin C and E"
        assert token_set_similarity(a, b) == token_set_similarity(b, a)

    def test_strategy_delegates(self):
        assert TokenSetSimilarity().score("Lip Oil", "lip oil") == 1.0

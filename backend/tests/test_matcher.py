"""
Tests for the Product Identity Resolver.

Covers:
  - exact / code / fuzzy / none tiers in priority order
  - trigram similarity and the 0.7 acceptance threshold
  - determinism under catalog reordering and ties
"""

import random
import uuid

from inventory.catalog import CatalogEntry, snapshot
from inventory.matcher import MatchTier, match_product, trigram_similarity
from inventory.parsing import NormalizedKey


def _entry(name: str, category: str = "Innerwear") -> CatalogEntry:
    return CatalogEntry(product_id=uuid.uuid4(), name=name, category=category, sub_category="General")


CATALOG = [
    _entry("SOLACE-BLACK"),
    _entry("CV90 COLOR VEST", category="Vests"),
    _entry("BRITNY BRA"),
]


# ── Similarity ─────────────────────────────────────────────────────────


class TestTrigramSimilarity:
    def test_identical(self):
        assert trigram_similarity("SOLACE", "solace") == 1.0

    def test_disjoint(self):
        assert trigram_similarity("abc", "xyz") == 0.0

    def test_empty(self):
        assert trigram_similarity("", "SOLACE") == 0.0

    def test_near_miss_below_threshold(self):
        """SOLACE vs SOLACES shares 6 of 9 trigrams."""
        assert round(trigram_similarity("SOLACE", "SOLACES"), 4) == round(6 / 9, 4)


# ── Tiers ──────────────────────────────────────────────────────────────


class TestMatchTiers:
    def test_exact_name_after_code_removed(self):
        result = match_product("[XX1]  britny   bra", CATALOG)
        assert result.tier == MatchTier.EXACT
        assert result.product.name == "BRITNY BRA"
        assert result.score == 1.0

    def test_code_inside_catalog_name(self):
        result = match_product("[CV90] VEST RED M", CATALOG)
        assert result.tier == MatchTier.CODE
        assert result.product.name == "CV90 COLOR VEST"
        assert result.normalized_key == NormalizedKey("VEST RED", "Default", "M")

    def test_fuzzy_strips_color_and_size(self):
        result = match_product("[SB42] SOLACE-BLACK 42", CATALOG)
        assert result.tier == MatchTier.FUZZY
        assert result.product.name == "SOLACE-BLACK"
        assert result.score == 1.0
        assert result.normalized_key == NormalizedKey("SOLACE", "BLACK", "42")

    def test_below_threshold_is_unmatched(self):
        result = match_product("SOLACES-BLACK 42", CATALOG)
        assert result.tier == MatchTier.NONE
        assert result.product is None
        assert result.matched_product_id is None
        assert 0 < result.score < 0.7

    def test_lower_threshold_accepts(self):
        result = match_product("SOLACES-BLACK 42", CATALOG, threshold=0.6)
        assert result.tier == MatchTier.FUZZY
        assert result.product.name == "SOLACE-BLACK"

    def test_empty_catalog(self):
        result = match_product("[SB42] SOLACE-BLACK 42", [])
        assert result.tier == MatchTier.NONE
        assert not result.is_matched
        assert result.normalized_key == NormalizedKey("SOLACE", "BLACK", "42")

    def test_exact_beats_code(self):
        catalog = [_entry("SB42 SOLACE"), _entry("SOLACE-BLACK 42")]
        result = match_product("[SB42] SOLACE-BLACK 42", catalog)
        assert result.tier == MatchTier.EXACT
        assert result.product.name == "SOLACE-BLACK 42"


# ── Determinism ────────────────────────────────────────────────────────


class TestMatcherDeterminism:
    def test_repeated_calls_agree(self):
        first = match_product("[SB42] SOLACE-BLACK 42", CATALOG)
        second = match_product("[SB42] SOLACE-BLACK 42", CATALOG)
        assert first == second

    def test_catalog_order_does_not_matter(self):
        catalog = [_entry("SOLACE-WHITE"), _entry("SOLACE-BLACK"), _entry("SOLACE-RED")]
        expected = match_product("SOLACE-PINK 34", catalog)
        rng = random.Random(7)
        for _ in range(10):
            shuffled = list(catalog)
            rng.shuffle(shuffled)
            assert match_product("SOLACE-PINK 34", shuffled) == expected

    def test_tie_keeps_first_in_snapshot_order(self):
        """All three share base name SOLACE; the alphabetically first name wins."""
        catalog = [_entry("SOLACE-WHITE"), _entry("SOLACE-BLACK"), _entry("SOLACE-RED")]
        result = match_product("SOLACE-PINK 34", catalog)
        assert result.tier == MatchTier.FUZZY
        assert result.product.name == "SOLACE-BLACK"

    def test_snapshot_is_sorted_and_immutable(self):
        frozen = snapshot(CATALOG)
        assert isinstance(frozen, tuple)
        assert [e.name for e in frozen] == ["BRITNY BRA", "CV90 COLOR VEST", "SOLACE-BLACK"]

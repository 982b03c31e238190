"""Tests for recall-floor candidate generation."""

import numpy as np
import pytest

from product_matcher.candidates import RECALL_FLOOR, generate_candidates
from product_matcher.embedding_store import EmbeddingStore

from conftest import make_product


def unit(similarity):
    """2-D unit vector with the given cosine to [1, 0]."""
    return [similarity, np.sqrt(1 - similarity ** 2)]


QUERY = np.array([1.0, 0.0])


class TestGenerateCandidates:
    """Tests for generate_candidates()."""

    def test_default_floor(self):
        assert RECALL_FLOOR == 0.3

    def test_floor_filters_low_scores(self):
        store = EmbeddingStore({"p1": unit(0.9), "p2": unit(0.4), "p3": unit(0.1)})
        products = [make_product("p1"), make_product("p2"), make_product("p3")]
        candidates = generate_candidates(QUERY, store, products)
        assert [c.id for c in candidates] == ["p1", "p2"]
        assert candidates[0].similarity == pytest.approx(0.9)
        assert candidates[1].similarity == pytest.approx(0.4)

    def test_floor_is_inclusive(self):
        store = EmbeddingStore({"edge": [3.0, 4.0]})
        candidates = generate_candidates(np.array([3.0, 4.0]), store,
                                         [make_product("edge")], floor=1.0)
        assert [c.id for c in candidates] == ["edge"]

    def test_sorted_highest_first(self):
        store = EmbeddingStore({"low": unit(0.5), "high": unit(0.95), "mid": unit(0.7)})
        products = [make_product(i) for i in ("low", "high", "mid")]
        candidates = generate_candidates(QUERY, store, products)
        assert [c.id for c in candidates] == ["high", "mid", "low"]

    def test_ties_keep_store_order(self):
        store = EmbeddingStore({"x": unit(0.8), "y": unit(0.8)})
        candidates = generate_candidates(QUERY, store, [make_product("y"), make_product("x")])
        assert [c.id for c in candidates] == ["x", "y"]

    def test_skips_ids_missing_from_catalog(self):
        store = EmbeddingStore({"p1": unit(0.9), "gone": unit(0.95)})
        candidates = generate_candidates(QUERY, store, [make_product("p1")])
        assert [c.id for c in candidates] == ["p1"]

    def test_accepts_catalog_mapping(self):
        store = EmbeddingStore({"p1": unit(0.9)})
        candidates = generate_candidates(QUERY, store, {"p1": make_product("p1")})
        assert len(candidates) == 1

    def test_custom_floor(self):
        store = EmbeddingStore({"p1": unit(0.9), "p2": unit(0.4)})
        products = [make_product("p1"), make_product("p2")]
        assert len(generate_candidates(QUERY, store, products, floor=0.5)) == 1

    def test_dimension_mismatch_yields_nothing(self):
        store = EmbeddingStore({"p1": unit(0.9)})
        assert generate_candidates(np.ones(3), store, [make_product("p1")]) == []

    def test_zero_query_yields_nothing(self):
        store = EmbeddingStore({"p1": unit(0.9)})
        assert generate_candidates(np.zeros(2), store, [make_product("p1")]) == []

    def test_empty_store(self):
        assert generate_candidates(QUERY, EmbeddingStore(), []) == []

    def test_carries_product_metadata(self):
        store = EmbeddingStore({"p1": unit(0.9)})
        product = make_product("p1", category="bags", name="Tote")
        candidate = generate_candidates(QUERY, store, [product])[0]
        assert candidate.product is product

    @pytest.mark.parametrize("vector", [
        [1e-23, 0.0],
        [1e20, 1e20],
        [1e-200, 3e-200],
        [1e200, -1e200],
    ])
    def test_extreme_magnitudes_still_match(self, vector):
        store = EmbeddingStore({"p1": vector})
        candidates = generate_candidates(np.array(vector), store, [make_product("p1")])
        assert [c.id for c in candidates] == ["p1"]
        assert candidates[0].similarity == pytest.approx(1.0)

    def test_tiny_query_against_unit_store(self):
        store = EmbeddingStore({"p1": unit(0.9), "p2": unit(0.1)})
        products = [make_product("p1"), make_product("p2")]
        candidates = generate_candidates(QUERY * 1e-30, store, products)
        assert [c.id for c in candidates] == ["p1"]

"""Tests for batch embedding store construction."""

import numpy as np
import pytest

from product_matcher.errors import ImageLoadError
from product_matcher.index_builder import build_embedding_store

from conftest import VectorEmbedder, make_product


VECTORS = {
    "https://cdn.example.com/p1.jpg": [1.0, 0.0],
    "https://cdn.example.com/p2.jpg": [0.0, 1.0],
    "https://cdn.example.com/p3.jpg": [0.7, 0.7],
}


def fake_loader(reference):
    if reference not in VECTORS:
        raise ImageLoadError(f"Failed to load image from URL {reference}")
    return np.array(VECTORS[reference])


class TestBuildEmbeddingStore:
    """Tests for build_embedding_store()."""

    @pytest.mark.parametrize("workers", [1, 4])
    def test_embeds_every_product(self, vector_embedder, workers):
        products = [make_product("p1"), make_product("p2"), make_product("p3")]
        result = build_embedding_store(products, vector_embedder, fake_loader,
                                       max_workers=workers)
        assert list(result.store) == ["p1", "p2", "p3"]
        assert result.failures == []
        assert result.processed == 3
        np.testing.assert_array_equal(result.store["p3"], [0.7, 0.7])

    def test_load_failure_isolated(self, vector_embedder):
        products = [make_product("p1"), make_product("missing"), make_product("p2")]
        result = build_embedding_store(products, vector_embedder, fake_loader)
        assert list(result.store) == ["p1", "p2"]
        assert result.failed_ids == ["missing"]
        assert "Failed to load image" in result.failures[0].reason

    def test_embedding_failure_isolated(self):
        embedder = VectorEmbedder(fail_on=[(0.0, 1.0)])
        embedder.load()
        products = [make_product("p1"), make_product("p2"), make_product("p3")]
        result = build_embedding_store(products, embedder, fake_loader)
        assert list(result.store) == ["p1", "p3"]
        assert result.failed_ids == ["p2"]
        assert "inference failed" in result.failures[0].reason

    def test_unloaded_embedder_fails_every_product(self):
        products = [make_product("p1"), make_product("p2")]
        result = build_embedding_store(products, VectorEmbedder(), fake_loader)
        assert len(result.store) == 0
        assert result.failed == 2

    def test_dimension_outlier_recorded_as_failure(self, vector_embedder):
        def loader(reference):
            if reference.endswith("p2.jpg"):
                return np.ones(3)
            return np.ones(2)

        products = [make_product("p1"), make_product("p2"), make_product("p3")]
        result = build_embedding_store(products, vector_embedder, loader)
        assert list(result.store) == ["p1", "p3"]
        assert result.store.dim == 2
        assert result.failed_ids == ["p2"]

    def test_empty_catalog(self, vector_embedder):
        result = build_embedding_store([], vector_embedder, fake_loader)
        assert len(result.store) == 0
        assert result.failures == []

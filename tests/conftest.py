"""Shared test fixtures for product matching tests."""

import numpy as np
import cv2
import pytest

from product_matcher.catalog import Product, ScoredProduct
from product_matcher.embedder import Embedder


class VectorEmbedder(Embedder):
    """Test embedder whose "image" is already the embedding."""

    name = "vector"

    def __init__(self, fail_on=(), dim=4):
        super().__init__()
        self.fail_on = set(fail_on)
        self.dim = dim
        self.calls = 0

    def output_dim(self):
        return self.dim

    def _infer(self, image):
        self.calls += 1
        vector = np.asarray(image, dtype=np.float64)
        if tuple(vector.tolist()) in self.fail_on:
            raise RuntimeError("inference failed")
        return vector


def make_product(product_id, category="shoes", name=None):
    return Product(
        id=product_id,
        name=name or f"Product {product_id}",
        category=category,
        image=f"https://cdn.example.com/{product_id}.jpg",
    )


def scored(product_id, similarity, category="shoes"):
    return ScoredProduct(make_product(product_id, category), similarity)


@pytest.fixture
def vector_embedder():
    embedder = VectorEmbedder()
    embedder.load()
    return embedder


@pytest.fixture
def red_square_image():
    """Generate a 200x200 red square on white background."""
    img = np.ones((200, 200, 3), dtype=np.uint8) * 255
    img[40:160, 40:160] = [200, 30, 30]
    return img


@pytest.fixture
def blue_circle_image():
    """Generate a 200x200 blue circle on white background."""
    img = np.ones((200, 200, 3), dtype=np.uint8) * 255
    cv2.circle(img, (100, 100), 60, (30, 30, 200), -1)
    return img


@pytest.fixture
def noise_image():
    """Generate a 200x200 random noise image."""
    rng = np.random.RandomState(42)
    return rng.randint(0, 255, (200, 200, 3), dtype=np.uint8)


@pytest.fixture
def end_to_end_vectors():
    """
    Query plus four products scoring A=0.92, B=0.88, C=0.6, D=0.2.
    A and B are near-duplicates of each other.
    """
    query = np.array([1.0, 0.0, 0.0, 0.0])
    vectors = {
        "A": np.array([0.92, np.sqrt(1 - 0.92 ** 2), 0.0, 0.0]),
        "B": np.array([0.88, np.sqrt(1 - 0.88 ** 2), 0.0, 0.0]),
        "C": np.array([0.6, 0.0, 0.8, 0.0]),
        "D": np.array([0.2, 0.0, 0.0, np.sqrt(1 - 0.2 ** 2)]),
    }
    return query, vectors


@pytest.fixture
def end_to_end_products():
    return [
        make_product("A", "shoes"),
        make_product("B", "shoes"),
        make_product("C", "bags"),
        make_product("D", "hats"),
    ]

"""
Batch construction of the embedding store from a product catalog.

Every catalog image is fetched, decoded, and embedded independently.
A failure on one product (unreachable URL, corrupt file, inference
error) is recorded and skipped; it never aborts the pass. The store is
published once every product has been attempted.
"""

import os
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, List, Sequence

import numpy as np

from .catalog import Product
from .embedder import Embedder
from .embedding_store import EmbeddingStore
from .preprocessing import load_image

logger = logging.getLogger(__name__)

# Concurrent image fetches during the precompute pass
EMBED_WORKERS = int(os.environ.get("EMBED_WORKERS", "4"))

# Progress is logged every this many products
LOG_EVERY = 100


@dataclass(frozen=True)
class BuildFailure:
    """A product left out of the store, and why."""

    product_id: str
    reason: str


@dataclass
class StoreBuildResult:
    """Outcome of a precompute pass."""

    store: EmbeddingStore
    failures: List[BuildFailure] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.store)

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def failed_ids(self) -> List[str]:
        return [f.product_id for f in self.failures]


def _embed_product(product: Product,
                   embedder: Embedder,
                   image_loader: Callable) -> np.ndarray:
    image = image_loader(product.image)
    return embedder.embed(image)


def build_embedding_store(products: Sequence[Product],
                          embedder: Embedder,
                          image_loader: Callable = load_image,
                          max_workers: int = None) -> StoreBuildResult:
    """
    Embed every catalog product's image.

    Args:
        products: Catalog, in order.
        embedder: Loaded embedder.
        image_loader: Callable mapping an image reference to an RGB array.
        max_workers: Thread pool size. Defaults to EMBED_WORKERS;
                     1 runs sequentially.

    Returns:
        StoreBuildResult with the store and one BuildFailure per product
        that couldn't be embedded.
    """
    max_workers = max_workers or EMBED_WORKERS
    total = len(products)
    logger.info(f"Building embedding store for {total} products ({max_workers} workers)")

    outcomes = [None] * total

    def run(position: int, product: Product) -> None:
        try:
            outcomes[position] = _embed_product(product, embedder, image_loader)
        except Exception as e:
            logger.warning(f"Failed to process {product.name} ({product.id}): {e}")
            outcomes[position] = e

        if (position + 1) % LOG_EVERY == 0:
            logger.info(f"Processed {position + 1}/{total} products")

    if max_workers == 1:
        for position, product in enumerate(products):
            run(position, product)
    else:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            # list() re-raises anything run() let escape
            list(pool.map(run, range(total), products))

    vectors = {}
    failures = []
    dim = None
    for product, outcome in zip(products, outcomes):
        if isinstance(outcome, Exception):
            failures.append(BuildFailure(product.id, str(outcome)))
            continue

        if dim is None:
            dim = outcome.shape[0]
        elif outcome.shape[0] != dim:
            reason = f"embedding dimension {outcome.shape[0]} differs from {dim}"
            logger.warning(f"Skipping {product.id}: {reason}")
            failures.append(BuildFailure(product.id, reason))
            continue

        if product.id in vectors:
            logger.warning(f"Duplicate product id {product.id} in catalog, keeping first")
            continue
        vectors[product.id] = outcome

    result = StoreBuildResult(store=EmbeddingStore(vectors), failures=failures)
    logger.info(
        f"Embedding store built: {result.processed} products, "
        f"{result.store.dim}d vectors, {result.failed} errors"
    )
    return result

"""
Candidate generation: every product loosely similar to the query.

The recall floor is looser than the user-facing display
threshold so the refinement stages have enough candidates to diversify
from. It does not move when the user changes the display threshold.
"""

import os
import logging
from collections.abc import Mapping
from typing import List, Sequence, Union

import numpy as np

from .catalog import Product, ScoredProduct
from .embedding_store import EmbeddingStore
from .errors import DimensionMismatch
from .similarity import cosine_similarity

logger = logging.getLogger(__name__)

RECALL_FLOOR = float(os.environ.get("MATCH_RECALL_FLOOR", "0.3"))

# float32 index scores may sit slightly below the exact float64 value
INDEX_SLACK = 1e-4


def generate_candidates(query: np.ndarray,
                        store: EmbeddingStore,
                        products: Union[Sequence[Product], Mapping[str, Product]],
                        floor: float = None) -> List[ScoredProduct]:
    """
    Score every stored product against the query embedding.

    Args:
        query: Query embedding.
        store: Precomputed product embeddings.
        products: Current catalog, as a sequence or an id → Product map.
                  Store ids absent from it are skipped.
        floor: Minimum similarity (inclusive). Defaults to RECALL_FLOOR.

    Returns:
        ScoredProducts with similarity >= floor, highest first
        (catalog order on ties). Empty if the query can't be compared
        with the store.
    """
    floor = RECALL_FLOOR if floor is None else floor
    if isinstance(products, Mapping):
        lookup = products
    else:
        lookup = {p.id: p for p in products}

    query = np.asarray(query, dtype=np.float64).ravel()
    try:
        shortlist = store.search_range(query, floor - INDEX_SLACK)
    except DimensionMismatch as e:
        logger.warning(f"Query is incomparable with the embedding store: {e}")
        return []

    shortlisted = {product_id for product_id, _ in shortlist}
    candidates = []
    for product_id in store:
        if product_id not in shortlisted:
            continue
        product = lookup.get(product_id)
        if product is None:
            logger.debug(f"Skipping {product_id}: not in catalog")
            continue

        similarity = cosine_similarity(query, store[product_id])
        if similarity >= floor:
            candidates.append(ScoredProduct(product, similarity))

    candidates.sort(key=lambda c: -c.similarity)
    logger.debug(f"{len(candidates)}/{len(store)} products above recall floor {floor}")
    return candidates

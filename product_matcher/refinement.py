"""
Result refinement: deduplicate, suppress near-duplicates, balance
categories.

``refine_results`` applies the three stages in a fixed order. Each
stage takes a list of ScoredProduct and returns a new list; inputs are
never modified.
"""

import os
import logging
from typing import Dict, List, Mapping, Sequence

import numpy as np

from .catalog import ScoredProduct
from .similarity import safe_cosine_similarity

logger = logging.getLogger(__name__)

# Products more similar to each other than this are the same item
DIVERSITY_THRESHOLD = float(os.environ.get("MATCH_DIVERSITY_THRESHOLD", "0.85"))

# Leading results shown regardless of category
GUARANTEED_TOP = int(os.environ.get("MATCH_GUARANTEED_TOP", "5"))

# Category cap applied after the guaranteed results
MAX_PER_CATEGORY = int(os.environ.get("MATCH_MAX_PER_CATEGORY", "3"))


def dedupe_ids(results: Sequence[ScoredProduct]) -> List[ScoredProduct]:
    """Drop repeated product ids; the first occurrence wins."""
    seen = set()
    unique = []
    for result in results:
        if result.id in seen:
            continue
        seen.add(result.id)
        unique.append(result)
    return unique


def suppress_near_duplicates(results: Sequence[ScoredProduct],
                             embeddings: Mapping[str, np.ndarray],
                             threshold: float = None) -> List[ScoredProduct]:
    """
    Collapse products that are near-identical in embedding space.

    Same item photographed from different angles, for instance. Walks
    the results best match first and keeps a product only if its
    embedding's cosine similarity to every already-kept product is at
    most `threshold`. Products without an embedding can't be compared
    and are dropped.

    Args:
        results: Scored candidates, any order.
        embeddings: Product id → embedding.
        threshold: Duplicate cutoff (exclusive). Defaults to
                   DIVERSITY_THRESHOLD.

    Returns:
        Kept products, sorted by similarity descending.
    """
    threshold = DIVERSITY_THRESHOLD if threshold is None else threshold

    ranked = sorted(results, key=lambda r: -r.similarity)
    kept = []
    kept_embeddings = []

    for result in ranked:
        embedding = embeddings.get(result.id)
        if embedding is None:
            logger.debug(f"Dropping {result.id}: no embedding")
            continue

        duplicate_of = None
        for other, other_embedding in zip(kept, kept_embeddings):
            if safe_cosine_similarity(embedding, other_embedding) > threshold:
                duplicate_of = other
                break

        if duplicate_of is not None:
            logger.debug(f"Dropping {result.id}: near-duplicate of {duplicate_of.id}")
            continue

        kept.append(result)
        kept_embeddings.append(embedding)

    return kept


def balance_categories(results: Sequence[ScoredProduct],
                       guaranteed: int = None,
                       max_per_category: int = None) -> List[ScoredProduct]:
    """
    Limit how many results one category can contribute.

    The first `guaranteed` results are always kept and counted toward
    their categories. Each later result is kept only while its category
    has fewer than `max_per_category` kept results.
    """
    guaranteed = GUARANTEED_TOP if guaranteed is None else guaranteed
    max_per_category = MAX_PER_CATEGORY if max_per_category is None else max_per_category

    balanced = list(results[:guaranteed])
    counts: Dict[str, int] = {}
    for result in balanced:
        counts[result.category] = counts.get(result.category, 0) + 1

    for result in results[guaranteed:]:
        count = counts.get(result.category, 0)
        if count < max_per_category:
            balanced.append(result)
            counts[result.category] = count + 1

    return balanced


def refine_results(candidates: Sequence[ScoredProduct],
                   embeddings: Mapping[str, np.ndarray],
                   diversity_threshold: float = None,
                   guaranteed: int = None,
                   max_per_category: int = None) -> List[ScoredProduct]:
    """Run id dedup, near-duplicate suppression, and category balancing."""
    unique = dedupe_ids(candidates)
    distinct = suppress_near_duplicates(unique, embeddings, diversity_threshold)
    balanced = balance_categories(distinct, guaranteed, max_per_category)

    logger.info(
        f"Refined {len(candidates)} candidates → {len(unique)} unique → "
        f"{len(distinct)} distinct → {len(balanced)} balanced"
    )
    return balanced

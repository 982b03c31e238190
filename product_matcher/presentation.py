"""
Display-time filtering and sorting of a result set.

``present`` is a pure function of (results, threshold, sort mode). It
is cheap enough to rerun on every slider or dropdown change and never
touches the embedder or the refinement pipeline.
"""

import os
from enum import Enum
from typing import List, Sequence, Union

from .catalog import ScoredProduct

DEFAULT_THRESHOLD = float(os.environ.get("MATCH_DEFAULT_THRESHOLD", "0.5"))


class SortMode(str, Enum):
    """Display order of the result list."""

    HIGHEST = "highest"
    LOWEST = "lowest"
    CATEGORY = "category"


def filter_by_threshold(results: Sequence[ScoredProduct],
                        threshold: float) -> List[ScoredProduct]:
    """Keep results with similarity >= threshold."""
    return [r for r in results if r.similarity >= threshold]


def sort_results(results: Sequence[ScoredProduct],
                 sort_mode: Union[SortMode, str] = SortMode.HIGHEST) -> List[ScoredProduct]:
    """
    Order results for display.

    HIGHEST sorts by similarity descending, LOWEST ascending, CATEGORY
    by category name. All sorts are stable.

    Raises:
        ValueError: If sort_mode isn't a SortMode value.
    """
    sort_mode = SortMode(sort_mode)
    if sort_mode is SortMode.HIGHEST:
        return sorted(results, key=lambda r: -r.similarity)
    if sort_mode is SortMode.LOWEST:
        return sorted(results, key=lambda r: r.similarity)
    return sorted(results, key=lambda r: r.category)


def present(results: Sequence[ScoredProduct],
            threshold: float = None,
            sort_mode: Union[SortMode, str] = SortMode.HIGHEST) -> List[ScoredProduct]:
    """Filter results by threshold, then sort them for display."""
    threshold = DEFAULT_THRESHOLD if threshold is None else threshold
    return sort_results(filter_by_threshold(results, threshold), sort_mode)

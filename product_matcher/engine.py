"""
Visual product matching engine.

Orchestrates the query pipeline:
    1. Load and decode the query image
    2. Embed it with the context's embedder
    3. Generate candidates above the recall floor
    4. Refine: id dedup → near-duplicate suppression → category balance
    5. Present: threshold filter + sort, recomputed on every change

MatchContext holds what is built once per process (embedder, catalog,
embedding store). MatchSession holds what belongs to one user: the
current result set and presentation state.
"""

import os
import logging
import threading
from typing import Callable, List, Optional, Sequence, Tuple, Union

import numpy as np

from .candidates import generate_candidates
from .catalog import Product, ScoredProduct, load_catalog
from .embedder import Embedder
from .embedding_store import EmbeddingStore
from .errors import EmbeddingError, ImageLoadError, ModelInitError, StoreLoadError
from .index_builder import BuildFailure, build_embedding_store
from .preprocessing import load_image, load_image_from_file, load_image_from_url
from .presentation import DEFAULT_THRESHOLD, SortMode, present
from .refinement import refine_results

logger = logging.getLogger(__name__)


def _check_store_dim(store: EmbeddingStore, embedder: Embedder, path: str) -> None:
    if store.dim is None:
        return
    try:
        dim = embedder.output_dim()
    except EmbeddingError as e:
        raise ModelInitError(f"{embedder.name} embedder failed a test embedding: {e}") from e
    if dim != store.dim:
        raise StoreLoadError(
            f"Embedding store {path} holds {store.dim}d vectors but the "
            f"{embedder.name} embedder produces {dim}d vectors; delete it to rebuild"
        )


class MatchContext:
    """
    Everything a query needs that is built once: a loaded embedder, the
    catalog, and the precomputed embedding store. Read-only after
    construction; safe to share between sessions.
    """

    def __init__(self,
                 embedder: Embedder,
                 products: Sequence[Product],
                 store: EmbeddingStore,
                 failures: Sequence[BuildFailure] = ()):
        self.embedder = embedder
        self.products: Tuple[Product, ...] = tuple(products)
        self.catalog = {p.id: p for p in self.products}
        self.store = store
        self.failures: Tuple[BuildFailure, ...] = tuple(failures)

    @classmethod
    def create(cls,
               embedder: Embedder,
               products: Sequence[Product],
               image_loader: Callable = load_image,
               max_workers: int = None) -> "MatchContext":
        """
        Load the embedder and precompute every product embedding.

        Raises:
            ModelInitError: If the embedder fails to load.
        """
        embedder.load()
        result = build_embedding_store(products, embedder, image_loader, max_workers)
        return cls(embedder, products, result.store, result.failures)

    @classmethod
    def from_catalog(cls,
                     catalog_source: str,
                     embedder: Embedder,
                     store_path: Optional[str] = None,
                     image_loader: Callable = load_image,
                     max_workers: int = None) -> "MatchContext":
        """
        Build a context from a catalog JSON file or URL.

        If store_path points at a saved store it's reused instead of
        re-embedding the catalog; otherwise the freshly built store is
        saved there.

        Raises:
            CatalogError: If the catalog can't be loaded.
            ModelInitError: If the embedder fails to load.
            StoreLoadError: If the saved store is unreadable or was built
                by an embedder with a different output dimension.
        """
        products = load_catalog(catalog_source)

        if store_path and os.path.exists(store_path):
            embedder.load()
            store = EmbeddingStore.load(store_path)
            _check_store_dim(store, embedder, store_path)
            return cls(embedder, products, store)

        context = cls.create(embedder, products, image_loader, max_workers)
        if store_path:
            context.store.save(store_path)
        return context


class MatchSession:
    """
    One user's search state.

    Queries are serialized: a second search waits for the first to
    finish, so two queries never interleave writes to the result set.
    A failed query leaves the previous results in place and stores a
    user-facing message in ``last_error``.
    """

    def __init__(self,
                 context: MatchContext,
                 threshold: float = None,
                 sort_mode: Union[SortMode, str] = SortMode.HIGHEST):
        self.context = context
        self._results: Tuple[ScoredProduct, ...] = ()
        self._threshold = DEFAULT_THRESHOLD
        self._sort_mode = SortMode.HIGHEST
        self.last_error: Optional[str] = None
        self._query_lock = threading.Lock()

        if threshold is not None:
            self.set_threshold(threshold)
        self.set_sort_mode(sort_mode)

    @property
    def results(self) -> Tuple[ScoredProduct, ...]:
        """Refined result set of the latest successful query."""
        return self._results

    @property
    def has_results(self) -> bool:
        return bool(self._results)

    @property
    def threshold(self) -> float:
        return self._threshold

    @property
    def sort_mode(self) -> SortMode:
        return self._sort_mode

    @property
    def displayed(self) -> List[ScoredProduct]:
        """Result set filtered by threshold and sorted by sort mode."""
        return present(self._results, self._threshold, self._sort_mode)

    def set_threshold(self, threshold: float) -> None:
        threshold = float(threshold)
        if not 0.0 <= threshold <= 1.0:
            raise ValueError(f"Threshold must be between 0 and 1, got {threshold}")
        self._threshold = threshold

    def set_sort_mode(self, sort_mode: Union[SortMode, str]) -> None:
        self._sort_mode = SortMode(sort_mode)

    def reset(self) -> None:
        """Clear results and go back to the upload state."""
        with self._query_lock:
            self._results = ()
            self.last_error = None

    def search_file(self, path) -> bool:
        """Run a query with a local image file."""
        return self._run_query(lambda: load_image_from_file(path))

    def search_url(self, url: str) -> bool:
        """Run a query with an http(s) image URL."""
        return self._run_query(lambda: load_image_from_url(url))

    def search_image(self, image: np.ndarray) -> bool:
        """Run a query with an already decoded RGB image."""
        return self._run_query(lambda: image)

    def _run_query(self, acquire: Callable[[], np.ndarray]) -> bool:
        with self._query_lock:
            try:
                image = acquire()
                query = self.context.embedder.embed(image)
            except (ImageLoadError, EmbeddingError) as e:
                logger.error(f"Query failed: {e}")
                self.last_error = str(e)
                return False

            self._results = tuple(self.match(query))
            self.last_error = None
            return True

    def match(self, query: np.ndarray) -> List[ScoredProduct]:
        """Candidate generation and refinement for a query embedding."""
        store = self.context.store
        candidates = generate_candidates(query, store, self.context.catalog)
        results = refine_results(candidates, store)

        logger.info(
            f"Search complete: {len(store)} products → "
            f"{len(candidates)} candidates → {len(results)} results"
        )
        return results

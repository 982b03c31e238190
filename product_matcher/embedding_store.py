"""
Read-only mapping from product id to embedding vector.

Alongside the vectors the store keeps an exact inner-product FAISS
index over L2-normalized copies, so a query can be scored against the
whole catalog in one flat scan.
"""

import logging
import zipfile
from collections.abc import Mapping
from typing import Dict, Iterator, List, Optional, Tuple

import faiss
import numpy as np

from .errors import DimensionMismatch, StoreLoadError

logger = logging.getLogger(__name__)


def unit_rows(matrix: np.ndarray) -> np.ndarray:
    """
    L2-normalize each row in float64, then cast to float32 for FAISS.

    Rows are divided by their largest magnitude first so the squared
    norm neither underflows nor overflows. Rows without a finite,
    positive norm (all zeros, inf, nan) become zero and score 0.
    """
    matrix = np.asarray(matrix, dtype=np.float64)
    if matrix.shape[1] == 0:
        return np.zeros(matrix.shape, dtype=np.float32)

    with np.errstate(invalid="ignore", divide="ignore", over="ignore"):
        scaled = matrix / np.max(np.abs(matrix), axis=1, keepdims=True)
        unit = scaled / np.linalg.norm(scaled, axis=1, keepdims=True)
    unit[~np.isfinite(unit).all(axis=1)] = 0.0
    return np.ascontiguousarray(unit, dtype=np.float32)


class EmbeddingStore(Mapping):
    """
    Immutable product id → vector mapping.

    All vectors share one dimension. Insertion order is preserved and
    is the catalog order the store was built from.
    """

    def __init__(self, vectors: Optional[Dict[str, np.ndarray]] = None):
        self._vectors: Dict[str, np.ndarray] = {}
        self._dim: Optional[int] = None

        for product_id, vector in (vectors or {}).items():
            vector = np.array(vector, dtype=np.float64).ravel()
            if self._dim is None:
                self._dim = vector.shape[0]
            elif vector.shape[0] != self._dim:
                raise DimensionMismatch(
                    f"Embedding for {product_id!r} has dimension "
                    f"{vector.shape[0]}, store dimension is {self._dim}"
                )
            vector.setflags(write=False)
            self._vectors[str(product_id)] = vector

        self._ids: List[str] = list(self._vectors)
        self._index = self._build_index()

    def _build_index(self):
        if not self._vectors:
            return None
        matrix = unit_rows(np.vstack(list(self._vectors.values())))
        index = faiss.IndexFlatIP(self._dim)
        index.add(matrix)
        return index

    def __getitem__(self, product_id: str) -> np.ndarray:
        return self._vectors[product_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._ids)

    def __len__(self) -> int:
        return len(self._ids)

    def __repr__(self) -> str:
        return f"EmbeddingStore({len(self)} vectors, dim={self._dim})"

    @property
    def dim(self) -> Optional[int]:
        """Vector dimension, or None for an empty store."""
        return self._dim

    def search_range(self, query: np.ndarray, min_score: float) -> List[Tuple[str, float]]:
        """
        Return (product_id, approximate_score) for every vector whose
        cosine similarity to query, as scored by the float32 index,
        exceeds min_score. Both sides are normalized in float64 first,
        so vector magnitude never affects membership.

        Raises:
            DimensionMismatch: If query length differs from the store's.
        """
        if self._index is None:
            return []

        query = np.asarray(query, dtype=np.float64).reshape(1, -1)
        if query.shape[1] != self._dim:
            raise DimensionMismatch(
                f"Query dimension {query.shape[1]} doesn't match "
                f"store dimension {self._dim}"
            )
        query = unit_rows(query)

        lims, scores, indices = self._index.range_search(query, float(min_score))
        return [
            (self._ids[int(i)], float(s))
            for i, s in zip(indices[lims[0]:lims[1]], scores[lims[0]:lims[1]])
        ]

    def save(self, path: str) -> None:
        """Write the store to a compressed .npz file."""
        if self._vectors:
            matrix = np.vstack(list(self._vectors.values()))
        else:
            matrix = np.empty((0, 0), dtype=np.float64)
        np.savez_compressed(path, ids=np.array(self._ids, dtype=str), vectors=matrix)
        logger.info(f"Saved {len(self)} embeddings to {path}")

    @classmethod
    def load(cls, path: str) -> "EmbeddingStore":
        """
        Read a store written by save().

        Raises:
            StoreLoadError: If the file is missing, corrupt, or not a store.
        """
        try:
            with np.load(path, allow_pickle=False) as data:
                ids = [str(i) for i in data["ids"]]
                vectors = data["vectors"]
            store = cls({product_id: vectors[i] for i, product_id in enumerate(ids)})
        except (OSError, ValueError, TypeError, KeyError, IndexError,
                zipfile.BadZipFile) as e:
            raise StoreLoadError(f"Could not read embedding store {path}: {e}") from e
        logger.info(f"Loaded {len(store)} embeddings from {path}")
        return store

"""
Cosine similarity between embedding vectors.

Two entry points share one implementation: ``cosine_similarity`` raises
on a length mismatch (caller error), while ``safe_cosine_similarity``
scores the pair as 0.0 so one malformed vector cannot abort ranking.
"""

import math

import numpy as np

from .errors import DimensionMismatch


def cosine_similarity(a, b) -> float:
    """
    Compute dot(a, b) / (|a| * |b|).

    The dot product and both squared magnitudes are accumulated in
    float64. The result is not clamped.

    Args:
        a: 1-D numeric vector.
        b: 1-D numeric vector of the same length.

    Returns:
        Cosine similarity, or 0.0 if either vector has zero magnitude.

    Raises:
        DimensionMismatch: If the vectors differ in length.
    """
    a = np.asarray(a, dtype=np.float64).ravel()
    b = np.asarray(b, dtype=np.float64).ravel()

    if a.shape[0] != b.shape[0]:
        raise DimensionMismatch(
            f"Vector dimension {a.shape[0]} doesn't match dimension {b.shape[0]}"
        )

    # Cosine is scale-free; dividing by the largest magnitude keeps the
    # squared norms from underflowing or overflowing.
    if a.size:
        peak_a = float(np.max(np.abs(a)))
        peak_b = float(np.max(np.abs(b)))
        if peak_a == 0.0 or peak_b == 0.0:
            return 0.0
        a = a / peak_a
        b = b / peak_b

    dot = float(np.dot(a, b))
    mag_a = float(np.dot(a, a))
    mag_b = float(np.dot(b, b))

    if mag_a == 0.0 or mag_b == 0.0:
        return 0.0

    return float(dot / (math.sqrt(mag_a) * math.sqrt(mag_b)))


def safe_cosine_similarity(a, b) -> float:
    """Cosine similarity that scores mismatched lengths as 0.0."""
    try:
        return cosine_similarity(a, b)
    except DimensionMismatch:
        return 0.0

"""
HSV colour histograms as lightweight image embeddings.

Produces an L2-normalized Hue×Saturation histogram with a
CLAHE-equalized Value channel. Bin dimensions are configurable via
environment variables (HSV_H_BINS, HSV_S_BINS). Colour distribution
alone can't tell apart items of similar colouring, but it needs no
model weights, which makes it useful for small catalogs and tests.
"""

import os
import logging

import cv2
import numpy as np

from .errors import EmbeddingError
from .preprocessing import normalize_image, extract_center_patch

logger = logging.getLogger(__name__)

# Higher bin counts = more precise colour matching, longer vectors.
H_BINS = int(os.environ.get("HSV_H_BINS", "8"))
S_BINS = int(os.environ.get("HSV_S_BINS", "8"))
HIST_DIM = H_BINS * S_BINS

# Share of the shorter image side kept around the center.
CENTER_FRACTION = float(os.environ.get("HSV_CENTER_FRACTION", "0.9"))


def extract_hsv_histogram(image_np: np.ndarray,
                          h_bins: int = None,
                          s_bins: int = None,
                          center_fraction: float = None) -> np.ndarray:
    """
    Extract an L2-normalized HSV histogram from a product image.

    Process:
        1. Normalize to RGB uint8 and crop the center patch
        2. Convert to HSV and apply CLAHE to the V channel
        3. Compute the H×S histogram
        4. L2-normalize

    Args:
        image_np: RGB image.
        h_bins: Hue bins. Defaults to H_BINS.
        s_bins: Saturation bins. Defaults to S_BINS.
        center_fraction: Center crop size. Defaults to CENTER_FRACTION.

    Returns:
        Float32 vector with h_bins * s_bins dimensions.

    Raises:
        EmbeddingError: If the image can't be converted.
    """
    h_bins = h_bins or H_BINS
    s_bins = s_bins or S_BINS
    center_fraction = center_fraction or CENTER_FRACTION

    try:
        image_np = normalize_image(np.asarray(image_np))
        patch = extract_center_patch(image_np, center_fraction)

        hsv = cv2.cvtColor(patch, cv2.COLOR_RGB2HSV)

        # CLAHE equalization on V channel for lighting normalization
        h_ch, s_ch, v_ch = cv2.split(hsv)
        clahe = cv2.createCLAHE(clipLimit=2.0, tileGridSize=(8, 8))
        hsv = cv2.merge((h_ch, s_ch, clahe.apply(v_ch)))

        # Hue (0-180) × Saturation (0-256)
        hist = cv2.calcHist([hsv], [0, 1], None,
                            [h_bins, s_bins], [0, 180, 0, 256])
    except cv2.error as e:
        raise EmbeddingError(f"HSV histogram extraction failed: {e}") from e

    hist_flat = hist.flatten().astype(np.float32)
    norm = np.linalg.norm(hist_flat)
    if norm > 0:
        hist_flat = hist_flat / norm

    return hist_flat

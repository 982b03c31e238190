"""
Image acquisition and normalization.

Loads query and catalog images from local files, http(s) URLs, or raw
bytes and decodes them into RGB uint8 arrays, the format every embedder
in this package consumes.
"""

import os
import logging
import mimetypes
from urllib.parse import urlparse

import cv2
import numpy as np
import requests

from .errors import ImageLoadError

logger = logging.getLogger(__name__)

# Seconds to wait on a remote image before giving up.
IMAGE_FETCH_TIMEOUT = float(os.environ.get("IMAGE_FETCH_TIMEOUT", "10"))

ALLOWED_SCHEMES = ("http", "https")


def validate_image_url(url: str) -> bool:
    """Return True if url is an absolute http(s) URL."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ALLOWED_SCHEMES and bool(parsed.netloc)


def normalize_image(image_np: np.ndarray) -> np.ndarray:
    """Ensure image is uint8 RGB format."""
    if image_np.dtype != np.uint8:
        if image_np.size and image_np.max() <= 1.0:
            image_np = (image_np * 255).astype(np.uint8)
        else:
            image_np = np.clip(image_np, 0, 255).astype(np.uint8)

    if image_np.ndim == 2:
        image_np = cv2.cvtColor(image_np, cv2.COLOR_GRAY2RGB)
    elif image_np.ndim == 3 and image_np.shape[2] == 4:
        image_np = cv2.cvtColor(image_np, cv2.COLOR_RGBA2RGB)
    return image_np


def load_image_from_bytes(data: bytes, source: str = "image data") -> np.ndarray:
    """
    Decode encoded image bytes (JPEG, PNG, WebP, ...) into an RGB array.

    Args:
        data: Encoded image bytes.
        source: Description used in error messages.

    Returns:
        RGB uint8 image.

    Raises:
        ImageLoadError: If the bytes are empty or not a decodable image.
    """
    if not data:
        raise ImageLoadError(f"No image data received from {source}")

    buffer = np.frombuffer(data, dtype=np.uint8)
    image = cv2.imdecode(buffer, cv2.IMREAD_COLOR)
    if image is None:
        raise ImageLoadError(f"Could not decode image from {source}")

    return cv2.cvtColor(image, cv2.COLOR_BGR2RGB)


def load_image_from_file(path) -> np.ndarray:
    """
    Read and decode a local image file.

    The file's MIME type (guessed from its extension) must be image/*.

    Raises:
        ImageLoadError: On a non-image file type or an unreadable file.
    """
    path = os.fspath(path)
    mime_type, _ = mimetypes.guess_type(path)
    if mime_type is None or not mime_type.startswith("image/"):
        raise ImageLoadError(
            f"Unsupported file type for {os.path.basename(path)}: "
            f"{mime_type or 'unknown'} (expected an image)"
        )

    try:
        with open(path, "rb") as f:
            data = f.read()
    except OSError as e:
        raise ImageLoadError(f"Failed to read file {path}: {e}") from e

    return load_image_from_bytes(data, source=path)


def load_image_from_url(url: str, timeout: float = None) -> np.ndarray:
    """
    Fetch and decode an image over http(s).

    Args:
        url: Absolute http or https URL.
        timeout: Request timeout in seconds. Defaults to IMAGE_FETCH_TIMEOUT.

    Raises:
        ImageLoadError: On an invalid scheme, network failure, HTTP error
            status, or undecodable payload.
    """
    if not validate_image_url(url):
        raise ImageLoadError(
            f"Invalid image URL {url!r}: only http and https URLs are supported"
        )

    timeout = timeout or IMAGE_FETCH_TIMEOUT
    try:
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
    except requests.RequestException as e:
        raise ImageLoadError(
            f"Failed to load image from URL {url}. The server may be "
            f"unreachable or the URL is invalid: {e}"
        ) from e

    return load_image_from_bytes(response.content, source=url)


def load_image(reference) -> np.ndarray:
    """Load an image from a URL or a local path, whichever reference is."""
    reference = os.fspath(reference)
    if urlparse(reference).scheme in ALLOWED_SCHEMES:
        return load_image_from_url(reference)
    return load_image_from_file(reference)


def extract_center_patch(image_np: np.ndarray, fraction: float = 1.0) -> np.ndarray:
    """
    Crop a centered square patch covering `fraction` of the shorter side.

    Product photos usually frame the item in the middle, so the border
    carries mostly background.
    """
    h, w = image_np.shape[:2]
    side = max(1, int(min(h, w) * fraction))
    y1 = (h - side) // 2
    x1 = (w - side) // 2
    return image_np[y1:y1 + side, x1:x1 + side]

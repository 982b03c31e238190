"""
Embedding capabilities: image → fixed-length vector.

Every embedder must be loaded before use. ``load`` raises
ModelInitError; ``embed`` raises EmbeddingError when called before
``load`` or when inference fails.

Implementations:
    DnnEmbedder        Pretrained network (e.g. MobileNetV2 ONNX) run
                       through OpenCV's DNN module
    HistogramEmbedder  HSV colour histogram, no weights required
"""

import os
import logging
import threading
from abc import ABC, abstractmethod
from typing import Optional

import cv2
import numpy as np

from .errors import EmbeddingError, ModelInitError
from .histograms import extract_hsv_histogram
from .preprocessing import normalize_image

logger = logging.getLogger(__name__)

# Square input side expected by the network.
DEFAULT_INPUT_SIZE = int(os.environ.get("EMBEDDING_INPUT_SIZE", "224"))

# MobileNet-style scaling: pixels mapped from [0, 255] to [-1, 1].
DEFAULT_SCALE = 1.0 / 127.5
DEFAULT_MEAN = (127.5, 127.5, 127.5)

# Blank frame used to measure the output dimension
BLANK_IMAGE = np.zeros((32, 32, 3), dtype=np.uint8)


class Embedder(ABC):
    """Base class for image embedders."""

    name = "embedder"

    def __init__(self):
        self._loaded = False

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    def load(self) -> None:
        """Prepare the embedder. Safe to call more than once."""
        if self._loaded:
            return
        try:
            self._load()
        except ModelInitError:
            raise
        except Exception as e:
            raise ModelInitError(f"Failed to initialize {self.name}: {e}") from e
        self._loaded = True
        logger.info(f"{self.name} embedder loaded")

    def embed(self, image: np.ndarray) -> np.ndarray:
        """
        Compute the embedding of an RGB image.

        Returns:
            1-D float64 vector.

        Raises:
            EmbeddingError: If not loaded or inference fails.
        """
        if not self._loaded:
            raise EmbeddingError(f"{self.name} embedder not loaded. Call load() first.")
        try:
            vector = self._infer(image)
        except EmbeddingError:
            raise
        except Exception as e:
            raise EmbeddingError(f"Error extracting embedding: {e}") from e

        vector = np.asarray(vector, dtype=np.float64).ravel()
        if vector.size == 0:
            raise EmbeddingError(f"{self.name} produced an empty embedding")
        return vector

    def output_dim(self) -> int:
        """Length of the vectors this embedder produces."""
        return self.embed(BLANK_IMAGE).shape[0]

    def _load(self) -> None:
        """Hook for subclasses that need to load weights."""

    @abstractmethod
    def _infer(self, image: np.ndarray) -> np.ndarray:
        """Return the raw embedding for an image."""


class DnnEmbedder(Embedder):
    """
    Pretrained CNN embedder backed by ``cv2.dnn``.

    Works with any model format OpenCV can read (ONNX, TensorFlow .pb,
    Caffe). For a classification network, pass the name of the pooling
    layer as ``output_layer`` to get the feature vector instead of the
    class logits.
    """

    name = "dnn"

    def __init__(self,
                 model_path: str,
                 config_path: Optional[str] = None,
                 input_size: int = None,
                 output_layer: Optional[str] = None,
                 scale: float = DEFAULT_SCALE,
                 mean: tuple = DEFAULT_MEAN):
        super().__init__()
        self.model_path = model_path
        self.config_path = config_path
        self.input_size = input_size or DEFAULT_INPUT_SIZE
        self.output_layer = output_layer
        self.scale = scale
        self.mean = mean
        self._net = None
        # cv2.dnn.Net is not re-entrant
        self._lock = threading.Lock()

    def _load(self) -> None:
        if not os.path.exists(self.model_path):
            raise ModelInitError(f"Model file not found: {self.model_path}")
        try:
            if self.config_path:
                self._net = cv2.dnn.readNet(self.model_path, self.config_path)
            else:
                self._net = cv2.dnn.readNet(self.model_path)
        except cv2.error as e:
            raise ModelInitError(f"Could not read model {self.model_path}: {e}") from e
        if self._net.empty():
            raise ModelInitError(f"Model {self.model_path} contains no layers")
        logger.info(
            f"Loaded DNN model {os.path.basename(self.model_path)} "
            f"({self.input_size}x{self.input_size} input)"
        )

    def _infer(self, image: np.ndarray) -> np.ndarray:
        image = normalize_image(np.asarray(image))
        blob = cv2.dnn.blobFromImage(
            image,
            scalefactor=self.scale,
            size=(self.input_size, self.input_size),
            mean=self.mean,
            swapRB=False,  # already RGB
            crop=False,
        )
        with self._lock:
            self._net.setInput(blob)
            if self.output_layer:
                output = self._net.forward(self.output_layer)
            else:
                output = self._net.forward()
        return output.flatten()


class HistogramEmbedder(Embedder):
    """Colour-histogram embedder; see histograms.extract_hsv_histogram."""

    name = "histogram"

    def __init__(self, h_bins: int = None, s_bins: int = None):
        super().__init__()
        self.h_bins = h_bins
        self.s_bins = s_bins

    def _infer(self, image: np.ndarray) -> np.ndarray:
        return extract_hsv_histogram(image, h_bins=self.h_bins, s_bins=self.s_bins)

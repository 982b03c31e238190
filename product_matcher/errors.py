"""
Error taxonomy for product matching.

Setup failures (model load, catalog fetch) are fatal to a session.
Per-product embedding failures during store construction are recorded
and skipped. Query failures are caught at the session boundary and
reported as a single message.
"""


class ProductMatcherError(Exception):
    """Base class for all product_matcher errors."""


class ImageLoadError(ProductMatcherError):
    """An image could not be fetched, read, or decoded."""


class ModelInitError(ProductMatcherError):
    """The embedding model failed to initialize."""


class EmbeddingError(ProductMatcherError):
    """An embedding could not be computed for an image."""


class CatalogError(ProductMatcherError):
    """The product catalog could not be loaded or parsed."""


class DimensionMismatch(ProductMatcherError, ValueError):
    """Two vectors of different length were compared."""


class StoreLoadError(ProductMatcherError):
    """A saved embedding store is unreadable or doesn't fit the embedder."""

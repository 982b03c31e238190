"""
Product catalog records and JSON catalog loading.

The catalog is a JSON list of ``{id, name, category, image}`` records,
read once at startup from a local file or an http(s) URL.
"""

import json
import logging
from dataclasses import dataclass
from typing import Iterable, Tuple, Union
from pathlib import Path

import requests

from .errors import CatalogError

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("id", "name", "category", "image")


@dataclass(frozen=True)
class Product:
    """Immutable catalog entry."""

    id: str
    name: str
    category: str
    image: str

    @classmethod
    def from_record(cls, record: dict) -> "Product":
        missing = [f for f in REQUIRED_FIELDS if f not in record]
        if missing:
            raise CatalogError(
                f"Catalog record {record.get('id', '?')!r} is missing "
                f"field(s): {', '.join(missing)}"
            )
        return cls(
            id=str(record["id"]),
            name=str(record["name"]),
            category=str(record["category"]),
            image=str(record["image"]),
        )


@dataclass(frozen=True)
class ScoredProduct:
    """A product paired with its similarity to the current query."""

    product: Product
    similarity: float

    @property
    def id(self) -> str:
        return self.product.id

    @property
    def name(self) -> str:
        return self.product.name

    @property
    def category(self) -> str:
        return self.product.category

    @property
    def image(self) -> str:
        return self.product.image


def parse_catalog(records: Iterable[dict]) -> Tuple[Product, ...]:
    """Convert raw JSON records into Products."""
    if not isinstance(records, list):
        raise CatalogError("Catalog must be a JSON list of product records")
    return tuple(Product.from_record(r) for r in records)


def load_catalog(source: Union[str, Path], timeout: float = 10.0) -> Tuple[Product, ...]:
    """
    Load the product catalog from a JSON file or http(s) URL.

    Args:
        source: Local path or http(s) URL of the catalog JSON.
        timeout: Request timeout in seconds for URL sources.

    Returns:
        Tuple of Products in catalog order.

    Raises:
        CatalogError: If the catalog can't be fetched, read, or parsed.
    """
    source = str(source)
    try:
        if source.startswith(("http://", "https://")):
            response = requests.get(source, timeout=timeout)
            response.raise_for_status()
            records = response.json()
        else:
            with open(source, "r", encoding="utf-8") as f:
                records = json.load(f)
    except (OSError, ValueError, requests.RequestException) as e:
        raise CatalogError(f"Failed to load catalog from {source}: {e}") from e

    products = parse_catalog(records)
    logger.info(f"Loaded {len(products)} products from {source}")
    return products

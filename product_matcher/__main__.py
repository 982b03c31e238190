"""
Run one visual product search from the command line.

    python -m product_matcher shoe.jpg --catalog products.json --store cache.npz
"""

import argparse
import logging
import sys

from .embedder import DnnEmbedder, HistogramEmbedder
from .engine import MatchContext, MatchSession
from .errors import CatalogError, ModelInitError, StoreLoadError
from .preprocessing import validate_image_url
from .presentation import DEFAULT_THRESHOLD, SortMode


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="product_matcher",
        description="Find catalog products visually similar to an image",
    )
    parser.add_argument("image", help="Query image path or http(s) URL")
    parser.add_argument("--catalog", required=True,
                        help="Catalog JSON file or URL")
    parser.add_argument("--store", default=None,
                        help="Embedding store cache (.npz), reused if present")
    parser.add_argument("--model", default=None,
                        help="DNN model file; colour histograms are used if omitted")
    parser.add_argument("--output-layer", default=None,
                        help="DNN layer to read the embedding from")
    parser.add_argument("--threshold", type=float, default=DEFAULT_THRESHOLD,
                        help="Minimum similarity to display (0-1)")
    parser.add_argument("--sort", choices=[m.value for m in SortMode],
                        default=SortMode.HIGHEST.value, help="Result order")
    parser.add_argument("--workers", type=int, default=None,
                        help="Concurrent image fetches while building the store")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Debug logging")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.model:
        embedder = DnnEmbedder(args.model, output_layer=args.output_layer)
    else:
        embedder = HistogramEmbedder()

    try:
        context = MatchContext.from_catalog(
            args.catalog, embedder, store_path=args.store, max_workers=args.workers
        )
    except (CatalogError, ModelInitError, StoreLoadError) as e:
        print(f"Initialization error: {e}", file=sys.stderr)
        return 2

    try:
        session = MatchSession(context, threshold=args.threshold, sort_mode=args.sort)
    except ValueError as e:
        print(f"Invalid option: {e}", file=sys.stderr)
        return 2

    if validate_image_url(args.image):
        ok = session.search_url(args.image)
    else:
        ok = session.search_file(args.image)

    if not ok:
        print(f"Processing error: {session.last_error}", file=sys.stderr)
        return 1

    displayed = session.displayed
    print(f"{len(displayed)} {'match' if len(displayed) == 1 else 'matches'} found")
    for rank, result in enumerate(displayed, 1):
        print(f"{rank:>3}. {result.similarity * 100:5.1f}%  "
              f"[{result.category}] {result.name} ({result.id})")
    return 0


if __name__ == "__main__":
    sys.exit(main())

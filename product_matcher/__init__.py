"""
product_matcher — Find catalog products that look like a query image.

Embeds a query image, scores it against precomputed product embeddings,
then removes duplicates, collapses near-identical items, and balances
categories before the results are filtered and sorted for display.

Modules:
    engine           MatchContext and MatchSession
    candidates       Recall-floor candidate generation
    refinement       Dedup, near-duplicate suppression, category balance
    presentation     Threshold filter and sort modes
    similarity       Cosine similarity
    embedding_store  Product id → embedding mapping
    index_builder    Batch embedding of the catalog
    embedder         Embedder interface, DNN and histogram embedders
    histograms       HSV histogram embeddings
    preprocessing    Image loading and normalization
    catalog          Product records and catalog loading
    errors           Exception types
"""

__version__ = "1.0.0"

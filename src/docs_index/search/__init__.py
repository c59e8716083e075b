"""Search indexing and query engine package.

Pure-Python inverted index stack:
- analyzers: tokenizers and filters (lowercase, stop, stemming)
- postings: term -> sorted postings
- documents: owned document copies and lengths
- stats: BM25 scoring statistics
- bm25_engine: query scoring and ranking
- snapshot: atomic on-disk snapshots
"""

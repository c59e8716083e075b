"""Domain layer - value objects shared by the index, query engine and callers."""

from docs_index.domain.model import Document, IndexInfo, IndexState, SearchHit


__all__ = [
    "Document",
    "IndexInfo",
    "IndexState",
    "SearchHit",
]

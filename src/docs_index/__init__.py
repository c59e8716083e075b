"""docs-index: an inverted-index document store with BM25 search.

Typical use::

    from docs_index import Document, IndexManager, IndexSettings

    index = IndexManager.open(IndexSettings(snapshot_dir="var/index"))
    index.add_document(Document(id="a", content="the quick brown fox"))
    hits = index.search("quick", limit=5)
"""

from docs_index.bootstrap import configure_observability
from docs_index.config import IndexSettings
from docs_index.domain.model import Document, IndexInfo, IndexState, SearchHit
from docs_index.errors import (
    DocsIndexError,
    IndexClosedError,
    InvalidArgumentError,
    InvalidDocumentError,
    NotFoundError,
    PersistenceError,
    RebuildCancelledError,
    RebuildFailedError,
    SnapshotCorruptError,
)
from docs_index.index_manager import IndexManager


__all__ = [
    "DocsIndexError",
    "Document",
    "IndexClosedError",
    "IndexInfo",
    "IndexManager",
    "IndexSettings",
    "IndexState",
    "InvalidArgumentError",
    "InvalidDocumentError",
    "NotFoundError",
    "PersistenceError",
    "RebuildCancelledError",
    "RebuildFailedError",
    "SearchHit",
    "SnapshotCorruptError",
    "configure_observability",
]

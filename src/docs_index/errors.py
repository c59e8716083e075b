"""Error kinds raised by the document index.

Every error carries a stable ``code`` plus optional ``details`` so callers
(RAG tools, HTTP adapters) can map failures without parsing messages.
"""

from __future__ import annotations

from typing import Any


class DocsIndexError(Exception):
    """Base class for all index errors."""

    code = "INDEX_ERROR"

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = dict(details or {})

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": dict(self.details)}


class InvalidDocumentError(DocsIndexError):
    """Raised when a document lacks an identifier or content."""

    code = "INVALID_DOCUMENT"


class InvalidArgumentError(DocsIndexError, ValueError):
    """Raised for malformed query parameters (e.g. non-positive limit)."""

    code = "INVALID_ARGUMENT"


class NotFoundError(DocsIndexError, LookupError):
    """Raised by lookups that are defined to fail on a missing entity."""

    code = "NOT_FOUND"


class PersistenceError(DocsIndexError):
    """Raised when a mutation could not be persisted; the mutation is rolled back."""

    code = "PERSISTENCE_FAILED"


class RebuildFailedError(DocsIndexError):
    """Raised when a rebuild could not complete; the prior index stays live."""

    code = "REBUILD_FAILED"


class RebuildCancelledError(RebuildFailedError):
    """Raised when a rebuild observed its cancellation flag."""

    code = "REBUILD_CANCELLED"


class SnapshotCorruptError(DocsIndexError):
    """Raised when a snapshot file cannot be decoded."""

    code = "SNAPSHOT_CORRUPT"


class IndexClosedError(DocsIndexError):
    """Raised when mutating an index that has been closed."""

    code = "INDEX_CLOSED"

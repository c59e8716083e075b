"""Index manager: the single entry point for mutating and querying the index.

All structural mutations (add, remove, update, rebuild) run under the write
side of a reader-writer lock, so they are fully serialized and never overlap
with a search. Each successful mutation:

1. applies the change to the in-memory stores,
2. persists a snapshot when a snapshot directory is configured,
3. bumps ``version`` and publishes a fresh immutable ``IndexInfo``.

If step 2 fails the in-memory change is rolled back and the version is not
consumed. ``rebuild`` accumulates into fresh stores and swaps them in only
after the snapshot of the rebuilt state has been written.
"""

from __future__ import annotations

from collections.abc import Callable
import copy
from datetime import datetime, timezone
import logging
import threading
import time

from docs_index.config import IndexSettings
from docs_index.domain.model import Document, IndexInfo, IndexState, SearchHit
from docs_index.errors import (
    IndexClosedError,
    InvalidArgumentError,
    InvalidDocumentError,
    PersistenceError,
    RebuildCancelledError,
    RebuildFailedError,
)
from docs_index.index_audit import AuditReport, audit_index
from docs_index.observability import (
    DOCUMENT_COUNT,
    INDEX_MUTATIONS,
    INDEX_VERSION,
    REBUILD_DURATION,
    SEARCH_LATENCY,
    bind_index,
    create_span,
    track_latency,
)
from docs_index.search.analyzers import get_analyzer, tokenize
from docs_index.search.bm25_engine import BM25SearchEngine, validate_limit, validate_threshold
from docs_index.search.documents import DocumentStore, StoredDocument
from docs_index.search.locking import ReadWriteLock
from docs_index.search.postings import PostingStore
from docs_index.search.snapshot import IndexSnapshot, SnapshotStore


logger = logging.getLogger(__name__)

INITIAL_VERSION = 1


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IndexManager:
    """Inverted document index with BM25 search and snapshot persistence."""

    def __init__(
        self,
        settings: IndexSettings | None = None,
        *,
        name: str = "default",
        snapshot_store: SnapshotStore | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.settings = settings or IndexSettings()
        self.name = name
        self._clock = clock
        self._analyzer = get_analyzer(self.settings.analyzer)
        self._engine = BM25SearchEngine(
            self._analyzer,
            k1=self.settings.bm25_k1,
            b=self.settings.bm25_b,
            enable_phrase_bonus=self.settings.enable_phrase_bonus,
            snippet_max_chars=self.settings.snippet_max_chars,
        )
        self._lock = ReadWriteLock()
        self._documents = DocumentStore()
        self._postings = PostingStore()
        self._version = INITIAL_VERSION
        self._last_updated = clock()
        self._state = IndexState.READY
        self._closed = False

        if snapshot_store is None and self.settings.snapshot_dir is not None:
            snapshot_store = SnapshotStore(self.settings.snapshot_dir, max_snapshots=self.settings.max_snapshots)
        self._snapshots = snapshot_store

        self._info = self._build_info()
        if self._snapshots is not None:
            self._load_latest_snapshot()
        self._publish_info()

    @classmethod
    def open(cls, settings: IndexSettings | None = None, **kwargs) -> IndexManager:
        """Create a manager, restoring the latest valid snapshot when one exists."""
        return cls(settings, **kwargs)

    def __enter__(self) -> IndexManager:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_document(self, document: Document) -> None:
        """Index ``document``; an existing id is replaced (explicit upsert)."""

        self._validate_document(document)
        document = self._owned_copy(document)
        tokens = tokenize(document.content or "", self._analyzer)
        with bind_index(self.name), self._lock.write_locked():
            self._ensure_open()
            if document.id in self._documents:
                logger.info("Document %s already indexed; applying upsert", document.id)
                self._upsert(document, tokens, operation="update")
            else:
                self._upsert(document, tokens, operation="add")

    def update_document(self, document: Document) -> None:
        """Replace ``document`` atomically; readers see either old or new postings."""

        self._validate_document(document)
        document = self._owned_copy(document)
        tokens = tokenize(document.content or "", self._analyzer)
        with bind_index(self.name), self._lock.write_locked():
            self._ensure_open()
            self._upsert(document, tokens, operation="update")

    def remove_document(self, document_id: str) -> None:
        """Remove ``document_id``; unknown ids are a no-op."""

        with bind_index(self.name), self._lock.write_locked():
            self._ensure_open()
            previous = self._documents.find(document_id)
            if previous is None:
                logger.debug("Remove ignored for unknown document %s", document_id)
                return

            self._postings.remove_document(document_id)
            self._documents.delete(document_id)

            def rollback() -> None:
                self._reinstate(previous)

            self._commit("remove", rollback, self._clock())
            logger.info("Removed document %s (version %d)", document_id, self._version)

    def rebuild(self, cancel_event: threading.Event | None = None) -> None:
        """Recompute all postings from stored content and swap them in atomically.

        ``cancel_event`` is checked between documents; when set, the rebuild
        stops with ``RebuildCancelledError`` and the index is left untouched.
        """

        with bind_index(self.name), self._lock.write_locked():
            self._ensure_open()
            self._state = IndexState.REBUILDING
            self._publish_info()
            start = time.perf_counter()
            try:
                with create_span("index.rebuild"):
                    self._rebuild_locked(cancel_event)
            except RebuildFailedError:
                INDEX_MUTATIONS.labels(index=self.name, operation="rebuild", status="error").inc()
                raise
            except Exception as exc:
                INDEX_MUTATIONS.labels(index=self.name, operation="rebuild", status="error").inc()
                logger.error("Rebuild of index %s failed: %s", self.name, exc, exc_info=True)
                raise RebuildFailedError(f"Rebuild failed: {exc}", details={"index": self.name}) from exc
            finally:
                self._state = IndexState.READY
                self._publish_info()

            duration = time.perf_counter() - start
            REBUILD_DURATION.labels(index=self.name).observe(duration)
            INDEX_MUTATIONS.labels(index=self.name, operation="rebuild", status="ok").inc()
            logger.info(
                "Rebuilt index %s: %d documents, %d terms in %.3fs (version %d)",
                self.name,
                len(self._documents),
                self._postings.term_count,
                duration,
                self._version,
            )

    def close(self) -> None:
        with self._lock.write_locked():
            self._closed = True

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_index_info(self) -> IndexInfo:
        """Return the latest published snapshot; never waits on the lock."""
        return self._info

    def search(
        self,
        query: str,
        limit: int | None = None,
        *,
        threshold: float | None = None,
        with_highlights: bool = False,
    ) -> list[SearchHit]:
        """Rank documents for ``query`` by BM25 (score desc, then id asc)."""

        if not isinstance(query, str):
            raise InvalidArgumentError("query must be a string", details={"query": repr(query)})
        resolved_limit = self.settings.default_search_limit if limit is None else validate_limit(limit)
        resolved_limit = min(resolved_limit, self.settings.max_search_limit)
        resolved_threshold = self.settings.score_threshold if threshold is None else validate_threshold(threshold)

        with (
            track_latency(SEARCH_LATENCY, index=self.name),
            bind_index(self.name),
            create_span("index.search", attributes={"search.limit": resolved_limit}),
            self._lock.read_locked(),
        ):
            hits = self._engine.search(
                query,
                resolved_limit,
                documents=self._documents,
                postings=self._postings,
                threshold=resolved_threshold,
                with_highlights=with_highlights,
            )
        logger.debug("Search %r returned %d hits", query, len(hits))
        return hits

    def get_document(self, document_id: str) -> Document:
        """Return a copy of the stored document; raises ``NotFoundError`` when missing."""
        with self._lock.read_locked():
            return self._documents.get(document_id).document.owned_copy()

    def document_ids(self) -> list[str]:
        with self._lock.read_locked():
            return list(self._documents.ids())

    def audit(self) -> AuditReport:
        with self._lock.read_locked():
            return audit_index(self._documents, self._postings, self._analyzer)

    # ------------------------------------------------------------------
    # Internals (callers hold the write lock)
    # ------------------------------------------------------------------

    def _validate_document(self, document: Document) -> None:
        if not isinstance(document, Document):
            raise InvalidDocumentError(
                f"Expected Document, got {type(document).__name__}",
                details={"type": type(document).__name__},
            )
        if not document.id or not document.id.strip():
            raise InvalidDocumentError("Document id must be a non-empty string", details={"document_id": document.id})
        if document.content is None:
            raise InvalidDocumentError("Document content is required", details={"document_id": document.id})

    def _owned_copy(self, document: Document) -> Document:
        """Copy ``document`` before any store is touched; uncopyable metadata is rejected."""
        try:
            return document.owned_copy()
        except (TypeError, ValueError, copy.Error) as exc:
            raise InvalidDocumentError(
                f"Document {document.id} cannot be copied: {exc}",
                details={"document_id": document.id},
            ) from exc

    def _ensure_open(self) -> None:
        if self._closed:
            raise IndexClosedError(f"Index '{self.name}' is closed", details={"index": self.name})

    def _upsert(self, document: Document, tokens: list[tuple[str, int]], *, operation: str) -> None:
        previous = self._documents.find(document.id)
        now = self._clock()
        self._documents.put(document, length=len(tokens), revision=self._version + 1, indexed_at=now, owned=True)
        # Old postings are dropped inside index() before the new ones land.
        self._postings.index(document.id, tokens)

        def rollback() -> None:
            if previous is not None:
                self._reinstate(previous)
            else:
                self._postings.remove_document(document.id)
                self._documents.delete(document.id)

        self._commit(operation, rollback, now)
        logger.info(
            "Indexed document %s via %s (%d tokens, version %d)", document.id, operation, len(tokens), self._version
        )

    def _reinstate(self, stored: StoredDocument) -> None:
        self._postings.index(stored.doc_id, tokenize(stored.document.content or "", self._analyzer))
        self._documents.restore(stored)

    def _commit(self, operation: str, rollback: Callable[[], None], now: datetime) -> None:
        new_version = self._version + 1
        try:
            self._persist(self._documents, self._postings, new_version, now)
        except (OSError, PersistenceError) as exc:
            rollback()
            INDEX_MUTATIONS.labels(index=self.name, operation=operation, status="error").inc()
            logger.error("Failed to persist %s on index %s: %s", operation, self.name, exc)
            raise PersistenceError(
                f"Could not persist {operation}: {exc}",
                details={"index": self.name, "operation": operation},
            ) from exc

        self._version = new_version
        self._last_updated = now
        self._publish_info()
        INDEX_MUTATIONS.labels(index=self.name, operation=operation, status="ok").inc()

    def _rebuild_locked(self, cancel_event: threading.Event | None) -> None:
        postings = PostingStore()
        lengths: dict[str, int] = {}
        for stored in self._documents.list():
            if cancel_event is not None and cancel_event.is_set():
                logger.warning("Rebuild of index %s cancelled after %d documents", self.name, len(lengths))
                raise RebuildCancelledError(
                    "Rebuild cancelled",
                    details={"index": self.name, "documents_processed": len(lengths)},
                )
            tokens = tokenize(stored.document.content or "", self._analyzer)
            postings.index(stored.doc_id, tokens)
            lengths[stored.doc_id] = len(tokens)

        documents = self._documents.with_lengths(lengths)
        new_version = self._version + 1
        now = self._clock()
        try:
            self._persist(documents, postings, new_version, now)
        except (OSError, PersistenceError) as exc:
            raise RebuildFailedError(
                f"Could not persist rebuilt index: {exc}",
                details={"index": self.name},
            ) from exc

        self._documents = documents
        self._postings = postings
        self._version = new_version
        self._last_updated = now

    def _persist(self, documents: DocumentStore, postings: PostingStore, version: int, now: datetime) -> None:
        if self._snapshots is None:
            return
        self._snapshots.save(
            IndexSnapshot(
                version=version,
                last_updated=now,
                documents=documents,
                postings=postings,
                analyzer=self.settings.analyzer,
            )
        )

    def _load_latest_snapshot(self) -> None:
        assert self._snapshots is not None
        snapshot = self._snapshots.load_latest()
        if snapshot is None:
            logger.info("No snapshot found for index %s; starting empty", self.name)
            return

        self._documents = snapshot.documents
        self._postings = snapshot.postings
        # A corrupt newer snapshot may have been skipped; its version was already published.
        self._version = max(snapshot.version, self._snapshots.highest_version(), INITIAL_VERSION)
        self._last_updated = snapshot.last_updated
        logger.info(
            "Loaded snapshot for index %s: %d documents (version %d)",
            self.name,
            len(self._documents),
            self._version,
        )

        if snapshot.analyzer != self.settings.analyzer:
            logger.warning(
                "Snapshot analyzer %s differs from configured %s; rebuilding postings",
                snapshot.analyzer,
                self.settings.analyzer,
            )
            self._rebuild_locked(None)

    def _build_info(self) -> IndexInfo:
        return IndexInfo(
            document_count=len(self._documents),
            last_updated=self._last_updated,
            version=self._version,
            state=self._state,
        )

    def _publish_info(self) -> None:
        # Single attribute assignment: readers see the old or new info, never a mix.
        self._info = self._build_info()
        DOCUMENT_COUNT.labels(index=self.name).set(self._info.document_count)
        INDEX_VERSION.labels(index=self.name).set(self._info.version)

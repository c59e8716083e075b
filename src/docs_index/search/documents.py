"""Document store: owned document copies plus per-document length metadata."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from docs_index.domain.model import Document
from docs_index.errors import NotFoundError
from docs_index.search.stats import CorpusStats


@dataclass(frozen=True, slots=True)
class StoredDocument:
    """A document as held by the index.

    ``revision`` is the index version that last wrote the document.
    """

    document: Document
    length: int
    revision: int
    indexed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def doc_id(self) -> str:
        return self.document.id

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.document.id,
            "content": self.document.content,
            "metadata": self.document.metadata,
            "length": self.length,
            "revision": self.revision,
            "indexed_at": self.indexed_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> StoredDocument:
        indexed_raw = data.get("indexed_at")
        indexed_at = datetime.fromisoformat(indexed_raw) if isinstance(indexed_raw, str) else datetime.now(timezone.utc)
        document = Document(id=str(data["id"]), content=data.get("content"), metadata=dict(data.get("metadata") or {}))
        return cls(
            document=document,
            length=int(data.get("length", 0)),
            revision=int(data.get("revision", 1)),
            indexed_at=indexed_at,
        )


class DocumentStore:
    """Maps document id to ``StoredDocument`` and tracks total token length."""

    def __init__(self) -> None:
        self._documents: dict[str, StoredDocument] = {}
        self._total_length = 0

    def __len__(self) -> int:
        return len(self._documents)

    def __contains__(self, doc_id: object) -> bool:
        return doc_id in self._documents

    def put(
        self,
        document: Document,
        *,
        length: int,
        revision: int,
        indexed_at: datetime | None = None,
        owned: bool = False,
    ) -> StoredDocument:
        """Store an owned copy of ``document``, replacing any previous entry.

        Pass ``owned=True`` when ``document`` is already a private copy.
        """

        stored = StoredDocument(
            document=document if owned else document.owned_copy(),
            length=length,
            revision=revision,
            indexed_at=indexed_at or datetime.now(timezone.utc),
        )
        self.restore(stored)
        return stored

    def get(self, doc_id: str) -> StoredDocument:
        stored = self._documents.get(doc_id)
        if stored is None:
            raise NotFoundError(f"Document '{doc_id}' not found", details={"document_id": doc_id})
        return stored

    def find(self, doc_id: str) -> StoredDocument | None:
        return self._documents.get(doc_id)

    def delete(self, doc_id: str) -> bool:
        stored = self._documents.pop(doc_id, None)
        if stored is None:
            return False
        self._total_length -= stored.length
        return True

    def list(self) -> list[StoredDocument]:
        """Return stored documents ordered by id."""
        return [self._documents[doc_id] for doc_id in sorted(self._documents)]

    def ids(self) -> Iterator[str]:
        return iter(sorted(self._documents))

    def length_of(self, doc_id: str) -> int:
        stored = self._documents.get(doc_id)
        return stored.length if stored is not None else 0

    @property
    def total_length(self) -> int:
        return self._total_length

    @property
    def average_length(self) -> float:
        return self.corpus_stats().average_length

    def lengths(self) -> dict[str, int]:
        return {doc_id: stored.length for doc_id, stored in self._documents.items()}

    def corpus_stats(self) -> CorpusStats:
        """Length statistics from the running total; O(1)."""
        return CorpusStats(total_terms=self._total_length, document_count=len(self._documents))

    def with_lengths(self, lengths: Mapping[str, int]) -> DocumentStore:
        """Return a new store sharing documents but carrying recomputed lengths."""

        rebuilt = DocumentStore()
        for doc_id, stored in self._documents.items():
            length = lengths.get(doc_id, stored.length)
            if length != stored.length:
                stored = StoredDocument(
                    document=stored.document,
                    length=length,
                    revision=stored.revision,
                    indexed_at=stored.indexed_at,
                )
            rebuilt.restore(stored)
        return rebuilt

    def restore(self, stored: StoredDocument) -> None:
        """Insert ``stored`` as-is (used for snapshot loading and rollback)."""
        previous = self._documents.get(stored.doc_id)
        if previous is not None:
            self._total_length -= previous.length
        self._documents[stored.doc_id] = stored
        self._total_length += stored.length

    def to_list(self) -> list[dict[str, Any]]:
        return [stored.to_dict() for stored in self.list()]

    @classmethod
    def from_list(cls, entries: list[Mapping[str, Any]]) -> DocumentStore:
        store = cls()
        for entry in entries:
            store.restore(StoredDocument.from_dict(entry))
        return store

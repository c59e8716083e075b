"""In-memory inverted index: term -> postings sorted by document id.

A reverse map (document -> terms) keeps removal proportional to the size of
the removed document instead of the vocabulary. The store performs no
locking of its own; the index manager serializes mutations and guards reads.
"""

from __future__ import annotations

from bisect import bisect_left
from collections import defaultdict
from collections.abc import Iterable, Iterator, Mapping
from typing import Any

from docs_index.search.models import Posting, PostingList


def _doc_key(posting: Posting) -> str:
    return posting.doc_id


class PostingStore:
    """Mutable postings keyed by term."""

    def __init__(self) -> None:
        self._postings: dict[str, list[Posting]] = {}
        self._doc_terms: dict[str, frozenset[str]] = {}

    def __len__(self) -> int:
        return len(self._postings)

    def __contains__(self, term: object) -> bool:
        return term in self._postings

    @property
    def term_count(self) -> int:
        return len(self._postings)

    @property
    def document_count(self) -> int:
        return len(self._doc_terms)

    def index(self, doc_id: str, tokens: Iterable[tuple[str, int]]) -> int:
        """Replace every posting of ``doc_id`` with postings built from ``tokens``.

        Returns the number of distinct terms indexed for the document.
        """

        positions_by_term: dict[str, list[int]] = defaultdict(list)
        for term, position in tokens:
            if term:
                positions_by_term[term].append(position)

        self.remove_document(doc_id)
        for term, positions in positions_by_term.items():
            self._insert(term, Posting.from_positions(doc_id, positions))
        if positions_by_term:
            self._doc_terms[doc_id] = frozenset(positions_by_term)
        return len(positions_by_term)

    def remove_document(self, doc_id: str) -> int:
        """Drop ``doc_id`` from every posting list; returns the number of lists touched."""

        terms = self._doc_terms.pop(doc_id, frozenset())
        for term in terms:
            postings = self._postings.get(term)
            if postings is None:
                continue
            idx = bisect_left(postings, doc_id, key=_doc_key)
            if idx < len(postings) and postings[idx].doc_id == doc_id:
                del postings[idx]
            if not postings:
                del self._postings[term]
        return len(terms)

    def lookup(self, term: str) -> PostingList:
        return tuple(self._postings.get(term, ()))

    def document_frequency(self, term: str) -> int:
        return len(self._postings.get(term, ()))

    def document_terms(self, doc_id: str) -> frozenset[str]:
        return self._doc_terms.get(doc_id, frozenset())

    def terms(self) -> Iterator[str]:
        return iter(sorted(self._postings))

    def items(self) -> Iterator[tuple[str, PostingList]]:
        for term in sorted(self._postings):
            yield term, tuple(self._postings[term])

    def _insert(self, term: str, posting: Posting) -> None:
        postings = self._postings.setdefault(term, [])
        idx = bisect_left(postings, posting.doc_id, key=_doc_key)
        if idx < len(postings) and postings[idx].doc_id == posting.doc_id:
            postings[idx] = posting
        else:
            postings.insert(idx, posting)

    def to_dict(self) -> dict[str, list[dict[str, Any]]]:
        return {term: [posting.to_dict() for posting in postings] for term, postings in self.items()}

    @classmethod
    def from_dict(cls, data: Mapping[str, Iterable[Mapping[str, Any]]]) -> PostingStore:
        store = cls()
        doc_terms: dict[str, set[str]] = defaultdict(set)
        for term, entries in data.items():
            postings = sorted((Posting.from_dict(entry) for entry in entries), key=_doc_key)
            if not postings:
                continue
            store._postings[term] = postings
            for posting in postings:
                doc_terms[posting.doc_id].add(term)
        store._doc_terms = {doc_id: frozenset(terms) for doc_id, terms in doc_terms.items()}
        return store

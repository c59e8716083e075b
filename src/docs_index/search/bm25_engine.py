"""BM25 query engine over the in-memory posting and document stores."""

from __future__ import annotations

from collections import defaultdict
import copy
from dataclasses import dataclass
import heapq
import logging
import math
from numbers import Real

from docs_index.domain.model import SearchHit
from docs_index.errors import InvalidArgumentError
from docs_index.search.analyzers import Analyzer, get_analyzer
from docs_index.search.documents import DocumentStore
from docs_index.search.phrase import get_min_span, phrase_bonus
from docs_index.search.postings import PostingStore
from docs_index.search.snippet import build_highlights
from docs_index.search.stats import bm25, calculate_idf


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueryTokens:
    """Distinct query terms in first-occurrence order."""

    terms: tuple[str, ...]
    seed_text: str

    def is_empty(self) -> bool:
        return not self.terms


@dataclass(frozen=True)
class RankedDocument:
    doc_id: str
    score: float


def validate_limit(limit: object) -> int:
    if isinstance(limit, bool) or not isinstance(limit, int):
        raise InvalidArgumentError("limit must be an integer", details={"limit": repr(limit)})
    if limit <= 0:
        raise InvalidArgumentError("limit must be positive", details={"limit": limit})
    return limit


def validate_threshold(threshold: object) -> float:
    if isinstance(threshold, bool) or not isinstance(threshold, Real):
        raise InvalidArgumentError("threshold must be a number", details={"threshold": repr(threshold)})
    value = float(threshold)
    if not math.isfinite(value) or value < 0:
        raise InvalidArgumentError(
            "threshold must be a finite non-negative number", details={"threshold": repr(threshold)}
        )
    return value


class BM25SearchEngine:
    """Score documents against a query with BM25.

    Ties are broken by document id so that identical index contents always
    produce identical rankings.
    """

    def __init__(
        self,
        analyzer: Analyzer | None = None,
        *,
        k1: float = 1.2,
        b: float = 0.75,
        enable_phrase_bonus: bool = False,
        snippet_max_chars: int = 300,
    ) -> None:
        self.analyzer = analyzer if analyzer is not None else get_analyzer()
        self.k1 = k1
        self.b = b
        self.enable_phrase_bonus = enable_phrase_bonus
        self.snippet_max_chars = snippet_max_chars

    def tokenize_query(self, query_text: str) -> QueryTokens:
        seed = query_text.strip()
        seen: set[str] = set()
        terms: list[str] = []
        for token in self.analyzer(seed):
            if token.text in seen:
                continue
            seen.add(token.text)
            terms.append(token.text)
        return QueryTokens(terms=tuple(terms), seed_text=seed)

    def surface_forms(self, content: str, terms: tuple[str, ...]) -> tuple[str, ...]:
        """Return the words of ``content`` that analyze to one of ``terms``.

        Query terms may be stems, so highlights mark the original words.
        """
        wanted = set(terms)
        seen: dict[str, None] = {}
        for token in self.analyzer(content):
            if token.text in wanted:
                seen.setdefault(content[token.start_char : token.end_char], None)
        return tuple(seen)

    def score(
        self,
        query_tokens: QueryTokens,
        *,
        documents: DocumentStore,
        postings: PostingStore,
    ) -> dict[str, float]:
        """Return a BM25 score for every document matching at least one term."""

        if query_tokens.is_empty() or not len(documents):
            return {}

        corpus = documents.corpus_stats()
        doc_scores: dict[str, float] = defaultdict(float)

        for term in query_tokens.terms:
            posting_list = postings.lookup(term)
            if not posting_list:
                continue
            idf = calculate_idf(len(posting_list), corpus.document_count)
            for posting in posting_list:
                doc_length = documents.length_of(posting.doc_id) or posting.frequency
                weight = bm25(posting.frequency, doc_length, corpus.average_length, k1=self.k1, b=self.b)
                doc_scores[posting.doc_id] += idf * weight

        if self.enable_phrase_bonus and len(query_tokens.terms) > 1:
            self._apply_phrase_bonus(doc_scores, query_tokens, postings)

        return {doc_id: score for doc_id, score in doc_scores.items() if score > 0}

    def _apply_phrase_bonus(
        self,
        doc_scores: dict[str, float],
        query_tokens: QueryTokens,
        postings: PostingStore,
    ) -> None:
        positions_by_doc: dict[str, dict[str, list[int]]] = defaultdict(dict)
        for term in query_tokens.terms:
            for posting in postings.lookup(term):
                if posting.doc_id in doc_scores:
                    positions_by_doc[posting.doc_id][term] = list(posting.positions)

        term_count = len(query_tokens.terms)
        for doc_id, term_positions in positions_by_doc.items():
            if len(term_positions) < term_count:
                continue
            doc_scores[doc_id] *= phrase_bonus(get_min_span(term_positions), term_count)

    def rank(
        self,
        query_text: str,
        limit: int,
        *,
        documents: DocumentStore,
        postings: PostingStore,
        threshold: float = 0.0,
    ) -> list[RankedDocument]:
        validate_limit(limit)
        doc_scores = self.score(self.tokenize_query(query_text), documents=documents, postings=postings)
        candidates = ((doc_id, score) for doc_id, score in doc_scores.items() if score >= threshold)
        top = heapq.nsmallest(limit, candidates, key=lambda item: (-item[1], item[0]))
        return [RankedDocument(doc_id=doc_id, score=score) for doc_id, score in top]

    def search(
        self,
        query_text: str,
        limit: int,
        *,
        documents: DocumentStore,
        postings: PostingStore,
        threshold: float = 0.0,
        with_highlights: bool = False,
    ) -> list[SearchHit]:
        """Return ranked hits: score descending, then document id ascending."""

        ranked = self.rank(query_text, limit, documents=documents, postings=postings, threshold=threshold)
        terms = self.tokenize_query(query_text).terms if with_highlights else ()

        hits: list[SearchHit] = []
        for entry in ranked:
            stored = documents.find(entry.doc_id)
            if stored is None:  # pragma: no cover - guarded by the manager's read lock
                logger.warning("Posting references missing document %s", entry.doc_id)
                continue
            highlights: tuple[str, ...] = ()
            if terms and stored.document.content:
                surface = self.surface_forms(stored.document.content, terms)
                highlights = build_highlights(stored.document.content, surface, max_chars=self.snippet_max_chars)
            hits.append(
                SearchHit(
                    document_id=entry.doc_id,
                    score=entry.score,
                    highlights=highlights,
                    metadata=copy.deepcopy(stored.document.metadata),
                )
            )
        return hits

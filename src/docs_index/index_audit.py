"""Consistency audit between the document store and the posting store."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
import logging

from docs_index.search.analyzers import Analyzer
from docs_index.search.documents import DocumentStore
from docs_index.search.postings import PostingStore
from docs_index.search.stats import compute_corpus_stats


logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AuditReport:
    """Structured result of an index audit."""

    documents_checked: int = 0
    terms_checked: int = 0
    dangling_postings: list[str] = field(default_factory=list)
    unsorted_terms: list[str] = field(default_factory=list)
    mismatched_documents: list[str] = field(default_factory=list)
    length_mismatches: list[str] = field(default_factory=list)
    total_length_drift: int = 0

    @property
    def ok(self) -> bool:
        return not (
            self.dangling_postings
            or self.unsorted_terms
            or self.mismatched_documents
            or self.length_mismatches
            or self.total_length_drift
        )

    def to_dict(self) -> dict[str, object]:
        payload = asdict(self)
        payload["ok"] = self.ok
        return payload


def audit_index(documents: DocumentStore, postings: PostingStore, analyzer: Analyzer) -> AuditReport:
    """Verify every stored document has exactly the postings its content produces."""

    report = AuditReport()
    dangling: set[str] = set()

    for term, posting_list in postings.items():
        report.terms_checked += 1
        doc_ids = [posting.doc_id for posting in posting_list]
        if doc_ids != sorted(doc_ids) or len(set(doc_ids)) != len(doc_ids):
            report.unsorted_terms.append(term)
        dangling.update(doc_id for doc_id in doc_ids if doc_id not in documents)

    report.dangling_postings = sorted(dangling)
    # Running total used by BM25 must equal the sum of per-document lengths.
    report.total_length_drift = documents.total_length - compute_corpus_stats(documents.lengths()).total_terms

    for stored in documents.list():
        report.documents_checked += 1
        tokens = analyzer(stored.document.content or "")
        if stored.length != len(tokens):
            report.length_mismatches.append(stored.doc_id)

        expected: dict[str, list[int]] = {}
        for token in tokens:
            expected.setdefault(token.text, []).append(token.position)

        if postings.document_terms(stored.doc_id) != frozenset(expected):
            report.mismatched_documents.append(stored.doc_id)
            continue
        for term, positions in expected.items():
            posting = next((entry for entry in postings.lookup(term) if entry.doc_id == stored.doc_id), None)
            if posting is None or list(posting.positions) != positions:
                report.mismatched_documents.append(stored.doc_id)
                break

    if not report.ok:
        logger.warning("Index audit found inconsistencies: %s", report.to_dict())
    return report

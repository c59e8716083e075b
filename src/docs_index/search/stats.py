"""Statistical helpers for BM25 scoring.

The functions stay independent of the stores so they can be unit tested in
isolation and reused by the audit tooling.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
import math


@dataclass(frozen=True)
class CorpusStats:
    """Aggregate length statistics over live documents."""

    total_terms: int
    document_count: int

    @property
    def average_length(self) -> float:
        if self.document_count == 0:
            return 0.0
        return self.total_terms / self.document_count


def compute_corpus_stats(doc_lengths: Mapping[str, int]) -> CorpusStats:
    return CorpusStats(
        total_terms=sum(max(length, 0) for length in doc_lengths.values()),
        document_count=len(doc_lengths),
    )


def calculate_idf(doc_freq: int, total_docs: int) -> float:
    """Return the BM25 inverse document frequency.

    Uses the ``ln(1 + (N - df + 0.5) / (df + 0.5))`` form, which stays
    positive even when a term appears in every document of a small corpus.
    """

    if total_docs <= 0 or doc_freq <= 0:
        return 0.0
    df = min(doc_freq, total_docs)
    return math.log(1.0 + (total_docs - df + 0.5) / (df + 0.5))


def bm25(tf: int, doc_length: int, avg_doc_length: float, *, k1: float = 1.2, b: float = 0.75) -> float:
    """Compute the BM25 term weight without IDF."""

    if tf <= 0:
        return 0.0
    length_ratio = doc_length / avg_doc_length if avg_doc_length > 0 else 1.0
    denominator = tf + k1 * (1 - b + b * length_ratio)
    return (tf * (k1 + 1)) / denominator

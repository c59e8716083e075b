"""Phrase proximity helpers for multi-term queries."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
import heapq


def get_min_span(term_positions: Mapping[str, Sequence[int]]) -> float:
    """Return the smallest window (in positions, inclusive) holding every term.

    Adjacent terms yield a span equal to the number of terms. Returns
    infinity when any term has no positions.
    """

    if not term_positions or any(not positions for positions in term_positions.values()):
        return float("inf")
    if len(term_positions) == 1:
        return 1.0

    # k-way sweep: always advance the list holding the current minimum.
    lists = [sorted(positions) for positions in term_positions.values()]
    heap = [(positions[0], idx, 0) for idx, positions in enumerate(lists)]
    heapq.heapify(heap)
    current_max = max(positions[0] for positions in lists)
    best = float("inf")

    while True:
        current_min, list_idx, pos_idx = heapq.heappop(heap)
        best = min(best, current_max - current_min + 1)
        next_idx = pos_idx + 1
        if next_idx >= len(lists[list_idx]):
            return best
        next_value = lists[list_idx][next_idx]
        current_max = max(current_max, next_value)
        heapq.heappush(heap, (next_value, list_idx, next_idx))


def phrase_bonus(span: float, term_count: int, *, max_bonus: float = 1.5) -> float:
    """Multiplier rewarding query terms that appear close together."""

    if term_count < 2 or span == float("inf"):
        return 1.0
    if span <= term_count:
        return max_bonus
    scatter_ratio = span / term_count
    if scatter_ratio >= 3.0:
        return 1.0
    return max(1.0, max_bonus - (scatter_ratio - 1.0) * (max_bonus - 1.0) / 2.0)

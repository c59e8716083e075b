"""Sentence-aware highlight extraction for search hits.

Snippets try to start and end on sentence boundaries, fall back to word
boundaries, and mark matched terms as ``[[term]]``.
"""

from __future__ import annotations

from collections.abc import Sequence
import re


SENTENCE_END_PATTERN = re.compile(r"[.!?]\s+")
WORD_BOUNDARY_PATTERN = re.compile(r"\s+")


def find_sentence_start(text: str, position: int, max_lookback: int = 200) -> int:
    """Return the start of the sentence containing ``position``."""
    if position <= 0:
        return 0

    start_search = max(0, position - max_lookback)
    window = text[start_search:position]

    sentence_ends = list(SENTENCE_END_PATTERN.finditer(window))
    if sentence_ends:
        return start_search + sentence_ends[-1].end()

    if start_search == 0:
        return 0
    # Mid-sentence: start at the first word boundary so no word is cut.
    boundary = WORD_BOUNDARY_PATTERN.search(window)
    return start_search + boundary.end() if boundary else start_search


def find_sentence_end(text: str, position: int, max_lookahead: int = 200) -> int:
    """Return the end of the sentence containing ``position``."""
    if position >= len(text):
        return len(text)

    end_search = min(len(text), position + max_lookahead)
    window = text[position:end_search]

    match = SENTENCE_END_PATTERN.search(window)
    if match:
        return position + match.end()

    if end_search == len(text):
        return end_search
    boundaries = list(WORD_BOUNDARY_PATTERN.finditer(window))
    return position + boundaries[-1].start() if boundaries else end_search


def extract_sentence_snippet(
    text: str,
    match_position: int,
    match_length: int,
    max_chars: int = 300,
    surrounding_context: int = 100,
) -> tuple[str, int, int]:
    """Return the snippet around a match plus its (start, end) offsets in ``text``."""
    if not text:
        return "", 0, 0

    initial_start = max(0, match_position - surrounding_context)
    initial_end = min(len(text), match_position + match_length + surrounding_context)
    start = find_sentence_start(text, initial_start, max_lookback=surrounding_context)
    end = find_sentence_end(text, initial_end, max_lookahead=surrounding_context)

    if end - start > max_chars:
        half = max_chars // 2
        center = match_position + match_length // 2
        start = max(0, center - half)
        end = min(len(text), start + max_chars)

    return text[start:end].strip(), start, end


def _term_pattern(terms: Sequence[str]) -> re.Pattern[str] | None:
    unique = sorted({term for term in terms if term}, key=len, reverse=True)
    if not unique:
        return None
    alternation = "|".join(re.escape(term) for term in unique)
    return re.compile(rf"(?<![^\W_])(?:{alternation})(?![^\W_])", re.IGNORECASE)


def highlight_terms(snippet: str, terms: Sequence[str]) -> str:
    """Wrap whole-word occurrences of ``terms`` in ``[[...]]``."""
    pattern = _term_pattern(terms)
    if not snippet or pattern is None:
        return snippet
    return pattern.sub(lambda match: f"[[{match.group(0)}]]", snippet)


def build_highlights(
    text: str,
    terms: Sequence[str],
    *,
    max_chars: int = 300,
    max_snippets: int = 2,
    surrounding_context: int = 100,
) -> tuple[str, ...]:
    """Return up to ``max_snippets`` non-overlapping highlighted snippets."""

    pattern = _term_pattern(terms)
    if not text or pattern is None:
        return ()

    snippets: list[str] = []
    covered_until = -1
    for match in pattern.finditer(text):
        if match.start() < covered_until:
            continue
        snippet, _, end = extract_sentence_snippet(
            text,
            match.start(),
            match.end() - match.start(),
            max_chars=max_chars,
            surrounding_context=surrounding_context,
        )
        snippets.append(highlight_terms(snippet, terms))
        covered_until = end
        if len(snippets) >= max_snippets:
            break
    return tuple(snippets)

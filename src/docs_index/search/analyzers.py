"""Text analysis for indexing and querying.

Analyzers follow Whoosh's composable tokenizer/filter design: a tokenizer
emits ``Token`` objects and filters transform the stream. Every analyzer is a
pure function of its input, so the same text always yields the same terms
and positions. The index relies on that when it recomputes postings from
stored content during updates and rebuilds.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Sequence
from dataclasses import dataclass, replace
import re
from typing import Protocol

from docs_index.errors import InvalidArgumentError


DEFAULT_ANALYZER = "simple"

# Runs of letters or digits; underscores and punctuation are boundaries.
_ALNUM_PATTERN = r"[^\W_]+"


@dataclass(frozen=True, slots=True)
class Token:
    """A term emitted by an analyzer."""

    text: str
    position: int
    start_char: int
    end_char: int


class Analyzer(Protocol):
    """Protocol implemented by analyzers."""

    def __call__(self, text: str) -> list[Token]:  # pragma: no cover - interface definition
        ...


class TokenFilter(Protocol):
    """Protocol implemented by token filters."""

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:  # pragma: no cover - interface definition
        ...


class RegexTokenizer:
    """Split text on non-alphanumeric boundaries."""

    def __init__(self, pattern: str = _ALNUM_PATTERN) -> None:
        self.pattern = re.compile(pattern, re.UNICODE)

    def __call__(self, text: str) -> Iterator[Token]:
        for position, match in enumerate(self.pattern.finditer(text)):
            yield Token(
                text=match.group(0),
                position=position,
                start_char=match.start(),
                end_char=match.end(),
            )


class LowercaseFilter:
    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for token in tokens:
            lowered = token.text.lower()
            yield token if lowered == token.text else replace(token, text=lowered)


DEFAULT_STOPWORDS = frozenset(
    {
        "a",
        "an",
        "and",
        "are",
        "as",
        "at",
        "be",
        "but",
        "by",
        "for",
        "if",
        "in",
        "into",
        "is",
        "it",
        "no",
        "not",
        "of",
        "on",
        "or",
        "such",
        "that",
        "the",
        "their",
        "then",
        "there",
        "these",
        "they",
        "this",
        "to",
        "was",
        "will",
        "with",
    }
)


class StopFilter:
    """Drops stopwords from the stream."""

    def __init__(self, stopwords: Iterable[str] | None = None) -> None:
        vocab = stopwords if stopwords is not None else DEFAULT_STOPWORDS
        self.stopwords = frozenset(word.lower() for word in vocab)

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for token in tokens:
            if token.text not in self.stopwords:
                yield token


_SUFFIX_RULES: tuple[tuple[str, str], ...] = (
    ("ization", "ize"),
    ("ational", "ate"),
    ("fulness", "ful"),
    ("ousness", "ous"),
    ("iveness", "ive"),
    ("tional", "tion"),
    ("biliti", "ble"),
    ("entli", "ent"),
    ("izer", "ize"),
    ("ator", "ate"),
    ("ation", "ate"),
    ("ness", ""),
)

_SIMPLE_SUFFIXES: tuple[str, ...] = ("ingly", "edly", "ing", "ed", "ly", "es", "s")


def stem(word: str) -> str:
    """Light Porter-style suffix stripping; keeps at least two characters."""

    for suffix, replacement in _SUFFIX_RULES:
        if word.endswith(suffix) and len(word) - len(suffix) >= 2:
            return word[: -len(suffix)] + replacement
    for suffix in _SIMPLE_SUFFIXES:
        if word.endswith(suffix) and len(word) - len(suffix) >= 2:
            return word[: -len(suffix)]
    return word


class PorterStemFilter:
    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for token in tokens:
            stemmed = stem(token.text)
            yield token if stemmed == token.text else replace(token, text=stemmed)


class AnalyzerPipeline:
    """Tokenizer followed by filters; positions are renumbered after filtering."""

    def __init__(self, tokenizer: Callable[[str], Iterable[Token]], filters: Sequence[TokenFilter] = ()) -> None:
        self.tokenizer = tokenizer
        self.filters = tuple(filters)

    def __call__(self, text: str) -> list[Token]:
        stream: Iterable[Token] = self.tokenizer(text)
        for token_filter in self.filters:
            stream = token_filter(stream)
        return [replace(token, position=idx) for idx, token in enumerate(stream) if token.text]


class KeywordAnalyzer:
    """Treats the whole (stripped, lower-cased) input as a single term."""

    def __call__(self, text: str) -> list[Token]:
        stripped = text.strip()
        if not stripped:
            return []
        start = text.index(stripped)
        return [Token(text=stripped.lower(), position=0, start_char=start, end_char=start + len(stripped))]


def simple_analyzer() -> Analyzer:
    return AnalyzerPipeline(RegexTokenizer(), [LowercaseFilter()])


def english_analyzer(*, apply_stemming: bool = True, stopwords: Iterable[str] | None = None) -> Analyzer:
    filters: list[TokenFilter] = [LowercaseFilter(), StopFilter(stopwords)]
    if apply_stemming:
        filters.append(PorterStemFilter())
    return AnalyzerPipeline(RegexTokenizer(), filters)


_ANALYZER_FACTORIES: dict[str, Callable[[], Analyzer]] = {
    "simple": simple_analyzer,
    "english": english_analyzer,
    "english-nostem": lambda: english_analyzer(apply_stemming=False),
    "keyword": KeywordAnalyzer,
}


def available_analyzers() -> list[str]:
    return sorted(_ANALYZER_FACTORIES)


def get_analyzer(name: str | None = None) -> Analyzer:
    """Return an analyzer by name, defaulting to the ``simple`` analyzer."""

    normalized = (name or DEFAULT_ANALYZER).lower()
    factory = _ANALYZER_FACTORIES.get(normalized)
    if factory is None:
        msg = f"Unknown analyzer '{name}'. Available: {available_analyzers()}"
        raise InvalidArgumentError(msg, details={"analyzer": name})
    return factory()


def tokenize(text: str, analyzer: Analyzer | None = None) -> list[tuple[str, int]]:
    """Return ``(term, position)`` pairs for ``text``."""

    active = analyzer if analyzer is not None else get_analyzer()
    return [(token.text, token.position) for token in active(text)]

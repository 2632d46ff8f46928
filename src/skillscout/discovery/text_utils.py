"""Keyword extraction and set similarity for candidate deduplication."""

from __future__ import annotations

import re
from collections.abc import Iterable

_TOKENIZE_PATTERN = re.compile(r"[a-z0-9]+")

# TODO: Load from a resource file so non-English corpora can supply their own list.
STOPWORDS = frozenset(
    {
        "the",
        "and",
        "or",
        "a",
        "an",
        "to",
        "of",
        "in",
        "on",
        "for",
        "by",
        "with",
        "is",
        "it",
        "this",
        "that",
        "as",
        "at",
        "be",
        "from",
        "are",
        "we",
        "i",
        "me",
        "my",
        "you",
        "your",
        "please",
        "can",
        "could",
        "would",
        "should",
        "do",
        "does",
        "so",
        "but",
        "if",
        "into",
        "when",
        "then",
        "there",
        "its",
        "was",
        "were",
        "have",
        "has",
        "use",
        "uses",
        "using",
        "guides",
    }
)


def extract_keywords(text: str) -> list[str]:
    """Return the distinct significant words of ``text`` in first-seen order."""
    seen: set[str] = set()
    keywords: list[str] = []
    for token in _TOKENIZE_PATTERN.findall(text.lower()):
        if len(token) <= 1 or token in STOPWORDS or token in seen:
            continue
        seen.add(token)
        keywords.append(token)
    return keywords


def jaccard_similarity(left: Iterable[str], right: Iterable[str]) -> float:
    """Jaccard index of two word collections; 0.0 when both are empty."""
    a = set(left)
    b = set(right)
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


__all__ = ["STOPWORDS", "extract_keywords", "jaccard_similarity"]

"""Name similarity strategies and normalization for entity resolution."""

from __future__ import annotations

import re
from typing import Protocol

# Trailing brand suffixes removed before brand comparison ("Laura Geller New York" == "Laura Geller")
_BRAND_SUFFIXES = (
    "new york",
    "ny",
    "usa",
    "united states",
    "inc",
    "llc",
    "ltd",
    "corp",
    "company",
    "co",
    "beauty",
    "cosmetics",
    "skincare",
    "labs",
    "laboratory",
)

_PUNCT_RE = re.compile(r"[^\w\s]")
_SPACE_RE = re.compile(r"\s+")


def tokenize(name: str | None) -> list[str]:
    """Lowercase, strip punctuation and split into tokens (order kept, duplicates kept)."""
    if not name or not name.strip():
        return []
    s = _PUNCT_RE.sub(" ", name.strip().lower())
    return [t for t in _SPACE_RE.split(s) if t]


def normalize_name(name: str | None) -> str:
    """Space-joined token form of a name; used for storage and prefiltering."""
    return " ".join(tokenize(name))


def normalize_brand(brand: str | None) -> str:
    """Normalize a brand for equality checks.

    - Lowercase, strip punctuation, collapse whitespace
    - Repeatedly remove trailing location/corporate suffixes
    """
    s = normalize_name(brand)
    prev = None
    while prev != s:
        prev = s
        for suffix in _BRAND_SUFFIXES:
            if s.endswith(" " + suffix):
                s = s[: -len(suffix) - 1].strip()
    return s


def token_set_similarity(a: str | None, b: str | None) -> float:
    """Jaccard overlap |A∩B| / |A∪B| of the two names' token sets."""
    tokens_a = set(tokenize(a))
    tokens_b = set(tokenize(b))
    if not tokens_a or not tokens_b:
        return 0.0
    return len(tokens_a & tokens_b) / len(tokens_a | tokens_b)


class SimilarityStrategy(Protocol):
    """Pluggable name similarity: ``score(a, b)`` returns a value in [0, 1]."""

    def score(self, a: str, b: str) -> float: ...


class TokenSetSimilarity:
    """Default strategy: normalized token-set (Jaccard) overlap."""

    def score(self, a: str, b: str) -> float:
        return token_set_similarity(a, b)

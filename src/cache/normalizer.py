# src/cache/normalizer.py — v1
"""Question text canonicalization for fingerprinting.

Lower-cases, strips sentence punctuation and quotes, collapses whitespace.
Purely numeric questions get a ``num_`` prefix so they live in their own
key space. No stemming and no locale awareness.
"""

from __future__ import annotations

import re

from answercache.cache.errors import InvalidInputError

NUMERIC_PREFIX = "num_"

# Sentence punctuation plus ASCII and typographic quotes.
_PUNCTUATION = re.compile(r"[.,/#!?$%^&*;:{}=\-_`~()\"'‘’“”«»]")
_WHITESPACE = re.compile(r"\s+")
_NUMERIC = re.compile(r"[0-9]+")


def normalize(text: object) -> str:
    """Return the comparison-stable form of ``text``.

    Raises:
        InvalidInputError: If ``text`` is not a string, or nothing is left
            after normalization (e.g. only punctuation and whitespace).
    """
    if not isinstance(text, str):
        raise InvalidInputError(f"expected str, got {type(text).__name__}")

    normalized = text.lower().strip()
    normalized = _PUNCTUATION.sub("", normalized)
    normalized = _WHITESPACE.sub(" ", normalized).strip()

    if not normalized:
        raise InvalidInputError("empty after normalization")

    if _NUMERIC.fullmatch(normalized):
        return f"{NUMERIC_PREFIX}{normalized}"
    return normalized

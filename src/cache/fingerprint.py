# src/cache/fingerprint.py — v3
"""Deterministic question fingerprints.

SHA-256 over the normalized UTF-8 text, rendered as 64 hex characters.
No per-process salt: the same question maps to the same key everywhere.
"""

from __future__ import annotations

import hashlib

from answercache.cache.errors import InvalidInputError
from answercache.cache.normalizer import normalize

# Marker for inputs that normalize to nothing (e.g. "???" or "...").
EMPTY_MARKER = "__answercache_empty__"


def fingerprint(text: object) -> str:
    """Compute the fingerprint key of a question.

    Inputs made only of punctuation/whitespace still get a stable key,
    derived from a fixed marker and the original length, so that "?" and
    "???" do not collide while repeats of either converge.

    Raises:
        InvalidInputError: If ``text`` is not a string.
    """
    try:
        normalized = normalize(text)
    except InvalidInputError:
        if not isinstance(text, str):
            raise
        return _digest(f"{EMPTY_MARKER}:{len(text)}")
    return _digest(normalized)


def _digest(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def is_fingerprint(value: str) -> bool:
    """True if ``value`` looks like a key produced by fingerprint()."""
    if len(value) != 64:
        return False
    try:
        int(value, 16)
    except ValueError:
        return False
    return True

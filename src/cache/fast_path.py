# src/cache/fast_path.py — v1
"""Small LRU cache of resolved lookups keyed by the raw question text.

Literal repeats of a question skip normalization, hashing and the
similarity scan. Entries are disposable: a miss here just falls through
to the store, and a size of 0 disables the layer.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable

from cachetools import LRUCache

from answercache.cache.models import FastPathEntry

logger = logging.getLogger(__name__)

FastPathKey = tuple[str, str | None]


class FastPathCache:
    """Thread-safe wrapper around a cachetools LRUCache."""

    def __init__(self, maxsize: int = 500) -> None:
        self.maxsize = max(0, maxsize)
        self._cache: LRUCache[FastPathKey, FastPathEntry] | None = (
            LRUCache(maxsize=self.maxsize) if self.maxsize else None
        )
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return self._cache is not None

    def __len__(self) -> int:
        if self._cache is None:
            return 0
        with self._lock:
            return len(self._cache)

    @staticmethod
    def make_key(question: str, context_tag: str | None) -> FastPathKey:
        return (question, context_tag or None)

    def get(self, question: str, context_tag: str | None = None) -> FastPathEntry | None:
        if self._cache is None:
            return None
        with self._lock:
            return self._cache.get(self.make_key(question, context_tag))

    def put(
        self, question: str, context_tag: str | None, entry: FastPathEntry,
    ) -> None:
        if self._cache is None:
            return
        with self._lock:
            self._cache[self.make_key(question, context_tag)] = entry

    def discard(self, question: str, context_tag: str | None = None) -> None:
        if self._cache is None:
            return
        with self._lock:
            self._cache.pop(self.make_key(question, context_tag), None)

    def invalidate_fingerprints(self, fingerprints: Iterable[str]) -> int:
        """Drop every entry that resolves to one of ``fingerprints``."""
        if self._cache is None:
            return 0
        doomed = set(fingerprints)
        if not doomed:
            return 0
        with self._lock:
            keys = [k for k, v in self._cache.items() if v.fingerprint in doomed]
            for key in keys:
                del self._cache[key]
        if keys:
            logger.debug("Fast path: invalidated %d entries", len(keys))
        return len(keys)

    def invalidate_shadowed(self, fingerprint: str) -> int:
        """Drop entries for queries hashing to ``fingerprint`` that resolved elsewhere.

        Called after a record is stored under ``fingerprint``: those queries
        now have an exact match.
        """
        if self._cache is None:
            return 0
        with self._lock:
            keys = [
                k for k, v in self._cache.items()
                if v.query_fingerprint == fingerprint and v.fingerprint != fingerprint
            ]
            for key in keys:
                del self._cache[key]
        return len(keys)

    def clear(self) -> None:
        if self._cache is None:
            return
        with self._lock:
            self._cache.clear()

# src/cache/store.py — v1
"""Authoritative in-memory record store with batch LRU eviction.

All mutation of the record mapping happens under a single lock owned by
the store. Lookups read a snapshot of the candidate list and only take
the lock to bump access stats. Every method that hands a record to a
caller returns a deep copy.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta
from typing import NamedTuple

from answercache.cache.errors import CacheValidationError
from answercache.cache.fingerprint import fingerprint
from answercache.cache.models import CacheRecord, RefreshFailure, utcnow

logger = logging.getLogger(__name__)

DEFAULT_MAX_SIZE = 10_000
DEFAULT_HIGH_WATER = 9_000
DEFAULT_TARGET_SIZE = 7_500
DEFAULT_STALENESS_DAYS = 30.0
DEFAULT_DUPLICATE_WINDOW_S = 5.0
DEFAULT_MAX_QUESTION_LENGTH = 10_000


class ScanCandidate(NamedTuple):
    """Immutable view of the fields the similarity scan needs."""

    fingerprint: str
    question_text: str
    context_tag: str | None


class StoreSnapshot(NamedTuple):
    """Serialized records staged for a flush, tagged with the store version."""

    documents: dict[str, dict]
    version: int


class CacheStore:
    """Fingerprint → CacheRecord mapping plus dirty tracking and eviction."""

    def __init__(
        self,
        max_size: int = DEFAULT_MAX_SIZE,
        high_water: int = DEFAULT_HIGH_WATER,
        target_size: int = DEFAULT_TARGET_SIZE,
        staleness_days: float = DEFAULT_STALENESS_DAYS,
        duplicate_window_seconds: float = DEFAULT_DUPLICATE_WINDOW_S,
        max_question_length: int = DEFAULT_MAX_QUESTION_LENGTH,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if not 0 <= target_size < high_water <= max_size:
            raise ValueError(
                "Expected 0 <= target_size < high_water <= max_size, got "
                f"{target_size}, {high_water}, {max_size}"
            )
        self.max_size = max_size
        self.high_water = high_water
        self.target_size = target_size
        self.staleness = timedelta(days=staleness_days)
        self.duplicate_window = timedelta(seconds=duplicate_window_seconds)
        self.max_question_length = max_question_length
        self._clock = clock or utcnow

        self._records: dict[str, CacheRecord] = {}
        self._lock = threading.Lock()
        self._dirty = False
        self._version = 0
        self._size = 0

    # --- Bookkeeping ---

    def now(self) -> datetime:
        return self._clock()

    @property
    def size(self) -> int:
        """Record count. Self-heals if the cached counter drifted."""
        actual = len(self._records)
        if self._size != actual:
            logger.warning(
                "Correcting cache size inconsistency: tracked=%d, actual=%d",
                self._size, actual,
            )
            self._size = actual
        return actual

    @property
    def dirty(self) -> bool:
        return self._dirty

    @property
    def version(self) -> int:
        return self._version

    def __len__(self) -> int:
        return self.size

    def __contains__(self, key: object) -> bool:
        return key in self._records

    def _mark_dirty(self) -> None:
        # Caller holds the lock.
        self._dirty = True
        self._version += 1
        self._size = len(self._records)

    def is_stale(self, record: CacheRecord, now: datetime | None = None) -> bool:
        """True when the record is older than the refresh threshold."""
        now = now or self.now()
        return now - record.created_at > self.staleness

    # --- Read path ---

    def get(self, key: str) -> CacheRecord | None:
        """Copy of the record for ``key`` without touching access stats."""
        record = self._records.get(key)
        return record.model_copy(deep=True) if record is not None else None

    def touch(self, key: str) -> CacheRecord | None:
        """Register a hit on ``key`` and return a copy of the updated record."""
        with self._lock:
            record = self._records.get(key)
            if record is None:
                return None
            record.access_count += 1
            record.last_accessed_at = max(self.now(), record.created_at)
            self._mark_dirty()
            return record.model_copy(deep=True)

    def candidates(self) -> list[ScanCandidate]:
        """Snapshot of scan candidates; the scan itself runs unlocked."""
        with self._lock:
            return [
                ScanCandidate(r.fingerprint, r.question_text, r.context_tag)
                for r in self._records.values()
            ]

    def records(self) -> list[CacheRecord]:
        """Copies of every record (for stats and tooling)."""
        with self._lock:
            return [r.model_copy(deep=True) for r in self._records.values()]

    # --- Write path ---

    def validate(
        self, question: object, answer: object, context_tag: object = None,
    ) -> tuple[str, str, str | None]:
        """Trim and check insert input.

        Raises:
            CacheValidationError: On non-string, blank or overlong input.
        """
        if not isinstance(question, str) or not question.strip():
            raise CacheValidationError("question", "must be a non-empty string")
        if not isinstance(answer, str) or not answer.strip():
            raise CacheValidationError("answer", "must be a non-empty string")
        question = question.strip()
        if len(question) > self.max_question_length:
            raise CacheValidationError(
                "question",
                f"length {len(question)} exceeds {self.max_question_length}",
            )
        if context_tag is not None and not isinstance(context_tag, str):
            raise CacheValidationError("context_tag", "must be a string")
        tag = context_tag.strip() if context_tag else None
        return question, answer.strip(), tag or None

    def insert(
        self,
        question: object,
        answer: object,
        context_tag: object = None,
        on_evicted: Callable[[list[str]], object] | None = None,
    ) -> CacheRecord | None:
        """Create or replace the record for ``question``.

        When the store is at capacity, least-recently-used records are
        evicted first and their fingerprints passed to ``on_evicted`` once
        the lock is released.

        Returns:
            Copy of the stored record, or None when an existing record for
            the same fingerprint was created inside the duplicate window.

        Raises:
            CacheValidationError: On invalid input.
        """
        question, answer, tag = self.validate(question, answer, context_tag)
        key = fingerprint(question)
        evicted: list[str] = []

        with self._lock:
            now = self.now()
            existing = self._records.get(key)
            if existing is not None and now - existing.created_at < self.duplicate_window:
                logger.debug(
                    "Discarding duplicate in-flight write for %s", key[:12],
                )
                return None

            if existing is None and len(self._records) >= self.max_size:
                evicted = self._evict_locked(self.target_size, reason="capacity")

            record = CacheRecord(
                fingerprint=key,
                question_text=question,
                answer_text=answer,
                context_tag=tag,
                created_at=now,
                last_accessed_at=now,
                access_count=1,
            )
            self._records[key] = record
            self._mark_dirty()

        if evicted and on_evicted is not None:
            on_evicted(evicted)
        logger.debug(
            "Cached %s: %r", key[:12], question[:30],
        )
        return record.model_copy(deep=True)

    def record_refresh_failure(self, key: str, reason: str) -> CacheRecord | None:
        """Attach or bump the refresh-failure note of a record."""
        with self._lock:
            record = self._records.get(key)
            if record is None:
                return None
            previous = record.refresh_failure
            record.refresh_failure = RefreshFailure(
                reason=reason,
                timestamp=self.now(),
                count=previous.count + 1 if previous else 1,
            )
            self._mark_dirty()
            return record.model_copy(deep=True)

    def remove(self, key: str) -> bool:
        with self._lock:
            if self._records.pop(key, None) is None:
                return False
            self._mark_dirty()
            return True

    def clear(self) -> int:
        """Drop every record. Returns the number removed."""
        with self._lock:
            removed = len(self._records)
            self._records.clear()
            self._mark_dirty()
        return removed

    # --- Eviction ---

    def evict_if_needed(self) -> list[str]:
        """Evict down to target_size when size exceeds the high-water mark."""
        with self._lock:
            if len(self._records) <= self.high_water:
                return []
            return self._evict_locked(self.target_size, reason="high-water")

    def evict(self, target_size: int | None = None) -> list[str]:
        """Evict least-recently-accessed records until ``target_size`` remain.

        A no-op (dirty flag untouched) when already at or below target.
        """
        target = self.target_size if target_size is None else max(0, target_size)
        with self._lock:
            return self._evict_locked(target, reason="explicit")

    def _evict_locked(self, target: int, reason: str) -> list[str]:
        excess = len(self._records) - target
        if excess <= 0:
            return []
        # Oldest access first; fingerprint breaks ties deterministically.
        ordered = sorted(
            self._records.values(),
            key=lambda r: (r.last_accessed_at, r.fingerprint),
        )
        removed = [r.fingerprint for r in ordered[:excess]]
        for key in removed:
            del self._records[key]
        self._mark_dirty()
        logger.info(
            "LRU eviction (%s): removed %d records, %d remain (target %d)",
            reason, len(removed), len(self._records), target,
        )
        return removed

    def prune_stale(self, max_age_days: float, min_accesses: int) -> list[str]:
        """Remove records older than ``max_age_days`` with few hits."""
        cutoff = timedelta(days=max_age_days)
        with self._lock:
            now = self.now()
            removed = [
                r.fingerprint
                for r in self._records.values()
                if now - r.created_at > cutoff and r.access_count < min_accesses
            ]
            for key in removed:
                del self._records[key]
            if removed:
                self._mark_dirty()
        if removed:
            logger.info("Pruned %d aged, rarely used records", len(removed))
        return removed

    # --- Persistence hooks ---

    def snapshot(self) -> StoreSnapshot:
        """Serialize all records under the lock for a subsequent flush."""
        with self._lock:
            documents = {
                key: record.to_document() for key, record in self._records.items()
            }
            return StoreSnapshot(documents=documents, version=self._version)

    def mark_clean(self, version: int) -> bool:
        """Clear the dirty flag if nothing changed since ``version`` was staged."""
        with self._lock:
            if version != self._version:
                return False
            self._dirty = False
            return True

    def replace_all(
        self, records: Iterable[CacheRecord], dirty: bool = False,
    ) -> int:
        """Hydrate from persisted records.

        The store is left clean unless ``dirty`` says the loaded data needs
        rewriting (e.g. records were re-keyed or dropped).
        """
        with self._lock:
            self._records = {r.fingerprint: r for r in records}
            self._size = len(self._records)
            self._version += 1
            self._dirty = dirty
            return self._size

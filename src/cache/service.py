# src/cache/service.py — v1
"""ResponseCache: the object the message dispatcher talks to.

Usage:
    cache = create_response_cache(settings)
    await cache.start()
    hit = cache.find_in_cache("What is Rust?")
    if hit is None:
        answer = await backend.ask(...)
        cache.add_to_cache("What is Rust?", answer)
    ...
    await cache.close()

Lookups and inserts never raise: any failure degrades to a miss or a
rejected write and is visible only through logs and stats.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterator
from contextlib import contextmanager

from answercache.cache.errors import CacheError, CacheValidationError
from answercache.cache.fast_path import FastPathCache
from answercache.cache.fingerprint import fingerprint
from answercache.cache.matcher import DEFAULT_SIMILARITY_THRESHOLD, Matcher
from answercache.cache.models import (
    CacheLookupResult,
    CacheMetrics,
    CacheStats,
    FastPathEntry,
    HitRateStats,
)
from answercache.cache.persistence import PersistenceManager
from answercache.cache.scheduler import (
    DEFAULT_INTERVAL_S,
    DEFAULT_WRITE_WINDOW_S,
    MaintenanceReport,
    MaintenanceScheduler,
)
from answercache.cache.store import CacheStore
from answercache.core.similarity import DEFAULT_TOKEN_CAP
from answercache.logging.context import reset_operation_context, set_operation_context

logger = logging.getLogger(__name__)


@contextmanager
def _operation(name: str) -> Iterator[None]:
    token = set_operation_context(name)
    try:
        yield
    finally:
        reset_operation_context(token)


class ResponseCache:
    """Fingerprint cache in front of a question-answering backend."""

    def __init__(
        self,
        store: CacheStore,
        persistence: PersistenceManager | None = None,
        fast_path_size: int = 500,
        similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
        token_cap: int = DEFAULT_TOKEN_CAP,
        maintenance_interval_seconds: float = DEFAULT_INTERVAL_S,
        write_flush_window_seconds: float = DEFAULT_WRITE_WINDOW_S,
        prune_max_age_days: float = 90.0,
        prune_min_accesses: int = 5,
        enabled: bool = True,
    ) -> None:
        self.enabled = enabled
        self.store = store
        self.persistence = persistence
        self.metrics = CacheMetrics()
        self.fast_path = FastPathCache(maxsize=fast_path_size)
        self.matcher = Matcher(
            store,
            fast_path=self.fast_path,
            metrics=self.metrics,
            similarity_threshold=similarity_threshold,
            token_cap=token_cap,
        )
        self.scheduler = MaintenanceScheduler(
            store,
            persistence,
            metrics=self.metrics,
            interval_seconds=maintenance_interval_seconds,
            write_flush_window_seconds=write_flush_window_seconds,
            on_evicted=self.fast_path.invalidate_fingerprints,
        )
        self.prune_max_age_days = prune_max_age_days
        self.prune_min_accesses = prune_min_accesses

        if not enabled:
            logger.info("Response cache is disabled; cache operations are no-ops")

    @property
    def size(self) -> int:
        return self.store.size

    # --- Lifecycle ---

    def load(self) -> int:
        """Hydrate the store from disk (no-op without persistence)."""
        if not self.enabled or self.persistence is None:
            return 0
        return self.persistence.load()

    async def start(self) -> None:
        """Load persisted state and start periodic maintenance."""
        if not self.enabled:
            return
        await asyncio.to_thread(self.load)
        self.scheduler.start()

    async def close(self) -> None:
        """Stop maintenance and flush pending changes."""
        if not self.enabled:
            return
        await self.scheduler.stop(final_flush=True)

    async def __aenter__(self) -> ResponseCache:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # --- Lookup / insert ---

    def find_in_cache(
        self, question: object, context_tag: object = None,
    ) -> CacheLookupResult | None:
        """Return a hit for ``question`` or None. Never raises."""
        if not self.enabled:
            return None
        with _operation("find"):
            try:
                return self.matcher.find(question, context_tag)
            except CacheError as e:
                self.metrics.incr("errors")
                logger.warning("Cache lookup degraded to miss: %s", e)
            except Exception:
                self.metrics.incr("errors")
                logger.warning("Unexpected cache lookup failure", exc_info=True)
            return None

    def add_to_cache(
        self, question: object, answer: object, context_tag: object = None,
    ) -> bool:
        """Record an answer. Returns False if nothing was stored. Never raises."""
        if not self.enabled:
            return False
        with _operation("add"):
            try:
                record = self.store.insert(
                    question, answer, context_tag, on_evicted=self._after_removal,
                )
            except CacheValidationError as e:
                self.metrics.incr("validation_failures")
                logger.warning("Invalid question or answer provided to add_to_cache: %s", e)
                return False
            except Exception:
                self.metrics.incr("errors")
                logger.warning("Unexpected cache insert failure", exc_info=True)
                return False

            if record is None:
                self.metrics.incr("duplicates_rejected")
                return False

            self.fast_path.invalidate_shadowed(record.fingerprint)
            self.fast_path.put(
                question,  # type: ignore[arg-type]
                record.context_tag,
                FastPathEntry(
                    fingerprint=record.fingerprint,
                    query_fingerprint=record.fingerprint,
                    question_text=record.question_text,
                    answer_text=record.answer_text,
                    context_tag=record.context_tag,
                ),
            )
            self.scheduler.notify_write()
            return True

    def record_refresh_failure(self, question: object, reason: str) -> bool:
        """Note that refreshing the stale answer for ``question`` failed.

        The record keeps being served; the note only feeds stats/logs.
        """
        if not self.enabled or not isinstance(question, str) or not question.strip():
            return False
        key = fingerprint(question)
        record = self.store.record_refresh_failure(key, reason)
        if record is None:
            return False
        logger.warning(
            "Refresh failed for %s (%d times): %s",
            key[:12], record.refresh_failure.count, reason,  # type: ignore[union-attr]
        )
        return True

    # --- Maintenance ---

    async def maintain(self) -> MaintenanceReport:
        """Flush if dirty, then evict if over the high-water mark."""
        if not self.enabled:
            return MaintenanceReport(skipped=True)
        with _operation("maintain"):
            return await self.scheduler.run_once_async()

    def evict(self, target_size: int | None = None) -> int:
        """Evict least-recently-used records down to ``target_size``."""
        if not self.enabled:
            return 0
        removed = self.store.evict(target_size)
        self._after_removal(removed)
        return len(removed)

    def prune_stale(
        self, max_age_days: float | None = None, min_accesses: int | None = None,
    ) -> int:
        """Remove old records that were rarely used."""
        if not self.enabled:
            return 0
        removed = self.store.prune_stale(
            self.prune_max_age_days if max_age_days is None else max_age_days,
            self.prune_min_accesses if min_accesses is None else min_accesses,
        )
        self._after_removal(removed)
        return len(removed)

    def clear_cache(self) -> int:
        """Drop every record and fast-path entry."""
        if not self.enabled:
            return 0
        removed = self.store.clear()
        self.fast_path.clear()
        logger.info("Cache cleared (%d records)", removed)
        return removed

    def reset_metrics(self) -> None:
        self.metrics.reset()
        logger.info("Cache metrics have been reset")

    def _after_removal(self, removed: list[str]) -> None:
        if removed:
            self.metrics.incr("evictions", len(removed))
            self.fast_path.invalidate_fingerprints(removed)

    # --- Stats ---

    def get_stats(self) -> CacheStats:
        if not self.enabled:
            return CacheStats(enabled=False)

        records = self.store.records()
        now = self.store.now()
        stats = CacheStats(
            entry_count=self.store.size,
            dirty=self.store.dirty,
            fast_path_entries=len(self.fast_path),
            counters=self.metrics.as_dict(),
        )
        if not records:
            return stats

        most = max(records, key=lambda r: r.access_count)
        stats.total_accesses = sum(r.access_count for r in records)
        stats.average_accesses_per_entry = stats.total_accesses / len(records)
        stats.most_accessed_count = most.access_count
        stats.most_accessed_question = most.question_text[:50]
        stats.oldest_entry = min(r.created_at for r in records)
        stats.newest_entry = max(r.created_at for r in records)
        stats.stale_entries = sum(1 for r in records if self.store.is_stale(r, now))
        return stats

    def get_hit_rate_stats(self) -> HitRateStats:
        if not self.enabled:
            return HitRateStats(enabled=False)

        counters = self.metrics.as_dict()
        hits = counters["hits"]
        total = hits + counters["misses"]
        uptime = (self.store.now() - self.metrics.last_reset).total_seconds() / 86400
        return HitRateStats(
            total_lookups=total,
            hit_rate=hits / total if total else 0.0,
            exact_match_rate=counters["exact_matches"] / hits if hits else 0.0,
            similarity_match_rate=counters["similarity_matches"] / hits if hits else 0.0,
            fast_path_rate=counters["fast_path_hits"] / hits if hits else 0.0,
            uptime_days=max(0.0, uptime),
        )

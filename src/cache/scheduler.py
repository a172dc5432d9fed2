# src/cache/scheduler.py — v1
"""Maintenance scheduler: flush-if-dirty, then evict-if-over-threshold.

Runs on a fixed interval as an asyncio task, and opportunistically after
writes (at most once per window). Disk work goes through
``asyncio.to_thread`` so lookups on the event loop are never stuck behind
a flush.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from answercache.cache.errors import PersistenceError
from answercache.cache.models import CacheMetrics
from answercache.cache.persistence import PersistenceManager
from answercache.cache.store import CacheStore

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_S = 300.0
DEFAULT_WRITE_WINDOW_S = 30.0


@dataclass
class MaintenanceReport:
    """Outcome of one maintenance pass."""

    flushed: bool = False
    evicted: int = 0
    skipped: bool = False
    error: str | None = None


class MaintenanceScheduler:
    """Owns the periodic and write-triggered maintenance of one store."""

    def __init__(
        self,
        store: CacheStore,
        persistence: PersistenceManager | None,
        metrics: CacheMetrics | None = None,
        interval_seconds: float = DEFAULT_INTERVAL_S,
        write_flush_window_seconds: float = DEFAULT_WRITE_WINDOW_S,
        on_evicted: Callable[[list[str]], object] | None = None,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._persistence = persistence
        self._metrics = metrics if metrics is not None else CacheMetrics()
        self.interval_seconds = interval_seconds
        self.write_flush_window_seconds = write_flush_window_seconds
        self._on_evicted = on_evicted
        self._monotonic = monotonic

        self._run_lock = threading.Lock()
        self._task: asyncio.Task | None = None
        self._pending: asyncio.Task | None = None
        self._last_write_run: float | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # --- One pass ---

    def run_once(self) -> MaintenanceReport:
        """Flush if dirty, then evict if over the high-water mark.

        Safe to call concurrently: a pass already in progress turns this
        call into a no-op. Persistence failures are logged and counted;
        the store stays dirty so the next pass retries.
        """
        if not self._run_lock.acquire(blocking=False):
            logger.debug("Maintenance already running, skipping")
            return MaintenanceReport(skipped=True)

        try:
            report = MaintenanceReport()
            _ = self._store.size  # self-heals a drifted counter

            try:
                report.flushed = self._flush()
            except PersistenceError as e:
                self._metrics.incr("save_failures")
                self._metrics.incr("errors")
                report.error = str(e)
                logger.error("Scheduled cache save failed, will retry: %s", e)
            else:
                if report.flushed:
                    self._metrics.incr("saves")

            evicted = self._store.evict_if_needed()
            if evicted:
                report.evicted = len(evicted)
                self._metrics.incr("evictions", len(evicted))
                if self._on_evicted is not None:
                    self._on_evicted(evicted)

            return report
        finally:
            self._run_lock.release()

    def _flush(self) -> bool:
        if self._persistence is None:
            return False
        return self._persistence.flush()

    async def run_once_async(self) -> MaintenanceReport:
        return await asyncio.to_thread(self.run_once)

    # --- Scheduling ---

    def start(self) -> None:
        """Start the periodic task on the running event loop."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._loop(), name="answercache-maintenance",
        )
        logger.info(
            "Cache maintenance every %.0f seconds", self.interval_seconds,
        )

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.run_once_async()
            except Exception:
                logger.exception("Unexpected error during cache maintenance")

    def notify_write(self) -> bool:
        """Schedule an opportunistic pass after a write, once per window.

        Never runs maintenance inline. Without a running event loop the
        write is left to the periodic pass.

        Returns:
            True if a pass was scheduled.
        """
        now = self._monotonic()
        if (
            self._last_write_run is not None
            and now - self._last_write_run < self.write_flush_window_seconds
        ):
            return False
        if self._pending is not None and not self._pending.done():
            return False
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return False

        self._last_write_run = now
        self._pending = loop.create_task(self.run_once_async())
        self._pending.add_done_callback(_log_task_failure)
        return True

    async def stop(self, final_flush: bool = True) -> None:
        """Cancel the periodic task and flush pending changes."""
        for task in (self._task, self._pending):
            if task is not None and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._task = None
        self._pending = None

        if final_flush:
            try:
                flushed = await asyncio.to_thread(self._flush)
            except PersistenceError as e:
                self._metrics.incr("save_failures")
                self._metrics.incr("errors")
                logger.error("Final cache save failed: %s", e)
            else:
                if flushed:
                    self._metrics.incr("saves")
                    logger.info("Cache saved on shutdown")


def _log_task_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(
            "Write-triggered cache maintenance failed", exc_info=exc,
        )

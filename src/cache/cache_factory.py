# src/cache/cache_factory.py — v3
"""Factory wiring a ResponseCache from Settings."""

from __future__ import annotations

from pathlib import Path

from answercache.cache.persistence import PersistenceManager
from answercache.cache.service import ResponseCache
from answercache.cache.store import CacheStore
from answercache.config.settings import Settings


def create_response_cache(
    settings: Settings | None = None,
    cache_file: Path | str | None = None,
    persist: bool = True,
) -> ResponseCache:
    """Build a ResponseCache and its store, persistence and scheduler.

    Args:
        settings: Application settings. Defaults to ``Settings()``.
        cache_file: Overrides ``settings.cache_file``.
        persist: False keeps the cache in memory only.

    Returns:
        A ResponseCache that still needs ``start()`` (or ``load()``).
    """
    settings = settings or Settings()

    store = CacheStore(
        max_size=settings.cache_max_size,
        high_water=settings.cache_high_water,
        target_size=settings.cache_target_size,
        staleness_days=settings.staleness_days,
        duplicate_window_seconds=settings.duplicate_window_seconds,
        max_question_length=settings.max_question_length,
    )

    persistence = None
    if persist:
        path = Path(cache_file).expanduser() if cache_file else settings.cache_path
        persistence = PersistenceManager(store, path)

    return ResponseCache(
        store,
        persistence,
        fast_path_size=settings.fast_path_size,
        similarity_threshold=settings.similarity_threshold,
        token_cap=settings.similarity_token_cap,
        maintenance_interval_seconds=settings.maintenance_interval_seconds,
        write_flush_window_seconds=settings.write_flush_window_seconds,
        prune_max_age_days=settings.prune_max_age_days,
        prune_min_accesses=settings.prune_min_accesses,
        enabled=settings.cache_enabled,
    )

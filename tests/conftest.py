# tests/conftest.py — v2
"""Shared test fixtures for all unit and integration tests.

Provides a controllable clock, temp cache files and small pre-filled stores.
No external dependencies — all I/O goes to tmp_path.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from answercache.cache.persistence import PersistenceManager
from answercache.cache.store import CacheStore


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


# === FIXTURES: Time ===


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# === FIXTURES: Stores ===


@pytest.fixture
def store(clock: FakeClock) -> CacheStore:
    """Empty store with default sizing and the fake clock."""
    return CacheStore(clock=clock)


@pytest.fixture
def small_store(clock: FakeClock) -> CacheStore:
    """Store sized for eviction tests: high-water 5, target 3."""
    return CacheStore(max_size=10, high_water=5, target_size=3, clock=clock)


@pytest.fixture
def filled_store(store: CacheStore, clock: FakeClock) -> CacheStore:
    """Store with three general-knowledge records, one second apart."""
    for question, answer in [
        ("What is Rust?", "A systems programming language."),
        ("How do I bake bread?", "Mix flour, water, yeast and salt, then bake."),
        ("What is the capital of France?", "Paris."),
    ]:
        store.insert(question, answer)
        clock.advance(seconds=1)
    return store


# === FIXTURES: Files ===


@pytest.fixture
def cache_file(tmp_path: Path) -> Path:
    return tmp_path / "cache" / "question_cache.json"


@pytest.fixture
def persistence(store: CacheStore, cache_file: Path) -> PersistenceManager:
    return PersistenceManager(store, cache_file)


# === FIXTURES: Logging ===


@pytest.fixture(autouse=True)
def _restore_package_logger():
    """Undo handlers/level changes made by setup_logging() in a test."""
    logger = logging.getLogger("answercache")
    handlers, level = list(logger.handlers), logger.level
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)

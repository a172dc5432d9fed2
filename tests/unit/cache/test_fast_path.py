# tests/unit/cache/test_fast_path.py — v1
"""Tests for cache/fast_path.py."""

from __future__ import annotations

from answercache.cache.fast_path import FastPathCache
from answercache.cache.models import FastPathEntry


def _entry(fp: str = "a" * 64, answer: str = "answer") -> FastPathEntry:
    return FastPathEntry(fingerprint=fp, question_text="q", answer_text=answer)


class TestFastPathCache:
    def test_put_get(self):
        cache = FastPathCache(maxsize=4)
        cache.put("What is Rust?", None, _entry())
        assert cache.get("What is Rust?").answer_text == "answer"
        assert len(cache) == 1

    def test_keyed_by_raw_text_and_tag(self):
        cache = FastPathCache(maxsize=4)
        cache.put("What is Rust?", "billing", _entry())
        assert cache.get("What is Rust?") is None
        assert cache.get("what is rust?", "billing") is None
        assert cache.get("What is Rust?", "billing") is not None

    def test_lru_bound(self):
        cache = FastPathCache(maxsize=2)
        cache.put("one", None, _entry("1" * 64))
        cache.put("two", None, _entry("2" * 64))
        cache.get("one")
        cache.put("three", None, _entry("3" * 64))
        assert cache.get("two") is None
        assert cache.get("one") is not None
        assert len(cache) == 2

    def test_size_zero_disables(self):
        cache = FastPathCache(maxsize=0)
        cache.put("q", None, _entry())
        assert cache.enabled is False
        assert cache.get("q") is None
        assert len(cache) == 0

    def test_invalidate_fingerprints(self):
        cache = FastPathCache(maxsize=8)
        cache.put("a", None, _entry("1" * 64))
        cache.put("b", "x", _entry("1" * 64))
        cache.put("c", None, _entry("2" * 64))
        assert cache.invalidate_fingerprints(["1" * 64]) == 2
        assert cache.get("c") is not None
        assert len(cache) == 1

    def test_discard_and_clear(self):
        cache = FastPathCache(maxsize=8)
        cache.put("a", None, _entry())
        cache.put("b", None, _entry())
        cache.discard("a")
        assert cache.get("a") is None
        cache.clear()
        assert len(cache) == 0

    def test_invalidate_shadowed(self):
        cache = FastPathCache(maxsize=8)
        similar = FastPathEntry(
            fingerprint="1" * 64, query_fingerprint="2" * 64,
            question_text="q", answer_text="old",
        )
        exact = FastPathEntry(
            fingerprint="2" * 64, query_fingerprint="2" * 64,
            question_text="q", answer_text="new",
        )
        cache.put("bake some bread", None, similar)
        cache.put("Bake some bread", "cooking", exact)
        cache.put("bake bread", None, _entry("1" * 64))

        assert cache.invalidate_shadowed("2" * 64) == 1
        assert cache.get("bake some bread") is None
        assert cache.get("Bake some bread", "cooking") is not None
        assert cache.get("bake bread") is not None

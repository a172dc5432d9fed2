# tests/unit/cache/test_models.py — v2
"""Tests for cache/models.py — records, lookup results and metrics."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from answercache.cache.fingerprint import fingerprint
from answercache.cache.models import (
    CacheLookupResult,
    CacheMetrics,
    CacheRecord,
    RefreshFailure,
    to_datetime,
    to_epoch_ms,
)

T0 = datetime(2026, 2, 7, 10, 0, tzinfo=timezone.utc)


def _record(**overrides) -> CacheRecord:
    data = dict(
        fingerprint=fingerprint("What is Rust?"),
        question_text="What is Rust?",
        answer_text="A systems language.",
        created_at=T0,
        last_accessed_at=T0,
    )
    data.update(overrides)
    return CacheRecord(**data)


class TestTimestampHelpers:
    def test_epoch_ms_round_trip(self):
        assert to_datetime(to_epoch_ms(T0)) == T0

    def test_naive_datetime_becomes_utc(self):
        assert to_datetime(datetime(2026, 1, 1)).tzinfo == timezone.utc

    def test_iso_string(self):
        assert to_datetime("2026-02-07T10:00:00Z") == T0


class TestCacheRecord:
    def test_defaults(self):
        r = _record()
        assert r.access_count == 1
        assert r.context_tag is None
        assert r.refresh_failure is None

    def test_blank_question_rejected(self):
        with pytest.raises(ValidationError):
            _record(question_text="   ")

    def test_last_accessed_never_before_created(self):
        r = _record(last_accessed_at=T0 - timedelta(days=1))
        assert r.last_accessed_at == T0

    def test_document_uses_persisted_keys(self):
        doc = _record(context_tag="billing").to_document()
        assert doc["questionHash"] == fingerprint("What is Rust?")
        assert doc["question"] == "What is Rust?"
        assert doc["answer"] == "A systems language."
        assert doc["contextTag"] == "billing"
        assert doc["timestamp"] == to_epoch_ms(T0)
        assert doc["lastAccessed"] == to_epoch_ms(T0)
        assert doc["accessCount"] == 1
        assert "refreshFailure" not in doc

    def test_parse_document(self):
        doc = _record().to_document()
        r = CacheRecord.model_validate(doc)
        assert r.created_at == T0
        assert r.question_text == "What is Rust?"

    def test_missing_last_accessed_defaults_to_created(self):
        doc = _record().to_document()
        del doc["lastAccessed"]
        r = CacheRecord.model_validate(doc)
        assert r.last_accessed_at == T0

    def test_refresh_failure_serialized(self):
        r = _record(refresh_failure=RefreshFailure(reason="timeout", timestamp=T0, count=2))
        doc = r.to_document()
        assert doc["refreshFailure"] == {
            "reason": "timeout", "timestamp": to_epoch_ms(T0), "count": 2,
        }

    def test_age_days(self):
        assert _record().age_days(T0 + timedelta(days=2)) == pytest.approx(2.0)


class TestCacheLookupResult:
    def test_shortcuts(self):
        r = CacheLookupResult(hit_level="exact", record=_record())
        assert r.answer == "A systems language."
        assert r.question == "What is Rust?"
        assert r.fingerprint == fingerprint("What is Rust?")
        assert r.similarity_score == 1.0
        assert r.needs_refresh is False


class TestCacheMetrics:
    def test_incr_and_as_dict(self):
        m = CacheMetrics()
        m.incr("hits")
        m.incr("evictions", 3)
        d = m.as_dict()
        assert d["hits"] == 1
        assert d["evictions"] == 3
        assert "last_reset" not in d
        assert "_lock" not in d

    def test_reset(self):
        m = CacheMetrics()
        before = m.last_reset
        m.incr("misses", 5)
        m.reset()
        assert m.misses == 0
        assert m.last_reset >= before

# tests/unit/cache/test_matcher.py — v1
"""Tests for cache/matcher.py — fast path, exact and similarity levels."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from answercache.cache.fast_path import FastPathCache
from answercache.cache.fingerprint import fingerprint
from answercache.cache.matcher import Matcher, context_allows
from answercache.cache.models import CacheMetrics


@pytest.fixture
def metrics() -> CacheMetrics:
    return CacheMetrics()


@pytest.fixture
def matcher(filled_store, metrics) -> Matcher:
    return Matcher(filled_store, fast_path=FastPathCache(maxsize=16), metrics=metrics)


class TestContextAllows:
    @pytest.mark.parametrize(
        "record_tag,query_tag,expected",
        [
            (None, None, True),
            ("billing", None, True),
            (None, "billing", True),
            ("billing", "billing", True),
            ("billing", "support", False),
        ],
    )
    def test_rules(self, record_tag, query_tag, expected):
        assert context_allows(record_tag, query_tag) is expected


class TestExactMatch:
    def test_exact_hit(self, matcher, metrics):
        result = matcher.find("what is rust")
        assert result is not None
        assert result.hit_level == "exact"
        assert result.answer == "A systems programming language."
        assert result.similarity_score == 1.0
        assert metrics.exact_matches == 1
        assert metrics.hits == 1

    def test_hit_updates_access_stats(self, matcher, filled_store):
        matcher.find("What is Rust?")
        assert filled_store.get(fingerprint("What is Rust?")).access_count == 2

    def test_result_is_a_copy(self, matcher, filled_store):
        result = matcher.find("What is Rust?")
        result.record.answer_text = "mutated"
        assert filled_store.get(result.fingerprint).answer_text != "mutated"

    def test_stale_hit_needs_refresh(self, matcher, clock):
        clock.advance(days=45)
        result = matcher.find("What is the capital of France?")
        assert result.needs_refresh is True


class TestSimilarityMatch:
    def test_near_duplicate_hit(self, matcher, metrics):
        result = matcher.find("how do I bake some bread")
        assert result is not None
        assert result.hit_level == "similarity"
        assert result.similarity_score >= 0.85
        assert result.question == "How do I bake bread?"
        assert metrics.similarity_matches == 1

    def test_length_band_excludes_candidates(self, matcher):
        long_query = "bake bread " + "with a lot of extra words " * 3
        assert matcher.find(long_query) is None

    def test_below_threshold_misses(self, matcher, metrics):
        assert matcher.find("How do I bake cake?") is None
        assert metrics.misses == 1

    def test_token_less_query_only_matches_exactly(self, matcher, filled_store):
        filled_store.insert("Is it?", "Yes.")
        assert matcher.find("is it") is not None
        assert matcher.find("is it so") is None

    def test_scoring_failure_skips_candidate(self, matcher, metrics):
        with patch(
            "answercache.cache.matcher.jaccard", side_effect=RuntimeError("boom"),
        ):
            assert matcher.find("how do I bake some bread") is None
        assert metrics.errors >= 1
        assert metrics.misses == 1


class TestMiss:
    def test_unknown_question(self, matcher, metrics):
        assert matcher.find("Who wrote Hamlet?") is None
        assert metrics.misses == 1
        assert metrics.hits == 0

    @pytest.mark.parametrize("question", [None, "", "   ", 42])
    def test_invalid_question(self, matcher, metrics, question):
        assert matcher.find(question) is None
        assert metrics.validation_failures == 1

    def test_invalid_tag(self, matcher, metrics):
        assert matcher.find("What is Rust?", 5) is None
        assert metrics.validation_failures == 1


class TestContextTag:
    def test_tagged_record_hidden_from_other_tag(self, matcher, filled_store):
        filled_store.insert("How do I reset my password?", "Use the link.", "billing")
        assert matcher.find("How do I reset my password?", "support") is None
        assert matcher.find("How do I reset my password?", "billing") is not None

    def test_untagged_query_sees_tagged_record(self, matcher, filled_store):
        filled_store.insert("How do I reset my password?", "Use the link.", "billing")
        assert matcher.find("How do I reset my password?") is not None

    def test_untagged_record_visible_to_tagged_query(self, matcher):
        result = matcher.find("What is Rust?", "billing")
        assert result is not None
        assert result.record.context_tag is None


class TestFastPath:
    def test_repeat_served_from_fast_path(self, matcher, metrics):
        matcher.find("how do I bake some bread")
        result = matcher.find("how do I bake some bread")
        assert result.hit_level == "fast_path"
        assert result.question == "How do I bake bread?"
        assert metrics.fast_path_hits == 1
        assert metrics.hits == 2

    def test_fast_path_hit_updates_store(self, matcher, filled_store):
        matcher.find("What is Rust?")
        matcher.find("What is Rust?")
        assert filled_store.get(fingerprint("What is Rust?")).access_count == 3

    def test_evicted_record_falls_through(self, matcher, filled_store, metrics):
        matcher.find("What is Rust?")
        filled_store.remove(fingerprint("What is Rust?"))
        assert matcher.find("What is Rust?") is None
        assert metrics.fast_path_hits == 0

    def test_fast_path_sees_overwritten_answer(self, matcher, filled_store, clock):
        matcher.find("What is Rust?")
        clock.advance(seconds=10)
        filled_store.insert("What is Rust?", "A memory-safe language.")
        result = matcher.find("What is Rust?")
        assert result.hit_level == "fast_path"
        assert result.answer == "A memory-safe language."

    def test_empty_fast_path_is_still_used(self, filled_store, metrics):
        fast_path = FastPathCache(maxsize=16)
        matcher = Matcher(filled_store, fast_path=fast_path, metrics=metrics)
        assert matcher._fast_path is fast_path
        matcher.find("What is Rust?")
        assert len(fast_path) == 1

    def test_retagged_record_not_served_to_other_tag(
        self, matcher, filled_store, clock, metrics,
    ):
        filled_store.insert("What is Erlang?", "A BEAM language.", "lang")
        assert matcher.find("What is Erlang?", "lang") is not None
        clock.advance(seconds=10)
        filled_store.insert("What is Erlang?", "A BEAM language.", "support")

        assert matcher.find("What is Erlang?", "lang") is None
        assert metrics.fast_path_hits == 0
        assert matcher.find("What is Erlang?", "support").hit_level == "exact"

# src/cache/matcher.py — v1
"""Lookup orchestration: fast path → exact fingerprint → similarity scan.

Checks levels in order and stops at the first hit. Every hit bumps the
matched record's access stats in the store, including fast-path hits,
so staleness and LRU order stay accurate.
"""

from __future__ import annotations

import logging
from typing import NamedTuple

from answercache.cache.errors import InternalComputationError
from answercache.cache.fast_path import FastPathCache
from answercache.cache.fingerprint import fingerprint
from answercache.cache.models import CacheLookupResult, CacheMetrics, CacheRecord, FastPathEntry, HitLevel
from answercache.cache.store import CacheStore, ScanCandidate
from answercache.core.similarity import DEFAULT_TOKEN_CAP, jaccard, tokenize

logger = logging.getLogger(__name__)

DEFAULT_SIMILARITY_THRESHOLD = 0.85
# Candidate question length must fall within this band of the query length.
LENGTH_BAND = (0.5, 1.5)


class ScanMatch(NamedTuple):
    fingerprint: str
    score: float


def context_allows(record_tag: str | None, query_tag: str | None) -> bool:
    """A tagged query only matches untagged records or records with its tag."""
    return query_tag is None or record_tag is None or record_tag == query_tag


class Matcher:
    """Resolve a question to a cached record, or None on a miss."""

    def __init__(
        self,
        store: CacheStore,
        fast_path: FastPathCache | None = None,
        metrics: CacheMetrics | None = None,
        similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
        token_cap: int = DEFAULT_TOKEN_CAP,
    ) -> None:
        self._store = store
        self._fast_path = fast_path if fast_path is not None else FastPathCache(maxsize=0)
        self._metrics = metrics if metrics is not None else CacheMetrics()
        self.similarity_threshold = similarity_threshold
        self.token_cap = token_cap

    def find(
        self, question: object, context_tag: object = None,
    ) -> CacheLookupResult | None:
        """Look up ``question`` (optionally narrowed to ``context_tag``)."""
        if not isinstance(question, str) or not question.strip():
            self._metrics.incr("validation_failures")
            return None
        if context_tag is not None and not isinstance(context_tag, str):
            self._metrics.incr("validation_failures")
            return None
        tag = context_tag.strip() if context_tag else None
        tag = tag or None

        # Level 0: literal repeat of a recent query
        result = self._find_fast_path(question, tag)
        if result is not None:
            return result

        # Level 1: exact fingerprint
        key = fingerprint(question)
        existing = self._store.get(key)
        if existing is not None and context_allows(existing.context_tag, tag):
            record = self._store.touch(key)
            if record is not None:
                return self._hit(question, key, tag, record, "exact", 1.0)

        # Level 2: near-duplicate scan
        match = self._scan(question, tag, exclude=key)
        if match is not None:
            record = self._store.touch(match.fingerprint)
            if record is not None:
                return self._hit(question, key, tag, record, "similarity", match.score)

        self._metrics.incr("misses")
        logger.debug("Cache miss for %r", question[:30])
        return None

    def _find_fast_path(
        self, question: str, tag: str | None,
    ) -> CacheLookupResult | None:
        entry = self._fast_path.get(question, tag)
        if entry is None:
            return None
        current = self._store.get(entry.fingerprint)
        if current is None or not context_allows(current.context_tag, tag):
            # Evicted, cleared or re-tagged since it was cached.
            self._fast_path.discard(question, tag)
            return None
        record = self._store.touch(entry.fingerprint)
        if record is None:
            self._fast_path.discard(question, tag)
            return None
        self._metrics.incr("hits")
        self._metrics.incr("fast_path_hits")
        return CacheLookupResult(
            hit_level="fast_path",
            record=record,
            similarity_score=entry.similarity_score,
            needs_refresh=self._store.is_stale(record),
        )

    def _hit(
        self,
        question: str,
        query_key: str,
        tag: str | None,
        record: CacheRecord,
        level: HitLevel,
        score: float,
    ) -> CacheLookupResult:
        self._metrics.incr("hits")
        self._metrics.incr("exact_matches" if level == "exact" else "similarity_matches")
        self._fast_path.put(
            question,
            tag,
            FastPathEntry(
                fingerprint=record.fingerprint,
                query_fingerprint=query_key,
                question_text=record.question_text,
                answer_text=record.answer_text,
                context_tag=record.context_tag,
                similarity_score=score,
                source_level="exact" if level == "exact" else "similarity",
            ),
        )
        logger.debug(
            "Cache %s hit for %r (score %.2f)", level, question[:30], score,
        )
        return CacheLookupResult(
            hit_level=level,
            record=record,
            similarity_score=score,
            needs_refresh=self._store.is_stale(record),
        )

    def _scan(
        self, question: str, tag: str | None, exclude: str | None = None,
    ) -> ScanMatch | None:
        """Best candidate at or above the similarity threshold."""
        query_tokens = tokenize(question)
        if not query_tokens:
            # Token-less queries only match exactly.
            return None

        query_len = len(question.strip())
        low, high = query_len * LENGTH_BAND[0], query_len * LENGTH_BAND[1]

        best: ScanMatch | None = None
        for candidate in self._store.candidates():
            if candidate.fingerprint == exclude:
                continue
            if not low <= len(candidate.question_text) <= high:
                continue
            if not context_allows(candidate.context_tag, tag):
                continue
            try:
                score = self._score(query_tokens, candidate)
            except InternalComputationError as exc:
                self._metrics.incr("errors")
                logger.warning("Skipping scan candidate: %s", exc)
                continue
            if score >= self.similarity_threshold and (best is None or score > best.score):
                best = ScanMatch(candidate.fingerprint, score)
                if score >= 1.0:
                    break
        return best

    def _score(
        self, query_tokens: frozenset[str], candidate: ScanCandidate,
    ) -> float:
        try:
            return jaccard(
                query_tokens,
                tokenize(candidate.question_text),
                token_cap=self.token_cap,
            )
        except Exception as exc:
            raise InternalComputationError(candidate.fingerprint, exc) from exc

# src/cache/models.py — v2
"""Cache domain models: CacheRecord, CacheLookupResult, FastPathEntry and
the stats reported to the admin dashboard.

Timestamps are timezone-aware UTC datetimes in memory and epoch
milliseconds in the persisted JSON document.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator

HitLevel = Literal["fast_path", "exact", "similarity"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_datetime(value: Any) -> Any:
    """Coerce epoch milliseconds or ISO strings to aware UTC datetimes."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return value
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def to_epoch_ms(value: datetime) -> int:
    return int(round(value.timestamp() * 1000))


class RefreshFailure(BaseModel):
    """Note left on a record when a background refresh of its answer failed."""

    model_config = ConfigDict(populate_by_name=True)

    reason: str
    timestamp: datetime
    count: int = 1

    @field_validator("timestamp", mode="before")
    @classmethod
    def coerce_timestamp(cls, v: Any) -> Any:
        return to_datetime(v)

    @field_serializer("timestamp", when_used="json")
    def serialize_timestamp(self, value: datetime) -> int:
        return to_epoch_ms(value)


class CacheRecord(BaseModel):
    """One cached question/answer pair.

    Field aliases are the persisted document keys.
    """

    model_config = ConfigDict(populate_by_name=True)

    fingerprint: str = Field(alias="questionHash", min_length=1)
    question_text: str = Field(alias="question", min_length=1)
    answer_text: str = Field(alias="answer", min_length=1)
    context_tag: str | None = Field(default=None, alias="contextTag")
    created_at: datetime = Field(alias="timestamp")
    last_accessed_at: datetime = Field(alias="lastAccessed")
    access_count: int = Field(default=1, alias="accessCount", ge=0)
    refresh_failure: RefreshFailure | None = Field(
        default=None, alias="refreshFailure"
    )

    @model_validator(mode="before")
    @classmethod
    def default_last_accessed(cls, data: Any) -> Any:
        # Older documents may lack lastAccessed; fall back to creation time.
        if isinstance(data, dict):
            if "lastAccessed" not in data and "last_accessed_at" not in data:
                created = data.get("timestamp", data.get("created_at"))
                if created is not None:
                    data = {**data, "lastAccessed": created}
        return data

    @field_validator("created_at", "last_accessed_at", mode="before")
    @classmethod
    def coerce_datetime(cls, v: Any) -> Any:
        return to_datetime(v)

    @field_validator("question_text", "answer_text")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v

    @model_validator(mode="after")
    def clamp_last_accessed(self) -> CacheRecord:
        if self.last_accessed_at < self.created_at:
            self.last_accessed_at = self.created_at
        return self

    @field_serializer("created_at", "last_accessed_at", when_used="json")
    def serialize_datetime(self, value: datetime) -> int:
        return to_epoch_ms(value)

    def to_document(self) -> dict[str, Any]:
        """Persisted JSON form (aliased keys, epoch-ms timestamps)."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def age_days(self, now: datetime) -> float:
        return max(0.0, (now - self.created_at).total_seconds() / 86400)


class CacheLookupResult(BaseModel):
    """A cache hit: a value copy of the matched record plus how it matched."""

    hit_level: HitLevel
    record: CacheRecord
    similarity_score: float = 1.0
    needs_refresh: bool = False

    @property
    def answer(self) -> str:
        return self.record.answer_text

    @property
    def question(self) -> str:
        return self.record.question_text

    @property
    def fingerprint(self) -> str:
        return self.record.fingerprint


class FastPathEntry(BaseModel):
    """Value held by the fast-path cache for a raw (question, context) key."""

    fingerprint: str
    # Fingerprint of the query text itself; differs from ``fingerprint`` on
    # similarity hits.
    query_fingerprint: str | None = None
    question_text: str
    answer_text: str
    context_tag: str | None = None
    similarity_score: float = 1.0
    source_level: Literal["exact", "similarity"] = "exact"
    cached_at: datetime = Field(default_factory=utcnow)


@dataclass
class CacheMetrics:
    """Mutable lookup/write counters, safe to bump from several threads."""

    hits: int = 0
    misses: int = 0
    fast_path_hits: int = 0
    exact_matches: int = 0
    similarity_matches: int = 0
    duplicates_rejected: int = 0
    validation_failures: int = 0
    errors: int = 0
    saves: int = 0
    save_failures: int = 0
    evictions: int = 0
    last_reset: datetime = field(default_factory=utcnow)
    _lock: threading.Lock = field(
        default_factory=threading.Lock, repr=False, compare=False
    )

    def incr(self, name: str, amount: int = 1) -> None:
        with self._lock:
            setattr(self, name, getattr(self, name) + amount)

    def reset(self) -> None:
        with self._lock:
            for f in fields(self):
                if f.name.startswith("_") or f.name == "last_reset":
                    continue
                setattr(self, f.name, 0)
            self.last_reset = utcnow()

    def as_dict(self) -> dict[str, int]:
        with self._lock:
            return {
                f.name: getattr(self, f.name)
                for f in fields(self)
                if not f.name.startswith("_") and f.name != "last_reset"
            }


class CacheStats(BaseModel):
    """Read-only snapshot for the admin dashboard."""

    enabled: bool = True
    entry_count: int = 0
    total_accesses: int = 0
    average_accesses_per_entry: float = 0.0
    most_accessed_count: int = 0
    most_accessed_question: str = ""
    oldest_entry: datetime | None = None
    newest_entry: datetime | None = None
    stale_entries: int = 0
    dirty: bool = False
    fast_path_entries: int = 0
    counters: dict[str, int] = Field(default_factory=dict)


class HitRateStats(BaseModel):
    """Hit-rate view of the counters."""

    enabled: bool = True
    total_lookups: int = 0
    hit_rate: float = 0.0
    exact_match_rate: float = 0.0
    similarity_match_rate: float = 0.0
    fast_path_rate: float = 0.0
    uptime_days: float = 0.0

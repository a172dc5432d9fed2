# src/cache/errors.py — v1
"""Closed error taxonomy for the cache engine.

Callers match on the three variants below. Lookups and inserts never let
them escape: validation failures become a miss or a rejected write,
persistence failures are logged and retried by maintenance, and
computation failures skip a single candidate during a scan.
"""

from __future__ import annotations

from pathlib import Path


class CacheError(Exception):
    """Base class for all cache engine errors."""


class CacheValidationError(CacheError):
    """Bad, empty or oversized input to a lookup or insert."""

    def __init__(self, field: str, reason: str) -> None:
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class InvalidInputError(CacheValidationError):
    """Text that cannot be normalized (not a string, or empty afterwards)."""

    def __init__(self, reason: str, field: str = "text") -> None:
        super().__init__(field, reason)


class PersistenceError(CacheError):
    """Flush or load I/O / serialization failure."""

    def __init__(
        self, path: Path | str, operation: str, cause: BaseException | None = None,
    ) -> None:
        self.path = Path(path)
        self.operation = operation
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Cache {operation} failed for {self.path}{detail}")


class InternalComputationError(CacheError):
    """Unexpected failure scoring or hashing a single scan candidate."""

    def __init__(self, fingerprint: str, cause: BaseException) -> None:
        self.fingerprint = fingerprint
        self.cause = cause
        super().__init__(
            f"Scoring failed for candidate {fingerprint[:12]}: {cause}"
        )

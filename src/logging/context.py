# src/logging/context.py — v2
"""Contextual logging support: attach request_id, user_id, context tag and
operation to log records emitted while a chat request is being served.
"""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

# Set per incoming chat message by the dispatcher.
_request_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "request_id", default=None
)
_user_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "user_id", default=None
)
_context_tag: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "context_tag", default=None
)
# Set by the cache service around each public operation.
_operation: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "operation", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    request_id: str | None = None
    user_id: str | None = None
    context_tag: str | None = None
    operation: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        request_id=_request_id.get(),
        user_id=_user_id.get(),
        context_tag=_context_tag.get(),
        operation=_operation.get(),
    )


def set_request_context(
    request_id: str, user_id: str | None = None, context_tag: str | None = None,
) -> None:
    """Set request-level context (called once per incoming message)."""
    _request_id.set(request_id)
    _user_id.set(user_id)
    _context_tag.set(context_tag)


def set_operation_context(operation: str | None) -> contextvars.Token:
    """Set the cache operation being executed.

    Returns the token so callers can restore the previous value.
    """
    return _operation.set(operation)


def reset_operation_context(token: contextvars.Token) -> None:
    """Restore the operation that was active before set_operation_context()."""
    _operation.reset(token)


def clear_context() -> None:
    """Reset all context variables."""
    _request_id.set(None)
    _user_id.set(None)
    _context_tag.set(None)
    _operation.set(None)

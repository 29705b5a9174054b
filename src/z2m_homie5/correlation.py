"""
Correlation ID tracking across the bridge's async operations.

Every device announcement and every routed MQTT message runs in its own
correlation scope so that log lines from one device's publish sequence can be
grouped together.
"""

from __future__ import annotations

import contextvars
import uuid
from collections.abc import Generator
from contextlib import contextmanager

__all__ = [
    "correlation_context",
    "ensure_correlation_id",
    "get_correlation_id",
]

_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "correlation_id",
    default=None,
)


def get_correlation_id() -> str | None:
    """Return the correlation ID of the current context, if any."""
    return _correlation_id.get()


@contextmanager
def correlation_context(correlation_id: str | None = None) -> Generator[str]:
    """
    Scope a correlation ID, restoring the previous one on exit.

    Args:
        correlation_id: ID to use, e.g. a Homie device id. A random hex id is
            generated when omitted.

    Yields:
        The correlation ID active inside the block
    """
    if correlation_id is None:
        correlation_id = uuid.uuid4().hex
    token = _correlation_id.set(correlation_id)
    try:
        yield correlation_id
    finally:
        _correlation_id.reset(token)


def ensure_correlation_id() -> str:
    """Set a fresh correlation ID unless one is already active, and return it."""
    current_id = _correlation_id.get()
    if current_id is None:
        current_id = uuid.uuid4().hex
        _ = _correlation_id.set(current_id)
    return current_id

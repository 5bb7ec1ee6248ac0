# backend/tradeledger/utils/context.py
"""
Request-scoped context for log correlation.

contextvars propagate through await, so a correlation ID set by the
middleware is visible in every coroutine a request spawns, including
the price adapter's outbound calls.

Usage:
    from tradeledger.utils.context import correlation_scope, get_correlation_id

    with correlation_scope("abc-123"):
        get_correlation_id()  # "abc-123"
"""

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

_correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)


def get_correlation_id() -> str | None:
    """Correlation ID of the current request, or None outside a request."""
    return _correlation_id_var.get()


def set_correlation_id(correlation_id: str | None) -> None:
    _correlation_id_var.set(correlation_id)


@contextmanager
def correlation_scope(correlation_id: str) -> Iterator[str]:
    """Bind a correlation ID for the duration of the block, then restore the previous one."""
    token = _correlation_id_var.set(correlation_id)
    try:
        yield correlation_id
    finally:
        _correlation_id_var.reset(token)

# backend/tradeledger/utils/__init__.py
"""
Cross-cutting utilities.

- logging: Root logger setup with correlation ID stamping
- context: Request-scoped correlation ID

Usage:
    from tradeledger.utils import setup_logging, get_correlation_id
"""

from tradeledger.utils.context import (
    correlation_scope,
    get_correlation_id,
    set_correlation_id,
)
from tradeledger.utils.logging import setup_logging

__all__ = [
    "setup_logging",
    "correlation_scope",
    "get_correlation_id",
    "set_correlation_id",
]

# backend/tradeledger/middleware/__init__.py
"""
ASGI middleware.

Usage:
    from tradeledger.middleware import CorrelationIdMiddleware

    app.add_middleware(CorrelationIdMiddleware)
"""

from tradeledger.middleware.correlation import CorrelationIdMiddleware

__all__ = ["CorrelationIdMiddleware"]

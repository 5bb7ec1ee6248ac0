# backend/tradeledger/routers/__init__.py
"""
API routers.

- portfolio: Snapshots (trader and investor views) and performance
- prices: Quote lookup and cache refresh
"""

from tradeledger.routers.portfolio import router as portfolio_router
from tradeledger.routers.prices import router as prices_router

__all__ = [
    "portfolio_router",
    "prices_router",
]

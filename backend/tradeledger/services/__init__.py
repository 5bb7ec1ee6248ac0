# backend/tradeledger/services/__init__.py
"""
Service layer for business logic.

This package contains the service layer which encapsulates business logic
separate from the API (router) layer. Services:
- Have NO knowledge of HTTP (no HTTPException, no status codes)
- Raise domain-specific exceptions
- Receive database sessions as parameters (not via Depends)
- Are easily testable via dependency injection

Usage:
    from tradeledger.services import PortfolioSnapshotService
    from tradeledger.services import PerformanceService
    from tradeledger.services import (
        BindingNotFoundError,
        PriceServiceUnavailableError,
        StaleValuationError,
    )

Architecture:
    services/
    ├── __init__.py                  # This file - main exports
    ├── exceptions.py                # Domain exceptions
    ├── constants.py                 # Categories, symbol map, precision
    ├── protocols.py                 # Ledger read contract (Protocol)
    ├── circuit_breaker.py           # Circuit breaker for the price service
    ├── ledger/
    │   └── repository.py            # SQLAlchemy ledger reads
    ├── market_data/
    │   ├── base.py                  # PriceSource interface, QuoteBatch
    │   ├── coingecko.py             # CoinGecko simple-price adapter
    │   └── cache.py                 # TTL price cache with coalescing
    ├── valuation/
    │   ├── types.py                 # Valuation data types
    │   ├── calculators.py           # Aggregation and composition math
    │   ├── valuator.py              # Prices positions
    │   ├── snapshots.py             # Generation tokens, latest snapshots
    │   └── service.py               # Snapshot orchestrator
    └── analytics/
        └── performance.py           # Trade metrics and dashboard stats
"""

# Exceptions first: the modules below import them
from tradeledger.services.exceptions import (
    ServiceError,
    ValidationError,
    NotFoundError,
    BindingNotFoundError,
    SnapshotNotFoundError,
    MarketDataError,
    ProviderUnavailableError,
    RateLimitError,
    PriceServiceUnavailableError,
    ValuationError,
    StaleValuationError,
    CircuitBreakerOpen,
)
from tradeledger.services.ledger import LedgerRepository
from tradeledger.services.market_data import (
    CoinGeckoPriceSource,
    PriceCache,
    PriceSource,
    QuoteBatch,
)
from tradeledger.services.valuation import (
    PortfolioSnapshotService,
    PortfolioValuator,
    SnapshotStore,
)
from tradeledger.services.analytics import PerformanceService

__all__ = [
    # ==========================================================================
    # Services
    # ==========================================================================
    "LedgerRepository",
    "PriceSource",
    "CoinGeckoPriceSource",
    "QuoteBatch",
    "PriceCache",
    "PortfolioValuator",
    "SnapshotStore",
    "PortfolioSnapshotService",
    "PerformanceService",

    # ==========================================================================
    # Exceptions
    # ==========================================================================
    "ServiceError",
    "ValidationError",
    "NotFoundError",
    "BindingNotFoundError",
    "SnapshotNotFoundError",
    "MarketDataError",
    "ProviderUnavailableError",
    "RateLimitError",
    "PriceServiceUnavailableError",
    "ValuationError",
    "StaleValuationError",
    "CircuitBreakerOpen",
]

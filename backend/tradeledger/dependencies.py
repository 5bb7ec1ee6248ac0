# backend/tradeledger/dependencies.py
"""
Dependency injection for FastAPI routes.

The price adapter, price cache and snapshot store are process-wide
singletons: every request must see the same cached quotes, the same
circuit breaker state and the same valuation generations. They are
created lazily on first use so importing this module has no side effects.

Tests replace any of these through app.dependency_overrides.

Usage in routers:
    @router.get("/...")
    async def endpoint(
        service: PortfolioSnapshotService = Depends(get_snapshot_service),
    ):
        ...
"""

import logging
from functools import lru_cache

from tradeledger.config import settings
from tradeledger.services.analytics.performance import PerformanceService
from tradeledger.services.circuit_breaker import CircuitBreaker
from tradeledger.services.constants import (
    CIRCUIT_BREAKER_HALF_OPEN_MAX_CALLS,
    PRICE_PROVIDER_NAME,
)
from tradeledger.services.ledger.repository import LedgerRepository
from tradeledger.services.market_data.base import PriceSource
from tradeledger.services.market_data.cache import PriceCache
from tradeledger.services.market_data.coingecko import CoinGeckoPriceSource
from tradeledger.services.valuation.service import PortfolioSnapshotService
from tradeledger.services.valuation.snapshots import SnapshotStore
from tradeledger.services.valuation.valuator import PortfolioValuator

logger = logging.getLogger(__name__)


# =============================================================================
# SINGLETON INSTANCES
# =============================================================================
# Order matters: define dependencies before dependents
# 1. get_price_source, get_price_cache, get_snapshot_store, get_ledger_repository
# 2. get_portfolio_valuator (source + cache)
# 3. get_snapshot_service, get_performance_service


@lru_cache(maxsize=1)
def get_price_source() -> PriceSource:
    """Shared adapter, so the rate-limit delay and breaker state are global."""
    logger.debug("Initializing singleton CoinGeckoPriceSource")
    breaker = CircuitBreaker(
        name=PRICE_PROVIDER_NAME,
        failure_threshold=settings.price_breaker_failure_threshold,
        recovery_timeout=settings.price_breaker_recovery_seconds,
        half_open_max_calls=CIRCUIT_BREAKER_HALF_OPEN_MAX_CALLS,
    )
    return CoinGeckoPriceSource(
        base_url=settings.price_api_base_url,
        api_key=settings.price_api_key,
        timeout=settings.price_request_timeout_seconds,
        rate_limit_delay=settings.price_rate_limit_delay_seconds,
        breaker=breaker,
    )


@lru_cache(maxsize=1)
def get_price_cache() -> PriceCache:
    logger.debug("Initializing singleton PriceCache")
    return PriceCache(ttl_seconds=settings.price_cache_ttl_seconds)


@lru_cache(maxsize=1)
def get_snapshot_store() -> SnapshotStore:
    return SnapshotStore(max_keys=settings.snapshot_store_max_keys)


@lru_cache(maxsize=1)
def get_ledger_repository() -> LedgerRepository:
    return LedgerRepository()


@lru_cache(maxsize=1)
def get_portfolio_valuator() -> PortfolioValuator:
    return PortfolioValuator(price_source=get_price_source(), cache=get_price_cache())


@lru_cache(maxsize=1)
def get_snapshot_service() -> PortfolioSnapshotService:
    logger.debug("Initializing singleton PortfolioSnapshotService")
    return PortfolioSnapshotService(
        repository=get_ledger_repository(),
        valuator=get_portfolio_valuator(),
        cache=get_price_cache(),
        store=get_snapshot_store(),
        default_currency=settings.default_currency,
    )


@lru_cache(maxsize=1)
def get_performance_service() -> PerformanceService:
    return PerformanceService(repository=get_ledger_repository())


async def close_price_source() -> None:
    """Close the adapter's HTTP client if it was ever created."""
    if get_price_source.cache_info().currsize:
        await get_price_source().aclose()

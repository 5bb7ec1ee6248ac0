# backend/tradeledger/services/market_data/__init__.py
"""
Market data services package.

This package contains:
- Abstract interface for price sources (base.py)
- CoinGecko simple-price implementation (coingecko.py)
- TTL price cache with in-flight coalescing (cache.py)

Usage:
    from tradeledger.services.market_data import (
        PriceSource,
        QuoteBatch,
        CoinGeckoPriceSource,
        PriceCache,
    )

Architecture:
    PriceSource (ABC)
    └── CoinGeckoPriceSource (concrete)

    PriceCache
    └── Serves fresh quotes, batches misses into one PriceSource call
"""

from tradeledger.services.market_data.base import (
    PriceSource,
    QuoteBatch,
    normalize_symbol,
    normalize_symbols,
)
from tradeledger.services.market_data.cache import PriceCache, PriceLookup, Quote
from tradeledger.services.market_data.coingecko import CoinGeckoPriceSource

__all__ = [
    # Abstract interface
    "PriceSource",
    "QuoteBatch",
    "normalize_symbol",
    "normalize_symbols",
    # Cache
    "PriceCache",
    "PriceLookup",
    "Quote",
    # Concrete implementations
    "CoinGeckoPriceSource",
]

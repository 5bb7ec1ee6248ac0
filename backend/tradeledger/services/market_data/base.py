# backend/tradeledger/services/market_data/base.py
"""
Abstract interface for spot price sources.

A price source turns ticker symbols into current prices in a target
currency. Implementations never raise past their boundary: a network
failure, timeout, rate limit or open circuit is reported as a failed
QuoteBatch, and a symbol the service has no data for maps to None.

Callers must treat None as "valuation unavailable for this asset" and
never coerce it to zero.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal

logger = logging.getLogger(__name__)


def normalize_symbol(symbol: str) -> str:
    """Canonical ticker form used as the key everywhere ("btc " -> "BTC")."""
    return symbol.strip().upper()


def normalize_symbols(symbols: list[str]) -> list[str]:
    """Normalize and de-duplicate, preserving first-seen order."""
    seen: dict[str, None] = {}
    for symbol in symbols:
        normalized = normalize_symbol(symbol)
        if normalized:
            seen.setdefault(normalized, None)
    return list(seen)


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass
class QuoteBatch:
    """
    Result of one outbound price request for several symbols.

    Attributes:
        currency: Target currency code (upper case)
        prices: Symbol -> price, None where no price could be obtained
        error: Batch-level failure (network, timeout, HTTP error, open
            circuit). When set, every requested symbol maps to None.
    """

    currency: str
    prices: dict[str, Decimal | None] = field(default_factory=dict)
    error: str | None = None

    @classmethod
    def failed(cls, symbols: list[str], currency: str, error: str) -> "QuoteBatch":
        return cls(
            currency=currency,
            prices={symbol: None for symbol in symbols},
            error=error,
        )

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def available(self) -> dict[str, Decimal]:
        return {s: p for s, p in self.prices.items() if p is not None}

    @property
    def missing(self) -> list[str]:
        return [s for s, p in self.prices.items() if p is None]


# =============================================================================
# ABSTRACT BASE CLASS
# =============================================================================

class PriceSource(ABC):
    """
    Abstract base class for spot price sources.

    Subclasses implement fetch_batch(); fetch() is derived from it so a
    single lookup goes through the same code path (and the same rate
    limiting) as a batch.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider identifier used in logs and errors (e.g. "coingecko")."""
        pass

    @abstractmethod
    async def fetch_batch(self, symbols: list[str], currency: str) -> QuoteBatch:
        """
        Fetch current prices for several symbols in one request.

        Args:
            symbols: Ticker symbols (any case)
            currency: Target currency code

        Returns:
            QuoteBatch keyed by normalized symbol
        """
        pass

    async def fetch(self, symbol: str, currency: str) -> Decimal | None:
        """Fetch the current price of one symbol, None if unavailable."""
        batch = await self.fetch_batch([symbol], currency)
        return batch.prices.get(normalize_symbol(symbol))

    async def aclose(self) -> None:
        """Release network resources. Default: nothing to release."""
        return None

# backend/tradeledger/services/market_data/cache.py
"""
Time-bounded price cache in front of a PriceSource.

Quotes are keyed by (symbol, currency) and live for a fixed TTL. Staleness
is checked lazily on access: a quote is valid while now - fetched_at < ttl.
There is no background refresh; only clear() empties the cache.

Expired quotes are not deleted on access. They stay retrievable through
get_stale() so a valuation can fall back on last-known prices when the
price service is down. A later put() for the same key overwrites them.

Concurrent lookups for the same key are coalesced: while one fetch for a
key is in flight, other callers await its result instead of issuing a
redundant request.

The clock is injected (default time.time) so tests can move time
deterministically.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Awaitable, Callable

from tradeledger.services.constants import PRICE_CACHE_TTL_SECONDS
from tradeledger.services.market_data.base import (
    QuoteBatch,
    normalize_symbol,
    normalize_symbols,
)

logger = logging.getLogger(__name__)

BatchLoader = Callable[[list[str], str], Awaitable[QuoteBatch]]


@dataclass(frozen=True)
class Quote:
    """
    A cached price observation.

    Attributes:
        symbol: Normalized ticker symbol
        currency: Currency code
        price: Observed price
        fetched_at: Clock reading (epoch seconds) when the price was stored
    """

    symbol: str
    currency: str
    price: Decimal
    fetched_at: float


@dataclass
class PriceLookup:
    """
    Outcome of looking up several symbols through the cache.

    Attributes:
        currency: Currency code
        prices: Symbol -> price (None = unavailable)
        failed: Symbols whose fetch hit a batch-level failure
        errors: Distinct batch-level failure messages
        cache_hits: Symbols served from fresh cached quotes
        fetched: Symbols this lookup requested from the source
    """

    currency: str
    prices: dict[str, Decimal | None] = field(default_factory=dict)
    failed: set[str] = field(default_factory=set)
    errors: list[str] = field(default_factory=list)
    cache_hits: int = 0
    fetched: int = 0

    @property
    def all_failed(self) -> bool:
        """True if nothing was priced and every symbol failed at batch level."""
        return bool(self.prices) and self.failed == set(self.prices)


class PriceCache:
    """
    Process-wide quote cache keyed by (symbol, currency).

    Example:
        cache = PriceCache(ttl_seconds=1800)
        cache.put("BTC", "USD", Decimal("45000"))
        cache.get("btc", "usd")   # Decimal("45000")
    """

    def __init__(
            self,
            ttl_seconds: float = PRICE_CACHE_TTL_SECONDS,
            clock: Callable[[], float] = time.time,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._ttl = ttl_seconds
        self._clock = clock
        self._quotes: dict[tuple[str, str], Quote] = {}
        self._in_flight: dict[tuple[str, str], asyncio.Future] = {}

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    @staticmethod
    def _key(symbol: str, currency: str) -> tuple[str, str]:
        return normalize_symbol(symbol), currency.strip().upper()

    def __len__(self) -> int:
        return len(self._quotes)

    # =========================================================================
    # QUOTE ACCESS
    # =========================================================================

    def get_quote(self, symbol: str, currency: str) -> Quote | None:
        """Return the quote if it is still within its TTL, else None (miss)."""
        quote = self._quotes.get(self._key(symbol, currency))
        if quote is None:
            return None
        if self._clock() - quote.fetched_at >= self._ttl:
            return None
        return quote

    def get(self, symbol: str, currency: str) -> Decimal | None:
        """Return the cached price, or None on a miss or an expired quote."""
        quote = self.get_quote(symbol, currency)
        return quote.price if quote is not None else None

    def get_stale(self, symbol: str, currency: str) -> Quote | None:
        """Return the last stored quote for the key, whatever its age."""
        return self._quotes.get(self._key(symbol, currency))

    def put(self, symbol: str, currency: str, price: Decimal) -> Quote:
        """Store a price, stamped with the current clock reading."""
        key = self._key(symbol, currency)
        quote = Quote(symbol=key[0], currency=key[1], price=price, fetched_at=self._clock())
        self._quotes[key] = quote
        return quote

    def clear(self) -> int:
        """Remove every quote. Returns the number removed."""
        removed = len(self._quotes)
        self._quotes.clear()
        logger.info(f"Price cache cleared ({removed} quote(s) removed)")
        return removed

    def is_in_flight(self, symbol: str, currency: str) -> bool:
        return self._key(symbol, currency) in self._in_flight

    # =========================================================================
    # BATCH LOOKUP WITH COALESCING
    # =========================================================================

    async def get_many(self, symbols: list[str], currency: str, loader: BatchLoader) -> PriceLookup:
        """
        Look up several symbols, fetching only the misses.

        Fresh quotes are served from the cache. Misses already being fetched
        by another caller are awaited. The remaining misses are requested
        from `loader` in a single batch, and every non-null price it returns
        is stored. Null prices are not cached.

        Args:
            symbols: Ticker symbols (any case)
            currency: Currency code
            loader: Batch fetch, usually PriceSource.fetch_batch

        Returns:
            PriceLookup covering every normalized symbol
        """
        currency = currency.strip().upper()
        result = PriceLookup(currency=currency)

        to_fetch: list[str] = []
        waiting: dict[str, asyncio.Future] = {}

        for symbol in normalize_symbols(symbols):
            key = (symbol, currency)
            quote = self.get_quote(symbol, currency)
            if quote is not None:
                result.prices[symbol] = quote.price
                result.cache_hits += 1
            elif key in self._in_flight:
                waiting[symbol] = self._in_flight[key]
            else:
                to_fetch.append(symbol)

        logger.debug(
            f"Price cache lookup ({currency}): {result.cache_hits} hit(s), "
            f"{len(to_fetch)} miss(es), {len(waiting)} in flight"
        )

        if to_fetch:
            batch = await self._load(to_fetch, currency, loader)
            result.fetched = len(to_fetch)
            self._merge(result, to_fetch, batch)

        for symbol, future in waiting.items():
            # shield: one cancelled waiter must not cancel the shared fetch
            batch = await asyncio.shield(future)
            self._merge(result, [symbol], batch)

        return result

    async def _load(self, symbols: list[str], currency: str, loader: BatchLoader) -> QuoteBatch:
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        keys = [(symbol, currency) for symbol in symbols]
        for key in keys:
            self._in_flight[key] = future

        try:
            batch = await loader(symbols, currency)
        except BaseException as e:
            # Waiters see a failed batch; the exception stays with this caller
            future.set_result(QuoteBatch.failed(symbols, currency, repr(e)))
            raise
        else:
            for symbol, price in batch.available.items():
                self.put(symbol, currency, price)
            future.set_result(batch)
            return batch
        finally:
            for key in keys:
                if self._in_flight.get(key) is future:
                    del self._in_flight[key]

    @staticmethod
    def _merge(result: PriceLookup, symbols: list[str], batch: QuoteBatch) -> None:
        for symbol in symbols:
            result.prices[symbol] = batch.prices.get(symbol)
            if not batch.success:
                result.failed.add(symbol)
        if not batch.success and batch.error not in result.errors:
            result.errors.append(batch.error)

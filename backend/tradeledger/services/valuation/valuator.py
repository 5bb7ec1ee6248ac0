# backend/tradeledger/services/valuation/valuator.py
"""
Portfolio valuator: prices net positions through the cache and adapter.

Flow:
    1. Collect the distinct symbols of the positions
    2. One cache lookup: fresh quotes served, misses fetched in ONE batch
    3. Symbols whose batch failed fall back to retained (expired) quotes
    4. SpotValuationCalculator does the arithmetic

Failure handling:
    - A symbol the service has no price for is marked unavailable and
      the rest of the portfolio is still valued.
    - If the batch failed and no symbol could be priced, fresh or
      retained, PriceServiceUnavailableError is raised. A zero-value
      portfolio is never fabricated.
"""

import logging
from datetime import datetime, timezone

from tradeledger.services.exceptions import PriceServiceUnavailableError
from tradeledger.services.market_data.base import PriceSource
from tradeledger.services.market_data.cache import PriceCache, PriceLookup
from tradeledger.services.valuation.calculators import SpotValuationCalculator
from tradeledger.services.valuation.types import NetPosition, SpotValuation

logger = logging.getLogger(__name__)


class PortfolioValuator:
    """
    Values spot positions in a target currency.

    Args:
        price_source: Adapter used on cache misses
        cache: Shared price cache
        calculator: Spot arithmetic (injectable for tests)
    """

    def __init__(
            self,
            price_source: PriceSource,
            cache: PriceCache,
            calculator: SpotValuationCalculator | None = None,
    ) -> None:
        self._source = price_source
        self._cache = cache
        self._calculator = calculator or SpotValuationCalculator()

    async def fetch_prices(self, symbols: list[str], currency: str) -> PriceLookup:
        """Look symbols up through the cache, batching every miss into one call."""
        return await self._cache.get_many(symbols, currency, self._source.fetch_batch)

    async def value(self, positions: list[NetPosition], currency: str) -> SpotValuation:
        """
        Price every position and aggregate.

        Raises:
            PriceServiceUnavailableError: The price batch failed entirely
                and no retained quote could stand in
        """
        currency = currency.upper()
        if not positions:
            return SpotValuation(currency=currency)

        symbols = [p.asset for p in positions]
        lookup = await self.fetch_prices(symbols, currency)
        prices = dict(lookup.prices)

        stale_assets: list[str] = []
        oldest: float | None = None
        unreachable: list[str] = []

        for symbol in sorted(lookup.failed):
            quote = self._cache.get_stale(symbol, currency)
            if quote is None:
                unreachable.append(symbol)
                continue
            prices[symbol] = quote.price
            stale_assets.append(symbol)
            oldest = quote.fetched_at if oldest is None else min(oldest, quote.fetched_at)

        if lookup.failed and all(prices.get(s) is None for s in symbols):
            reason = "; ".join(lookup.errors) or "price service unreachable"
            logger.error(f"Spot valuation in {currency} impossible: {reason}")
            raise PriceServiceUnavailableError(sorted(lookup.failed), reason, provider=self._source.name)

        stale_since = datetime.fromtimestamp(oldest, tz=timezone.utc) if oldest is not None else None
        if stale_assets:
            logger.warning(
                f"Price service unreachable; valuing {', '.join(stale_assets)} with "
                f"quotes from {stale_since.isoformat()}"
            )

        valuation = self._calculator.calculate(
            positions=positions,
            prices=prices,
            currency=currency,
            stale_assets=stale_assets,
            stale_since=stale_since,
        )

        if unreachable:
            valuation.warnings.append(
                f"Price service unreachable for {', '.join(unreachable)}"
            )
        for asset in valuation.unavailable_assets:
            logger.warning(f"No {currency} price available for {asset}")

        return valuation

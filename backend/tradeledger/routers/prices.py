# backend/tradeledger/routers/prices.py
"""
Price endpoints.

- GET  /prices/{symbol}   - Current price through the cache
- POST /prices/refresh    - Clear the price cache (user-triggered refresh)
"""

from fastapi import APIRouter, Depends, Query

from tradeledger.dependencies import get_snapshot_service
from tradeledger.schemas.prices import CacheRefreshResponse, QuoteResponse
from tradeledger.services.valuation.service import PortfolioSnapshotService

router = APIRouter(prefix="/prices", tags=["Prices"])


@router.post(
    "/refresh",
    response_model=CacheRefreshResponse,
    summary="Drop every cached price",
)
def refresh_prices(
        service: PortfolioSnapshotService = Depends(get_snapshot_service),
) -> CacheRefreshResponse:
    """The next valuation fetches fresh prices for every asset."""
    return CacheRefreshResponse(cleared=service.clear_price_cache())


@router.get(
    "/{symbol}",
    response_model=QuoteResponse,
    summary="Current price of one asset",
)
async def get_price(
        symbol: str,
        currency: str | None = Query(default=None, description="USD or PHP"),
        service: PortfolioSnapshotService = Depends(get_snapshot_service),
) -> QuoteResponse:
    """An unavailable price is returned as null with available=false, not as an error."""
    quote = await service.get_quote(symbol, currency)
    return QuoteResponse(
        symbol=quote.symbol,
        currency=quote.currency,
        price=quote.price,
        available=quote.available,
        cached=quote.cached,
        fetched_at=quote.fetched_at,
        error=quote.error,
    )

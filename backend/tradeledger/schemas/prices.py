# backend/tradeledger/schemas/prices.py
"""Pydantic schemas for quote lookup and cache refresh."""

import datetime as dt
from decimal import Decimal

from pydantic import BaseModel, Field


class QuoteResponse(BaseModel):
    symbol: str
    currency: str
    price: Decimal | None = Field(
        ...,
        description="Current price, null when unavailable"
    )
    available: bool
    cached: bool = Field(..., description="Served from the cache without a request")
    fetched_at: dt.datetime | None
    error: str | None = Field(
        default=None,
        description="Price service failure, if the request failed"
    )


class CacheRefreshResponse(BaseModel):
    cleared: int = Field(..., description="Number of quotes removed")

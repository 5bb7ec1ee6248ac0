# backend/tradeledger/schemas/portfolio.py
"""
Pydantic schemas for portfolio snapshots and performance.

Decimal amounts are serialized as strings to keep their precision.
"""

import datetime as dt
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from tradeledger.services.valuation.types import SnapshotStatus


# =============================================================================
# SPOT SLICE
# =============================================================================

class AssetValuationResponse(BaseModel):
    """One spot position priced in the valuation currency."""

    model_config = ConfigDict(from_attributes=True)

    asset: str
    net_quantity: Decimal
    average_cost: Decimal | None = Field(
        ...,
        description="Weighted average purchase price"
    )
    cost_basis: Decimal
    fees: Decimal
    invested: Decimal = Field(..., description="Cost basis plus fees")
    current_price: Decimal | None = Field(
        ...,
        description="Current price, null when unavailable (never zero-filled)"
    )
    current_value: Decimal
    unrealized_pnl: Decimal
    pnl_percentage: Decimal
    price_available: bool
    price_is_stale: bool


class SpotValuationResponse(BaseModel):
    """All spot positions with totals."""

    model_config = ConfigDict(from_attributes=True)

    assets: list[AssetValuationResponse]
    total_invested: Decimal
    total_current_value: Decimal
    total_unrealized_pnl: Decimal
    pnl_percentage: Decimal
    priced_invested: Decimal = Field(..., description="Invested in positions that have a price")
    priced_current_value: Decimal
    priced_unrealized_pnl: Decimal
    priced_pnl_percentage: Decimal
    unavailable_assets: list[str]
    stale_assets: list[str]
    has_complete_data: bool


# =============================================================================
# MANUAL & CASH SLICES
# =============================================================================

class CategoryTotalResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    category: str
    invested: Decimal
    pnl: Decimal
    entry_count: int


class ManualValuationResponse(BaseModel):
    """Investment categories valued from trader-reported PnL."""

    model_config = ConfigDict(from_attributes=True)

    invested: Decimal
    pnl: Decimal
    current_value: Decimal
    entry_count: int
    null_pnl_entries: int
    by_category: list[CategoryTotalResponse]


class CashSummaryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    deposits: Decimal
    withdrawals: Decimal
    net_cash: Decimal
    entry_count: int


# =============================================================================
# SNAPSHOT
# =============================================================================

class PortfolioSnapshotResponse(BaseModel):
    """
    Composed portfolio valuation.

    `spot` is null when status is spot_unavailable; the totals then cover
    the investment and cash slices only.
    """

    user_id: str
    currency: str
    status: SnapshotStatus
    total_invested: Decimal
    total_current_value: Decimal
    total_unrealized_pnl: Decimal
    pnl_percentage: Decimal
    net_cash: Decimal
    grand_total: Decimal = Field(..., description="Current value plus net cash")
    spot: SpotValuationResponse | None
    manual: ManualValuationResponse
    cash: CashSummaryResponse
    stale_since: dt.datetime | None = Field(
        default=None,
        description="Fetch time of the oldest expired quote used (stale status)"
    )
    warnings: list[str] = Field(default_factory=list)
    computed_at: dt.datetime
    generation: int


class LatestSnapshotResponse(BaseModel):
    """Last-known-good snapshot plus whether a valuation is running."""

    loading: bool
    snapshot: PortfolioSnapshotResponse | None


# =============================================================================
# PERFORMANCE
# =============================================================================

class PerformanceMetricsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_pnl: Decimal
    win_rate: Decimal = Field(..., description="Percentage of entries with positive PnL")
    profitable_trades: int
    losing_trades: int
    total_trades: int
    average_profit: Decimal
    average_loss: Decimal
    profit_factor: Decimal | None = Field(
        ...,
        description="Gross profit / gross loss; null when unbounded (no losses)"
    )
    best_trade: Decimal
    worst_trade: Decimal


class DashboardStatsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    trade_count: int
    investment_count: int
    gross_notional: Decimal
    total_recorded_pnl: Decimal


class PerformanceResponse(BaseModel):
    user_id: str
    metrics: PerformanceMetricsResponse
    stats: DashboardStatsResponse


# =============================================================================
# PER-TRADE PNL
# =============================================================================

class TradePnLResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    invested: Decimal = Field(..., description="price x quantity + fees")
    current_value: Decimal
    unrealized_pnl: Decimal
    pnl_percentage: Decimal


class TradePnLRowResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    trade_id: str
    asset: str
    side: str
    quantity: Decimal
    price: Decimal
    trade_date: dt.datetime
    current_price: Decimal | None = Field(..., description="Null when unavailable")
    pnl: TradePnLResponse | None


class TradePnLReportResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    currency: str
    trades: list[TradePnLRowResponse]
    error: str | None = Field(
        default=None,
        description="Price service failure, if the price batch failed"
    )

# backend/tradeledger/schemas/__init__.py
"""
Pydantic schemas for API responses.

- errors: Error response format
- portfolio: Snapshots, latest view, performance, per-trade PnL
- prices: Quote lookup and cache refresh
"""

from tradeledger.schemas.errors import ErrorDetail
from tradeledger.schemas.portfolio import (
    AssetValuationResponse,
    CashSummaryResponse,
    CategoryTotalResponse,
    DashboardStatsResponse,
    LatestSnapshotResponse,
    ManualValuationResponse,
    PerformanceMetricsResponse,
    PerformanceResponse,
    PortfolioSnapshotResponse,
    SpotValuationResponse,
    TradePnLReportResponse,
    TradePnLResponse,
    TradePnLRowResponse,
)
from tradeledger.schemas.prices import CacheRefreshResponse, QuoteResponse

__all__ = [
    "ErrorDetail",
    "AssetValuationResponse",
    "SpotValuationResponse",
    "CategoryTotalResponse",
    "ManualValuationResponse",
    "CashSummaryResponse",
    "PortfolioSnapshotResponse",
    "LatestSnapshotResponse",
    "PerformanceMetricsResponse",
    "DashboardStatsResponse",
    "PerformanceResponse",
    "TradePnLResponse",
    "TradePnLRowResponse",
    "TradePnLReportResponse",
    "QuoteResponse",
    "CacheRefreshResponse",
]

# backend/tradeledger/routers/portfolio.py
"""
Portfolio valuation endpoints.

- GET /users/{user_id}/portfolio/snapshot         - Compute a snapshot
- GET /users/{user_id}/portfolio/snapshot/latest  - Last committed snapshot + loading flag
- GET /investors/{investor_id}/portfolio/snapshot - Snapshot of the bound trader
- GET /users/{user_id}/performance                - Trade metrics and dashboard stats
- GET /users/{user_id}/trades/pnl                 - Unrealized PnL of each spot entry

Rows are read through the persistence layer, which has already applied
access rules; these endpoints perform no authorization of their own.
Service exceptions are mapped to HTTP responses by the handlers in main.py.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from tradeledger.database import get_db
from tradeledger.dependencies import get_performance_service, get_snapshot_service
from tradeledger.schemas.portfolio import (
    CashSummaryResponse,
    DashboardStatsResponse,
    LatestSnapshotResponse,
    ManualValuationResponse,
    PerformanceMetricsResponse,
    PerformanceResponse,
    PortfolioSnapshotResponse,
    SpotValuationResponse,
    TradePnLReportResponse,
)
from tradeledger.services.analytics.performance import PerformanceService
from tradeledger.services.valuation.service import PortfolioSnapshotService
from tradeledger.services.valuation.types import PortfolioSnapshot

# =============================================================================
# ROUTER SETUP
# =============================================================================

router = APIRouter(tags=["Portfolio"])

CurrencyQuery = Query(
    default=None,
    description="Valuation currency (USD or PHP); defaults to DEFAULT_CURRENCY",
)


# =============================================================================
# MAPPER FUNCTIONS (Internal Types -> Pydantic Schemas)
# =============================================================================

def _map_snapshot(snapshot: PortfolioSnapshot) -> PortfolioSnapshotResponse:
    """Map internal PortfolioSnapshot to Pydantic schema."""
    return PortfolioSnapshotResponse(
        user_id=snapshot.user_id,
        currency=snapshot.currency,
        status=snapshot.status,
        total_invested=snapshot.total_invested,
        total_current_value=snapshot.total_current_value,
        total_unrealized_pnl=snapshot.total_unrealized_pnl,
        pnl_percentage=snapshot.pnl_percentage,
        net_cash=snapshot.net_cash,
        grand_total=snapshot.grand_total,
        spot=(
            SpotValuationResponse.model_validate(snapshot.spot)
            if snapshot.spot is not None else None
        ),
        manual=ManualValuationResponse.model_validate(snapshot.manual),
        cash=CashSummaryResponse.model_validate(snapshot.cash),
        stale_since=snapshot.stale_since,
        warnings=list(snapshot.warnings),
        computed_at=snapshot.computed_at,
        generation=snapshot.generation,
    )


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get(
    "/users/{user_id}/portfolio/snapshot",
    response_model=PortfolioSnapshotResponse,
    summary="Compute the portfolio snapshot of a user",
)
async def get_portfolio_snapshot(
        user_id: str,
        currency: str | None = CurrencyQuery,
        db: Session = Depends(get_db),
        service: PortfolioSnapshotService = Depends(get_snapshot_service),
) -> PortfolioSnapshotResponse:
    """
    Value the user's spot holdings at current prices and combine them with
    the investment products and net cash.

    When the price service is down the response is still 200: status is
    `stale` (expired quotes used) or `spot_unavailable` (spot slice null).
    """
    snapshot = await service.compute_portfolio_snapshot(db, user_id, currency)
    return _map_snapshot(snapshot)


@router.get(
    "/users/{user_id}/portfolio/snapshot/latest",
    response_model=LatestSnapshotResponse,
    summary="Last computed snapshot without recomputing",
)
async def get_latest_snapshot(
        user_id: str,
        currency: str | None = CurrencyQuery,
        service: PortfolioSnapshotService = Depends(get_snapshot_service),
) -> LatestSnapshotResponse:
    """404 until a first pass for this user and currency has committed or started."""
    latest = service.latest_snapshot(user_id, currency)
    return LatestSnapshotResponse(
        loading=latest.loading,
        snapshot=_map_snapshot(latest.snapshot) if latest.snapshot is not None else None,
    )


@router.get(
    "/investors/{investor_id}/portfolio/snapshot",
    response_model=PortfolioSnapshotResponse,
    summary="Snapshot of the trader an investor is bound to",
)
async def get_investor_snapshot(
        investor_id: str,
        currency: str | None = CurrencyQuery,
        db: Session = Depends(get_db),
        service: PortfolioSnapshotService = Depends(get_snapshot_service),
) -> PortfolioSnapshotResponse:
    """Returns 404 when the investor has no approved binding."""
    snapshot = await service.compute_investor_snapshot(db, investor_id, currency)
    return _map_snapshot(snapshot)


@router.get(
    "/users/{user_id}/performance",
    response_model=PerformanceResponse,
    summary="Trade performance metrics and dashboard stats",
)
def get_performance(
        user_id: str,
        db: Session = Depends(get_db),
        service: PerformanceService = Depends(get_performance_service),
) -> PerformanceResponse:
    report = service.get_performance(db, user_id)
    return PerformanceResponse(
        user_id=report.user_id,
        metrics=PerformanceMetricsResponse.model_validate(report.metrics),
        stats=DashboardStatsResponse.model_validate(report.stats),
    )


@router.get(
    "/users/{user_id}/trades/pnl",
    response_model=TradePnLReportResponse,
    summary="Unrealized PnL of each spot trade",
)
async def get_trade_pnl(
        user_id: str,
        currency: str | None = CurrencyQuery,
        db: Session = Depends(get_db),
        service: PortfolioSnapshotService = Depends(get_snapshot_service),
) -> TradePnLReportResponse:
    """Entries are priced one by one, without netting buys against sells."""
    report = await service.compute_trade_pnl(db, user_id, currency)
    return TradePnLReportResponse.model_validate(report)

# backend/tradeledger/services/valuation/__init__.py
"""
Portfolio valuation package.

Usage:
    from tradeledger.services.valuation import PortfolioSnapshotService

    service = PortfolioSnapshotService(repository, valuator, cache)
    snapshot = await service.compute_portfolio_snapshot(db, user_id, "USD")

Modules:
    types.py        - Internal dataclasses (NetPosition, PortfolioSnapshot, ...)
    calculators.py  - Pure aggregation and composition math
    valuator.py     - Prices positions through the cache and adapter
    snapshots.py    - Generation tokens and last-known-good snapshots
    service.py      - Orchestration entry point
"""

from tradeledger.services.valuation.calculators import (
    CashFlowSummarizer,
    GrandTotalComposer,
    ManualValuationAggregator,
    PositionAggregator,
    SpotTradePnLCalculator,
    SpotValuationCalculator,
)
from tradeledger.services.valuation.service import (
    PortfolioSnapshotService,
    QuoteResult,
    validate_currency,
)
from tradeledger.services.valuation.snapshots import (
    LatestSnapshot,
    SnapshotStore,
    ValuationPass,
)
from tradeledger.services.valuation.types import (
    AssetValuation,
    CashSummary,
    CategoryTotal,
    ManualValuation,
    NetPosition,
    PortfolioSnapshot,
    SnapshotStatus,
    SpotValuation,
    TradePnL,
    TradePnLReport,
    TradePnLRow,
)
from tradeledger.services.valuation.valuator import PortfolioValuator

__all__ = [
    # Service
    "PortfolioSnapshotService",
    "QuoteResult",
    "validate_currency",
    "PortfolioValuator",
    "SnapshotStore",
    "LatestSnapshot",
    "ValuationPass",
    # Calculators
    "PositionAggregator",
    "SpotValuationCalculator",
    "SpotTradePnLCalculator",
    "ManualValuationAggregator",
    "CashFlowSummarizer",
    "GrandTotalComposer",
    # Types
    "NetPosition",
    "AssetValuation",
    "SpotValuation",
    "ManualValuation",
    "CategoryTotal",
    "CashSummary",
    "PortfolioSnapshot",
    "SnapshotStatus",
    "TradePnL",
    "TradePnLReport",
    "TradePnLRow",
]

# backend/tradeledger/services/analytics/performance.py
"""
Trade performance metrics and dashboard statistics.

Both work on recorded figures only (profit_loss as entered by the trader,
price x quantity as logged); nothing here looks up market prices.

- TradePerformanceCalculator: win rate, profit factor, best/worst trade
- DashboardStatsCalculator: entry counts, gross notional, recorded PnL
- PerformanceService: loads a user's ledger and runs both
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, TYPE_CHECKING

from sqlalchemy.orm import Session

from tradeledger.services.constants import (
    INVESTMENT_CATEGORIES,
    TRADE_CATEGORIES,
    ZERO,
)
from tradeledger.services.valuation.calculators import (
    category_of,
    money,
    percentage,
    to_decimal,
)

if TYPE_CHECKING:
    from tradeledger.services.protocols import LedgerRepositoryProtocol

logger = logging.getLogger(__name__)


# =============================================================================
# TYPES
# =============================================================================

@dataclass(frozen=True)
class PerformanceMetrics:
    """
    Outcome statistics over entries with a recorded profit_loss.

    Attributes:
        win_rate: Percentage of entries with profit_loss > 0
        average_loss: Mean loss as a positive number
        profit_factor: Gross profit / gross loss. None means unbounded
            (profits and no losses); 0 when there is neither.
    """

    total_pnl: Decimal = ZERO
    win_rate: Decimal = ZERO
    profitable_trades: int = 0
    losing_trades: int = 0
    total_trades: int = 0
    average_profit: Decimal = ZERO
    average_loss: Decimal = ZERO
    profit_factor: Decimal | None = ZERO
    best_trade: Decimal = ZERO
    worst_trade: Decimal = ZERO


@dataclass(frozen=True)
class DashboardStats:
    """
    Headline counts for a trader's dashboard.

    Attributes:
        trade_count: Spot and futures entries
        investment_count: Investment-category entries
        gross_notional: Sum of price x quantity over all entries
        total_recorded_pnl: Sum of recorded profit_loss (nulls skipped)
    """

    trade_count: int = 0
    investment_count: int = 0
    gross_notional: Decimal = ZERO
    total_recorded_pnl: Decimal = ZERO


@dataclass(frozen=True)
class PerformanceReport:
    user_id: str
    metrics: PerformanceMetrics
    stats: DashboardStats


# =============================================================================
# CALCULATORS
# =============================================================================

class TradePerformanceCalculator:
    """Win/loss statistics from recorded profit_loss values."""

    def calculate(self, entries: Iterable[Any]) -> PerformanceMetrics:
        pnls = [to_decimal(e.profit_loss) for e in entries if e.profit_loss is not None]
        if not pnls:
            return PerformanceMetrics()

        profits = [p for p in pnls if p > ZERO]
        losses = [p for p in pnls if p < ZERO]

        gross_profit = sum(profits, ZERO)
        gross_loss = abs(sum(losses, ZERO))

        if gross_loss > ZERO:
            profit_factor: Decimal | None = (gross_profit / gross_loss).quantize(Decimal("0.01"))
        elif gross_profit > ZERO:
            profit_factor = None
        else:
            profit_factor = ZERO

        return PerformanceMetrics(
            total_pnl=money(sum(pnls, ZERO)),
            win_rate=percentage(Decimal(len(profits)), Decimal(len(pnls))),
            profitable_trades=len(profits),
            losing_trades=len(losses),
            total_trades=len(pnls),
            average_profit=money(gross_profit / len(profits)) if profits else money(ZERO),
            average_loss=money(gross_loss / len(losses)) if losses else money(ZERO),
            profit_factor=profit_factor,
            best_trade=money(max(pnls)),
            worst_trade=money(min(pnls)),
        )


class DashboardStatsCalculator:
    def calculate(self, entries: Iterable[Any]) -> DashboardStats:
        trade_count = investment_count = 0
        notional = recorded = ZERO

        for entry in entries:
            category = category_of(entry)
            if category in TRADE_CATEGORIES:
                trade_count += 1
            elif category in INVESTMENT_CATEGORIES:
                investment_count += 1
            notional += to_decimal(entry.price) * to_decimal(entry.quantity)
            if entry.profit_loss is not None:
                recorded += to_decimal(entry.profit_loss)

        return DashboardStats(
            trade_count=trade_count,
            investment_count=investment_count,
            gross_notional=money(notional),
            total_recorded_pnl=money(recorded),
        )


# =============================================================================
# SERVICE
# =============================================================================

class PerformanceService:
    """Loads a user's ledger and computes metrics and dashboard stats."""

    def __init__(self, repository: LedgerRepositoryProtocol) -> None:
        self._repository = repository
        self._metrics = TradePerformanceCalculator()
        self._stats = DashboardStatsCalculator()

    def get_performance(self, db: Session, user_id: str) -> PerformanceReport:
        entries = self._repository.list_trades(db, user_id)
        logger.debug(f"Computing performance for user {user_id} over {len(entries)} entries")
        return PerformanceReport(
            user_id=user_id,
            metrics=self._metrics.calculate(entries),
            stats=self._stats.calculate(entries),
        )

# backend/tradeledger/services/valuation/calculators.py
"""
Pure valuation calculators.

Each calculator does one thing:
- PositionAggregator: Nets spot entries into per-asset positions
- SpotValuationCalculator: Prices positions and sums them
- SpotTradePnLCalculator: Unrealized PnL of a single spot entry
- ManualValuationAggregator: Sums trader-reported investment PnL
- CashFlowSummarizer: Nets deposits and withdrawals
- GrandTotalComposer: Combines the three slices into one snapshot

Design Principles:
- Stateless, no I/O; the same input always yields the same output
- Decimal for ALL financial values; floats are converted via str()
- Division by a zero basis yields a zero percentage, never NaN/Infinity

Ledger entries are read by attribute (category, asset, price, quantity,
fees, profit_loss, details, currency), so ORM Trade rows and plain test
objects both work.

Usage:
    positions = PositionAggregator().calculate(spot_entries)
    manual = ManualValuationAggregator().calculate(investment_entries)
    cash = CashFlowSummarizer().calculate(cashflows)
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime
from decimal import Decimal
from typing import Any

from tradeledger.models import CashflowType, TradeCategory
from tradeledger.services.constants import (
    HUNDRED,
    INVESTMENT_CATEGORIES,
    MONEY_QUANTUM,
    PERCENT_QUANTUM,
    SELL_SIDE,
    SIDE_DETAIL_KEYS,
    SPOT_CATEGORIES,
    ZERO,
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
)

logger = logging.getLogger(__name__)


# =============================================================================
# HELPERS
# =============================================================================

def to_decimal(value: Any) -> Decimal:
    """Convert a ledger number to Decimal; None counts as zero."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def money(value: Decimal) -> Decimal:
    return value.quantize(MONEY_QUANTUM)


def percentage(numerator: Decimal, denominator: Decimal) -> Decimal:
    """numerator / denominator * 100, or 0 when the denominator is 0."""
    if denominator == ZERO:
        return ZERO.quantize(PERCENT_QUANTUM)
    return (numerator / denominator * HUNDRED).quantize(PERCENT_QUANTUM)


def category_of(entry: Any) -> TradeCategory:
    return TradeCategory(entry.category)


def is_sell(entry: Any) -> bool:
    """
    True only when the detail map explicitly marks the entry as a sell.

    A missing or unrecognized side counts as a buy.
    """
    details = entry.details or {}
    for key in SIDE_DETAIL_KEYS:
        side = details.get(key)
        if isinstance(side, str) and side.strip():
            return side.strip().lower() == SELL_SIDE
    return False


def currency_of(entry: Any) -> str:
    value = getattr(entry, "currency", None)
    if value is None:
        return ""
    return str(getattr(value, "value", value)).upper()


def count_foreign_currency(entries: Iterable[Any], currency: str) -> int:
    """Number of entries recorded in a currency other than `currency`."""
    target = currency.upper()
    return sum(1 for e in entries if currency_of(e) and currency_of(e) != target)


# =============================================================================
# POSITION AGGREGATOR
# =============================================================================

class PositionAggregator:
    """
    Nets spot ledger entries into one NetPosition per asset.

    Each entry adds (buy) or subtracts (sell) its quantity and its
    price x quantity cost; its fees are always added. Positions whose net
    quantity ends at or below zero are dropped, so short exposure is not
    modeled.
    """

    def calculate(self, entries: Iterable[Any]) -> list[NetPosition]:
        """
        Args:
            entries: Ledger entries; non-spot categories are ignored

        Returns:
            Positions with net quantity > 0, sorted by asset symbol
        """
        positions: dict[str, NetPosition] = {}

        for entry in entries:
            if category_of(entry) not in SPOT_CATEGORIES:
                continue

            asset = entry.asset.strip().upper()
            position = positions.setdefault(asset, NetPosition(asset=asset))

            quantity = to_decimal(entry.quantity)
            cost = to_decimal(entry.price) * quantity
            sign = -1 if is_sell(entry) else 1

            position.net_quantity += sign * quantity
            position.cost_basis += sign * cost
            position.fees += to_decimal(entry.fees)
            position.entry_count += 1

        open_positions = []
        for asset, position in sorted(positions.items()):
            if position.has_position:
                open_positions.append(position)
            else:
                logger.debug(f"Dropping {asset}: net quantity {position.net_quantity}")

        return open_positions


# =============================================================================
# SPOT VALUATION
# =============================================================================

class SpotValuationCalculator:
    """
    Prices net positions and aggregates them.

    Per asset:
        invested = cost_basis + fees
        current_value = price x net_quantity (0 when the price is unavailable)
        unrealized_pnl = current_value - invested
        pnl_percentage = unrealized_pnl / invested x 100 (0 if invested is 0)

    Totals run over every position. The priced_* totals leave out the
    positions without a price.
    """

    def calculate(
            self,
            positions: list[NetPosition],
            prices: dict[str, Decimal | None],
            currency: str,
            stale_assets: Iterable[str] = (),
            stale_since: datetime | None = None,
    ) -> SpotValuation:
        stale = set(stale_assets)
        valuation = SpotValuation(currency=currency, stale_since=stale_since if stale else None)

        total_invested = total_value = ZERO
        priced_invested = priced_value = ZERO

        for position in positions:
            price = prices.get(position.asset)
            invested = position.invested
            current_value = price * position.net_quantity if price is not None else ZERO
            pnl = current_value - invested

            valuation.assets.append(AssetValuation(
                asset=position.asset,
                net_quantity=position.net_quantity,
                average_cost=position.average_cost,
                cost_basis=money(position.cost_basis),
                fees=money(position.fees),
                invested=money(invested),
                current_price=price,
                current_value=money(current_value),
                unrealized_pnl=money(pnl),
                pnl_percentage=percentage(pnl, invested),
                price_available=price is not None,
                price_is_stale=price is not None and position.asset in stale,
            ))

            total_invested += invested
            total_value += current_value

            if price is None:
                valuation.unavailable_assets.append(position.asset)
            else:
                priced_invested += invested
                priced_value += current_value
                if position.asset in stale:
                    valuation.stale_assets.append(position.asset)

        valuation.total_invested = money(total_invested)
        valuation.total_current_value = money(total_value)
        valuation.total_unrealized_pnl = money(total_value - total_invested)
        valuation.pnl_percentage = percentage(total_value - total_invested, total_invested)
        valuation.priced_invested = money(priced_invested)
        valuation.priced_current_value = money(priced_value)
        valuation.priced_unrealized_pnl = money(priced_value - priced_invested)
        valuation.priced_pnl_percentage = percentage(priced_value - priced_invested, priced_invested)

        if valuation.unavailable_assets:
            valuation.warnings.append(
                f"Price unavailable for {', '.join(valuation.unavailable_assets)}; "
                f"excluded from current value"
            )
        if valuation.stale_assets:
            valuation.warnings.append(
                f"Using prices older than the cache lifetime for "
                f"{', '.join(valuation.stale_assets)}"
            )

        return valuation


class SpotTradePnLCalculator:
    """
    Unrealized PnL of a single spot entry.

    invested = price x quantity + fees, current_value = current_price x
    quantity. Returns None when no current price is available.
    """

    def calculate(self, entry: Any, current_price: Decimal | None) -> TradePnL | None:
        if current_price is None:
            return None

        quantity = to_decimal(entry.quantity)
        invested = to_decimal(entry.price) * quantity + to_decimal(entry.fees)
        current_value = current_price * quantity
        pnl = current_value - invested

        return TradePnL(
            invested=money(invested),
            current_value=money(current_value),
            unrealized_pnl=money(pnl),
            pnl_percentage=percentage(pnl, invested),
        )


# =============================================================================
# MANUAL VALUATION
# =============================================================================

class ManualValuationAggregator:
    """
    Sums the investment categories from trader-reported figures.

    invested = sum(price x quantity + fees), pnl = sum(profit_loss).
    profit_loss is trusted as entered. A null one should have been rejected
    at write time; it is counted as zero and reported in the warnings.
    """

    def calculate(self, entries: Iterable[Any]) -> ManualValuation:
        result = ManualValuation()
        per_category: dict[TradeCategory, list[Any]] = {}

        for entry in entries:
            category = category_of(entry)
            if category not in INVESTMENT_CATEGORIES:
                continue

            invested = to_decimal(entry.price) * to_decimal(entry.quantity) + to_decimal(entry.fees)

            if entry.profit_loss is None:
                result.null_pnl_entries += 1
                logger.warning(
                    f"Investment entry {getattr(entry, 'id', '?')} ({category.value} "
                    f"{entry.asset}) has no profit_loss; counting it as 0"
                )
            pnl = to_decimal(entry.profit_loss)

            result.invested += invested
            result.pnl += pnl
            result.entry_count += 1

            totals = per_category.setdefault(category, [ZERO, ZERO, 0])
            totals[0] += invested
            totals[1] += pnl
            totals[2] += 1

        result.invested = money(result.invested)
        result.pnl = money(result.pnl)
        result.by_category = [
            CategoryTotal(category=c.value, invested=money(i), pnl=money(p), entry_count=n)
            for c, (i, p, n) in sorted(per_category.items(), key=lambda item: item[0].value)
        ]

        if result.null_pnl_entries:
            result.warnings.append(
                f"{result.null_pnl_entries} investment entr"
                f"{'y has' if result.null_pnl_entries == 1 else 'ies have'} "
                f"no profit/loss recorded and were counted as 0"
            )

        return result


# =============================================================================
# CASH FLOWS
# =============================================================================

class CashFlowSummarizer:
    """Deposits minus withdrawals. Cash never contributes to PnL."""

    def calculate(self, cashflows: Iterable[Any]) -> CashSummary:
        deposits = withdrawals = ZERO
        count = 0

        for cashflow in cashflows:
            amount = to_decimal(cashflow.amount)
            if CashflowType(cashflow.type) == CashflowType.DEPOSIT:
                deposits += amount
            else:
                withdrawals += amount
            count += 1

        return CashSummary(
            deposits=money(deposits),
            withdrawals=money(withdrawals),
            entry_count=count,
        )


# =============================================================================
# GRAND TOTAL
# =============================================================================

class GrandTotalComposer:
    """
    Combines spot, manual and cash slices into a PortfolioSnapshot.

        total_invested = spot.total_invested + manual.invested
        total_current_value = spot.total_current_value + manual.invested + manual.pnl
        total_unrealized_pnl = spot.total_unrealized_pnl + manual.pnl
        grand_total = total_current_value + net_cash
        pnl_percentage = total_unrealized_pnl / total_invested x 100 (0 if 0)

    A missing spot slice (price service down) contributes zero and marks
    the snapshot SPOT_UNAVAILABLE. Pure: everything time-dependent is
    passed in.
    """

    def compose(
            self,
            user_id: str,
            currency: str,
            spot: SpotValuation | None,
            manual: ManualValuation,
            cash: CashSummary,
            computed_at: datetime,
            warnings: Iterable[str] = (),
            generation: int = 0,
    ) -> PortfolioSnapshot:
        spot_invested = spot.total_invested if spot is not None else ZERO
        spot_value = spot.total_current_value if spot is not None else ZERO
        spot_pnl = spot.total_unrealized_pnl if spot is not None else ZERO

        total_invested = spot_invested + manual.invested
        total_value = spot_value + manual.current_value
        total_pnl = spot_pnl + manual.pnl
        net_cash = cash.net_cash

        all_warnings = list(warnings)
        if spot is not None:
            all_warnings.extend(spot.warnings)
        all_warnings.extend(manual.warnings)

        return PortfolioSnapshot(
            user_id=user_id,
            currency=currency,
            status=self.status_of(spot),
            spot=spot,
            manual=manual,
            cash=cash,
            total_invested=money(total_invested),
            total_current_value=money(total_value),
            total_unrealized_pnl=money(total_pnl),
            pnl_percentage=percentage(total_pnl, total_invested),
            net_cash=money(net_cash),
            grand_total=money(total_value + net_cash),
            computed_at=computed_at,
            stale_since=spot.stale_since if spot is not None else None,
            warnings=tuple(all_warnings),
            generation=generation,
        )

    @staticmethod
    def status_of(spot: SpotValuation | None) -> SnapshotStatus:
        if spot is None:
            return SnapshotStatus.SPOT_UNAVAILABLE
        if spot.is_stale:
            return SnapshotStatus.STALE
        if spot.unavailable_assets:
            return SnapshotStatus.PARTIAL
        return SnapshotStatus.COMPLETE

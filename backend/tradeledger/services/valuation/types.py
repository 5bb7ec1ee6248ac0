# backend/tradeledger/services/valuation/types.py
"""
Internal data types for the valuation engine.

These dataclasses are used internally by the calculators, the valuator and
the snapshot service. They are NOT Pydantic schemas - those are defined in
tradeledger/schemas/portfolio.py for API serialization.

Design Principles:
- Immutable where possible (frozen=True for value objects)
- Use Decimal for ALL financial values (never float)
- An unavailable price is None, never zero
- Warnings accumulate for data quality tracking

Type Hierarchy:
    NetPosition         - Netted spot holdings for one asset
    AssetValuation      - One position priced in the target currency
    SpotValuation       - All positions priced, with totals
    ManualValuation     - Trader-reported investment products
    CashSummary         - Deposits, withdrawals, net cash
    PortfolioSnapshot   - Grand total composed from the three slices
    TradePnL            - Unrealized PnL of a single spot entry
    TradePnLRow         - One spot entry priced against the market
    TradePnLReport      - Per-entry PnL of a user's spot trades
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from tradeledger.services.constants import UNIT_PRICE_QUANTUM, ZERO


# =============================================================================
# POSITIONS
# =============================================================================

@dataclass
class NetPosition:
    """
    Net holdings of one asset, derived from all its spot entries.

    Attributes:
        asset: Upper-cased ticker symbol
        net_quantity: Bought quantity minus sold quantity
        cost_basis: Buy costs minus sell proceeds (price x quantity per leg)
        fees: Fees of every leg, buys and sells alike
        entry_count: Ledger entries folded into this position
    """

    asset: str
    net_quantity: Decimal = ZERO
    cost_basis: Decimal = ZERO
    fees: Decimal = ZERO
    entry_count: int = 0

    @property
    def has_position(self) -> bool:
        return self.net_quantity > ZERO

    @property
    def invested(self) -> Decimal:
        """Cost basis plus fees."""
        return self.cost_basis + self.fees

    @property
    def average_cost(self) -> Decimal | None:
        """
        Weighted average purchase price (cost basis / net quantity).

        Returns None when net quantity is not positive.
        """
        if self.net_quantity <= ZERO:
            return None
        return (self.cost_basis / self.net_quantity).quantize(UNIT_PRICE_QUANTUM)


# =============================================================================
# SPOT VALUATION
# =============================================================================

@dataclass(frozen=True)
class AssetValuation:
    """
    One net position priced in the valuation currency.

    When no price is available, current_price is None, price_available is
    False and current_value is zero; the position still counts toward
    total invested.

    Attributes:
        price_is_stale: Price is a retained quote older than the cache TTL
    """

    asset: str
    net_quantity: Decimal
    average_cost: Decimal | None
    cost_basis: Decimal
    fees: Decimal
    invested: Decimal
    current_price: Decimal | None
    current_value: Decimal
    unrealized_pnl: Decimal
    pnl_percentage: Decimal
    price_available: bool
    price_is_stale: bool = False


@dataclass
class SpotValuation:
    """
    Aggregate valuation of all spot positions.

    total_* sums run over every position (an unpriced one contributes its
    invested amount and a zero current value). priced_* sums run only over
    positions with a price, which is the confident figure.
    """

    currency: str
    assets: list[AssetValuation] = field(default_factory=list)
    total_invested: Decimal = ZERO
    total_current_value: Decimal = ZERO
    total_unrealized_pnl: Decimal = ZERO
    pnl_percentage: Decimal = ZERO
    priced_invested: Decimal = ZERO
    priced_current_value: Decimal = ZERO
    priced_unrealized_pnl: Decimal = ZERO
    priced_pnl_percentage: Decimal = ZERO
    unavailable_assets: list[str] = field(default_factory=list)
    stale_assets: list[str] = field(default_factory=list)
    stale_since: datetime | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def has_complete_data(self) -> bool:
        """True if every position was priced with a fresh quote."""
        return not self.unavailable_assets and not self.stale_assets

    @property
    def is_stale(self) -> bool:
        return bool(self.stale_assets)


# =============================================================================
# MANUAL VALUATION & CASH
# =============================================================================

@dataclass(frozen=True)
class CategoryTotal:
    """Invested amount and reported PnL of one investment category."""

    category: str
    invested: Decimal
    pnl: Decimal
    entry_count: int


@dataclass
class ManualValuation:
    """
    Trader-reported valuation of the investment categories.

    Attributes:
        invested: Sum of price x quantity + fees
        pnl: Sum of reported profit_loss (null counted as zero)
        null_pnl_entries: Entries that had no profit_loss
    """

    invested: Decimal = ZERO
    pnl: Decimal = ZERO
    entry_count: int = 0
    null_pnl_entries: int = 0
    by_category: list[CategoryTotal] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def current_value(self) -> Decimal:
        return self.invested + self.pnl


@dataclass(frozen=True)
class CashSummary:
    """Deposits minus withdrawals."""

    deposits: Decimal = ZERO
    withdrawals: Decimal = ZERO
    entry_count: int = 0

    @property
    def net_cash(self) -> Decimal:
        return self.deposits - self.withdrawals


# =============================================================================
# SNAPSHOT
# =============================================================================

class SnapshotStatus(str, enum.Enum):
    """
    Data quality of a portfolio snapshot.

    COMPLETE         - every spot position priced with a fresh quote
    PARTIAL          - some positions have no price
    STALE            - price service down, retained expired quotes used
    SPOT_UNAVAILABLE - price service down and nothing to fall back on;
                       the spot slice is missing, manual and cash remain
    """
    COMPLETE = "complete"
    PARTIAL = "partial"
    STALE = "stale"
    SPOT_UNAVAILABLE = "spot_unavailable"


@dataclass(frozen=True)
class PortfolioSnapshot:
    """
    Top-level valuation produced by GrandTotalComposer.

    The only place a portfolio total is computed. When spot is None the
    spot slice contributes nothing and status is SPOT_UNAVAILABLE.
    """

    user_id: str
    currency: str
    status: SnapshotStatus
    spot: SpotValuation | None
    manual: ManualValuation
    cash: CashSummary
    total_invested: Decimal
    total_current_value: Decimal
    total_unrealized_pnl: Decimal
    pnl_percentage: Decimal
    net_cash: Decimal
    grand_total: Decimal
    computed_at: datetime
    stale_since: datetime | None = None
    warnings: tuple[str, ...] = ()
    generation: int = 0

    @property
    def has_complete_data(self) -> bool:
        return self.status == SnapshotStatus.COMPLETE


# =============================================================================
# SINGLE TRADE
# =============================================================================

@dataclass(frozen=True)
class TradePnL:
    """Unrealized PnL of one spot ledger entry against a current price."""

    invested: Decimal
    current_value: Decimal
    unrealized_pnl: Decimal
    pnl_percentage: Decimal


@dataclass(frozen=True)
class TradePnLRow:
    """One spot entry with its current price and PnL (None if unpriced)."""

    trade_id: str
    asset: str
    side: str
    quantity: Decimal
    price: Decimal
    trade_date: datetime
    current_price: Decimal | None
    pnl: TradePnL | None


@dataclass
class TradePnLReport:
    user_id: str
    currency: str
    trades: list[TradePnLRow] = field(default_factory=list)
    error: str | None = None

# backend/tradeledger/services/valuation/service.py
"""
Portfolio Snapshot Service - the one entry point for portfolio values.

Operations:
- compute_portfolio_snapshot(): Value a user's ledger in a currency
- compute_investor_snapshot(): Value the ledger of the investor's bound trader
- compute_trade_pnl(): Per-entry unrealized PnL of the spot trades
- latest_snapshot(): Last committed snapshot plus a loading flag
- get_quote(): One price through the cache
- clear_price_cache(): Explicit user refresh

Design Principles:
- Dependency Injection: repository, valuator, cache and store are passed in
- No HTTP Knowledge: Raises domain exceptions, not HTTPException
- Partial data over all-or-nothing: a dead price service drops the spot
  slice, manual and cash totals are still reported

Usage:
    service = PortfolioSnapshotService(repository, valuator, cache, store)
    snapshot = await service.compute_portfolio_snapshot(db, user_id, "USD")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, TYPE_CHECKING

from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from tradeledger.models import TradeCategory
from tradeledger.services.constants import (
    INVESTMENT_CATEGORIES,
    SPOT_CATEGORIES,
    SUPPORTED_CURRENCIES,
)
from tradeledger.services.exceptions import (
    BindingNotFoundError,
    PriceServiceUnavailableError,
    SnapshotNotFoundError,
    ValidationError,
)
from tradeledger.services.market_data.base import normalize_symbol
from tradeledger.services.market_data.cache import PriceCache
from tradeledger.services.valuation.calculators import (
    CashFlowSummarizer,
    GrandTotalComposer,
    ManualValuationAggregator,
    PositionAggregator,
    SpotTradePnLCalculator,
    category_of,
    count_foreign_currency,
    is_sell,
    to_decimal,
)
from tradeledger.services.valuation.snapshots import LatestSnapshot, SnapshotStore
from tradeledger.services.valuation.types import PortfolioSnapshot, TradePnLReport, TradePnLRow
from tradeledger.services.valuation.valuator import PortfolioValuator

if TYPE_CHECKING:
    from tradeledger.services.protocols import LedgerRepositoryProtocol

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def validate_currency(currency: str | None, default: str) -> str:
    """
    Normalize a requested valuation currency.

    Raises:
        ValidationError: Currency is not USD or PHP
    """
    code = (currency or default).strip().upper()
    if code not in SUPPORTED_CURRENCIES:
        raise ValidationError(
            f"Unsupported currency '{currency}'. Supported: {', '.join(sorted(SUPPORTED_CURRENCIES))}",
            field="currency",
        )
    return code


@dataclass(frozen=True)
class QuoteResult:
    """
    Price of one symbol as seen through the cache.

    Attributes:
        price: None when the service has no price or could not be reached
        cached: Served from a fresh cached quote without a request
        fetched_at: When the price was observed (None if unavailable)
        error: Batch-level failure, if the request failed
    """

    symbol: str
    currency: str
    price: Decimal | None
    cached: bool
    fetched_at: datetime | None
    error: str | None = None

    @property
    def available(self) -> bool:
        return self.price is not None


class PortfolioSnapshotService:
    """
    Orchestrates one valuation pass.

    A pass reads the ledger, nets the spot entries, prices them, sums the
    investment and cash slices and composes the grand total. Its result is
    committed to the SnapshotStore only if no newer pass for the same
    (user, currency) started meanwhile.
    """

    def __init__(
            self,
            repository: LedgerRepositoryProtocol,
            valuator: PortfolioValuator,
            cache: PriceCache,
            store: SnapshotStore | None = None,
            default_currency: str = "USD",
            now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._repository = repository
        self._valuator = valuator
        self._cache = cache
        self._store = store or SnapshotStore()
        self._default_currency = default_currency
        self._now = now

        self._positions = PositionAggregator()
        self._manual = ManualValuationAggregator()
        self._cash = CashFlowSummarizer()
        self._composer = GrandTotalComposer()
        self._trade_pnl = SpotTradePnLCalculator()

        logger.info("PortfolioSnapshotService initialized")

    @property
    def store(self) -> SnapshotStore:
        return self._store

    def _read_ledger(self, db: Session, user_id: str) -> tuple[list, list]:
        # Runs in a worker thread; both reads share the session, so never in parallel
        return self._repository.list_trades(db, user_id), self._repository.list_cashflows(db, user_id)

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    async def compute_portfolio_snapshot(
            self,
            db: Session,
            user_id: str,
            currency: str | None = None,
    ) -> PortfolioSnapshot:
        """
        Value a user's portfolio.

        Args:
            db: Database session
            user_id: Ledger owner
            currency: USD or PHP (default from settings)

        Returns:
            PortfolioSnapshot; status tells complete / partial / stale /
            spot_unavailable apart

        Raises:
            ValidationError: Unsupported currency
            StaleValuationError: A newer pass for the same key started
                before this one finished; its result was discarded
        """
        currency = validate_currency(currency, self._default_currency)
        token = self._store.begin(user_id, currency)

        try:
            entries, cashflows = await run_in_threadpool(self._read_ledger, db, user_id)

            spot_entries = [e for e in entries if category_of(e) in SPOT_CATEGORIES]
            investment_entries = [e for e in entries if category_of(e) in INVESTMENT_CATEGORIES]

            warnings: list[str] = []
            foreign = count_foreign_currency([*entries, *cashflows], currency)
            if foreign:
                logger.warning(f"User {user_id}: {foreign} ledger row(s) not in {currency}")
                warnings.append(
                    f"{foreign} ledger row(s) are recorded in another currency and "
                    f"are summed as recorded, without conversion to {currency}"
                )

            futures = sum(1 for e in entries if category_of(e) == TradeCategory.FUTURES)
            if futures:
                logger.debug(f"User {user_id}: {futures} futures entr(ies) not valued")

            # Aggregation completes before any price lookup
            positions = self._positions.calculate(spot_entries)

            try:
                spot = await self._valuator.value(positions, currency)
            except PriceServiceUnavailableError as e:
                spot = None
                warnings.append(
                    f"Spot prices are unavailable ({e.reason}); showing investment "
                    f"and cash totals only"
                )

            snapshot = self._composer.compose(
                user_id=user_id,
                currency=currency,
                spot=spot,
                manual=self._manual.calculate(investment_entries),
                cash=self._cash.calculate(cashflows),
                computed_at=self._now(),
                warnings=warnings,
                generation=token.generation,
            )

            self._store.commit(token, snapshot)
        finally:
            self._store.finish(token)

        logger.info(
            f"Portfolio snapshot for user {user_id} ({currency}): "
            f"status={snapshot.status.value}, grand_total={snapshot.grand_total}"
        )
        return snapshot

    async def compute_investor_snapshot(
            self,
            db: Session,
            investor_id: str,
            currency: str | None = None,
    ) -> PortfolioSnapshot:
        """
        Value the portfolio of the trader an investor is bound to.

        Raises:
            BindingNotFoundError: No approved binding for the investor
        """
        trader_id = await run_in_threadpool(
            self._repository.get_approved_binding_trader_id, db, investor_id
        )
        if trader_id is None:
            raise BindingNotFoundError(investor_id)
        return await self.compute_portfolio_snapshot(db, trader_id, currency)

    async def compute_trade_pnl(
            self,
            db: Session,
            user_id: str,
            currency: str | None = None,
    ) -> TradePnLReport:
        """
        Unrealized PnL of every spot entry of a user against current prices.

        Entries are priced individually, not netted. An entry whose asset has
        no price has pnl None; a failed price batch is reported in `error`.
        """
        currency = validate_currency(currency, self._default_currency)
        entries = await run_in_threadpool(
            self._repository.list_trades, db, user_id, category=list(SPOT_CATEGORIES)
        )

        symbols = sorted({normalize_symbol(e.asset) for e in entries})
        lookup = await self._valuator.fetch_prices(symbols, currency)

        rows = []
        for entry in entries:
            current_price = lookup.prices.get(normalize_symbol(entry.asset))
            rows.append(TradePnLRow(
                trade_id=entry.id,
                asset=normalize_symbol(entry.asset),
                side="sell" if is_sell(entry) else "buy",
                quantity=to_decimal(entry.quantity),
                price=to_decimal(entry.price),
                trade_date=entry.trade_date,
                current_price=current_price,
                pnl=self._trade_pnl.calculate(entry, current_price),
            ))

        return TradePnLReport(
            user_id=user_id,
            currency=currency,
            trades=rows,
            error=lookup.errors[0] if lookup.errors else None,
        )

    def latest_snapshot(self, user_id: str, currency: str | None = None) -> LatestSnapshot:
        """
        Last committed snapshot for the key and whether a pass is running.

        While the first pass for a key is in flight the snapshot is None
        and loading is True.

        Raises:
            SnapshotNotFoundError: Nothing committed and nothing running
        """
        currency = validate_currency(currency, self._default_currency)
        latest = self._store.latest(user_id, currency)
        if latest.snapshot is None and not latest.loading:
            raise SnapshotNotFoundError(user_id, currency)
        return latest

    async def get_quote(self, symbol: str, currency: str | None = None) -> QuoteResult:
        """Current price of one symbol through cache -> adapter."""
        currency = validate_currency(currency, self._default_currency)
        normalized = normalize_symbol(symbol)
        if not normalized:
            raise ValidationError("Symbol must not be empty", field="symbol")

        lookup = await self._valuator.fetch_prices([normalized], currency)
        price = lookup.prices.get(normalized)
        quote = self._cache.get_quote(normalized, currency) if price is not None else None

        return QuoteResult(
            symbol=normalized,
            currency=currency,
            price=price,
            cached=lookup.cache_hits > 0,
            fetched_at=(
                datetime.fromtimestamp(quote.fetched_at, tz=timezone.utc)
                if quote is not None else None
            ),
            error=lookup.errors[0] if lookup.errors else None,
        )

    def clear_price_cache(self) -> int:
        """Drop every cached quote. Returns the number removed."""
        return self._cache.clear()

# backend/tradeledger/services/ledger/repository.py
"""
SQLAlchemy implementation of the ledger read contract.

The persistence layer owns these tables and enforces row-level access;
this repository only reads rows that the session is allowed to see.

Usage:
    repository = LedgerRepository()
    trades = repository.list_trades(db, user_id, category=TradeCategory.SPOT)
    trader_id = repository.get_approved_binding_trader_id(db, investor_id)
"""

import logging
from collections.abc import Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from tradeledger.models import (
    Binding,
    BindingStatus,
    Cashflow,
    Trade,
    TradeCategory,
)

logger = logging.getLogger(__name__)


class LedgerRepository:
    """Reads trades, cashflows and bindings for the valuation services."""

    def list_trades(
            self,
            db: Session,
            user_id: str,
            category: TradeCategory | Sequence[TradeCategory] | None = None,
    ) -> list[Trade]:
        """
        Ledger entries of a user, oldest first.

        Args:
            db: Database session
            user_id: Owner of the entries
            category: One category or several to filter on (None = all)

        Returns:
            Trades sorted by trade_date, then creation time
        """
        query = select(Trade).where(Trade.user_id == user_id)

        if category is not None:
            categories = [category] if isinstance(category, TradeCategory) else list(category)
            query = query.where(Trade.category.in_(categories))

        query = query.order_by(Trade.trade_date, Trade.created_at)
        return list(db.scalars(query).all())

    def list_cashflows(self, db: Session, user_id: str) -> list[Cashflow]:
        """Cash flows of a user, oldest transaction first."""
        return list(db.scalars(
            select(Cashflow)
            .where(Cashflow.user_id == user_id)
            .order_by(Cashflow.transaction_date, Cashflow.created_at)
        ).all())

    def get_approved_binding_trader_id(self, db: Session, investor_id: str) -> str | None:
        """
        Trader whose data the investor may read.

        Pending and revoked bindings are ignored. If several approved
        bindings exist, the most recent one wins.
        """
        trader_id = db.scalar(
            select(Binding.trader_id)
            .where(
                Binding.investor_id == investor_id,
                Binding.status == BindingStatus.APPROVED,
            )
            .order_by(Binding.updated_at.desc())
            .limit(1)
        )
        if trader_id is None:
            logger.debug(f"No approved binding for investor {investor_id}")
        return trader_id

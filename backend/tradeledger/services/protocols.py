# backend/tradeledger/services/protocols.py
"""
Protocol interfaces for service dependency injection.

Using typing.Protocol enables structural subtyping:
- The SQLAlchemy repository satisfies LedgerRepositoryProtocol as is
- Test doubles work without explicit inheritance
- The persistence contract the valuation engine relies on is documented
  in one place
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, TYPE_CHECKING

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from tradeledger.models import Cashflow, Trade, TradeCategory


class LedgerRepositoryProtocol(Protocol):
    """
    Read contract of the persistence layer.

    Rows returned are already access-filtered; the services perform no
    authorization checks of their own.
    """

    def list_trades(
        self,
        db: Session,
        user_id: str,
        category: TradeCategory | Sequence[TradeCategory] | None = None,
    ) -> list[Trade]:
        """Ledger entries of a user, oldest trade_date first."""
        ...

    def list_cashflows(self, db: Session, user_id: str) -> list[Cashflow]:
        ...

    def get_approved_binding_trader_id(self, db: Session, investor_id: str) -> str | None:
        """Trader an investor may read, considering approved bindings only."""
        ...

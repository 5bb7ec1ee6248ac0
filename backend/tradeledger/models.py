# backend/tradeledger/models.py
"""
ORM mapping of the ledger tables owned by the persistence layer.

Row-level authorization is enforced by the database; these models only
mirror the columns the valuation engine reads.
"""
import enum
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    # Persist the lowercase values ("spot"), not the member names ("SPOT")
    return [member.value for member in enum_cls]


class UserRole(str, enum.Enum):
    TRADER = "trader"
    INVESTOR = "investor"


class Currency(str, enum.Enum):
    USD = "USD"
    PHP = "PHP"


class TradeCategory(str, enum.Enum):
    """
    Ledger entry categories.

    SPOT and FUTURES are trades; the remaining four are investment
    products whose value is reported manually by the trader.
    """
    SPOT = "spot"
    FUTURES = "futures"
    DEFI = "defi"
    DUAL_INVESTMENT = "dual_investment"
    LIQUIDITY_POOL = "liquidity_pool"
    LIQUIDITY_MINING = "liquidity_mining"


class CashflowType(str, enum.Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"


class BindingStatus(str, enum.Enum):
    """
    Trader/investor binding lifecycle.

    PENDING → APPROVED → REVOKED
    Only APPROVED bindings grant read access.
    """
    PENDING = "pending"
    APPROVED = "approved"
    REVOKED = "revoked"


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    email: Mapped[str] = mapped_column(String, unique=True, index=True)
    username: Mapped[str] = mapped_column(String)
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, values_callable=_enum_values, native_enum=False)
    )
    currency: Mapped[Currency] = mapped_column(
        Enum(Currency, values_callable=_enum_values, native_enum=False),
        default=Currency.USD,
    )
    bio: Mapped[str | None] = mapped_column(Text, default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now, onupdate=_now)

    trades: Mapped[list["Trade"]] = relationship(back_populates="owner", cascade="all, delete-orphan")
    cashflows: Mapped[list["Cashflow"]] = relationship(back_populates="owner", cascade="all, delete-orphan")


class Trade(Base):
    """
    One manually logged ledger entry.

    `details` is category specific: {"buy_sell": "buy"|"sell"} for spot and
    futures, {"platform": ..., "apy": ...} and similar for investment
    categories. `profit_loss` is mandatory for investment categories.
    """
    __tablename__ = "trades"
    __table_args__ = (
        CheckConstraint("price > 0", name="ck_trades_price_positive"),
        CheckConstraint("quantity > 0", name="ck_trades_quantity_positive"),
        CheckConstraint("fees IS NULL OR fees >= 0", name="ck_trades_fees_non_negative"),
        CheckConstraint(
            "category IN ('spot', 'futures') OR profit_loss IS NOT NULL",
            name="ck_trades_investment_profit_loss",
        ),
        Index("ix_trades_user_date", "user_id", "trade_date"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    category: Mapped[TradeCategory] = mapped_column(
        Enum(TradeCategory, values_callable=_enum_values, native_enum=False)
    )
    asset: Mapped[str] = mapped_column(String)
    price: Mapped[Decimal] = mapped_column(Numeric(28, 10))
    currency: Mapped[Currency] = mapped_column(
        Enum(Currency, values_callable=_enum_values, native_enum=False),
        default=Currency.USD,
    )
    quantity: Mapped[Decimal] = mapped_column(Numeric(28, 10))
    trade_date: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    fees: Mapped[Decimal | None] = mapped_column(Numeric(28, 10), default=Decimal("0"))
    profit_loss: Mapped[Decimal | None] = mapped_column(Numeric(28, 10), default=None)
    details: Mapped[dict | None] = mapped_column(JSON, default=None)
    notes: Mapped[str | None] = mapped_column(Text, default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now, onupdate=_now)

    owner: Mapped["User"] = relationship(back_populates="trades")


class Cashflow(Base):
    """A deposit into or withdrawal from the trader's account."""
    __tablename__ = "cashflows"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_cashflows_amount_positive"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    type: Mapped[CashflowType] = mapped_column(
        Enum(CashflowType, values_callable=_enum_values, native_enum=False)
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(28, 10))
    currency: Mapped[Currency] = mapped_column(
        Enum(Currency, values_callable=_enum_values, native_enum=False),
        default=Currency.USD,
    )
    source: Mapped[str | None] = mapped_column(String, default=None)
    destination: Mapped[str | None] = mapped_column(String, default=None)
    transaction_date: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    notes: Mapped[str | None] = mapped_column(Text, default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now, onupdate=_now)

    owner: Mapped["User"] = relationship(back_populates="cashflows")


class Binding(Base):
    """Read-access grant from a trader to an investor."""
    __tablename__ = "bindings"
    __table_args__ = (
        UniqueConstraint("trader_id", "investor_id", name="uq_binding_pair"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    trader_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    investor_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    status: Mapped[BindingStatus] = mapped_column(
        Enum(BindingStatus, values_callable=_enum_values, native_enum=False),
        default=BindingStatus.PENDING,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_now, onupdate=_now)

#!/usr/bin/env python3
# backend/scripts/seed_sample_data.py
"""
Seed a local database with a demo trader, an investor bound to them and a
small ledger covering every valuation slice:

- Spot: a BTC buy, an ETH buy and partial sell, a fully closed SOL round trip
- Investment products: DeFi and liquidity pool entries with reported PnL
- Futures: one closed trade (recorded PnL, never valued)
- Cash: a deposit and a withdrawal

Idempotent: rows are only added for a trader that has no ledger yet.
"""
import logging
import sys
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

# Setup path to import tradeledger modules
backend_dir = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(backend_dir))

from sqlalchemy import select

from tradeledger.database import SessionLocal
from tradeledger.models import (
    Binding,
    BindingStatus,
    Cashflow,
    CashflowType,
    Trade,
    TradeCategory,
    User,
    UserRole,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def _date(month: int, day: int) -> datetime:
    return datetime(2024, month, day, 12, 0, tzinfo=timezone.utc)


def _get_or_create_user(db, email: str, role: UserRole) -> User:
    user = db.scalar(select(User).where(User.email == email))
    if user is None:
        user = User(email=email, username=email.split("@")[0], role=role)
        db.add(user)
        db.commit()
        db.refresh(user)
        logger.info(f"Created {role.value}: {user.email}")
    else:
        logger.info(f"{role.value.capitalize()} exists: {user.email}")
    return user


def _spot(user: User, asset: str, side: str, price: str, quantity: str, fees: str, when: datetime) -> Trade:
    return Trade(
        user_id=user.id,
        category=TradeCategory.SPOT,
        asset=asset,
        price=Decimal(price),
        quantity=Decimal(quantity),
        fees=Decimal(fees),
        details={"buy_sell": side},
        trade_date=when,
    )


def _investment(user: User, category: TradeCategory, asset: str, amount: str, pnl: str,
                platform: str, when: datetime) -> Trade:
    return Trade(
        user_id=user.id,
        category=category,
        asset=asset,
        price=Decimal("1"),
        quantity=Decimal(amount),
        fees=Decimal("0"),
        profit_loss=Decimal(pnl),
        details={"platform": platform},
        trade_date=when,
    )


def seed() -> None:
    db = SessionLocal()
    try:
        logger.info("Starting database seeding...")

        trader = _get_or_create_user(db, "trader@example.com", UserRole.TRADER)
        investor = _get_or_create_user(db, "investor@example.com", UserRole.INVESTOR)

        binding = db.scalar(select(Binding).where(
            Binding.trader_id == trader.id,
            Binding.investor_id == investor.id,
        ))
        if binding is None:
            db.add(Binding(trader_id=trader.id, investor_id=investor.id, status=BindingStatus.APPROVED))
            db.commit()
            logger.info("Created approved binding")

        if db.scalar(select(Trade.id).where(Trade.user_id == trader.id).limit(1)) is not None:
            logger.info("Ledger already seeded")
            return

        db.add_all([
            _spot(trader, "BTC", "buy", "40000", "0.1", "10", _date(1, 15)),
            _spot(trader, "ETH", "buy", "2200", "2", "4", _date(2, 1)),
            _spot(trader, "ETH", "sell", "3000", "0.5", "1.5", _date(3, 10)),
            _spot(trader, "SOL", "buy", "100", "10", "1", _date(3, 12)),
            _spot(trader, "SOL", "sell", "140", "10", "1", _date(4, 2)),
            _investment(trader, TradeCategory.DEFI, "USDT", "1000", "150", "Aave", _date(2, 5)),
            _investment(trader, TradeCategory.LIQUIDITY_POOL, "USDC", "500", "-12.5", "Uniswap", _date(3, 1)),
            Trade(
                user_id=trader.id,
                category=TradeCategory.FUTURES,
                asset="BTC",
                price=Decimal("42000"),
                quantity=Decimal("0.05"),
                fees=Decimal("2"),
                profit_loss=Decimal("85"),
                details={"buy_sell": "buy", "leverage": 5},
                trade_date=_date(2, 20),
            ),
            Cashflow(user_id=trader.id, type=CashflowType.DEPOSIT, amount=Decimal("10000"),
                     source="Bank", transaction_date=_date(1, 2)),
            Cashflow(user_id=trader.id, type=CashflowType.WITHDRAWAL, amount=Decimal("1500"),
                     destination="Bank", transaction_date=_date(4, 30)),
        ])
        db.commit()
        logger.info("Seeding complete")

    except Exception as e:
        logger.error(f"Seeding failed: {e}")
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    seed()

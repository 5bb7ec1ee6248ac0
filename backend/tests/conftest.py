# backend/tests/conftest.py
"""
Pytest configuration and fixtures.

This module provides shared fixtures for all tests:
- Database session fixtures (in-memory SQLite)
- FakeClock for TTL and breaker timing
- MockPriceSource standing in for the market data service
- Ledger entry factories (persisted rows and detached entries)
- TestClient with dependency overrides
"""

import os

# Settings are validated at import time; test mode allows in-memory SQLite
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Iterator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from tradeledger.database import get_db
from tradeledger.dependencies import get_performance_service, get_price_source, get_snapshot_service
from tradeledger.main import app
from tradeledger.models import (
    Base,
    Binding,
    BindingStatus,
    Cashflow,
    CashflowType,
    Currency,
    Trade,
    TradeCategory,
    User,
    UserRole,
)
from tradeledger.services.analytics.performance import PerformanceService
from tradeledger.services.market_data.base import PriceSource, QuoteBatch, normalize_symbols
from tradeledger.services.market_data.cache import PriceCache
from tradeledger.services.ledger.repository import LedgerRepository
from tradeledger.services.valuation.service import PortfolioSnapshotService
from tradeledger.services.valuation.snapshots import SnapshotStore
from tradeledger.services.valuation.valuator import PortfolioValuator

BASE_DATE = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)
FIXED_NOW = datetime(2024, 6, 1, 9, 30, tzinfo=timezone.utc)


# =============================================================================
# DATABASE FIXTURES
# =============================================================================

@pytest.fixture(scope="function")
def db_engine():
    """Create an in-memory SQLite database engine for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)


@pytest.fixture(scope="function")
def db(db_engine) -> Iterator[Session]:
    """Create a database session for testing."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


# =============================================================================
# CLOCK
# =============================================================================

class FakeClock:
    """Manually advanced clock returning epoch seconds."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# =============================================================================
# MOCK PRICE SOURCE
# =============================================================================

class MockPriceSource(PriceSource):
    """
    In-memory PriceSource.

    Prices are configured per symbol (any currency). Symbols without a
    configured price come back as None. `fail_with` makes every batch fail
    at batch level, like a network outage. `gate`, when set, blocks each
    fetch until the event is set (used to hold a fetch in flight).
    """

    def __init__(self, prices: dict[str, Decimal | str | None] | None = None) -> None:
        self.prices: dict[str, Decimal | None] = {}
        self.fail_with: str | None = None
        self.gate: asyncio.Event | None = None
        self.batch_calls: list[tuple[list[str], str]] = []
        for symbol, price in (prices or {}).items():
            self.set_price(symbol, price)

    @property
    def name(self) -> str:
        return "mock"

    def set_price(self, symbol: str, price: Decimal | str | None) -> None:
        self.prices[symbol.upper()] = Decimal(str(price)) if price is not None else None

    @property
    def call_count(self) -> int:
        return len(self.batch_calls)

    @property
    def requested_symbols(self) -> list[str]:
        return [s for symbols, _ in self.batch_calls for s in symbols]

    async def fetch_batch(self, symbols: list[str], currency: str) -> QuoteBatch:
        normalized = normalize_symbols(symbols)
        self.batch_calls.append((normalized, currency))

        if self.gate is not None:
            await self.gate.wait()

        if self.fail_with is not None:
            return QuoteBatch.failed(normalized, currency.upper(), self.fail_with)

        return QuoteBatch(
            currency=currency.upper(),
            prices={s: self.prices.get(s) for s in normalized},
        )


@pytest.fixture
def price_source() -> MockPriceSource:
    return MockPriceSource({"BTC": "45000", "ETH": "2500"})


@pytest.fixture
def price_cache(clock: FakeClock) -> PriceCache:
    return PriceCache(ttl_seconds=1800, clock=clock)


@pytest.fixture
def valuator(price_source: MockPriceSource, price_cache: PriceCache) -> PortfolioValuator:
    return PortfolioValuator(price_source=price_source, cache=price_cache)


@pytest.fixture
def snapshot_service(valuator: PortfolioValuator, price_cache: PriceCache) -> PortfolioSnapshotService:
    return PortfolioSnapshotService(
        repository=LedgerRepository(),
        valuator=valuator,
        cache=price_cache,
        store=SnapshotStore(),
        default_currency="USD",
        now=lambda: FIXED_NOW,
    )


# =============================================================================
# DETACHED ENTRIES (no database)
# =============================================================================

def make_entry(
        asset: str = "BTC",
        price: str = "40000",
        quantity: str = "0.1",
        fees: str | None = "0",
        category: TradeCategory = TradeCategory.SPOT,
        side: str | None = "buy",
        profit_loss: str | None = None,
        currency: Currency = Currency.USD,
        trade_date: datetime = BASE_DATE,
) -> Trade:
    """Unsaved Trade for calculator tests."""
    return Trade(
        user_id="user-1",
        category=category,
        asset=asset,
        price=Decimal(price),
        quantity=Decimal(quantity),
        fees=Decimal(fees) if fees is not None else None,
        profit_loss=Decimal(profit_loss) if profit_loss is not None else None,
        details={"buy_sell": side} if side is not None else {},
        currency=currency,
        trade_date=trade_date,
    )


def make_cashflow_entry(
        amount: str,
        type: CashflowType = CashflowType.DEPOSIT,
        currency: Currency = Currency.USD,
) -> Cashflow:
    return Cashflow(
        user_id="user-1",
        type=type,
        amount=Decimal(amount),
        currency=currency,
        transaction_date=BASE_DATE,
    )


# =============================================================================
# PERSISTED ROWS
# =============================================================================

def create_user(
        db: Session,
        email: str = "trader@example.com",
        role: UserRole = UserRole.TRADER,
) -> User:
    """Factory function for creating User rows."""
    user = User(email=email, username=email.split("@")[0], role=role)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def create_trade(
        db: Session,
        user: User,
        asset: str = "BTC",
        price: str = "40000",
        quantity: str = "0.1",
        fees: str = "0",
        category: TradeCategory = TradeCategory.SPOT,
        side: str | None = "buy",
        profit_loss: str | None = None,
        currency: Currency = Currency.USD,
        days_offset: int = 0,
) -> Trade:
    """Factory function for creating Trade rows; days_offset orders them."""
    trade = Trade(
        user_id=user.id,
        category=category,
        asset=asset,
        price=Decimal(price),
        quantity=Decimal(quantity),
        fees=Decimal(fees),
        profit_loss=Decimal(profit_loss) if profit_loss is not None else None,
        details={"buy_sell": side} if side is not None else None,
        currency=currency,
        trade_date=BASE_DATE + timedelta(days=days_offset),
    )
    db.add(trade)
    db.commit()
    db.refresh(trade)
    return trade


def create_cashflow(
        db: Session,
        user: User,
        amount: str,
        type: CashflowType = CashflowType.DEPOSIT,
        currency: Currency = Currency.USD,
        days_offset: int = 0,
) -> Cashflow:
    """Factory function for creating Cashflow rows."""
    cashflow = Cashflow(
        user_id=user.id,
        type=type,
        amount=Decimal(amount),
        currency=currency,
        transaction_date=BASE_DATE + timedelta(days=days_offset),
    )
    db.add(cashflow)
    db.commit()
    db.refresh(cashflow)
    return cashflow


def create_binding(
        db: Session,
        trader: User,
        investor: User,
        status: BindingStatus = BindingStatus.APPROVED,
) -> Binding:
    """Factory function for creating Binding rows."""
    binding = Binding(trader_id=trader.id, investor_id=investor.id, status=status)
    db.add(binding)
    db.commit()
    db.refresh(binding)
    return binding


@pytest.fixture
def trader(db: Session) -> User:
    return create_user(db)


@pytest.fixture
def investor(db: Session) -> User:
    return create_user(db, email="investor@example.com", role=UserRole.INVESTOR)


# =============================================================================
# API CLIENT
# =============================================================================

@pytest.fixture
def client(db: Session, snapshot_service: PortfolioSnapshotService, price_source: MockPriceSource):
    """
    TestClient with the database, price source and services overridden.

    Every request shares the test session and the fixture's cache, so
    tests can seed rows and inspect price_source calls directly.
    """

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_snapshot_service] = lambda: snapshot_service
    app.dependency_overrides[get_performance_service] = lambda: PerformanceService(LedgerRepository())
    app.dependency_overrides[get_price_source] = lambda: price_source

    yield TestClient(app)

    app.dependency_overrides.clear()

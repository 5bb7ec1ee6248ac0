# backend/tradeledger/database.py
"""
Sessions against the ledger database.

The persistence layer owns the trades, cashflows and bindings tables and
applies row-level access before anything reaches this service. This module
only opens sessions for LedgerRepository; it never writes.

Engine choice follows DATABASE_URL:
- sqlite (tests, local runs): one shared connection, so an in-memory
  database survives across sessions
- postgresql: QueuePool tuned by DB_POOL_SIZE / DB_POOL_MAX_OVERFLOW /
  DB_POOL_RECYCLE / DB_POOL_PRE_PING
"""

import logging
from collections.abc import Iterator

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from .config import settings

logger = logging.getLogger(__name__)


def build_engine(url: str) -> Engine:
    if url.lower().startswith("sqlite://"):
        logger.info("Ledger database: SQLite (shared connection)")
        return create_engine(
            url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
            echo=settings.debug,
        )

    logger.info(
        f"Ledger database: PostgreSQL pool size={settings.db_pool_size} "
        f"overflow={settings.db_pool_max_overflow} recycle={settings.db_pool_recycle}s"
    )
    return create_engine(
        url,
        poolclass=QueuePool,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_pool_max_overflow,
        pool_recycle=settings.db_pool_recycle,
        pool_pre_ping=settings.db_pool_pre_ping,
        echo=settings.debug,
    )


engine = build_engine(settings.database_url)
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def get_db() -> Iterator[Session]:
    """FastAPI dependency: one read session per request, closed afterwards."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

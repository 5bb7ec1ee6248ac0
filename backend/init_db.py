#!/usr/bin/env python3
# backend/init_db.py
"""
Create the ledger tables in a local development database.

In deployment the persistence layer owns the schema; this is only for
running the API against a scratch SQLite or PostgreSQL database.

    DATABASE_URL=sqlite:///./ledger.db python backend/init_db.py
"""
import sys
from pathlib import Path

# Make the 'tradeledger' package importable without installing it
backend_dir = Path(__file__).parent
sys.path.insert(0, str(backend_dir))

from tradeledger.database import engine
from tradeledger.models import Base


def init_db() -> None:
    print(f"Creating ledger tables on {engine.url.render_as_string(hide_password=True)}...")
    Base.metadata.create_all(bind=engine)
    print("Tables created successfully!")


if __name__ == "__main__":
    init_db()

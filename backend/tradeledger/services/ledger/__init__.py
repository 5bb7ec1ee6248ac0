# backend/tradeledger/services/ledger/__init__.py
"""
Ledger access package.

Usage:
    from tradeledger.services.ledger import LedgerRepository
"""

from tradeledger.services.ledger.repository import LedgerRepository

__all__ = ["LedgerRepository"]

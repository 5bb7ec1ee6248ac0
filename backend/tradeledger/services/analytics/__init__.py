# backend/tradeledger/services/analytics/__init__.py
"""
Trade analytics package.

Usage:
    from tradeledger.services.analytics import PerformanceService

    report = PerformanceService(repository).get_performance(db, user_id)
"""

from tradeledger.services.analytics.performance import (
    DashboardStats,
    DashboardStatsCalculator,
    PerformanceMetrics,
    PerformanceReport,
    PerformanceService,
    TradePerformanceCalculator,
)

__all__ = [
    "PerformanceService",
    "PerformanceReport",
    "PerformanceMetrics",
    "DashboardStats",
    "TradePerformanceCalculator",
    "DashboardStatsCalculator",
]

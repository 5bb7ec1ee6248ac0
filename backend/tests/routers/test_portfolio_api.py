# backend/tests/routers/test_portfolio_api.py
"""
API layer tests for portfolio endpoints.

These tests verify the HTTP layer using FastAPI's TestClient:
- Status codes (200, 400, 404, 409, 429, 500, 503)
- Response JSON structure matches the Pydantic schemas
- Service exceptions mapped to ErrorDetail bodies
"""

from decimal import Decimal

import pytest

from tradeledger.dependencies import get_snapshot_service
from tradeledger.main import app
from tradeledger.models import CashflowType, TradeCategory
from tradeledger.services.exceptions import (
    CircuitBreakerOpen,
    RateLimitError,
    ServiceError,
    StaleValuationError,
)
from tests.conftest import (
    create_binding,
    create_cashflow,
    create_trade,
)


def seed_ledger(db, user):
    create_trade(db, user, asset="BTC", price="40000", quantity="0.1", fees="10")
    create_trade(db, user, asset="USDT", category=TradeCategory.DEFI, price="1000", quantity="1",
                 profit_loss="150", side=None, days_offset=1)
    create_cashflow(db, user, "1000")
    create_cashflow(db, user, "300", type=CashflowType.WITHDRAWAL, days_offset=2)


class RaisingSnapshotService:
    """Stands in for the snapshot service and fails every computation."""

    def __init__(self, exc: Exception) -> None:
        self.exc = exc

    async def compute_portfolio_snapshot(self, db, user_id, currency=None):
        raise self.exc


# =============================================================================
# SNAPSHOT
# =============================================================================

class TestGetPortfolioSnapshot:

    def test_complete_snapshot(self, client, db, trader):
        seed_ledger(db, trader)

        response = client.get(f"/users/{trader.id}/portfolio/snapshot")

        assert response.status_code == 200
        body = response.json()
        assert body["user_id"] == trader.id
        assert body["currency"] == "USD"
        assert body["status"] == "complete"
        assert Decimal(body["grand_total"]) == Decimal("6350.00")
        assert Decimal(body["net_cash"]) == Decimal("700.00")
        assert body["generation"] == 1

        btc = body["spot"]["assets"][0]
        assert btc["asset"] == "BTC"
        assert Decimal(btc["unrealized_pnl"]) == Decimal("490.00")
        assert Decimal(btc["pnl_percentage"]) == Decimal("12.22")
        assert btc["price_available"] is True
        assert body["spot"]["has_complete_data"] is True

        assert Decimal(body["manual"]["current_value"]) == Decimal("1150.00")
        assert body["manual"]["by_category"][0]["category"] == "defi"
        assert Decimal(body["cash"]["net_cash"]) == Decimal("700.00")

    def test_php_currency(self, client, db, trader, price_source):
        create_trade(db, trader, asset="BTC")

        response = client.get(f"/users/{trader.id}/portfolio/snapshot", params={"currency": "php"})

        assert response.status_code == 200
        assert response.json()["currency"] == "PHP"
        assert price_source.batch_calls[-1] == (["BTC"], "PHP")

    def test_unavailable_price_is_null(self, client, db, trader):
        create_trade(db, trader, asset="XYZ", price="2", quantity="100")

        body = client.get(f"/users/{trader.id}/portfolio/snapshot").json()

        assert body["status"] == "partial"
        asset = body["spot"]["assets"][0]
        assert asset["current_price"] is None
        assert asset["price_available"] is False
        assert body["spot"]["unavailable_assets"] == ["XYZ"]
        assert body["warnings"]

    def test_price_service_down_is_still_200(self, client, db, trader, price_source):
        seed_ledger(db, trader)
        price_source.fail_with = "network error"

        response = client.get(f"/users/{trader.id}/portfolio/snapshot")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "spot_unavailable"
        assert body["spot"] is None
        assert Decimal(body["grand_total"]) == Decimal("1850.00")

    def test_unsupported_currency_returns_400(self, client, trader):
        response = client.get(f"/users/{trader.id}/portfolio/snapshot", params={"currency": "EUR"})

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "ValidationError"
        assert body["details"] == {"field": "currency"}


class TestGetLatestSnapshot:

    def test_nothing_computed_yet_returns_404(self, client, trader):
        response = client.get(f"/users/{trader.id}/portfolio/snapshot/latest")

        assert response.status_code == 404
        body = response.json()
        assert body["error"] == "SnapshotNotFoundError"
        assert body["details"] == {"resource_type": "PortfolioSnapshot", "resource_id": trader.id}

    def test_first_pass_in_flight(self, client, trader, snapshot_service):
        token = snapshot_service.store.begin(trader.id, "USD")

        response = client.get(f"/users/{trader.id}/portfolio/snapshot/latest")

        assert response.status_code == 200
        assert response.json() == {"loading": True, "snapshot": None}
        snapshot_service.store.finish(token)

    def test_returns_last_committed_snapshot(self, client, db, trader, price_source):
        seed_ledger(db, trader)
        client.get(f"/users/{trader.id}/portfolio/snapshot")

        response = client.get(f"/users/{trader.id}/portfolio/snapshot/latest")

        body = response.json()
        assert body["loading"] is False
        assert Decimal(body["snapshot"]["grand_total"]) == Decimal("6350.00")
        # No recomputation, so no new price request
        assert price_source.call_count == 1


class TestGetInvestorSnapshot:

    def test_bound_investor_sees_trader_portfolio(self, client, db, trader, investor):
        seed_ledger(db, trader)
        create_binding(db, trader, investor)

        response = client.get(f"/investors/{investor.id}/portfolio/snapshot")

        assert response.status_code == 200
        assert response.json()["user_id"] == trader.id

    def test_unbound_investor_returns_404(self, client, investor):
        response = client.get(f"/investors/{investor.id}/portfolio/snapshot")

        assert response.status_code == 404
        body = response.json()
        assert body["error"] == "BindingNotFoundError"
        assert body["details"] == {"investor_id": investor.id}


class TestErrorMapping:

    @pytest.fixture
    def failing(self, client):
        def install(exc: Exception):
            app.dependency_overrides[get_snapshot_service] = lambda: RaisingSnapshotService(exc)
            return client
        return install

    def test_superseded_pass_returns_409(self, failing):
        client = failing(StaleValuationError("user-1", "USD", 1, 2))

        response = client.get("/users/user-1/portfolio/snapshot")

        assert response.status_code == 409
        assert response.json()["details"] == {"generation": 1, "current_generation": 2}

    def test_open_circuit_returns_503_with_retry_after(self, failing):
        client = failing(CircuitBreakerOpen("coingecko", 12.3))

        response = client.get("/users/user-1/portfolio/snapshot")

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "13"
        assert response.json()["details"]["breaker_name"] == "coingecko"

    def test_rate_limit_returns_429(self, failing):
        client = failing(RateLimitError("coingecko", retry_after=30))

        response = client.get("/users/user-1/portfolio/snapshot")

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "30"

    def test_unexpected_service_error_returns_500(self, failing):
        client = failing(ServiceError("ledger read failed"))

        response = client.get("/users/user-1/portfolio/snapshot")

        assert response.status_code == 500
        assert response.json() == {
            "error": "ServiceError",
            "message": "ledger read failed",
            "details": None,
        }


# =============================================================================
# PERFORMANCE
# =============================================================================

class TestGetPerformance:

    def test_metrics_and_stats(self, client, db, trader):
        create_trade(db, trader, category=TradeCategory.FUTURES, profit_loss="120")
        create_trade(db, trader, category=TradeCategory.DEFI, profit_loss="-20", days_offset=1)

        response = client.get(f"/users/{trader.id}/performance")

        assert response.status_code == 200
        body = response.json()
        assert body["user_id"] == trader.id
        assert body["metrics"]["total_trades"] == 2
        assert Decimal(body["metrics"]["win_rate"]) == Decimal("50.00")
        assert Decimal(body["metrics"]["profit_factor"]) == Decimal("6.00")
        assert body["stats"]["trade_count"] == 1
        assert body["stats"]["investment_count"] == 1

    def test_empty_ledger(self, client, trader):
        body = client.get(f"/users/{trader.id}/performance").json()

        assert body["metrics"]["total_trades"] == 0
        assert body["stats"]["trade_count"] == 0


# =============================================================================
# PER-TRADE PNL
# =============================================================================

class TestGetTradePnL:

    def test_each_spot_trade_priced(self, client, db, trader):
        seed_ledger(db, trader)
        create_trade(db, trader, asset="XYZ", price="2", quantity="100", days_offset=3)

        response = client.get(f"/users/{trader.id}/trades/pnl")

        assert response.status_code == 200
        body = response.json()
        assert body["user_id"] == trader.id
        assert body["error"] is None
        assert [row["asset"] for row in body["trades"]] == ["BTC", "XYZ"]

        btc, xyz = body["trades"]
        assert btc["side"] == "buy"
        assert Decimal(btc["current_price"]) == Decimal("45000")
        assert Decimal(btc["pnl"]["unrealized_pnl"]) == Decimal("490.00")
        assert xyz["current_price"] is None
        assert xyz["pnl"] is None

    def test_unsupported_currency_returns_400(self, client, trader):
        response = client.get(f"/users/{trader.id}/trades/pnl", params={"currency": "EUR"})

        assert response.status_code == 400

# backend/tests/routers/test_prices_api.py
"""
API layer tests for price endpoints and the health check.
"""

from decimal import Decimal

from tradeledger.database import get_db
from tradeledger.dependencies import get_price_source
from tradeledger.main import app
from tradeledger.services.circuit_breaker import CircuitBreaker
from tradeledger.services.market_data.coingecko import CoinGeckoPriceSource
from tests.conftest import FakeClock


class TestGetPrice:

    def test_price_is_fetched_then_cached(self, client, price_source):
        first = client.get("/prices/btc")
        second = client.get("/prices/BTC")

        assert first.status_code == 200
        body = first.json()
        assert body["symbol"] == "BTC"
        assert body["currency"] == "USD"
        assert Decimal(body["price"]) == Decimal("45000")
        assert body["available"] is True
        assert body["cached"] is False
        assert body["fetched_at"] is not None

        assert second.json()["cached"] is True
        assert price_source.call_count == 1

    def test_unknown_symbol_is_null_not_an_error(self, client):
        response = client.get("/prices/XYZ")

        assert response.status_code == 200
        body = response.json()
        assert body["price"] is None
        assert body["available"] is False

    def test_price_service_down(self, client, price_source):
        price_source.fail_with = "HTTP 503"

        body = client.get("/prices/BTC").json()

        assert body["available"] is False
        assert body["error"] == "HTTP 503"

    def test_php_quote(self, client, price_source):
        price_source.set_price("ETH", "140000")

        body = client.get("/prices/eth", params={"currency": "PHP"}).json()

        assert body["currency"] == "PHP"
        assert price_source.batch_calls == [(["ETH"], "PHP")]

    def test_unsupported_currency_returns_400(self, client):
        response = client.get("/prices/BTC", params={"currency": "JPY"})

        assert response.status_code == 400
        assert response.json()["details"] == {"field": "currency"}


class TestRefresh:

    def test_refresh_clears_the_cache(self, client, price_source):
        client.get("/prices/BTC")
        client.get("/prices/ETH")

        response = client.post("/prices/refresh")

        assert response.status_code == 200
        assert response.json() == {"cleared": 2}

        client.get("/prices/BTC")
        assert price_source.call_count == 3


class TestHealth:

    def test_healthy(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["checks"]["database"]["status"] == "healthy"
        assert body["checks"]["price_service"]["provider"] == "mock"

    def test_open_circuit_is_degraded(self, client):
        breaker = CircuitBreaker(name="coingecko", failure_threshold=1, clock=FakeClock())
        try:
            with breaker:
                raise RuntimeError("down")
        except RuntimeError:
            pass
        source = CoinGeckoPriceSource(breaker=breaker)
        app.dependency_overrides[get_price_source] = lambda: source

        body = client.get("/health").json()

        assert body["status"] == "degraded"
        assert body["checks"]["price_service"]["circuit_breaker_state"] == "open"
        assert body["checks"]["price_service"]["failed_calls"] == 1

    def test_database_down_is_503(self, client):
        class BrokenSession:
            def execute(self, statement):
                raise RuntimeError("connection refused")

        def broken_db():
            yield BrokenSession()

        app.dependency_overrides[get_db] = broken_db

        response = client.get("/health")

        assert response.status_code == 503
        assert response.json()["checks"]["database"]["status"] == "unhealthy"

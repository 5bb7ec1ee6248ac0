# backend/tests/services/test_price_cache.py
"""
Tests for PriceCache.

Time is driven by FakeClock; the loader is MockPriceSource.fetch_batch.
"""

import asyncio
from decimal import Decimal

import pytest

from tradeledger.services.market_data.base import QuoteBatch
from tradeledger.services.market_data.cache import PriceCache
from tests.conftest import FakeClock, MockPriceSource


class TestQuoteAccess:

    def test_put_then_get_within_ttl(self, price_cache, clock):
        price_cache.put("btc", "usd", Decimal("45000"))

        clock.advance(1799)
        assert price_cache.get("BTC", "USD") == Decimal("45000")

    def test_expires_at_ttl(self, price_cache, clock):
        price_cache.put("BTC", "USD", Decimal("45000"))

        clock.advance(1800)
        assert price_cache.get("BTC", "USD") is None

    def test_expired_quote_is_retained_for_fallback(self, price_cache, clock):
        stored = price_cache.put("BTC", "USD", Decimal("45000"))

        clock.advance(7200)
        stale = price_cache.get_stale("BTC", "USD")
        assert stale == stored
        assert stale.fetched_at == 1_700_000_000.0

    def test_currencies_are_separate_keys(self, price_cache):
        price_cache.put("BTC", "USD", Decimal("45000"))

        assert price_cache.get("BTC", "PHP") is None

    def test_clear_removes_everything(self, price_cache):
        price_cache.put("BTC", "USD", Decimal("45000"))
        price_cache.put("ETH", "USD", Decimal("2500"))

        assert price_cache.clear() == 2
        assert len(price_cache) == 0
        assert price_cache.get_stale("BTC", "USD") is None

    def test_ttl_must_be_positive(self):
        with pytest.raises(ValueError):
            PriceCache(ttl_seconds=0)


class TestGetMany:

    def test_miss_fetches_and_stores(self, price_cache, price_source):
        lookup = asyncio.run(price_cache.get_many(["btc", "ETH"], "usd", price_source.fetch_batch))

        assert lookup.prices == {"BTC": Decimal("45000"), "ETH": Decimal("2500")}
        assert lookup.fetched == 2
        assert lookup.cache_hits == 0
        assert price_source.batch_calls == [(["BTC", "ETH"], "USD")]
        assert price_cache.get("BTC", "USD") == Decimal("45000")

    def test_fresh_quotes_are_not_refetched(self, price_cache, price_source):
        price_cache.put("BTC", "USD", Decimal("44000"))

        lookup = asyncio.run(price_cache.get_many(["BTC", "ETH"], "USD", price_source.fetch_batch))

        assert lookup.prices["BTC"] == Decimal("44000")
        assert lookup.cache_hits == 1
        assert price_source.requested_symbols == ["ETH"]

    def test_expired_quotes_are_refetched(self, price_cache, price_source, clock):
        price_cache.put("BTC", "USD", Decimal("44000"))
        clock.advance(1800)

        lookup = asyncio.run(price_cache.get_many(["BTC"], "USD", price_source.fetch_batch))

        assert lookup.prices["BTC"] == Decimal("45000")
        assert price_source.call_count == 1

    def test_duplicate_symbols_fetch_once(self, price_cache, price_source):
        asyncio.run(price_cache.get_many(["btc", "BTC", " btc"], "USD", price_source.fetch_batch))

        assert price_source.batch_calls == [(["BTC"], "USD")]

    def test_null_prices_are_not_cached(self, price_cache, price_source):
        lookup = asyncio.run(price_cache.get_many(["XYZ"], "USD", price_source.fetch_batch))

        assert lookup.prices == {"XYZ": None}
        assert lookup.failed == set()
        assert price_cache.get_stale("XYZ", "USD") is None

    def test_failed_batch_is_reported(self, price_cache, price_source):
        price_source.fail_with = "timeout"

        lookup = asyncio.run(price_cache.get_many(["BTC", "ETH"], "USD", price_source.fetch_batch))

        assert lookup.prices == {"BTC": None, "ETH": None}
        assert lookup.failed == {"BTC", "ETH"}
        assert lookup.errors == ["timeout"]
        assert lookup.all_failed
        assert len(price_cache) == 0

    def test_loader_exception_propagates_and_clears_in_flight(self, price_cache):
        async def broken(symbols, currency):
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            asyncio.run(price_cache.get_many(["BTC"], "USD", broken))

        assert not price_cache.is_in_flight("BTC", "USD")

    def test_concurrent_lookups_share_one_fetch(self, price_cache, price_source):
        async def scenario():
            price_source.gate = asyncio.Event()

            first = asyncio.create_task(price_cache.get_many(["BTC"], "USD", price_source.fetch_batch))
            await asyncio.sleep(0)
            assert price_cache.is_in_flight("BTC", "USD")

            second = asyncio.create_task(price_cache.get_many(["BTC"], "USD", price_source.fetch_batch))
            await asyncio.sleep(0)

            price_source.gate.set()
            return await first, await second

        first, second = asyncio.run(scenario())

        assert price_source.call_count == 1
        assert first.prices["BTC"] == Decimal("45000")
        assert second.prices["BTC"] == Decimal("45000")
        assert second.fetched == 0
        assert not price_cache.is_in_flight("BTC", "USD")

    def test_waiters_see_failure_of_shared_fetch(self):
        clock = FakeClock()
        cache = PriceCache(ttl_seconds=60, clock=clock)
        source = MockPriceSource({"BTC": "45000"})
        source.fail_with = "HTTP 500"

        async def scenario():
            source.gate = asyncio.Event()
            first = asyncio.create_task(cache.get_many(["BTC"], "USD", source.fetch_batch))
            await asyncio.sleep(0)
            second = asyncio.create_task(cache.get_many(["BTC"], "USD", source.fetch_batch))
            await asyncio.sleep(0)
            source.gate.set()
            return await first, await second

        first, second = asyncio.run(scenario())

        assert source.call_count == 1
        assert first.failed == {"BTC"}
        assert second.failed == {"BTC"}
        assert second.errors == ["HTTP 500"]


def test_quote_batch_helpers():
    batch = QuoteBatch(currency="USD", prices={"BTC": Decimal("1"), "XYZ": None})

    assert batch.success
    assert batch.available == {"BTC": Decimal("1")}
    assert batch.missing == ["XYZ"]

    failed = QuoteBatch.failed(["BTC"], "USD", "down")
    assert not failed.success
    assert failed.prices == {"BTC": None}

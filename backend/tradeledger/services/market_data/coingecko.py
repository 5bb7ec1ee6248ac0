# backend/tradeledger/services/market_data/coingecko.py
"""
CoinGecko simple-price implementation of PriceSource.

Request:  GET {base_url}/simple/price?ids=bitcoin,ethereum&vs_currencies=usd
Response: {"bitcoin": {"usd": 45000}, "ethereum": {"usd": 2500}}

Key features:
- Ticker -> CoinGecko id mapping (SYMBOL_TO_ID_MAP), lower-cased fallback
- One request per batch, whatever the number of symbols
- Fixed delay awaited after every outbound call (free tier call ceiling)
- Bounded timeout on every request
- Circuit breaker so a dead service fails fast
- Single-shot: no retries, a failure is reported in the QuoteBatch

Example:
    source = CoinGeckoPriceSource(rate_limit_delay=3.0)
    batch = await source.fetch_batch(["BTC", "ETH"], "USD")
    batch.prices  # {"BTC": Decimal("45000"), "ETH": Decimal("2500")}
"""

import asyncio
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Awaitable, Callable

import httpx

from tradeledger.services.circuit_breaker import CircuitBreaker, CircuitBreakerOpen
from tradeledger.services.constants import (
    CIRCUIT_BREAKER_FAILURE_THRESHOLD,
    CIRCUIT_BREAKER_HALF_OPEN_MAX_CALLS,
    CIRCUIT_BREAKER_RECOVERY_TIMEOUT,
    PRICE_API_KEY_HEADER,
    PRICE_PROVIDER_NAME,
    PRICE_RATE_LIMIT_DELAY_SECONDS,
    PRICE_REQUEST_TIMEOUT_SECONDS,
    SYMBOL_TO_ID_MAP,
)
from tradeledger.services.exceptions import (
    MarketDataError,
    ProviderUnavailableError,
    RateLimitError,
)
from tradeledger.services.market_data.base import (
    PriceSource,
    QuoteBatch,
    normalize_symbols,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.coingecko.com/api/v3"


class CoinGeckoPriceSource(PriceSource):
    """
    CoinGecko price adapter.

    Configuration:
        base_url: API root (demo and pro plans use different hosts)
        api_key: Optional key, sent as the x-cg-demo-api-key header
        timeout: Per-request timeout in seconds
        rate_limit_delay: Seconds awaited after every outbound call
        breaker: Circuit breaker instance (one is created if omitted)
        client: Pre-built httpx.AsyncClient (tests inject a MockTransport)
        sleep: Awaitable used for the rate-limit delay
    """

    def __init__(
            self,
            base_url: str = DEFAULT_BASE_URL,
            api_key: str | None = None,
            timeout: float = PRICE_REQUEST_TIMEOUT_SECONDS,
            rate_limit_delay: float = PRICE_RATE_LIMIT_DELAY_SECONDS,
            breaker: CircuitBreaker | None = None,
            client: httpx.AsyncClient | None = None,
            sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        if rate_limit_delay < 0:
            raise ValueError("rate_limit_delay cannot be negative")

        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._rate_limit_delay = rate_limit_delay
        self._sleep = sleep
        self._breaker = breaker or CircuitBreaker(
            name=PRICE_PROVIDER_NAME,
            failure_threshold=CIRCUIT_BREAKER_FAILURE_THRESHOLD,
            recovery_timeout=CIRCUIT_BREAKER_RECOVERY_TIMEOUT,
            half_open_max_calls=CIRCUIT_BREAKER_HALF_OPEN_MAX_CALLS,
        )
        self._client = client
        self._owns_client = client is None

    @property
    def name(self) -> str:
        return PRICE_PROVIDER_NAME

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    @staticmethod
    def to_coin_id(symbol: str) -> str:
        """Map a ticker to a CoinGecko id; unknown tickers pass through lower-cased."""
        normalized = symbol.strip().upper()
        return SYMBOL_TO_ID_MAP.get(normalized, normalized.lower())

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    async def fetch_batch(self, symbols: list[str], currency: str) -> QuoteBatch:
        normalized = normalize_symbols(symbols)
        vs_currency = currency.strip().upper()

        if not normalized:
            return QuoteBatch(currency=vs_currency)

        # Several tickers may resolve to the same id
        ids: dict[str, list[str]] = {}
        for symbol in normalized:
            ids.setdefault(self.to_coin_id(symbol), []).append(symbol)

        try:
            payload = await self._request(list(ids), vs_currency)
        except CircuitBreakerOpen as e:
            # Rejected before any outbound call, so no delay is owed
            logger.warning(f"Price request for {', '.join(normalized)} skipped: {e}")
            return QuoteBatch.failed(normalized, vs_currency, str(e))
        except MarketDataError as e:
            logger.error(f"Price request for {', '.join(normalized)} failed: {e}")
            batch = QuoteBatch.failed(normalized, vs_currency, str(e))
        else:
            batch = self._parse(payload, ids, vs_currency)

        await self._throttle()
        return batch

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    # =========================================================================
    # PRIVATE HELPERS
    # =========================================================================

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"Accept": "application/json"}
            if self._api_key:
                headers[PRICE_API_KEY_HEADER] = self._api_key
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers=headers,
                timeout=httpx.Timeout(self._timeout),
            )
        return self._client

    async def _request(self, coin_ids: list[str], currency: str) -> dict[str, Any]:
        """
        Perform one simple-price request under the circuit breaker.

        Raises:
            CircuitBreakerOpen: Circuit open, no request was sent
            RateLimitError: HTTP 429
            ProviderUnavailableError: Network error, timeout, other HTTP
                error or a body that is not a JSON object
        """
        params = {"ids": ",".join(coin_ids), "vs_currencies": currency.lower()}

        with self._breaker:
            logger.info(f"Fetching {len(coin_ids)} price(s) in {currency} from {self.name}")
            try:
                response = await self._get_client().get(
                    "/simple/price",
                    params=params,
                    timeout=self._timeout,
                )
            except httpx.TimeoutException as e:
                raise ProviderUnavailableError(self.name, f"timeout after {self._timeout}s: {e}")
            except httpx.RequestError as e:
                raise ProviderUnavailableError(self.name, f"network error: {e}")

            if response.status_code == 429:
                raise RateLimitError(self.name, _retry_after(response))
            if response.status_code >= 400:
                raise ProviderUnavailableError(self.name, f"HTTP {response.status_code}")

            try:
                payload = response.json()
            except ValueError as e:
                raise ProviderUnavailableError(self.name, f"malformed response: {e}")

            if not isinstance(payload, dict):
                raise ProviderUnavailableError(self.name, "malformed response: expected an object")

            return payload

    def _parse(self, payload: dict[str, Any], ids: dict[str, list[str]], currency: str) -> QuoteBatch:
        batch = QuoteBatch(currency=currency)
        key = currency.lower()

        for coin_id, symbols in ids.items():
            entry = payload.get(coin_id)
            price = _to_price(entry.get(key)) if isinstance(entry, dict) else None
            if price is None:
                logger.warning(f"No {currency} price for {'/'.join(symbols)} (id '{coin_id}')")
            for symbol in symbols:
                batch.prices[symbol] = price

        return batch

    async def _throttle(self) -> None:
        if self._rate_limit_delay > 0:
            await self._sleep(self._rate_limit_delay)


def _to_price(value: Any) -> Decimal | None:
    """Parse a JSON number into a Decimal price; anything else is unavailable."""
    if value is None or isinstance(value, bool) or not isinstance(value, (int, float, str)):
        return None
    try:
        price = Decimal(str(value))
    except InvalidOperation:
        return None
    if not price.is_finite() or price < 0:
        return None
    return price


def _retry_after(response: httpx.Response) -> int | None:
    value = response.headers.get("Retry-After")
    if value is not None and value.isdigit():
        return int(value)
    return None

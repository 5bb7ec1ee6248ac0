# backend/tradeledger/services/exceptions.py
"""
Errors raised by the valuation, market data and ledger services.

Nothing here knows about HTTP. main.py registers one handler per class and
chooses the status code there.

    ServiceError
    ├── ValidationError                 bad currency, empty symbol
    ├── NotFoundError
    │   ├── BindingNotFoundError        investor without approved trader
    │   └── SnapshotNotFoundError       no pass committed or running yet
    ├── MarketDataError
    │   ├── ProviderUnavailableError    network, timeout, 5xx, bad body
    │   ├── RateLimitError              HTTP 429
    │   └── PriceServiceUnavailableError  whole price batch failed
    └── ValuationError
        └── StaleValuationError         pass superseded by a newer one

CircuitBreakerOpen lives in the circuit_breaker module and is re-exported
below so callers can import every error from one place.
"""


class ServiceError(Exception):
    """Root of the service error tree; `message` is what clients see."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def __str__(self) -> str:
        return self.message


class ValidationError(ServiceError):
    """A request parameter cannot be used; `field` names it when known."""

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


# -----------------------------------------------------------------------------
# Missing resources
# -----------------------------------------------------------------------------

class NotFoundError(ServiceError):
    """
    Something the request refers to does not exist.

    Attributes:
        resource_type: Kind of thing looked up (e.g. "Binding")
        resource_id: Key it was looked up by
    """

    def __init__(
            self,
            message: str,
            resource_type: str | None = None,
            resource_id: str | None = None,
    ) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(message)


class BindingNotFoundError(NotFoundError):
    """The investor is not bound to any trader, or the binding is not approved."""

    def __init__(self, investor_id: str) -> None:
        self.investor_id = investor_id
        super().__init__(
            f"Investor {investor_id} has no approved trader binding",
            resource_type="Binding",
            resource_id=investor_id,
        )


class SnapshotNotFoundError(NotFoundError):
    """Nothing committed and nothing in flight for this user and currency."""

    def __init__(self, user_id: str, currency: str) -> None:
        self.user_id = user_id
        self.currency = currency
        super().__init__(
            f"No portfolio snapshot available for user {user_id} in {currency}",
            resource_type="PortfolioSnapshot",
            resource_id=user_id,
        )


# -----------------------------------------------------------------------------
# Price service
# -----------------------------------------------------------------------------

class MarketDataError(ServiceError):
    """A price lookup went wrong; `provider` is the adapter name."""

    def __init__(self, message: str, provider: str | None = None) -> None:
        self.provider = provider
        super().__init__(message)


class ProviderUnavailableError(MarketDataError):
    """The adapter got no usable answer: network, timeout, 5xx or a bad body."""

    def __init__(self, provider: str, reason: str) -> None:
        self.reason = reason
        super().__init__(f"{provider} price request failed: {reason}", provider=provider)


class RateLimitError(MarketDataError):
    """
    The price service answered 429.

    Attributes:
        retry_after: Value of the Retry-After header in seconds, if sent
    """

    def __init__(self, provider: str, retry_after: int | None = None) -> None:
        self.retry_after = retry_after
        suffix = f", retry after {retry_after}s" if retry_after else ""
        super().__init__(f"Rate limit hit on {provider}{suffix}", provider=provider)


class PriceServiceUnavailableError(MarketDataError):
    """
    A whole quote batch failed, so the spot slice has no prices at all.

    Manual products and cash do not depend on prices and are still valued.

    Attributes:
        symbols: Symbols in the failed batch
        reason: Error text reported by the adapter
    """

    def __init__(self, symbols: list[str], reason: str, provider: str | None = None) -> None:
        self.symbols = symbols
        self.reason = reason
        super().__init__(
            f"Spot prices unavailable for {', '.join(symbols)}: {reason}",
            provider=provider,
        )


# -----------------------------------------------------------------------------
# Valuation passes
# -----------------------------------------------------------------------------

class ValuationError(ServiceError):
    pass


class StaleValuationError(ValuationError):
    """
    A newer pass for the same user and currency started before this one
    committed, so this result was thrown away.

    Attributes:
        generation: Token of the discarded pass
        current_generation: Token of the pass that replaced it
    """

    def __init__(self, user_id: str, currency: str, generation: int, current_generation: int) -> None:
        self.user_id = user_id
        self.currency = currency
        self.generation = generation
        self.current_generation = current_generation
        super().__init__(
            f"Valuation pass {generation} for user {user_id} ({currency}) was "
            f"superseded by pass {current_generation}"
        )


from tradeledger.services.circuit_breaker import CircuitBreakerOpen  # noqa: E402

__all__ = [
    "ServiceError",
    "ValidationError",
    "NotFoundError",
    "BindingNotFoundError",
    "SnapshotNotFoundError",
    "MarketDataError",
    "ProviderUnavailableError",
    "RateLimitError",
    "PriceServiceUnavailableError",
    "ValuationError",
    "StaleValuationError",
    "CircuitBreakerOpen",
]

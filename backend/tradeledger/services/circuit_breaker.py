# backend/tradeledger/services/circuit_breaker.py
"""
Circuit breaker guarding calls to the external price service.

When the price service keeps failing, the breaker opens and further price
requests are rejected immediately instead of each waiting for a timeout.
The price adapter translates a rejection into a failed quote batch, so the
portfolio valuator sees the same "price service unreachable" outcome.

States:
    CLOSED    - Requests pass through; failures are counted
    OPEN      - Requests rejected until recovery_timeout has passed
    HALF_OPEN - A limited number of trial requests decide the next state

    CLOSED --threshold reached--> OPEN --timeout--> HALF_OPEN
    HALF_OPEN --trial ok--> CLOSED, HALF_OPEN --trial failed--> OPEN

Usage:
    breaker = CircuitBreaker(name="coingecko", failure_threshold=5)

    try:
        with breaker:
            response = await client.get(url)
    except CircuitBreakerOpen:
        ...

The clock is injectable so tests can move time without sleeping.
"""

import asyncio
import logging
import threading
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerOpen(Exception):
    """
    A call was rejected without reaching the service.

    Attributes:
        breaker_name: Name of the circuit breaker
        time_remaining: Seconds until a trial request is allowed
    """

    def __init__(self, breaker_name: str, time_remaining: float) -> None:
        self.breaker_name = breaker_name
        self.time_remaining = time_remaining
        super().__init__(
            f"Circuit breaker '{breaker_name}' is open. "
            f"Retry in {time_remaining:.1f} seconds."
        )


@dataclass
class CircuitBreakerStats:
    """Counters reported by the /health endpoint."""
    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    rejected_calls: int = 0
    state_changes: int = 0
    last_failure_time: float | None = None
    last_success_time: float | None = None


@dataclass
class CircuitBreaker:
    """
    Thread-safe circuit breaker, used as a context manager around one
    outbound call.

    Attributes:
        name: Identifier used in logs and errors
        failure_threshold: Consecutive failures that open the circuit
        recovery_timeout: Seconds the circuit stays open
        half_open_max_calls: Concurrent trial requests while half-open
        clock: Monotonic time source in seconds
    """

    name: str
    failure_threshold: int = 5
    recovery_timeout: float = 60.0
    half_open_max_calls: int = 1
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)

    _state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    _failures: int = field(default=0, init=False)
    _opened_at: float = field(default=0.0, init=False)
    _trials: int = field(default=0, init=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False, repr=False)
    _stats: CircuitBreakerStats = field(default_factory=CircuitBreakerStats, init=False)

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        if self.recovery_timeout < 0:
            raise ValueError("recovery_timeout cannot be negative")
        if self.half_open_max_calls < 1:
            raise ValueError("half_open_max_calls must be at least 1")

        logger.info(
            f"CircuitBreaker '{self.name}': threshold={self.failure_threshold}, "
            f"recovery_timeout={self.recovery_timeout}s"
        )

    # -------------------------------------------------------------------------
    # Inspection
    # -------------------------------------------------------------------------

    @property
    def state(self) -> CircuitState:
        with self._lock:
            self._maybe_half_open()
            return self._state

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    @property
    def stats(self) -> CircuitBreakerStats:
        """A copy; mutating it does not affect the breaker."""
        with self._lock:
            return replace(self._stats)

    # -------------------------------------------------------------------------
    # State machine (callers hold the lock)
    # -------------------------------------------------------------------------

    def _set_state(self, state: CircuitState) -> None:
        previous, self._state = self._state, state
        self._stats.state_changes += 1

        if state == CircuitState.OPEN:
            self._opened_at = self.clock()
        elif state == CircuitState.HALF_OPEN:
            self._trials = 0
        else:
            self._failures = 0

        log = logger.warning if state == CircuitState.OPEN else logger.info
        log(f"CircuitBreaker '{self.name}': {previous.value} -> {state.value}")

    def _maybe_half_open(self) -> None:
        if self._state == CircuitState.OPEN and self._remaining() <= 0:
            self._set_state(CircuitState.HALF_OPEN)

    def _remaining(self) -> float:
        return max(0.0, self.recovery_timeout - (self.clock() - self._opened_at))

    def _admit(self) -> bool:
        self._maybe_half_open()
        if self._state == CircuitState.CLOSED:
            return True
        if self._state == CircuitState.HALF_OPEN and self._trials < self.half_open_max_calls:
            self._trials += 1
            return True
        return False

    def _on_success(self) -> None:
        self._stats.successful_calls += 1
        self._stats.last_success_time = self.clock()

        if self._state == CircuitState.HALF_OPEN:
            self._set_state(CircuitState.CLOSED)
        else:
            self._failures = 0

    def _on_failure(self) -> None:
        now = self.clock()
        self._stats.failed_calls += 1
        self._stats.last_failure_time = now

        if self._state == CircuitState.HALF_OPEN:
            self._set_state(CircuitState.OPEN)
            return
        if self._state != CircuitState.CLOSED:
            return

        self._failures += 1
        if self._failures >= self.failure_threshold:
            self._set_state(CircuitState.OPEN)

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def __enter__(self) -> "CircuitBreaker":
        with self._lock:
            self._stats.total_calls += 1
            if not self._admit():
                self._stats.rejected_calls += 1
                raise CircuitBreakerOpen(self.name, self._remaining())
        return self

    def __exit__(self, exc_type: type | None, exc_val: BaseException | None, exc_tb: Any) -> bool:
        with self._lock:
            if exc_val is None:
                self._on_success()
            elif isinstance(exc_val, asyncio.CancelledError):
                # Cancelled callers say nothing about the service; free the trial slot
                if self._state == CircuitState.HALF_OPEN and self._trials > 0:
                    self._trials -= 1
            else:
                self._on_failure()
        return False

# backend/tests/services/test_circuit_breaker.py
"""
Tests for the circuit breaker guarding the price service.

Time is moved with FakeClock; nothing sleeps.
"""

import asyncio
import threading

import pytest

from tradeledger.services.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerOpen,
    CircuitState,
)
from tests.conftest import FakeClock


def trip(breaker: CircuitBreaker, times: int) -> None:
    for i in range(times):
        with pytest.raises(ValueError):
            with breaker:
                raise ValueError(f"Failure {i}")


class TestConstruction:

    def test_default_values(self):
        breaker = CircuitBreaker(name="coingecko")

        assert breaker.failure_threshold == 5
        assert breaker.recovery_timeout == 60.0
        assert breaker.half_open_max_calls == 1
        assert breaker.state == CircuitState.CLOSED

    def test_rejects_zero_threshold(self):
        with pytest.raises(ValueError, match="failure_threshold must be at least 1"):
            CircuitBreaker(name="prices", failure_threshold=0)

    def test_rejects_negative_timeout(self):
        with pytest.raises(ValueError, match="recovery_timeout cannot be negative"):
            CircuitBreaker(name="prices", recovery_timeout=-1)

    def test_rejects_zero_trial_calls(self):
        with pytest.raises(ValueError, match="half_open_max_calls must be at least 1"):
            CircuitBreaker(name="prices", half_open_max_calls=0)


class TestClosed:

    def test_counts_successes(self):
        breaker = CircuitBreaker(name="prices")

        for _ in range(5):
            with breaker:
                pass

        stats = breaker.stats
        assert stats.total_calls == 5
        assert stats.successful_calls == 5
        assert stats.failed_calls == 0

    def test_threshold_failures_open_the_circuit(self):
        breaker = CircuitBreaker(name="prices", failure_threshold=3, clock=FakeClock())

        trip(breaker, 3)

        assert breaker.state == CircuitState.OPEN
        assert breaker.is_open

    def test_success_resets_consecutive_failures(self):
        breaker = CircuitBreaker(name="prices", failure_threshold=3)

        trip(breaker, 2)
        with breaker:
            pass
        trip(breaker, 2)

        assert breaker.state == CircuitState.CLOSED

    def test_cancellation_is_not_a_failure(self):
        breaker = CircuitBreaker(name="prices", failure_threshold=1)

        with pytest.raises(asyncio.CancelledError):
            with breaker:
                raise asyncio.CancelledError()

        assert breaker.state == CircuitState.CLOSED
        assert breaker.stats.failed_calls == 0


class TestOpen:

    def test_rejects_without_calling(self):
        clock = FakeClock()
        breaker = CircuitBreaker(name="coingecko", failure_threshold=2, recovery_timeout=60, clock=clock)
        trip(breaker, 2)
        clock.advance(15)

        executed = False
        with pytest.raises(CircuitBreakerOpen) as exc_info:
            with breaker:
                executed = True

        assert not executed
        assert exc_info.value.breaker_name == "coingecko"
        assert exc_info.value.time_remaining == pytest.approx(45)
        assert breaker.stats.rejected_calls == 1

    def test_half_open_once_timeout_elapses(self):
        clock = FakeClock()
        breaker = CircuitBreaker(name="prices", failure_threshold=1, recovery_timeout=60, clock=clock)
        trip(breaker, 1)

        clock.advance(59.9)
        assert breaker.state == CircuitState.OPEN

        clock.advance(0.1)
        assert breaker.state == CircuitState.HALF_OPEN


class TestHalfOpen:

    def _half_open(self, half_open_max_calls: int = 1) -> tuple[CircuitBreaker, FakeClock]:
        clock = FakeClock()
        breaker = CircuitBreaker(
            name="prices",
            failure_threshold=1,
            recovery_timeout=10,
            half_open_max_calls=half_open_max_calls,
            clock=clock,
        )
        trip(breaker, 1)
        clock.advance(10)
        return breaker, clock

    def test_closes_on_success(self):
        breaker, _ = self._half_open()

        with breaker:
            pass

        assert breaker.state == CircuitState.CLOSED

    def test_reopens_on_failure(self):
        breaker, _ = self._half_open()

        trip(breaker, 1)

        assert breaker.state == CircuitState.OPEN

    def test_limits_trial_calls(self):
        breaker, _ = self._half_open(half_open_max_calls=1)

        # First trial is admitted; a second one while it is running is not
        with breaker:
            with pytest.raises(CircuitBreakerOpen):
                with breaker:
                    pass


class TestAsyncCalls:

    def test_guards_awaited_calls(self):
        breaker = CircuitBreaker(name="prices", failure_threshold=2, clock=FakeClock())
        attempts = []

        async def fetch(fail: bool) -> int:
            with breaker:
                attempts.append(fail)
                await asyncio.sleep(0)
                if fail:
                    raise RuntimeError("down")
                return 42

        assert asyncio.run(fetch(False)) == 42
        for _ in range(2):
            with pytest.raises(RuntimeError):
                asyncio.run(fetch(True))
        with pytest.raises(CircuitBreakerOpen):
            asyncio.run(fetch(False))

        assert attempts == [False, True, True]
        assert breaker.state == CircuitState.OPEN

    def test_half_open_trial_slot_freed_on_cancel(self):
        clock = FakeClock()
        breaker = CircuitBreaker(name="prices", failure_threshold=1, recovery_timeout=10, clock=clock)
        trip(breaker, 1)
        clock.advance(10)

        with pytest.raises(asyncio.CancelledError):
            with breaker:
                raise asyncio.CancelledError()

        # The cancelled trial did not use up the only slot
        with breaker:
            pass
        assert breaker.state == CircuitState.CLOSED


class TestStats:

    def test_stats_are_a_copy(self):
        breaker = CircuitBreaker(name="prices")

        stats = breaker.stats
        stats.total_calls = 100

        assert breaker.stats.total_calls == 0

    def test_counts_state_changes(self):
        clock = FakeClock()
        breaker = CircuitBreaker(name="prices", failure_threshold=1, recovery_timeout=5, clock=clock)

        trip(breaker, 1)          # closed -> open
        clock.advance(5)
        assert breaker.state == CircuitState.HALF_OPEN  # open -> half_open
        with breaker:             # half_open -> closed
            pass

        assert breaker.stats.state_changes == 3


class TestThreads:

    def test_parallel_callers(self):
        breaker = CircuitBreaker(name="prices", failure_threshold=1000)
        errors: list[Exception] = []

        def worker():
            try:
                for _ in range(100):
                    with breaker:
                        pass
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker) for _ in range(10)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert breaker.stats.successful_calls == 1000

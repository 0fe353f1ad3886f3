"""
Tests for the gateway circuit breaker.
"""

import time

import pytest

from payments_api.services.payments.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerError,
    CircuitState,
    get_all_breaker_stats,
)


def _fail(breaker):
    with pytest.raises(RuntimeError):
        with breaker.call():
            raise RuntimeError("gateway down")


class TestCircuitBreaker:
    """State transitions of the breaker."""

    def test_opens_after_threshold(self):
        breaker = CircuitBreaker(CircuitBreakerConfig(name="t", failure_threshold=3))

        for _ in range(3):
            _fail(breaker)

        assert breaker.state == CircuitState.OPEN
        with pytest.raises(CircuitBreakerError) as exc:
            with breaker.call():
                pass
        assert exc.value.breaker_name == "t"
        assert str(exc.value).startswith("Circuit breaker 't' is open")
        assert breaker.stats.rejected_calls == 1

    def test_success_resets_failure_count(self):
        breaker = CircuitBreaker(CircuitBreakerConfig(name="t", failure_threshold=2))

        _fail(breaker)
        with breaker.call():
            pass
        _fail(breaker)

        assert breaker.state == CircuitState.CLOSED

    def test_half_open_recovers(self):
        breaker = CircuitBreaker(CircuitBreakerConfig(
            name="t", failure_threshold=1, success_threshold=1, timeout_seconds=0.01
        ))
        _fail(breaker)
        time.sleep(0.02)

        with breaker.call():
            pass

        assert breaker.state == CircuitState.CLOSED

    def test_half_open_failure_reopens(self):
        breaker = CircuitBreaker(CircuitBreakerConfig(
            name="t", failure_threshold=1, timeout_seconds=0.01
        ))
        _fail(breaker)
        time.sleep(0.02)

        _fail(breaker)

        assert breaker.state == CircuitState.OPEN

    def test_reset(self):
        breaker = CircuitBreaker(CircuitBreakerConfig(name="t", failure_threshold=1))
        _fail(breaker)

        breaker.reset()

        assert breaker.state == CircuitState.CLOSED

    def test_snapshot(self):
        breaker = CircuitBreaker(CircuitBreakerConfig(name="t"))
        with breaker.call():
            pass

        snapshot = breaker.snapshot()

        assert snapshot["state"] == "closed"
        assert snapshot["successful_calls"] == 1
        assert "adyen" in get_all_breaker_stats()

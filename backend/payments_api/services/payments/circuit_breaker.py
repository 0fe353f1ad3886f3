"""
Circuit breaker around calls to the Adyen API.

Capture, cancel and refund requests are sent while the order mutex is held.
When the gateway is down every such request would keep its order locked for
the whole HTTP timeout and notifications for that order would be refused in
the meantime. After ``failure_threshold`` consecutive failures the breaker
opens and calls fail immediately with CircuitBreakerError; once
``timeout_seconds`` have passed a single probe call is let through
(half-open) and ``success_threshold`` successful probes close it again.

    closed --failures--> open --timeout--> half_open --successes--> closed
                                               |
                                               +--failure--> open

Calls come from threadpool workers and the sweeper thread, so the state is
guarded by a threading.Lock.
"""

import threading
import time
from collections.abc import Generator
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from enum import Enum

from shared.config.logging import gateway_logger as logger
from shared.config.settings import settings


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerConfig:
    name: str
    failure_threshold: int = 5
    success_threshold: int = 2
    timeout_seconds: float = 30.0
    half_open_max_calls: int = 1


@dataclass
class CircuitBreakerStats:
    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    rejected_calls: int = 0
    state_changes: int = 0


class CircuitBreakerError(Exception):
    """The breaker is open; the call was not attempted."""

    def __init__(self, breaker_name: str, retry_after: float):
        self.breaker_name = breaker_name
        self.retry_after = retry_after
        super().__init__(f"Circuit breaker '{breaker_name}' is open, retry after {retry_after:.1f}s")


class CircuitBreaker:
    def __init__(self, config: CircuitBreakerConfig):
        self.config = config
        self.stats = CircuitBreakerStats()
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._probe_successes = 0
        self._probes_in_flight = 0
        self._opened_at = 0.0
        self._lock = threading.Lock()

    @property
    def state(self) -> CircuitState:
        return self._state

    def _set_state(self, state: CircuitState) -> None:
        logger.warning(
            "Gateway circuit state change",
            breaker=self.config.name,
            old_state=self._state.value,
            new_state=state.value,
            consecutive_failures=self._consecutive_failures,
        )
        self._state = state
        self.stats.state_changes += 1
        self._probe_successes = 0
        self._probes_in_flight = 0
        if state is CircuitState.OPEN:
            self._opened_at = time.monotonic()
        elif state is CircuitState.CLOSED:
            self._consecutive_failures = 0

    def _admit(self) -> None:
        """Reserve a call slot or raise CircuitBreakerError."""
        with self._lock:
            if self._state is CircuitState.OPEN:
                waited = time.monotonic() - self._opened_at
                if waited < self.config.timeout_seconds:
                    self.stats.rejected_calls += 1
                    raise CircuitBreakerError(self.config.name, self.config.timeout_seconds - waited)
                self._set_state(CircuitState.HALF_OPEN)

            if self._state is CircuitState.HALF_OPEN:
                if self._probes_in_flight >= self.config.half_open_max_calls:
                    self.stats.rejected_calls += 1
                    raise CircuitBreakerError(self.config.name, 1.0)
                self._probes_in_flight += 1

    def _succeeded(self) -> None:
        with self._lock:
            self.stats.total_calls += 1
            self.stats.successful_calls += 1
            self._consecutive_failures = 0
            if self._state is CircuitState.HALF_OPEN:
                self._probes_in_flight -= 1
                self._probe_successes += 1
                if self._probe_successes >= self.config.success_threshold:
                    self._set_state(CircuitState.CLOSED)

    def _failed(self, error: Exception) -> None:
        with self._lock:
            self.stats.total_calls += 1
            self.stats.failed_calls += 1
            self._consecutive_failures += 1
            logger.warning(
                "Gateway call failed",
                breaker=self.config.name,
                error=str(error),
                consecutive_failures=self._consecutive_failures,
            )
            if self._state is CircuitState.HALF_OPEN:
                self._set_state(CircuitState.OPEN)
            elif self._consecutive_failures >= self.config.failure_threshold:
                self._set_state(CircuitState.OPEN)

    @contextmanager
    def call(self) -> Generator[None, None, None]:
        """
        Guard one gateway call.

        Any exception raised inside the block counts as a failure and is
        re-raised; CircuitBreakerError is raised without running the block
        while the breaker is open.
        """
        self._admit()
        try:
            yield
        except Exception as e:
            self._failed(e)
            raise
        self._succeeded()

    def reset(self) -> None:
        with self._lock:
            self._state = CircuitState.CLOSED
            self._consecutive_failures = 0
            self._probe_successes = 0
            self._probes_in_flight = 0
        logger.info("Gateway circuit reset", breaker=self.config.name)

    def snapshot(self) -> dict:
        return {"state": self._state.value, **asdict(self.stats)}


gateway_breaker = CircuitBreaker(
    CircuitBreakerConfig(
        name="adyen",
        failure_threshold=settings.gateway_breaker_failure_threshold,
        timeout_seconds=settings.gateway_breaker_timeout_seconds,
    )
)


def get_all_breaker_stats() -> dict[str, dict]:
    """Breaker snapshots keyed by name, for the detailed health check."""
    return {gateway_breaker.config.name: gateway_breaker.snapshot()}

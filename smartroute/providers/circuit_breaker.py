"""Per-provider circuit breaker."""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any

from loguru import logger


class CircuitState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


@dataclass
class CircuitStats:
    """Health of one provider."""
    state: CircuitState = CircuitState.CLOSED
    failures: int = 0
    successes: int = 0
    total_requests: int = 0
    last_failure_time: float | None = None
    last_success_time: float | None = None
    next_attempt_time: float | None = None
    last_error: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "failures": self.failures,
            "successes": self.successes,
            "total_requests": self.total_requests,
            "last_failure_time": self.last_failure_time,
            "last_success_time": self.last_success_time,
            "next_attempt_time": self.next_attempt_time,
            "last_error": self.last_error,
        }


class CircuitBreaker:
    """
    Tracks consecutive failures per provider.

    CLOSED -> OPEN after ``failure_threshold`` consecutive failures.
    OPEN -> HALF_OPEN once ``recovery_timeout`` seconds have passed.
    HALF_OPEN -> CLOSED on the next success, or back to OPEN on failure.

    Calls to an open provider are short-circuited; other providers are
    unaffected.
    """

    def __init__(self, failure_threshold: int = 5, recovery_timeout: float = 60.0):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._services: dict[str, CircuitStats] = {}

    def stats(self, service: str) -> CircuitStats:
        """Get or create stats for a service."""
        if service not in self._services:
            self._services[service] = CircuitStats()
        return self._services[service]

    def is_open(self, service: str) -> bool:
        """True when calls to ``service`` should be short-circuited."""
        stats = self.stats(service)
        if stats.state != CircuitState.OPEN:
            return False

        if stats.next_attempt_time is not None and time.time() >= stats.next_attempt_time:
            stats.state = CircuitState.HALF_OPEN
            logger.info(f"Circuit for {service} half-open; allowing a trial call")
            return False
        return True

    def record_success(self, service: str) -> None:
        stats = self.stats(service)
        stats.total_requests += 1
        stats.successes += 1
        stats.last_success_time = time.time()

        if stats.state == CircuitState.HALF_OPEN:
            logger.info(f"Circuit for {service} closed after successful trial call")
        stats.state = CircuitState.CLOSED
        stats.failures = 0
        stats.next_attempt_time = None
        stats.last_error = ""

    def record_failure(self, service: str, error: str = "") -> None:
        stats = self.stats(service)
        stats.total_requests += 1
        stats.failures += 1
        stats.last_failure_time = time.time()
        stats.last_error = error

        if stats.state == CircuitState.HALF_OPEN or stats.failures >= self.failure_threshold:
            stats.state = CircuitState.OPEN
            stats.next_attempt_time = time.time() + self.recovery_timeout
            logger.warning(
                f"Circuit for {service} opened after {stats.failures} failures; "
                f"retry in {self.recovery_timeout:g}s"
            )

    def reset(self, service: str) -> None:
        self._services.pop(service, None)

    def reset_all(self) -> None:
        self._services.clear()

    def force_state(self, service: str, state: CircuitState) -> None:
        """Force a state, e.g. to take a provider out of rotation manually."""
        stats = self.stats(service)
        stats.state = state
        if state == CircuitState.OPEN:
            stats.next_attempt_time = time.time() + self.recovery_timeout
        elif state == CircuitState.CLOSED:
            stats.failures = 0
            stats.next_attempt_time = None

    def get_stats(self) -> dict[str, dict[str, Any]]:
        return {service: stats.to_dict() for service, stats in self._services.items()}

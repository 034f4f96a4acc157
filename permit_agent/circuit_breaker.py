"""Circuit breakers guarding discovery, scraping and AI calls."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, TypeVar

from .errors import CircuitOpenError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


@dataclass(slots=True)
class CircuitBreakerConfig:
    failure_threshold: int
    reset_timeout: float
    monitoring_period: float = 60.0


class CircuitBreaker:
    """Fails fast after repeated failures and probes again after a timeout.

    CLOSED opens after ``failure_threshold`` consecutive failures. OPEN rejects
    calls with CircuitOpenError until ``reset_timeout`` seconds have passed,
    then lets one trial through in HALF_OPEN. A successful trial closes the
    circuit; a failed one opens it again.
    """

    def __init__(
        self,
        settings: CircuitBreakerConfig,
        *,
        name: str = "default",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if settings.failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        self.settings = settings
        self.name = name
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: float | None = None
        self._next_attempt = 0.0

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        if self._state is CircuitState.OPEN:
            now = self._clock()
            if now < self._next_attempt:
                raise CircuitOpenError(self.name, self._next_attempt - now)
            self._state = CircuitState.HALF_OPEN
            logger.info("Circuit %s half-open, allowing a trial call", self.name)

        try:
            result = await operation()
        except Exception:
            self._on_failure()
            raise
        self._on_success()
        return result

    def _on_success(self) -> None:
        if self._state is not CircuitState.CLOSED:
            logger.info("Circuit %s closed", self.name)
        self._failure_count = 0
        self._state = CircuitState.CLOSED

    def _on_failure(self) -> None:
        self._failure_count += 1
        self._last_failure_time = self._clock()
        if self._state is CircuitState.HALF_OPEN or self._failure_count >= self.settings.failure_threshold:
            self._open()

    def _open(self) -> None:
        self._state = CircuitState.OPEN
        self._next_attempt = self._clock() + self.settings.reset_timeout
        logger.warning(
            "Circuit %s opened after %d failures; retry in %.0fs",
            self.name,
            self._failure_count,
            self.settings.reset_timeout,
        )

    def get_state(self) -> CircuitState:
        """Current state; an expired OPEN circuit reports HALF_OPEN."""
        if self._state is CircuitState.OPEN and self._clock() >= self._next_attempt:
            return CircuitState.HALF_OPEN
        return self._state

    def get_stats(self) -> dict[str, object]:
        return {
            "name": self.name,
            "state": self.get_state().value,
            "failure_count": self._failure_count,
            "last_failure_time": self._last_failure_time,
            "next_attempt": self._next_attempt if self._state is CircuitState.OPEN else None,
        }

    def reset(self) -> None:
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time = None
        self._next_attempt = 0.0

    def force_open(self) -> None:
        self._open()


discovery_breaker = CircuitBreaker(
    CircuitBreakerConfig(failure_threshold=5, reset_timeout=60.0, monitoring_period=300.0),
    name="discovery",
)

scraping_breaker = CircuitBreaker(
    CircuitBreakerConfig(failure_threshold=3, reset_timeout=30.0, monitoring_period=120.0),
    name="web_scraping",
)

ai_breaker = CircuitBreaker(
    CircuitBreakerConfig(failure_threshold=2, reset_timeout=120.0, monitoring_period=600.0),
    name="ai_processing",
)


def all_breakers() -> list[CircuitBreaker]:
    return [discovery_breaker, scraping_breaker, ai_breaker]

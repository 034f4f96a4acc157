"""Sliding-window rate limiting for outbound requests."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable

from . import config
from .errors import RateLimitExceeded

logger = logging.getLogger(__name__)

SECOND_WINDOW = 1.0
MINUTE_WINDOW = 60.0
SECOND_BUFFER = 0.01
MINUTE_BUFFER = 0.1


@dataclass(slots=True)
class RateLimitConfig:
    requests_per_second: int
    requests_per_minute: int
    burst_size: int = 1


class RateLimiter:
    """Caps requests per second and per minute over a sliding window."""

    def __init__(
        self,
        limits: RateLimitConfig,
        *,
        name: str = "default",
        max_wait: float = config.RATE_LIMIT_MAX_WAIT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if limits.requests_per_second < 1 or limits.requests_per_minute < 1:
            raise ValueError("rate limits must be >= 1")
        self.limits = limits
        self.name = name
        self._max_wait = max_wait
        self._clock = clock
        self._sleep = sleep
        self._timestamps: list[float] = []

    def _prune(self, now: float) -> None:
        cutoff = now - MINUTE_WINDOW
        if self._timestamps and self._timestamps[0] <= cutoff:
            self._timestamps = [ts for ts in self._timestamps if ts > cutoff]

    def _recent(self, now: float) -> list[float]:
        return [ts for ts in self._timestamps if now - ts < SECOND_WINDOW]

    def can_make_request(self) -> bool:
        now = self._clock()
        self._prune(now)
        if len(self._recent(now)) >= self.limits.requests_per_second:
            return False
        return len(self._timestamps) < self.limits.requests_per_minute

    def calculate_wait_time(self) -> float:
        """Seconds until the oldest blocking request leaves its window."""
        now = self._clock()
        self._prune(now)
        recent = self._recent(now)
        if len(recent) >= self.limits.requests_per_second:
            return max(0.0, SECOND_WINDOW - (now - recent[0]) + SECOND_BUFFER)
        if len(self._timestamps) >= self.limits.requests_per_minute:
            return max(0.0, MINUTE_WINDOW - (now - self._timestamps[0]) + MINUTE_BUFFER)
        return 0.0

    async def wait_for_slot(self, max_wait: float | None = None) -> None:
        """Block until a request may be made, then record it.

        Raises RateLimitExceeded when the total wait would exceed *max_wait*.
        """
        budget = self._max_wait if max_wait is None else max_wait
        waited = 0.0
        while not self.can_make_request():
            delay = self.calculate_wait_time()
            if waited + delay > budget:
                raise RateLimitExceeded(
                    f"rate limit exceeded for {self.name}, try later (needed {waited + delay:.2f}s, budget {budget:.2f}s)"
                )
            logger.debug("Rate limiter %s waiting %.3fs", self.name, delay)
            await self._sleep(delay)
            waited += delay
        self._timestamps.append(self._clock())

    def get_stats(self) -> dict[str, int]:
        now = self._clock()
        self._prune(now)
        return {
            "requests_in_last_second": len(self._recent(now)),
            "requests_in_last_minute": len(self._timestamps),
            "requests_per_second": self.limits.requests_per_second,
            "requests_per_minute": self.limits.requests_per_minute,
            "burst_size": self.limits.burst_size,
        }

    def reset(self) -> None:
        self._timestamps.clear()


government_site_rate_limiter = RateLimiter(
    RateLimitConfig(requests_per_second=1, requests_per_minute=30, burst_size=3),
    name="government",
)

api_rate_limiter = RateLimiter(
    RateLimitConfig(requests_per_second=5, requests_per_minute=100, burst_size=10),
    name="api",
)

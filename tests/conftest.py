import sys
from pathlib import Path

import pytest

# Ensure repo root is on sys.path so `import permit_agent` works without installing
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from permit_agent.circuit_breaker import CircuitBreaker, CircuitBreakerConfig  # noqa: E402
from permit_agent.models import Address  # noqa: E402
from permit_agent.rate_limiter import RateLimitConfig, RateLimiter  # noqa: E402


class FakeClock:
    """Manually advanced clock for time-dependent components."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def address():
    return Address(street="123 Main St", city="Springfield", state="IL", zip_code="62701")


@pytest.fixture
def open_limiter():
    return RateLimiter(RateLimitConfig(requests_per_second=1000, requests_per_minute=100000), name="test")


@pytest.fixture
def fresh_breaker():
    return CircuitBreaker(CircuitBreakerConfig(failure_threshold=100, reset_timeout=1.0), name="test")

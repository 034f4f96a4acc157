"""Tests for circuit breaker state transitions."""
import asyncio

import pytest

from permit_agent.circuit_breaker import CircuitBreaker, CircuitBreakerConfig, CircuitState
from permit_agent.errors import CircuitOpenError


class Boom(Exception):
    pass


async def _fail():
    raise Boom("down")


async def _ok():
    return "ok"


def _breaker(clock, threshold=2, reset_timeout=30.0):
    return CircuitBreaker(
        CircuitBreakerConfig(failure_threshold=threshold, reset_timeout=reset_timeout),
        name="test",
        clock=clock,
    )


def _fail_times(breaker, n):
    for _ in range(n):
        with pytest.raises(Boom):
            asyncio.run(breaker.execute(_fail))


def test_success_passes_through(clock):
    breaker = _breaker(clock)
    assert asyncio.run(breaker.execute(_ok)) == "ok"
    assert breaker.get_state() is CircuitState.CLOSED


def test_opens_after_threshold(clock):
    breaker = _breaker(clock, threshold=2)
    _fail_times(breaker, 1)
    assert breaker.get_state() is CircuitState.CLOSED
    _fail_times(breaker, 1)
    assert breaker.get_state() is CircuitState.OPEN


def test_open_rejects_without_calling(clock):
    breaker = _breaker(clock, threshold=1)
    _fail_times(breaker, 1)
    calls = []

    async def tracked():
        calls.append(1)
        return "ok"

    with pytest.raises(CircuitOpenError) as excinfo:
        asyncio.run(breaker.execute(tracked))
    assert calls == []
    assert "Circuit breaker test is OPEN" in str(excinfo.value)


def test_half_open_success_closes(clock):
    breaker = _breaker(clock, threshold=1, reset_timeout=30.0)
    _fail_times(breaker, 1)
    clock.advance(30)
    assert breaker.get_state() is CircuitState.HALF_OPEN
    assert asyncio.run(breaker.execute(_ok)) == "ok"
    assert breaker.get_state() is CircuitState.CLOSED
    assert breaker.get_stats()["failure_count"] == 0


def test_half_open_failure_reopens(clock):
    breaker = _breaker(clock, threshold=3, reset_timeout=10.0)
    _fail_times(breaker, 3)
    clock.advance(10)
    _fail_times(breaker, 1)
    assert breaker.get_state() is CircuitState.OPEN
    with pytest.raises(CircuitOpenError):
        asyncio.run(breaker.execute(_ok))


def test_success_resets_failure_count(clock):
    breaker = _breaker(clock, threshold=2)
    _fail_times(breaker, 1)
    asyncio.run(breaker.execute(_ok))
    _fail_times(breaker, 1)
    assert breaker.get_state() is CircuitState.CLOSED


def test_force_open_and_reset(clock):
    breaker = _breaker(clock)
    breaker.force_open()
    stats = breaker.get_stats()
    assert stats["state"] == "OPEN"
    assert stats["next_attempt"] == clock.now + 30.0
    breaker.reset()
    assert breaker.get_stats() == {
        "name": "test",
        "state": "CLOSED",
        "failure_count": 0,
        "last_failure_time": None,
        "next_attempt": None,
    }

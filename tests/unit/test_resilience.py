"""
Unit tests for throttling, circuit breaking and retry policy.
"""

import time

import pytest

from linkscope.core.resilience import CircuitBreaker, CircuitState, Throttle, api_retrying
from linkscope.services.interfaces import RateLimitError, ServiceUnavailableError


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestThrottle:

    @pytest.mark.asyncio
    async def test_spaces_consecutive_calls(self):
        throttle = Throttle(0.1)

        start = time.monotonic()
        async with throttle:
            pass
        async with throttle:
            pass

        assert time.monotonic() - start >= 0.09

    @pytest.mark.asyncio
    async def test_zero_interval_never_waits(self):
        throttle = Throttle(0)

        start = time.monotonic()
        for _ in range(5):
            async with throttle:
                pass

        assert time.monotonic() - start < 0.1


class TestCircuitBreaker:

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def breaker(self, clock):
        return CircuitBreaker("svc", failure_threshold=2, recovery_timeout=30.0, clock=clock)

    async def fail(self, breaker):
        with pytest.raises(RuntimeError):
            async with breaker:
                raise RuntimeError("down")

    @pytest.mark.asyncio
    async def test_opens_after_threshold(self, breaker):
        await self.fail(breaker)
        assert breaker.state == CircuitState.CLOSED

        await self.fail(breaker)
        assert breaker.state == CircuitState.OPEN

        with pytest.raises(ServiceUnavailableError):
            async with breaker:
                pass

    @pytest.mark.asyncio
    async def test_half_open_success_closes(self, breaker, clock):
        await self.fail(breaker)
        await self.fail(breaker)

        clock.now = 31.0
        async with breaker:
            assert breaker.state == CircuitState.HALF_OPEN

        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_half_open_failure_reopens(self, breaker, clock):
        await self.fail(breaker)
        await self.fail(breaker)

        clock.now = 31.0
        await self.fail(breaker)

        assert breaker.state == CircuitState.OPEN
        assert breaker.opened_at == 31.0

    @pytest.mark.asyncio
    async def test_success_resets_failure_count(self, breaker):
        await self.fail(breaker)
        async with breaker:
            pass

        assert breaker.failure_count == 0


class TestApiRetrying:

    @pytest.mark.asyncio
    async def test_retries_rate_limits_then_reraises(self):
        attempts = 0

        with pytest.raises(RateLimitError):
            async for attempt in api_retrying(2, max_wait=0.5):
                with attempt:
                    attempts += 1
                    raise RateLimitError("svc")

        assert attempts == 2

    @pytest.mark.asyncio
    async def test_other_errors_are_not_retried(self):
        attempts = 0

        with pytest.raises(ValueError):
            async for attempt in api_retrying(3):
                with attempt:
                    attempts += 1
                    raise ValueError("bad payload")

        assert attempts == 1

"""
Resilience Patterns - Throttling, Circuit Breakers, Retries

Third-party expansion services are rate limited and flaky. Each service gets
its own throttle and breaker; retries use tenacity's exponential backoff.
"""

import asyncio
import time
from enum import Enum
from typing import Callable, Optional

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from linkscope.config.logging import get_logger
from linkscope.services.interfaces import RateLimitError, ServiceUnavailableError

logger = get_logger(__name__)


class CircuitState(Enum):
    CLOSED = "closed"      # Normal operation
    OPEN = "open"          # Failing, calls rejected
    HALF_OPEN = "half_open"  # Testing recovery


class Throttle:
    """Enforces a minimum interval between calls to one service."""

    def __init__(self, min_interval: float, clock: Callable[[], float] = time.monotonic):
        self.min_interval = min_interval
        self._clock = clock
        self._last_call: Optional[float] = None
        self._lock = asyncio.Lock()

    async def __aenter__(self):
        async with self._lock:
            if self._last_call is not None and self.min_interval > 0:
                wait = self.min_interval - (self._clock() - self._last_call)
                if wait > 0:
                    await asyncio.sleep(wait)
            self._last_call = self._clock()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False


class CircuitBreaker:
    """
    Circuit breaker implementation

    States:
    - CLOSED: Normal operation, failures counted
    - OPEN: Calls rejected immediately until recovery_timeout elapses
    - HALF_OPEN: One trial call allowed; success closes, failure reopens
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock

        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.opened_at: Optional[float] = None

    async def __aenter__(self):
        self._check_state()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            self.record_success()
        elif issubclass(exc_type, Exception):
            self.record_failure()
        # Let exceptions propagate
        return False

    def _check_state(self):
        if self.state == CircuitState.OPEN:
            if self._clock() - self.opened_at >= self.recovery_timeout:
                self.state = CircuitState.HALF_OPEN
                logger.info(f"Circuit breaker {self.name}: OPEN -> HALF_OPEN")
            else:
                raise ServiceUnavailableError(f"Circuit breaker {self.name} is OPEN")

    def record_success(self):
        if self.state != CircuitState.CLOSED:
            logger.info(f"Circuit breaker {self.name}: {self.state.value.upper()} -> CLOSED")
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.opened_at = None

    def record_failure(self):
        self.failure_count += 1
        if self.state == CircuitState.HALF_OPEN or self.failure_count >= self.failure_threshold:
            if self.state != CircuitState.OPEN:
                logger.warning(
                    f"Circuit breaker {self.name}: opening after {self.failure_count} failures"
                )
            self.state = CircuitState.OPEN
            self.opened_at = self._clock()


def api_retrying(attempts: int, max_wait: float = 4.0) -> AsyncRetrying:
    """Retry policy for rate-limited third-party APIs."""
    return AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=max_wait),
        retry=retry_if_exception_type((RateLimitError, httpx.TransportError)),
        reraise=True,
    )


__all__ = ["CircuitState", "Throttle", "CircuitBreaker", "api_retrying"]

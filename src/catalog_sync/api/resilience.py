#!/usr/bin/env python3
"""Failure handling shared by the vendor catalog and translation clients.

    - retry_async: inline retry with exponential backoff, honouring Retry-After
    - CircuitBreaker: fail fast while the catalog API keeps failing
    - process_concurrent: bounded fan-out for per-text LLM translation

Example:
    breaker = CircuitBreaker(failure_threshold=5, timeout=60, name="catalog_api")

    await breaker.before_call()
    try:
        page = await retry_async(client.get_products, page=0, page_size=10)
    except TransportError as e:
        await breaker.record_failure(e)
        raise
    await breaker.record_success()

Author: Catalog Sync Team
"""
import asyncio
import logging
import random
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar

from .exceptions import (
    CircuitOpenError,
    NetworkError,
    RateLimitError,
    ServerError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ============================================
# Retry
# ============================================

DEFAULT_RETRYABLE_EXCEPTIONS = (
    NetworkError,
    RateLimitError,
    ServerError,
    asyncio.TimeoutError,
    ConnectionResetError,
)


def _next_wait(error: Exception, delay: float, max_delay: float) -> float:
    """Seconds to sleep before the next attempt.

    A vendor Retry-After is obeyed as given; computed backoff gets jitter.
    """
    if isinstance(error, RateLimitError) and error.retry_after:
        return min(float(error.retry_after), max_delay)
    return min(delay * (0.5 + random.random()), max_delay)


async def retry_async(
    func: Callable[..., Awaitable[T]],
    *args,
    max_attempts: int = 3,
    backoff_factor: float = 2.0,
    initial_delay: float = 1.0,
    max_delay: float = 60.0,
    retryable_exceptions: tuple = DEFAULT_RETRYABLE_EXCEPTIONS,
    **kwargs,
) -> T:
    """Await func(*args, **kwargs), retrying transient failures.

    Args:
        func: Async callable to await
        max_attempts: Total attempts, first try included
        backoff_factor: Growth of the delay after each failed attempt
        initial_delay: Base delay in seconds before the first retry
        max_delay: Upper bound on any single wait
        retryable_exceptions: Errors worth another attempt; others propagate at once

    Returns:
        Result from func

    Raises:
        The last retryable error once attempts run out.
    """
    delay = initial_delay
    attempt = 1
    while True:
        try:
            return await func(*args, **kwargs)
        except retryable_exceptions as e:
            if attempt >= max_attempts:
                logger.error(f"{getattr(func, '__name__', func)} failed after {attempt} attempts: {e}")
                raise
            wait = _next_wait(e, delay, max_delay)
            logger.warning(f"Retry {attempt}/{max_attempts - 1}: {e}. Waiting {wait:.1f}s")
            await asyncio.sleep(wait)
            delay = min(delay * backoff_factor, max_delay)
            attempt += 1


# ============================================
# Circuit Breaker
# ============================================

class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Stops calling the catalog API after repeated failures.

    CLOSED counts consecutive failures and opens at failure_threshold.
    OPEN rejects every call with CircuitOpenError until timeout has passed,
    then lets calls through as HALF_OPEN. success_threshold successes in
    HALF_OPEN close the circuit; one failure reopens it.

    The caller brackets each request with before_call() and one of
    record_success()/record_failure(). CircuitOpenError is a TransportError,
    so the sync engine handles a rejection like any other fetch failure.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        timeout: float = 60.0,
        success_threshold: int = 2,
        name: str = "default",
    ):
        self.failure_threshold = failure_threshold
        self.timeout = timeout
        self.success_threshold = success_threshold
        self.name = name

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._last_failure_time: Optional[datetime] = None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def reset_at(self) -> Optional[datetime]:
        """When an open circuit will next let a call through."""
        if self._state != CircuitState.OPEN or not self._last_failure_time:
            return None
        return self._last_failure_time + timedelta(seconds=self.timeout)

    async def before_call(self) -> None:
        """Raise CircuitOpenError while open; go HALF_OPEN once timeout passed."""
        async with self._lock:
            if self._state != CircuitState.OPEN:
                return

            reset_at = self.reset_at
            if reset_at and datetime.now(timezone.utc) < reset_at:
                raise CircuitOpenError(
                    f"Circuit breaker '{self.name}' is open",
                    reset_at=reset_at,
                    failure_count=self._failure_count,
                )

            logger.info(f"Circuit '{self.name}' half-open, letting calls through")
            self._state = CircuitState.HALF_OPEN
            self._success_count = 0

    async def record_success(self) -> None:
        async with self._lock:
            self._failure_count = 0
            if self._state != CircuitState.HALF_OPEN:
                return

            self._success_count += 1
            if self._success_count >= self.success_threshold:
                logger.info(f"Circuit '{self.name}' closed after {self._success_count} successes")
                self._state = CircuitState.CLOSED
                self._success_count = 0

    async def record_failure(self, exception: Exception) -> None:
        async with self._lock:
            self._failure_count += 1
            self._last_failure_time = datetime.now(timezone.utc)

            if self._state == CircuitState.HALF_OPEN:
                logger.warning(f"Circuit '{self.name}' reopened: {exception}")
                self._state = CircuitState.OPEN
            elif self._state == CircuitState.CLOSED and self._failure_count >= self.failure_threshold:
                logger.warning(
                    f"Circuit '{self.name}' opened after {self._failure_count} failures: {exception}"
                )
                self._state = CircuitState.OPEN

    def get_status(self) -> dict[str, Any]:
        """Breaker snapshot for monitoring."""
        reset_at = self.reset_at
        return {
            "name": self.name,
            "state": self._state.value,
            "failure_count": self._failure_count,
            "success_count": self._success_count,
            "failure_threshold": self.failure_threshold,
            "timeout_seconds": self.timeout,
            "last_failure_at": self._last_failure_time.isoformat() if self._last_failure_time else None,
            "reset_at": reset_at.isoformat() if reset_at else None,
        }


# ============================================
# Bounded Concurrency
# ============================================

async def process_concurrent(
    items: list[T],
    processor: Callable[[T], Awaitable[Any]],
    max_concurrent: int = 10,
    return_exceptions: bool = False,
) -> list[Any]:
    """Run processor over items with at most max_concurrent in flight.

    Results come back in input order.
    """
    semaphore = asyncio.Semaphore(max_concurrent)

    async def bounded(item: T) -> Any:
        async with semaphore:
            return await processor(item)

    return await asyncio.gather(*(bounded(item) for item in items), return_exceptions=return_exceptions)


__all__ = [
    "retry_async",
    "DEFAULT_RETRYABLE_EXCEPTIONS",
    "CircuitBreaker",
    "CircuitState",
    "process_concurrent",
]

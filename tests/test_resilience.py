#!/usr/bin/env python3
"""Tests for resilience patterns.

Tests cover:
    - Circuit breaker state transitions (CLOSED -> OPEN -> HALF_OPEN -> CLOSED)
    - Inline retry with exponential backoff
    - Bounded concurrent execution
"""
import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from src.catalog_sync.api.exceptions import (
    BadRequestError,
    CircuitOpenError,
    NetworkError,
    RateLimitError,
    ServerError,
    TransportError,
)
from src.catalog_sync.api.resilience import (
    DEFAULT_RETRYABLE_EXCEPTIONS,
    CircuitBreaker,
    CircuitState,
    process_concurrent,
    retry_async,
)


@pytest.fixture
def no_sleep():
    with patch("src.catalog_sync.api.resilience.asyncio.sleep", new=AsyncMock()) as sleep:
        yield sleep


async def open_circuit(circuit: CircuitBreaker) -> None:
    for _ in range(circuit.failure_threshold):
        await circuit.before_call()
        await circuit.record_failure(ServerError("catalog down", status_code=503))


# ============================================
# Circuit Breaker State Transition Tests
# ============================================

class TestCircuitBreakerStateTransitions:
    """Test circuit breaker state machine transitions."""

    def test_initial_state_is_closed(self):
        circuit = CircuitBreaker(failure_threshold=3)
        assert circuit.state == CircuitState.CLOSED
        assert circuit.failure_count == 0
        assert circuit.reset_at is None

    async def test_closed_to_open_after_failures(self):
        circuit = CircuitBreaker(failure_threshold=3, timeout=60.0)

        for i in range(2):
            await circuit.record_failure(ServerError("catalog down", status_code=503))
            assert circuit.state == CircuitState.CLOSED
            assert circuit.failure_count == i + 1

        await circuit.record_failure(ServerError("catalog down", status_code=503))

        assert circuit.state == CircuitState.OPEN
        assert circuit.reset_at is not None

    async def test_success_resets_failure_count(self):
        circuit = CircuitBreaker(failure_threshold=3)

        await circuit.record_failure(NetworkError("reset"))
        await circuit.record_failure(NetworkError("reset"))
        await circuit.record_success()
        await circuit.record_failure(NetworkError("reset"))

        assert circuit.failure_count == 1
        assert circuit.state == CircuitState.CLOSED

    async def test_open_rejects_before_calling(self):
        circuit = CircuitBreaker(failure_threshold=1, timeout=60.0, name="catalog")
        await open_circuit(circuit)

        with pytest.raises(CircuitOpenError) as exc_info:
            await circuit.before_call()

        assert "catalog" in str(exc_info.value)
        assert exc_info.value.details["failure_count"] == 1
        assert exc_info.value.details["reset_at"] == circuit.reset_at.isoformat()

    async def test_rejection_is_a_transport_error(self):
        """The sync engine handles rejections like any other fetch failure."""
        circuit = CircuitBreaker(failure_threshold=1, timeout=60.0)
        await open_circuit(circuit)

        with pytest.raises(TransportError):
            await circuit.before_call()

    async def test_open_to_half_open_after_timeout(self):
        circuit = CircuitBreaker(failure_threshold=1, timeout=0.1)
        await open_circuit(circuit)

        await asyncio.sleep(0.15)
        await circuit.before_call()

        assert circuit.state == CircuitState.HALF_OPEN
        assert circuit.reset_at is None

    async def test_half_open_to_closed_on_success(self):
        circuit = CircuitBreaker(failure_threshold=1, timeout=0.1, success_threshold=2)
        await open_circuit(circuit)
        await asyncio.sleep(0.15)

        await circuit.before_call()
        await circuit.record_success()
        assert circuit.state == CircuitState.HALF_OPEN

        await circuit.before_call()
        await circuit.record_success()
        assert circuit.state == CircuitState.CLOSED

    async def test_half_open_to_open_on_failure(self):
        circuit = CircuitBreaker(failure_threshold=3, timeout=0.1)
        await open_circuit(circuit)
        await asyncio.sleep(0.15)

        await circuit.before_call()
        await circuit.record_failure(ServerError("still down"))

        assert circuit.state == CircuitState.OPEN
        with pytest.raises(CircuitOpenError):
            await circuit.before_call()

    async def test_get_status_returns_monitoring_data(self):
        circuit = CircuitBreaker(failure_threshold=5, timeout=60.0, name="catalog_api")

        status = circuit.get_status()

        assert status["name"] == "catalog_api"
        assert status["state"] == "closed"
        assert status["failure_count"] == 0
        assert status["failure_threshold"] == 5
        assert status["timeout_seconds"] == 60.0
        assert status["last_failure_at"] is None
        assert status["reset_at"] is None

        await circuit.record_failure(NetworkError("down"))
        assert circuit.get_status()["last_failure_at"] is not None


# ============================================
# Retry Behavior Tests
# ============================================

class TestRetryAsync:
    async def test_returns_first_success(self, no_sleep):
        func = AsyncMock(return_value="ok")

        assert await retry_async(func, "a", key="b") == "ok"
        func.assert_awaited_once_with("a", key="b")
        no_sleep.assert_not_awaited()

    async def test_retries_transient_errors(self, no_sleep):
        func = AsyncMock(side_effect=[NetworkError("reset"), asyncio.TimeoutError(), "ok"])

        assert await retry_async(func, max_attempts=3) == "ok"
        assert func.await_count == 3
        assert no_sleep.await_count == 2

    async def test_raises_last_error_when_exhausted(self, no_sleep):
        func = AsyncMock(side_effect=ServerError("down", status_code=502))

        with pytest.raises(ServerError):
            await retry_async(func, max_attempts=3)

        assert func.await_count == 3
        assert no_sleep.await_count == 2

    async def test_non_retryable_error_is_raised_immediately(self, no_sleep):
        func = AsyncMock(side_effect=BadRequestError("invalid filter", status_code=422))

        with pytest.raises(BadRequestError):
            await retry_async(func, max_attempts=3)

        assert func.await_count == 1
        no_sleep.assert_not_awaited()

    async def test_waits_for_retry_after(self, no_sleep):
        func = AsyncMock(side_effect=[RateLimitError("slow down", retry_after=7), "ok"])

        assert await retry_async(func, max_attempts=2, initial_delay=0.01) == "ok"
        no_sleep.assert_awaited_once_with(7.0)

    async def test_backoff_is_capped(self, no_sleep):
        func = AsyncMock(side_effect=[NetworkError("a"), NetworkError("b"), NetworkError("c"), "ok"])

        await retry_async(func, max_attempts=4, initial_delay=10.0, backoff_factor=10.0, max_delay=15.0)

        waits = [call.args[0] for call in no_sleep.await_args_list]
        assert len(waits) == 3
        assert all(wait <= 15.0 for wait in waits)

    def test_default_retryable_exceptions(self):
        assert NetworkError in DEFAULT_RETRYABLE_EXCEPTIONS
        assert RateLimitError in DEFAULT_RETRYABLE_EXCEPTIONS
        assert BadRequestError not in DEFAULT_RETRYABLE_EXCEPTIONS


# ============================================
# Concurrent Execution Tests
# ============================================

class TestConcurrentExecution:
    async def test_preserves_order(self):
        async def delayed(value):
            await asyncio.sleep(0.01 * (5 - value))
            return value * 10

        assert await process_concurrent([1, 2, 3, 4], delayed) == [10, 20, 30, 40]

    async def test_respects_concurrency_limit(self):
        running = 0
        peak = 0

        async def tracked(value):
            nonlocal running, peak
            running += 1
            peak = max(peak, running)
            await asyncio.sleep(0.01)
            running -= 1
            return value

        await process_concurrent(list(range(10)), tracked, max_concurrent=3)

        assert peak <= 3

    async def test_return_exceptions(self):
        async def maybe_fail(value):
            if value == 2:
                raise ValueError("bad item")
            return value

        results = await process_concurrent([1, 2, 3], maybe_fail, return_exceptions=True)

        assert results[0] == 1
        assert isinstance(results[1], ValueError)
        assert results[2] == 3

    async def test_raises_by_default(self):
        async def fail(value):
            raise ValueError("bad item")

        with pytest.raises(ValueError):
            await process_concurrent([1], fail)

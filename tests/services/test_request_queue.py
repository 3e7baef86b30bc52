"""
Unit tests for RequestQueue and RetryPolicy.

Sleeps are recorded instead of awaited so retries run instantly.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from commit_forge.errors import ApiError, NetworkError, QueueClosedError
from commit_forge.services.request_queue import RequestQueue, RetryPolicy


class RecordingSleep:
    """Stand-in for asyncio.sleep that records delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


# =============================================================================
# RETRY POLICY
# =============================================================================


class TestRetryPolicy:
    """Retry classification and backoff."""

    def test_retryable_errors(self):
        policy = RetryPolicy()
        assert policy.should_retry(NetworkError("down"), 0)
        assert policy.should_retry(ApiError("rate", status_code=429), 0)
        assert policy.should_retry(ApiError("oops", status_code=503), 0)

    def test_non_retryable_errors(self):
        policy = RetryPolicy()
        assert not policy.should_retry(ApiError("bad", status_code=400), 0)
        assert not policy.should_retry(ApiError("malformed"), 0)
        assert not policy.should_retry(ValueError("nope"), 0)

    def test_retry_limit(self):
        policy = RetryPolicy(max_retries=3)
        assert policy.should_retry(NetworkError("down"), 2)
        assert not policy.should_retry(NetworkError("down"), 3)

    def test_exponential_backoff(self):
        policy = RetryPolicy(base_delay=1.0, factor=2.0, max_delay=30.0)
        assert [policy.delay(i) for i in range(6)] == [1.0, 2.0, 4.0, 8.0, 16.0, 30.0]

    def test_rate_limit_waits_longer(self):
        policy = RetryPolicy()
        limited = policy.delay(1, ApiError("rate", status_code=429))
        server = policy.delay(1, ApiError("oops", status_code=500))
        assert limited == 2 * server


# =============================================================================
# QUEUE
# =============================================================================


class TestRequestQueue:
    """Dispatch, retry and shutdown."""

    @pytest.mark.asyncio
    async def test_submit_returns_result(self, sleep):
        queue = RequestQueue(AsyncMock(return_value="ok"), sleep=sleep)
        assert await queue.submit("req") == "ok"
        assert queue.status().completed == 1

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self, sleep):
        send = AsyncMock(side_effect=[NetworkError("down"), ApiError("busy", status_code=502), "ok"])
        queue = RequestQueue(send, sleep=sleep)

        assert await queue.submit("req") == "ok"
        assert send.await_count == 3
        assert sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self, sleep):
        send = AsyncMock(side_effect=ApiError("bad request", status_code=400))
        queue = RequestQueue(send, sleep=sleep)

        with pytest.raises(ApiError):
            await queue.submit("req")
        assert send.await_count == 1
        assert queue.status().failed == 1

    @pytest.mark.asyncio
    async def test_exhaustion_raises_last_error(self, sleep):
        send = AsyncMock(side_effect=ApiError("rate limited", status_code=429))
        queue = RequestQueue(send, retry=RetryPolicy(max_retries=2), sleep=sleep)

        with pytest.raises(ApiError) as exc_info:
            await queue.submit("req")

        assert exc_info.value.status_code == 429
        assert send.await_count == 3
        assert sleep.delays == [2.0, 4.0]

    @pytest.mark.asyncio
    async def test_map_preserves_order_and_tolerates_failure(self, sleep):
        async def send(request):
            if request == "bad":
                raise ApiError("bad", status_code=400)
            return request.upper()

        queue = RequestQueue(send, sleep=sleep)
        results = await queue.map(["a", "bad", "c"])

        assert results[0] == "A"
        assert isinstance(results[1], ApiError)
        assert results[2] == "C"

    @pytest.mark.asyncio
    async def test_concurrency_bound(self, sleep):
        in_flight = 0
        peak = 0

        async def send(request):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return request

        queue = RequestQueue(send, concurrency=2, interval_cap=100)
        await queue.map(list(range(8)))

        assert peak == 2

    @pytest.mark.asyncio
    async def test_rate_window_delays_dispatch(self, sleep):
        now = [0.0]

        async def advancing_sleep(delay):
            sleep.delays.append(delay)
            now[0] += delay

        queue = RequestQueue(
            AsyncMock(return_value="ok"),
            concurrency=5,
            interval=1.0,
            interval_cap=2,
            sleep=advancing_sleep,
            clock=lambda: now[0],
        )
        await queue.map(["a", "b", "c"])

        assert sleep.delays == [1.0]

    @pytest.mark.asyncio
    async def test_shutdown_rejects_new_work(self, sleep):
        queue = RequestQueue(AsyncMock(return_value="ok"), sleep=sleep)
        await queue.shutdown()

        assert queue.status().closed
        with pytest.raises(QueueClosedError):
            await queue.submit("req")

    @pytest.mark.asyncio
    async def test_shutdown_cancels_in_flight(self):
        started = asyncio.Event()

        async def send(request):
            started.set()
            await asyncio.sleep(60)

        queue = RequestQueue(send)
        task = asyncio.ensure_future(queue.submit("req"))
        await started.wait()

        await queue.shutdown()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert queue.status().in_flight == 0

    def test_invalid_concurrency(self):
        with pytest.raises(ValueError):
            RequestQueue(AsyncMock(), concurrency=0)

"""
Request Queue

Bounded-concurrency, rate-windowed dispatch of model requests with retry.
All work runs on one event loop; "concurrency" means outstanding requests.
"""

import asyncio
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import structlog

from ..errors import ApiError, CommitForgeError, QueueClosedError

logger = structlog.get_logger(__name__)

RATE_LIMIT_STATUS = 429


@dataclass
class RetryPolicy:
    """Exponential backoff for retryable failures."""

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    factor: float = 2.0

    def should_retry(self, error: BaseException, attempt: int) -> bool:
        """Network errors, 429 and 5xx retry; everything else fails fast."""
        if attempt >= self.max_retries:
            return False
        return isinstance(error, CommitForgeError) and error.is_retryable

    def delay(self, attempt: int, error: BaseException | None = None) -> float:
        """Seconds to wait before retry number ``attempt + 1``."""
        delay = min(self.base_delay * (self.factor ** attempt), self.max_delay)
        if isinstance(error, ApiError) and error.status_code == RATE_LIMIT_STATUS:
            delay *= 2
        return delay


@dataclass
class QueueStatus:
    pending: int
    in_flight: int
    completed: int
    failed: int
    closed: bool


class RequestQueue:
    """
    Dispatch requests through a single send function.

    At most ``concurrency`` requests are in flight, and no more than
    ``interval_cap`` new requests start within any ``interval`` seconds.
    """

    def __init__(
        self,
        send: Callable[[Any], Awaitable[Any]],
        concurrency: int = 3,
        interval: float = 1.0,
        interval_cap: int | None = None,
        retry: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize queue.

        Args:
            send: Coroutine function performing one request
            concurrency: Maximum in-flight requests
            interval: Rate window length in seconds
            interval_cap: Dispatches allowed per window (default 2x concurrency)
            retry: Backoff policy
            sleep: Awaitable sleep, replaced in tests
            clock: Monotonic clock, replaced in tests
        """
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")

        self.send = send
        self.concurrency = concurrency
        self.interval = interval
        self.interval_cap = interval_cap or concurrency * 2
        self.retry = retry or RetryPolicy()
        self._sleep = sleep
        self._clock = clock

        self._semaphore = asyncio.Semaphore(concurrency)
        self._window_lock = asyncio.Lock()
        self._dispatches: deque[float] = deque()
        self._tasks: set[asyncio.Task] = set()
        self._closed = False

        self._pending = 0
        self._in_flight = 0
        self._completed = 0
        self._failed = 0

    @property
    def closed(self) -> bool:
        return self._closed

    async def submit(self, request: Any) -> Any:
        """
        Run one request through the queue.

        Raises:
            QueueClosedError: If the queue has been shut down.
            The last error from ``send`` once retries are exhausted.
        """
        if self._closed:
            raise QueueClosedError("Request queue is shut down")

        task = asyncio.ensure_future(self._run(request))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return await task

    async def map(self, requests: list[Any]) -> list[Any]:
        """Submit all requests; results or exceptions in input order."""
        return await asyncio.gather(
            *(self.submit(r) for r in requests),
            return_exceptions=True,
        )

    async def shutdown(self) -> None:
        """Reject new work, cancel what is queued or running, and wait."""
        self._closed = True
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.debug("Request queue shut down", cancelled=len(tasks))

    def status(self) -> QueueStatus:
        return QueueStatus(
            pending=self._pending,
            in_flight=self._in_flight,
            completed=self._completed,
            failed=self._failed,
            closed=self._closed,
        )

    async def _run(self, request: Any) -> Any:
        attempt = 0
        while True:
            try:
                result = await self._dispatch(request)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                if not self.retry.should_retry(e, attempt):
                    self._failed += 1
                    raise
                delay = self.retry.delay(attempt, e)
                attempt += 1
                logger.warning(
                    "Request failed, retrying",
                    attempt=attempt,
                    max_retries=self.retry.max_retries,
                    delay=delay,
                    error=str(e),
                )
                await self._sleep(delay)
                continue

            self._completed += 1
            return result

    async def _dispatch(self, request: Any) -> Any:
        self._pending += 1
        waiting = True
        try:
            async with self._semaphore:
                await self._wait_for_window()
                self._pending -= 1
                waiting = False
                self._in_flight += 1
                try:
                    return await self.send(request)
                finally:
                    self._in_flight -= 1
        finally:
            if waiting:
                self._pending -= 1

    async def _wait_for_window(self) -> None:
        """Block until a dispatch slot is free in the rolling window."""
        async with self._window_lock:
            while True:
                now = self._clock()
                while self._dispatches and now - self._dispatches[0] >= self.interval:
                    self._dispatches.popleft()
                if len(self._dispatches) < self.interval_cap:
                    self._dispatches.append(now)
                    return
                await self._sleep(self.interval - (now - self._dispatches[0]))

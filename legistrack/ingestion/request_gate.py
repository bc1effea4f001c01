"""
Request Gate: serializes calls to the External Bill Source.

Every outbound Congress.gov request is queued here and started strictly one
at a time, in submission order, with at least `min_interval` seconds between
consecutive starts.
"""
import asyncio
import logging
import time
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Optional, Tuple

from legistrack.config.constants import MIN_REQUEST_INTERVAL

logger = logging.getLogger(__name__)

RequestFn = Callable[[], Awaitable[Any]]


class RequestGate:
    """
    FIFO queue with a single drain task.

    Usage:
        gate = RequestGate(min_interval=0.1)
        data = await gate.submit(lambda: client.get(url))
    """

    def __init__(
        self,
        min_interval: float = MIN_REQUEST_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._queue: Deque[Tuple[RequestFn, asyncio.Future]] = deque()
        self._drain_task: Optional[asyncio.Task] = None
        self.last_request_time: Optional[float] = None

    @property
    def pending(self) -> int:
        """Requests waiting to start."""
        return len(self._queue)

    async def submit(self, request_fn: RequestFn) -> Any:
        """
        Queue a request and wait for its result.

        Args:
            request_fn: Zero-argument coroutine function performing the request

        Returns:
            Whatever request_fn returns; its exception is re-raised here
        """
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        self._queue.append((request_fn, future))

        if self._drain_task is None or self._drain_task.done():
            self._drain_task = loop.create_task(self._drain())

        return await future

    async def _drain(self) -> None:
        while self._queue:
            if self.last_request_time is not None:
                elapsed = self._clock() - self.last_request_time
                if elapsed < self.min_interval:
                    await self._sleep(self.min_interval - elapsed)

            request_fn, future = self._queue.popleft()
            if future.done():
                # Caller gave up while queued
                continue

            self.last_request_time = self._clock()
            try:
                result = await request_fn()
            except Exception as e:
                if not future.done():
                    future.set_exception(e)
            else:
                if not future.done():
                    future.set_result(result)

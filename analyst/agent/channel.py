"""
Event transport between the agent loop and its consumer.

The loop runs as a producer task that pushes AgentEvents into a bounded
EventChannel; the consumer pulls from an AgentRun until the channel closes.
A full channel blocks the producer, so a slow consumer applies backpressure.
"""

import asyncio
from typing import AsyncIterator, Awaitable, Callable, Optional

from analyst.agent.types import AgentEvent
from analyst.errors import RunCancelled
from analyst.utils.cancellation import cancellable
from analyst.utils.logger import get_logger

log = get_logger(__name__)

_CLOSED = object()


class EventChannel:
    """Bounded, single-producer single-consumer event queue.

    Once the cancellation token is set the channel yields nothing more.
    A producer failure passed to close() is raised to the consumer once,
    after every event sent before it.
    """

    def __init__(
        self,
        maxsize: int = 32,
        cancellation_token: Optional[asyncio.Event] = None,
    ):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.cancellation_token = cancellation_token
        self._error: Optional[BaseException] = None
        self._closed = False
        self._finished = False

    def _cancelled(self) -> bool:
        return self.cancellation_token is not None and self.cancellation_token.is_set()

    async def send(self, event: AgentEvent) -> None:
        """Push an event, waiting for room. Raises RunCancelled once the token is set."""
        if self._closed:
            raise RuntimeError("send() on a closed EventChannel")
        await cancellable(self._queue.put(event), self.cancellation_token)

    async def close(self, error: Optional[BaseException] = None) -> None:
        """Mark the end of the stream, optionally with a failure for the consumer."""
        if self._closed:
            return
        self._closed = True
        self._error = error
        try:
            await cancellable(self._queue.put(_CLOSED), self.cancellation_token)
        except RunCancelled:
            # The consumer stops on the token by itself
            log.debug("Channel closed after cancellation")

    def __aiter__(self) -> "EventChannel":
        return self

    async def __anext__(self) -> AgentEvent:
        if self._finished or self._cancelled():
            self._finished = True
            raise StopAsyncIteration

        try:
            item = await cancellable(self._queue.get(), self.cancellation_token)
        except RunCancelled:
            self._finished = True
            raise StopAsyncIteration

        if item is _CLOSED:
            self._finished = True
            if self._error is not None:
                error, self._error = self._error, None
                raise error
            raise StopAsyncIteration

        # Events queued before cancellation are dropped too
        if self._cancelled():
            self._finished = True
            raise StopAsyncIteration

        return item


class AgentRun:
    """
    Async iterator over the events of one agent run.

    The producer coroutine starts on the first pull and is cancelled if the
    consumer stops early: aclose(), leaving ``async with``, or breaking out
    of ``async for`` (the iterator generator is closed when it is dropped).

    Usage:
        async with agent.run("What is AAPL's P/E?") as run:
            async for event in run:
                print(event)
    """

    def __init__(
        self,
        producer: Callable[[EventChannel], Awaitable[None]],
        channel: EventChannel,
        scratchpad=None,
    ):
        self._producer = producer
        self.channel = channel
        self.scratchpad = scratchpad
        self._task: Optional[asyncio.Task] = None

    def __aiter__(self) -> AsyncIterator[AgentEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[AgentEvent]:
        try:
            while True:
                try:
                    event = await self.__anext__()
                except StopAsyncIteration:
                    return
                yield event
        finally:
            await self._stop_producer()

    async def __anext__(self) -> AgentEvent:
        if self._task is None:
            self._task = asyncio.create_task(self._producer(self.channel))
        try:
            return await self.channel.__anext__()
        except BaseException:
            # StopAsyncIteration, producer failures, consumer cancellation
            await self._stop_producer()
            raise

    async def _stop_producer(self) -> None:
        if self._task is None or self._task.done():
            return
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)

    async def aclose(self) -> None:
        await self._stop_producer()

    async def __aenter__(self) -> "AgentRun":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

"""
Cancellation helpers built on asyncio.Event tokens.

A token is an ``asyncio.Event`` created by the caller. Setting it interrupts
whatever operation is pending at that moment instead of waiting for it to
finish.
"""

import asyncio
from typing import Any, AsyncIterator, Awaitable, Optional, TypeVar

from analyst.errors import RunCancelled

T = TypeVar("T")


def raise_if_cancelled(
    cancellation_token: Optional[asyncio.Event],
    message: str = "Run cancelled.",
) -> None:
    """Check point: raise RunCancelled if the token is already set."""
    if cancellation_token is not None and cancellation_token.is_set():
        raise RunCancelled(message)


async def cancellable(
    awaitable: Awaitable[T],
    cancellation_token: Optional[asyncio.Event],
    message: str = "Run cancelled.",
) -> T:
    """Await ``awaitable`` unless the token fires first.

    When the token is set while the operation is pending, the operation is
    cancelled and RunCancelled is raised.
    """
    if cancellation_token is None:
        return await awaitable

    if cancellation_token.is_set():
        # Close the coroutine so it doesn't warn about never being awaited
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise RunCancelled(message)

    task = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(cancellation_token.wait())

    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        # Outer cancellation lands here too; never leave either future behind
        if not waiter.done():
            waiter.cancel()
        if not task.done():
            task.cancel()
            # Let the operation unwind before reporting
            await asyncio.gather(task, return_exceptions=True)

    if not task.cancelled() or not cancellation_token.is_set():
        return task.result()

    raise RunCancelled(message)


async def iterate_cancellable(
    iterator: AsyncIterator[T],
    cancellation_token: Optional[asyncio.Event],
    message: str = "Stream cancelled.",
) -> AsyncIterator[T]:
    """Yield from ``iterator`` with every chunk read racing the token."""
    try:
        while True:
            try:
                item = await cancellable(
                    iterator.__anext__(), cancellation_token, message
                )
            except StopAsyncIteration:
                return
            yield item
    finally:
        aclose: Any = getattr(iterator, "aclose", None)
        if aclose is not None:
            await aclose()

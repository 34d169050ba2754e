"""
Cooperative cancellation for a single turn.

The HTTP layer cancels the token when the response stream is torn down;
paced delays and the in-flight completion request observe it and stop.
"""

import asyncio
from typing import Awaitable, TypeVar

T = TypeVar("T")


class StreamCancelled(Exception):
    """The consumer of a turn went away."""


class CancelToken:
    def __init__(self):
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise StreamCancelled()

    async def sleep(self, seconds: float) -> None:
        """Sleep for `seconds`, waking early with StreamCancelled on cancel."""
        self.raise_if_cancelled()
        if seconds <= 0:
            # Still yield so other turns make progress
            await asyncio.sleep(0)
            self.raise_if_cancelled()
            return
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        raise StreamCancelled()

    async def run(self, awaitable: Awaitable[T]) -> T:
        """Await `awaitable`, cancelling it if the token fires first."""
        if self.cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise StreamCancelled()
        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            work.cancel()
            raise
        finally:
            waiter.cancel()
        if work in done:
            return work.result()
        work.cancel()
        try:
            await work
        except (asyncio.CancelledError, Exception):
            pass
        raise StreamCancelled()

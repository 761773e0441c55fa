__all__ = ["CancellationToken", "OperationCancelledError"]

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

T = TypeVar("T")


class OperationCancelledError(Exception):
    """The user cancelled the operation. Never shown as an error."""


class CancellationToken:
    """
    Cooperative cancellation shared by every step of one user operation.

    `run` races an awaitable against the token, so an in-flight device call is
    aborted as soon as `cancel` is called. `raise_if_cancelled` is the checkpoint
    placed before every state update.
    """

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelledError()

    async def run(self, awaitable: Awaitable[T]) -> T:
        if self._event.is_set():
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise OperationCancelledError()
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task.done():
            return task.result()

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        raise OperationCancelledError()

    async def sleep(self, delay: float) -> None:
        await self.run(asyncio.sleep(delay))

"""Cooperative cancellation for a running batch."""

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from .errors import OperationCancelledError

T = TypeVar("T")


class CancellationToken:
    """Signal shared between a batch and whoever may withdraw from it.

    The pipeline checks :attr:`cancelled` at page and file boundaries and
    runs its slow calls through :meth:`guard` so they are aborted as soon
    as :meth:`cancel` is called.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the token fires first.

        Raises:
            OperationCancelledError: If the token fired before the call
                finished. The underlying task is cancelled and awaited,
                also when the caller itself is cancelled.
        """
        if self.cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise OperationCancelledError("Batch cancelled")

        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait(
                {task, waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            task.cancel()
            await asyncio.shield(asyncio.gather(task, return_exceptions=True))
            raise
        finally:
            waiter.cancel()

        if task in done:
            return task.result()

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise OperationCancelledError("Batch cancelled")

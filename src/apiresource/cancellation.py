"""Per-call cancellation tokens.

A :class:`CancellationToken` is minted for every
:meth:`~apiresource.controller.ResourceController.execute` call and checked
at each suspension point: before an attempt, around the network call, and
around the backoff wait.  Cancellation is cooperative.  It stops the caller
from waiting on (and acting upon) work in flight; it does not reach into
the transport.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

T = TypeVar("T")


class OperationCancelled(Exception):
    """Raised by :meth:`CancellationToken.race` when the token fires first.

    Internal control flow: the executor turns it into an aborted outcome,
    so it never reaches callers of ``execute``.
    """


class CancellationToken:
    """Opaque handle signalling that a caller no longer wants a result.

    Args:
        generation: Position of the owning call in its controller's
            sequence of calls.  Only the latest generation may write state.
    """

    def __init__(self, generation: int = 0) -> None:
        self.generation = generation
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        """Signal the token.  Idempotent."""
        self._event.set()

    async def race(self, awaitable: Awaitable[T]) -> T:
        """Await *awaitable* unless the token fires first.

        When the token wins, the pending work is cancelled and its eventual
        result is discarded.

        Raises:
            OperationCancelled: If the token is, or becomes, cancelled
                before *awaitable* completes.
        """
        task = asyncio.ensure_future(awaitable)
        if self.cancelled:
            task.cancel()
            raise OperationCancelled()

        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait(
                {task, waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()

        if task in done:
            return task.result()
        raise OperationCancelled()

    async def sleep(self, seconds: float) -> bool:
        """Wait *seconds* or until cancelled.

        Returns:
            ``True`` if the token was cancelled before or during the wait.
        """
        try:
            await self.race(asyncio.sleep(seconds))
        except OperationCancelled:
            return True
        return self.cancelled

    def __repr__(self) -> str:
        state = "cancelled" if self.cancelled else "live"
        return f"<CancellationToken generation={self.generation} {state}>"

"""Cooperative cancellation shared by a run and everything it spawns."""

import asyncio
import inspect
from collections.abc import Awaitable
from typing import TypeVar

from orchestra.exceptions import OperationCancelled
from orchestra.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class CancellationToken:
    """One cancellation signal threaded through a whole call tree.

    The same token is handed to provider calls, tool executions, approval
    waits and nested sub-agent runs; cancelling it stops all of them.

    Usage::

        token = CancellationToken()
        task = asyncio.create_task(engine.run(provider, messages, model, options))
        token.cancel()
        result = await task  # result.status is ExecutionStatus.CANCELLED
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        """Signal cancellation. Idempotent."""
        if not self._event.is_set():
            logger.info("Cancellation requested")
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled()

    async def wait(self) -> None:
        await self._event.wait()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the token fires first.

        On cancellation the pending work is cancelled and
        ``OperationCancelled`` is raised.
        """
        if self.cancelled:
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            raise OperationCancelled()

        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            work.cancel()
            raise
        finally:
            waiter.cancel()

        if work.done():
            return work.result()

        work.cancel()
        try:
            await work
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.debug(f"Cancelled operation raised while unwinding: {e}")
        raise OperationCancelled()

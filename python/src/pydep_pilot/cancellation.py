"""
Cooperative Cancellation

A CancellationToken is created per logical operation (a refresh cycle, a
search query, a mutating command) and passed explicitly to every process and
request the operation starts.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from .config import pilot_logger
from .errors import OperationCancelled

T = TypeVar("T")


class CancellationToken:
    """Token that can be cancelled once and notifies registered listeners."""

    def __init__(self):
        self._cancelled = False
        self._listeners: list[Callable[[], None]] = []
        self._event: asyncio.Event | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Signal cancellation. Cancelling twice is a no-op."""
        if self._cancelled:
            return
        self._cancelled = True

        listeners, self._listeners = self._listeners, []
        for listener in listeners:
            try:
                listener()
            except Exception as e:
                pilot_logger.error(f"Cancellation listener failed: {e}")

        if self._event is not None:
            self._event.set()

    def on_cancel(self, listener: Callable[[], None]) -> Callable[[], None]:
        """
        Register a listener called when the token is cancelled.

        A listener registered on an already cancelled token runs immediately.

        Returns:
            Callable that unregisters the listener
        """
        if self._cancelled:
            listener()
            return lambda: None

        self._listeners.append(listener)

        def unregister():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unregister

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise OperationCancelled("Operation cancelled")

    async def wait(self) -> None:
        """Wait until the token is cancelled."""
        if self._event is None:
            self._event = asyncio.Event()
            if self._cancelled:
                self._event.set()
        await self._event.wait()


async def run_cancellable(awaitable: Awaitable[T], token: CancellationToken | None) -> T:
    """
    Await a coroutine, cancelling it when the token fires.

    Args:
        awaitable: Coroutine or future to run
        token: Cancellation token, or None for an uncancellable call

    Returns:
        The awaitable's result

    Raises:
        OperationCancelled: If the token fired before the awaitable finished
    """
    if token is None:
        return await awaitable

    if token.cancelled:
        if asyncio.iscoroutine(awaitable):
            awaitable.close()
        raise OperationCancelled("Operation cancelled")

    task = asyncio.ensure_future(awaitable)
    unregister = token.on_cancel(task.cancel)
    try:
        return await task
    except asyncio.CancelledError:
        current = asyncio.current_task()
        if token.cancelled and not (current and current.cancelling()):
            raise OperationCancelled("Operation cancelled") from None
        raise
    finally:
        unregister()

"""Cooperative cancellation for long-running batches."""

import asyncio
import threading

import structlog

from .errors import OperationCancelledError

log = structlog.stdlib.get_logger()


class CancellationToken:
    """Cancellation flag passed explicitly through long-running calls.

    Callers check the token before each network call and each file write;
    once cancelled, no further side effects may commit. The flag may be set
    from any thread (e.g. a signal handler); waiters on the event loop are
    woken via ``call_soon_threadsafe``.
    """

    def __init__(self, name: str = "operation") -> None:
        self.name = name
        self._cancelled = False
        self._lock = threading.Lock()
        self._waiters: list[tuple[asyncio.AbstractEventLoop, asyncio.Event]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Mark the operation as cancelled and wake any waiters."""
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            waiters = list(self._waiters)
        log.info("Cancellation requested", operation=self.name)
        for loop, event in waiters:
            if loop.is_closed():
                continue
            loop.call_soon_threadsafe(event.set)

    def raise_if_cancelled(self) -> None:
        """Raise OperationCancelledError if cancellation was requested."""
        if self._cancelled:
            raise OperationCancelledError(operation=self.name)

    async def wait(self) -> None:
        """Suspend until the token is cancelled."""
        event = asyncio.Event()
        with self._lock:
            if self._cancelled:
                return
            self._waiters.append((asyncio.get_running_loop(), event))
        try:
            await event.wait()
        finally:
            with self._lock:
                self._waiters = [w for w in self._waiters if w[1] is not event]

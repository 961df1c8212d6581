"""Counting semaphore bounding simultaneous network operations."""

import asyncio
from types import TracebackType

import structlog

log = structlog.stdlib.get_logger()


class ConcurrencyLimiter:
    """At most ``bound`` holders at a time; waiters are woken in FIFO order."""

    def __init__(self, bound: int = 4) -> None:
        if bound < 1:
            raise ValueError(f"Concurrency bound must be positive, got {bound}")
        self.bound = bound
        self._semaphore = asyncio.Semaphore(bound)
        self._holders = 0
        self._peak_holders = 0

    @property
    def holders(self) -> int:
        return self._holders

    @property
    def peak_holders(self) -> int:
        """Highest number of simultaneous holders observed."""
        return self._peak_holders

    async def acquire(self) -> None:
        await self._semaphore.acquire()
        self._holders += 1
        self._peak_holders = max(self._peak_holders, self._holders)

    def release(self) -> None:
        if self._holders == 0:
            raise RuntimeError("ConcurrencyLimiter released more times than acquired")
        self._holders -= 1
        self._semaphore.release()

    async def __aenter__(self) -> "ConcurrencyLimiter":
        await self.acquire()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.release()

"""Bounded concurrency gate for outbound embedding calls.

Caps the number of simultaneously executing coroutines. Excess callers wait
in a FIFO queue with no timeout; every completed body hands its permit to the
earliest waiter, or returns it to the pool when nobody is waiting.
"""

import asyncio
from collections import deque
from typing import Awaitable, Callable, Deque, TypeVar

T = TypeVar("T")


class ConcurrencyGate:
    """FIFO permit gate owned by a single engine instance.

    Parameters
    - permits: Maximum number of bodies running at once (``1`` = sequential)
    """

    def __init__(self, permits: int):
        if permits < 1:
            raise ValueError(f"permits must be >= 1, got {permits}")
        self._permits = permits
        self._available = permits
        self._waiters: Deque[asyncio.Future] = deque()

    @property
    def permits(self) -> int:
        return self._permits

    @property
    def available(self) -> int:
        return self._available

    @property
    def waiting(self) -> int:
        return sum(1 for waiter in self._waiters if not waiter.done())

    async def acquire_and_run(self, body: Callable[[], Awaitable[T]]) -> T:
        """Run ``body()`` once a permit is held; the permit is always released."""
        await self._acquire()
        try:
            return await body()
        finally:
            self._release()

    async def _acquire(self) -> None:
        if self._available > 0 and self.waiting == 0:
            self._available -= 1
            return

        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # Permit was already handed over.
                self._release()
            elif waiter in self._waiters:
                self._waiters.remove(waiter)
            raise

    def _release(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)
                return
        self._available += 1

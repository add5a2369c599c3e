from __future__ import annotations

import asyncio
from collections import deque
from typing import Deque


class ConcurrencyGate:
    """Fixed-capacity admission gate for outstanding remote calls.

    - Waiters are admitted strictly in arrival order (FIFO); a released slot
      is handed directly to the oldest waiter so late arrivals cannot jump
      the queue.
    - A waiter cancelled while queued leaves without consuming a slot.
    - ``in_flight`` and ``peak`` are exposed for diagnostics and tests.
    """

    def __init__(self, capacity: int = 5) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self._in_flight = 0
        self._peak = 0
        self._waiters: Deque[asyncio.Future] = deque()

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def peak(self) -> int:
        return self._peak

    @property
    def waiting(self) -> int:
        return sum(1 for waiter in self._waiters if not waiter.done())

    async def acquire(self) -> None:
        if self._in_flight < self.capacity and not self._waiters:
            self._take_slot()
            return

        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # Slot was already handed over; pass it on
                self.release()
            elif waiter in self._waiters:
                self._waiters.remove(waiter)
            raise

    def release(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                # in_flight unchanged: the slot moves to the waiter
                waiter.set_result(None)
                return
        if self._in_flight <= 0:
            raise RuntimeError("release() called more times than acquire()")
        self._in_flight -= 1

    def _take_slot(self) -> None:
        self._in_flight += 1
        if self._in_flight > self._peak:
            self._peak = self._in_flight

    async def __aenter__(self) -> "ConcurrencyGate":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.release()

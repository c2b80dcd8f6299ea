# utils/clock.py

import asyncio
import time
from typing import Optional


class Clock:
    """Time source used by the poll loop. Tests swap in a virtual clock."""

    def monotonic(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float, cancel_event: Optional[asyncio.Event] = None) -> bool:
        """
        Waits for `seconds`. Returns False if `cancel_event` was set before the
        delay elapsed, True otherwise.
        """
        if cancel_event is None:
            await asyncio.sleep(seconds)
            return True
        if cancel_event.is_set():
            return False
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return True
        return False


class Ticker:
    """
    Yields attempt numbers 1..attempts, sleeping `interval` between them.

    The first tick fires immediately. Iteration stops early when the
    cancel event is set during a sleep.
    """

    def __init__(self, interval: float, attempts: int, clock: Optional[Clock] = None,
                 cancel_event: Optional[asyncio.Event] = None):
        self.interval = interval
        self.attempts = attempts
        self.clock = clock or Clock()
        self.cancel_event = cancel_event
        self.cancelled = False

    def __aiter__(self):
        return self._ticks()

    async def _ticks(self):
        for attempt in range(1, self.attempts + 1):
            if attempt > 1:
                if not await self.clock.sleep(self.interval, self.cancel_event):
                    self.cancelled = True
                    return
            elif self.cancel_event is not None and self.cancel_event.is_set():
                self.cancelled = True
                return
            yield attempt

"""Fixed-period tick source shared by the polling and heartbeat loops."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator


class IntervalTicker:
    """Yields tick numbers every `interval` seconds until stop() is called.

    Ticks are laid on a fixed grid (start + n * interval) against the loop
    clock, so time spent handling a tick shortens the next wait instead of
    drifting. A consumer that overruns whole periods gets one immediate
    tick and the missed ones are skipped.

    With immediate=False the first tick fires after one interval.
    """

    def __init__(self, interval: float, immediate: bool = True) -> None:
        self.interval = interval
        self.immediate = immediate
        self._stopped = asyncio.Event()

    async def ticks(self) -> AsyncIterator[int]:
        loop = asyncio.get_running_loop()
        start = loop.time()
        n = 0 if self.immediate else 1
        while True:
            now = loop.time()
            next_at = start + n * self.interval
            if next_at < now:
                n = int((now - start) // self.interval)
                next_at = start + n * self.interval
            if await self._wait_for_stop(next_at - now):
                return
            yield n
            n += 1

    def stop(self) -> None:
        self._stopped.set()

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    async def _wait_for_stop(self, delay: float) -> bool:
        """Sleep up to `delay` seconds. Returns True if stop() was called."""
        if self._stopped.is_set() or delay <= 0:
            return self._stopped.is_set()
        try:
            await asyncio.wait_for(self._stopped.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True

"""Host -> redirect target cache, wiped at local midnight.

Entries have no TTL of their own. The whole mapping is swapped for an
empty one when :class:`MidnightResetScheduler` fires, so a trip that
starts tomorrow is picked up on the first request after midnight.
"""
from __future__ import annotations

import asyncio
import logging
import os
from collections import deque
from contextlib import asynccontextmanager
from datetime import datetime, time, timedelta
from typing import AsyncIterator, Awaitable, Callable, Deque, Dict, Optional

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
    logger.addHandler(handler)
_level = os.getenv("TRIP_REDIRECT_LOG_LEVEL", "INFO").upper()
logger.setLevel(getattr(logging, _level, logging.INFO))
logger.propagate = False


class ReadWriteLock:
    """Many concurrent readers or a single writer.

    Releasing never awaits, so a task cancelled on its way out of a
    critical section cannot leave the counters behind.
    """

    def __init__(self) -> None:
        self._readers = 0
        self._writing = False
        self._waiters: Deque[asyncio.Future] = deque()

    async def _wait_until(self, ready: Callable[[], bool]) -> None:
        while not ready():
            waiter = asyncio.get_running_loop().create_future()
            self._waiters.append(waiter)
            try:
                await waiter
            finally:
                if waiter in self._waiters:
                    self._waiters.remove(waiter)

    def _wake_all(self) -> None:
        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)

    @asynccontextmanager
    async def read(self) -> AsyncIterator[None]:
        await self._wait_until(lambda: not self._writing)
        self._readers += 1
        try:
            yield
        finally:
            self._readers -= 1
            if self._readers == 0:
                self._wake_all()

    @asynccontextmanager
    async def write(self) -> AsyncIterator[None]:
        await self._wait_until(lambda: not self._writing and self._readers == 0)
        self._writing = True
        try:
            yield
        finally:
            self._writing = False
            self._wake_all()


class FreshnessCache:
    def __init__(self) -> None:
        self._store: Dict[str, str] = {}
        self._lock = ReadWriteLock()

    async def get(self, host: str) -> Optional[str]:
        async with self._lock.read():
            return self._store.get(host)

    async def put(self, host: str, target: str) -> None:
        async with self._lock.write():
            self._store[host] = target

    async def reset_all(self) -> int:
        """Drop every entry; returns how many were held."""
        async with self._lock.write():
            count = len(self._store)
            self._store = {}
        return count

    async def size(self) -> int:
        async with self._lock.read():
            return len(self._store)


def seconds_until_next_midnight(now: Optional[datetime] = None) -> float:
    """Seconds from ``now`` to the next local midnight.

    ``now`` may be naive (taken as local time) or aware. The midnight is
    resolved through the local zone, so DST transitions are accounted for.
    """
    current = (now or datetime.now()).astimezone()
    tomorrow = current.date() + timedelta(days=1)
    midnight = datetime.combine(tomorrow, time.min).astimezone()
    return max((midnight - current).total_seconds(), 0.0)


class MidnightResetScheduler:
    """Background task that empties a :class:`FreshnessCache` every local midnight.

    The delay is recomputed before each sleep rather than re-arming a
    fixed 24h period, so a long-running process stays aligned with local
    midnight across DST changes.
    """

    def __init__(
        self,
        cache: FreshnessCache,
        *,
        clock: Callable[[], datetime] = datetime.now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.cache = cache
        self._clock = clock
        self._sleep = sleep
        self._task: asyncio.Task | None = None
        self.resets = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if not self.running:
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _run(self) -> None:
        while True:
            delay = seconds_until_next_midnight(self._clock())
            logger.info("Next cache reset in %.0f seconds", delay)
            await self._sleep(delay)
            cleared = await self.cache.reset_all()
            self.resets += 1
            logger.info("Cache reset #%d at midnight (%d entries cleared)", self.resets, cleared)

"""Fire-and-forget execution for side effects of a redirect.

Visit logging and analytics run as detached tasks. Their failures are
logged and dropped; the redirect has usually been sent by the time they
finish.
"""
from __future__ import annotations

import asyncio
import logging
import os
from typing import Awaitable, Set

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
    logger.addHandler(handler)
_level = os.getenv("TRIP_REDIRECT_LOG_LEVEL", "INFO").upper()
logger.setLevel(getattr(logging, _level, logging.INFO))
logger.propagate = False


class TaskPool:
    def __init__(self) -> None:
        # asyncio only keeps weak references to tasks
        self._tasks: Set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._tasks)

    def spawn(self, work: Awaitable[object], label: str) -> asyncio.Task:
        task = asyncio.ensure_future(self._guard(work, label))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for every pending side effect (shutdown and tests)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    @staticmethod
    async def _guard(work: Awaitable[object], label: str) -> None:
        try:
            await work
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.warning("Background %s failed", label, exc_info=True)

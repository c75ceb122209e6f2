"""Bounded background task pool for risk-intel.

Used for fire-and-forget work such as stale-entry revalidation. Work is
keyed: a submission for a key that is already running is dropped, and so is
any submission made while the pool is full.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict

logger = logging.getLogger(__name__)


class BackgroundTaskPool:
    """Detached task runner with per-key coalescing and a concurrency cap."""

    def __init__(self, max_tasks: int = 32):
        self.max_tasks = max_tasks
        self._tasks: Dict[str, asyncio.Task] = {}
        self.dropped_count = 0

    def submit(self, key: str, work: Callable[[], Awaitable[None]]) -> bool:
        """Schedule ``work`` under ``key``; returns False when it was dropped."""
        if key in self._tasks:
            logger.debug(f"Background task for {key} already running, coalescing")
            return False

        if len(self._tasks) >= self.max_tasks:
            self.dropped_count += 1
            logger.warning(f"Background pool full ({self.max_tasks} tasks), dropping {key}")
            return False

        task = asyncio.create_task(self._run(key, work))
        self._tasks[key] = task
        task.add_done_callback(lambda _, key=key: self._tasks.pop(key, None))
        return True

    async def _run(self, key: str, work: Callable[[], Awaitable[None]]) -> None:
        try:
            await work()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Background task {key} failed: {e}")

    def is_running(self, key: str) -> bool:
        return key in self._tasks

    @property
    def active_count(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every scheduled task to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel outstanding work and wait for it to unwind."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

"""Request deduplication for risk-intel.

Concurrent callers asking for the same key share one in-flight execution
and observe the same result or exception. Entries older than the in-flight
TTL are purged so a wedged producer cannot block a key forever.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, TypeVar

T = TypeVar('T')

logger = logging.getLogger(__name__)

DEFAULT_INFLIGHT_TTL = 5.0


@dataclass
class PendingRequest:
    task: "asyncio.Future[Any]"
    started_at: float


class RequestDeduplicator:
    """Collapse concurrent identical requests into one execution."""

    def __init__(self, ttl: float = DEFAULT_INFLIGHT_TTL, clock: Callable[[], float] = time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._pending: Dict[str, PendingRequest] = {}

    async def deduplicate(self, key: str, producer: Callable[[], Awaitable[T]]) -> T:
        """Run ``producer`` unless an execution for ``key`` is already in flight."""
        self._purge_expired()

        pending = self._pending.get(key)
        if pending is not None:
            logger.debug(f"Joining in-flight request for {key}")
        else:
            task = asyncio.ensure_future(producer())
            pending = PendingRequest(task=task, started_at=self._clock())
            self._pending[key] = pending
            task.add_done_callback(lambda _, key=key, pending=pending: self._release(key, pending))

        # A cancelled waiter must not cancel the shared execution
        return await asyncio.shield(pending.task)

    def _release(self, key: str, pending: PendingRequest) -> None:
        if self._pending.get(key) is pending:
            del self._pending[key]
        # Mark the exception retrieved when every waiter was cancelled
        if not pending.task.cancelled():
            pending.task.exception()

    def _purge_expired(self) -> None:
        now = self._clock()
        expired = [key for key, pending in self._pending.items() if now - pending.started_at > self.ttl]
        for key in expired:
            logger.warning(f"Dropping in-flight request for {key} after {self.ttl}s")
            del self._pending[key]

    @property
    def size(self) -> int:
        return len(self._pending)

    def clear(self) -> None:
        self._pending.clear()

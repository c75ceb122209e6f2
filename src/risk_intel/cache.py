"""Stale-while-revalidate cache for risk-intel.

This module provides the ``CacheAdapter`` contract shared by every storage
backend and the bounded in-process ``MemoryCache``. Entries carry two
deadlines: they are fresh until ``stale_at``, may still be served (and
revalidated) until ``expires_at``, and are dead afterwards.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Optional, Type, TypeVar

from pydantic import BaseModel

T = TypeVar('T')

logger = logging.getLogger(__name__)

DEFAULT_TTL = 300.0
DEFAULT_STALE_TTL = 1800.0


@dataclass
class CacheEntry(Generic[T]):
    """A cached value with its freshness deadlines (epoch seconds)."""
    data: T
    stale_at: float
    expires_at: float

    def is_fresh(self, now: float) -> bool:
        return now < self.stale_at

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


@dataclass
class StaleLookup(Generic[T]):
    """Result of ``get_with_stale``."""
    entry: Optional[CacheEntry[T]] = None
    is_stale: bool = False

    @property
    def hit(self) -> bool:
        return self.entry is not None


class CacheAdapter(ABC, Generic[T]):
    """Abstract base class for cache backends.

    Backends never raise on storage faults: a failed read is a miss and a
    failed write is logged and dropped.
    """

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL,
        default_stale_ttl: float = DEFAULT_STALE_TTL,
        value_type: Optional[Type[BaseModel]] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.default_ttl = default_ttl
        self.default_stale_ttl = max(default_stale_ttl, default_ttl)
        self.value_type = value_type
        self._clock = clock

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Short name of the storage backend."""
        pass

    async def get(self, key: str) -> Optional[T]:
        """Return the value if present and fresh."""
        lookup = await self.get_with_stale(key)
        if lookup.entry is None or lookup.is_stale:
            return None
        return lookup.entry.data

    @abstractmethod
    async def get_with_stale(self, key: str) -> StaleLookup[T]:
        """Return the entry and whether it is stale; dead entries are removed."""
        pass

    @abstractmethod
    async def set(self, key: str, value: T, ttl: Optional[float] = None, stale_ttl: Optional[float] = None) -> None:
        """Store a value; ``ttl`` is the fresh window, ``stale_ttl`` the total lifetime."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        pass

    @abstractmethod
    async def clear(self) -> None:
        pass

    @abstractmethod
    async def size(self) -> int:
        pass

    async def aclose(self) -> None:
        """Release backend resources."""
        return None

    def _make_entry(self, value: T, ttl: Optional[float], stale_ttl: Optional[float]) -> CacheEntry[T]:
        fresh = self.default_ttl if ttl is None else ttl
        total = self.default_stale_ttl if stale_ttl is None else stale_ttl
        now = self._clock()
        return CacheEntry(data=value, stale_at=now + fresh, expires_at=now + max(total, fresh))

    def _classify(self, entry: CacheEntry[T]) -> StaleLookup[T]:
        return StaleLookup(entry=entry, is_stale=not entry.is_fresh(self._clock()))

    def _encode_entry(self, entry: CacheEntry[T]) -> Dict[str, Any]:
        data = entry.data
        if isinstance(data, BaseModel):
            data = data.model_dump(mode="json")
        return {"data": data, "staleAt": entry.stale_at, "expiresAt": entry.expires_at}

    def _decode_entry(self, record: Dict[str, Any]) -> CacheEntry[T]:
        data = record["data"]
        if self.value_type is not None:
            data = self.value_type.model_validate(data)
        return CacheEntry(data=data, stale_at=float(record["staleAt"]), expires_at=float(record["expiresAt"]))


class MemoryCache(CacheAdapter[T]):
    """Bounded in-process LRU cache."""

    def __init__(self, max_size: int = 500, **kwargs):
        super().__init__(**kwargs)
        self.max_size = max_size
        self._entries: "OrderedDict[str, CacheEntry[T]]" = OrderedDict()
        self._lock = asyncio.Lock()

    @property
    def backend_name(self) -> str:
        return "memory"

    async def get_with_stale(self, key: str) -> StaleLookup[T]:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return StaleLookup()

            if entry.is_expired(self._clock()):
                del self._entries[key]
                return StaleLookup()

            self._entries.move_to_end(key)
            return self._classify(entry)

    async def set(self, key: str, value: T, ttl: Optional[float] = None, stale_ttl: Optional[float] = None) -> None:
        entry = self._make_entry(value, ttl, stale_ttl)
        async with self._lock:
            if key in self._entries:
                self._entries.move_to_end(key)
            self._entries[key] = entry

            while len(self._entries) > self.max_size:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug(f"Evicted least recently used cache entry {evicted}")

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._entries.pop(key, None)

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()

    async def size(self) -> int:
        async with self._lock:
            return len(self._entries)

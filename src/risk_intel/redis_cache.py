"""Redis cache backend for risk-intel."""

import asyncio
import json
import logging
import math
from typing import Optional

from risk_intel.cache import CacheAdapter, StaleLookup, T


class RedisCache(CacheAdapter[T]):
    """Networked cache storing JSON envelopes with native key expiry.

    Keys expire in Redis at the end of the stale window; the envelope keeps
    the fresh deadline so stale reads can still be told apart.
    """

    def __init__(
        self,
        redis_client=None,
        redis_url: str = "redis://localhost:6379",
        key_prefix: str = "risk_intel:",
        pool_size: int = 10,
        **kwargs
    ):
        super().__init__(**kwargs)
        self.key_prefix = key_prefix
        self._redis_client = redis_client
        self._redis_url = redis_url
        self._pool_size = pool_size
        self._owns_client = redis_client is None
        self._logger = logging.getLogger(__name__)

        # Lazy initialization
        self._initialized = False
        self._init_lock = asyncio.Lock()

    @property
    def backend_name(self) -> str:
        return "redis"

    async def _ensure_initialized(self):
        """Ensure Redis client is initialized."""
        if self._initialized:
            return

        async with self._init_lock:
            if self._initialized:
                return

            if self._redis_client is None:
                import redis.asyncio as aioredis

                self._redis_client = aioredis.from_url(
                    self._redis_url,
                    max_connections=self._pool_size,
                    decode_responses=True
                )
                await self._redis_client.ping()
            self._initialized = True

    def _get_key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    async def get_with_stale(self, key: str) -> StaleLookup[T]:
        try:
            await self._ensure_initialized()
            raw = await self._redis_client.get(self._get_key(key))
            if raw is None:
                return StaleLookup()

            entry = self._decode_entry(json.loads(raw))
            if entry.is_expired(self._clock()):
                await self.delete(key)
                return StaleLookup()
            return self._classify(entry)

        except Exception as e:
            self._logger.warning(f"Redis cache read failed for {key}: {e}")
            return StaleLookup()

    async def set(self, key: str, value: T, ttl: Optional[float] = None, stale_ttl: Optional[float] = None) -> None:
        entry = self._make_entry(value, ttl, stale_ttl)
        expire_seconds = max(1, math.ceil(entry.expires_at - self._clock()))
        try:
            await self._ensure_initialized()
            await self._redis_client.setex(
                self._get_key(key), expire_seconds, json.dumps(self._encode_entry(entry))
            )
        except Exception as e:
            self._logger.warning(f"Redis cache write failed for {key}: {e}")

    async def delete(self, key: str) -> None:
        try:
            await self._ensure_initialized()
            await self._redis_client.delete(self._get_key(key))
        except Exception as e:
            self._logger.warning(f"Redis cache delete failed for {key}: {e}")

    async def clear(self) -> None:
        """Remove every key under this cache's prefix."""
        try:
            await self._ensure_initialized()
            keys = [k async for k in self._redis_client.scan_iter(match=f"{self.key_prefix}*")]
            if keys:
                await self._redis_client.delete(*keys)
        except Exception as e:
            self._logger.warning(f"Redis cache clear failed: {e}")

    async def size(self) -> int:
        try:
            await self._ensure_initialized()
            count = 0
            async for _ in self._redis_client.scan_iter(match=f"{self.key_prefix}*"):
                count += 1
            return count
        except Exception as e:
            self._logger.warning(f"Redis cache size lookup failed: {e}")
            return 0

    async def aclose(self) -> None:
        if self._redis_client is not None and self._owns_client:
            await self._redis_client.aclose()
            self._redis_client = None
            self._initialized = False

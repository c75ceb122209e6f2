"""Cache backend selection for risk-intel."""

import logging
import time
from typing import Callable, Optional, Type

from pydantic import BaseModel

from risk_intel.cache import CacheAdapter, MemoryCache
from risk_intel.config import CacheBackendType, IntelConfig
from risk_intel.http_client import HttpClient
from risk_intel.kv_cache import KVCache
from risk_intel.redis_cache import RedisCache

logger = logging.getLogger(__name__)


def create_cache(
    config: IntelConfig,
    name: str,
    value_type: Optional[Type[BaseModel]] = None,
    ttl: Optional[float] = None,
    stale_ttl: Optional[float] = None,
    http_client: Optional[HttpClient] = None,
    redis_client=None,
    clock: Callable[[], float] = time.time,
) -> CacheAdapter:
    """Build the cache backend named by ``config.cache_backend``.

    ``name`` namespaces keys so several caches can share one store.
    A networked backend with missing settings falls back to memory.
    """
    options = dict(
        default_ttl=config.cache_ttl_seconds if ttl is None else ttl,
        default_stale_ttl=config.cache_stale_ttl_seconds if stale_ttl is None else stale_ttl,
        value_type=value_type,
        clock=clock,
    )
    backend = config.cache_backend

    if backend == CacheBackendType.REDIS:
        if redis_client is not None or config.redis_url:
            logger.info(f"Using Redis cache backend for {name}")
            return RedisCache(
                redis_client=redis_client,
                redis_url=config.redis_url or "redis://localhost:6379",
                key_prefix=f"risk_intel:{name}:",
                **options
            )
        logger.warning("CACHE_BACKEND=redis but REDIS_URL is not set, falling back to memory cache")

    elif backend == CacheBackendType.KV:
        if http_client is not None and config.cloudflare_account_id and config.kv_namespace_id and config.kv_api_token:
            logger.info(f"Using Cloudflare KV cache backend for {name}")
            return KVCache(
                http_client=http_client,
                account_id=config.cloudflare_account_id,
                namespace_id=config.kv_namespace_id,
                api_token=config.kv_api_token,
                key_prefix=f"{name}:",
                **options
            )
        logger.warning(
            "CACHE_BACKEND=kv requires CLOUDFLARE_ACCOUNT_ID, KV_NAMESPACE_ID and KV_API_TOKEN, "
            "falling back to memory cache"
        )

    return MemoryCache(max_size=config.cache_max_items, **options)

"""Cloudflare Workers KV cache backend for risk-intel.

Talks to the KV REST API. KV is eventually consistent across regions, so a
value written in one location may briefly read as a miss elsewhere; callers
already treat misses as a reason to fetch.
"""

import json
import logging
import math
from typing import Optional
from urllib.parse import quote

from risk_intel.cache import CacheAdapter, StaleLookup, T
from risk_intel.http_client import HttpClient

logger = logging.getLogger(__name__)

KV_API_BASE = "https://api.cloudflare.com/client/v4"

# KV rejects expirations shorter than 60 seconds
KV_MIN_EXPIRATION_TTL = 60


class KVCache(CacheAdapter[T]):
    """Replicated key-value cache backed by a Workers KV namespace."""

    def __init__(
        self,
        http_client: HttpClient,
        account_id: str,
        namespace_id: str,
        api_token: str,
        key_prefix: str = "",
        **kwargs
    ):
        super().__init__(**kwargs)
        self._http = http_client
        self.key_prefix = key_prefix
        self._base_url = f"{KV_API_BASE}/accounts/{account_id}/storage/kv/namespaces/{namespace_id}"
        self._headers = {"Authorization": f"Bearer {api_token}"}

    @property
    def backend_name(self) -> str:
        return "kv"

    def _value_url(self, key: str) -> str:
        return f"{self._base_url}/values/{quote(self.key_prefix + key, safe='')}"

    async def get_with_stale(self, key: str) -> StaleLookup[T]:
        try:
            response = await self._http.request(
                "GET", self._value_url(key), headers=self._headers, allow_status=(404,)
            )
            if response.status_code == 404:
                return StaleLookup()

            entry = self._decode_entry(json.loads(response.text))
            if entry.is_expired(self._clock()):
                await self.delete(key)
                return StaleLookup()
            return self._classify(entry)

        except Exception as e:
            logger.warning(f"KV cache read failed for {key}: {e}")
            return StaleLookup()

    async def set(self, key: str, value: T, ttl: Optional[float] = None, stale_ttl: Optional[float] = None) -> None:
        entry = self._make_entry(value, ttl, stale_ttl)
        expiration_ttl = max(KV_MIN_EXPIRATION_TTL, math.ceil(entry.expires_at - self._clock()))
        try:
            await self._http.request(
                "PUT",
                self._value_url(key),
                headers=self._headers,
                params={"expiration_ttl": expiration_ttl},
                content=json.dumps(self._encode_entry(entry)),
            )
        except Exception as e:
            logger.warning(f"KV cache write failed for {key}: {e}")

    async def delete(self, key: str) -> None:
        try:
            await self._http.request(
                "DELETE", self._value_url(key), headers=self._headers, allow_status=(404,)
            )
        except Exception as e:
            logger.warning(f"KV cache delete failed for {key}: {e}")

    async def _list_keys(self):
        cursor = None
        while True:
            params = {"limit": 1000}
            if self.key_prefix:
                params["prefix"] = self.key_prefix
            if cursor:
                params["cursor"] = cursor

            payload = await self._http.get_json(f"{self._base_url}/keys", headers=self._headers, params=params)
            for item in payload.get("result") or []:
                yield item["name"]

            cursor = (payload.get("result_info") or {}).get("cursor")
            if not cursor:
                return

    async def clear(self) -> None:
        try:
            # List everything first so deletions do not shift the pages
            names = [name async for name in self._list_keys()]
            for name in names:
                await self._http.request(
                    "DELETE",
                    f"{self._base_url}/values/{quote(name, safe='')}",
                    headers=self._headers,
                    allow_status=(404,),
                )
        except Exception as e:
            logger.warning(f"KV cache clear failed: {e}")

    async def size(self) -> int:
        try:
            count = 0
            async for _ in self._list_keys():
                count += 1
            return count
        except Exception as e:
            logger.warning(f"KV cache size lookup failed: {e}")
            return 0

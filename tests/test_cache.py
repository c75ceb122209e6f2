"""Tests for the stale-while-revalidate cache backends."""

import json
from urllib.parse import unquote

import httpx
import pytest

from risk_intel.cache import CacheEntry, MemoryCache
from risk_intel.cache_factory import create_cache
from risk_intel.config import IntelConfig
from risk_intel.kv_cache import KV_MIN_EXPIRATION_TTL, KVCache
from risk_intel.models import NormalizedIpInsight
from risk_intel.redis_cache import RedisCache
from tests.mocks.intel_mocks import FakeClock, FakeRedis, RecordingTransport, json_response, make_insight


class TestCacheEntry:
    """Test entry freshness windows."""

    def test_windows(self):
        """Test fresh, stale and dead boundaries."""
        entry = CacheEntry(data="x", stale_at=100.0, expires_at=200.0)
        assert entry.is_fresh(99.9) is True
        assert entry.is_fresh(100.0) is False
        assert entry.is_expired(199.9) is False
        assert entry.is_expired(200.0) is True


class TestMemoryCache:
    """Test the in-process LRU cache."""

    @pytest.mark.asyncio
    async def test_fresh_hit(self):
        """Test that a fresh entry is returned by get and get_with_stale."""
        clock = FakeClock()
        cache = MemoryCache(default_ttl=10, default_stale_ttl=60, clock=clock)
        await cache.set("k", {"v": 1})

        assert await cache.get("k") == {"v": 1}
        lookup = await cache.get_with_stale("k")
        assert lookup.hit is True
        assert lookup.is_stale is False
        assert lookup.entry.stale_at == clock.now + 10
        assert lookup.entry.expires_at == clock.now + 60

    @pytest.mark.asyncio
    async def test_stale_entry(self):
        """Test that stale entries are only visible through get_with_stale."""
        clock = FakeClock()
        cache = MemoryCache(default_ttl=10, default_stale_ttl=60, clock=clock)
        await cache.set("k", "value")
        clock.advance(30)

        assert await cache.get("k") is None
        lookup = await cache.get_with_stale("k")
        assert lookup.entry.data == "value"
        assert lookup.is_stale is True

    @pytest.mark.asyncio
    async def test_dead_entry_removed(self):
        """Test that entries past their lifetime are deleted on read."""
        clock = FakeClock()
        cache = MemoryCache(default_ttl=10, default_stale_ttl=60, clock=clock)
        await cache.set("k", "value")
        clock.advance(60)

        lookup = await cache.get_with_stale("k")
        assert lookup.hit is False
        assert await cache.size() == 0

    @pytest.mark.asyncio
    async def test_explicit_ttls(self):
        """Test per-call fresh and stale windows."""
        clock = FakeClock()
        cache = MemoryCache(default_ttl=10, default_stale_ttl=60, clock=clock)
        await cache.set("k", "value", ttl=1, stale_ttl=2)
        clock.advance(1.5)
        assert (await cache.get_with_stale("k")).is_stale is True
        clock.advance(1)
        assert (await cache.get_with_stale("k")).hit is False

    @pytest.mark.asyncio
    async def test_stale_window_never_shorter_than_fresh(self):
        """Test that the total lifetime is at least the fresh window."""
        clock = FakeClock()
        cache = MemoryCache(default_ttl=10, default_stale_ttl=60, clock=clock)
        await cache.set("k", "value", ttl=100, stale_ttl=5)
        lookup = await cache.get_with_stale("k")
        assert lookup.entry.expires_at == clock.now + 100

    @pytest.mark.asyncio
    async def test_lru_eviction(self):
        """Test that the least recently used entry is evicted."""
        cache = MemoryCache(max_size=2, clock=FakeClock())
        await cache.set("a", 1)
        await cache.set("b", 2)
        await cache.get("a")
        await cache.set("c", 3)

        assert await cache.get("a") == 1
        assert await cache.get("b") is None
        assert await cache.get("c") == 3
        assert await cache.size() == 2

    @pytest.mark.asyncio
    async def test_overwrite_does_not_evict(self):
        """Test that replacing a key keeps the size unchanged."""
        cache = MemoryCache(max_size=2, clock=FakeClock())
        await cache.set("a", 1)
        await cache.set("b", 2)
        await cache.set("a", 10)
        assert await cache.size() == 2
        assert await cache.get("a") == 10
        assert await cache.get("b") == 2

    @pytest.mark.asyncio
    async def test_delete_and_clear(self):
        """Test delete and clear."""
        cache = MemoryCache(clock=FakeClock())
        await cache.set("a", 1)
        await cache.set("b", 2)
        await cache.delete("a")
        await cache.delete("missing")
        assert await cache.get("a") is None
        await cache.clear()
        assert await cache.size() == 0

    def test_backend_name(self):
        """Test the backend name."""
        assert MemoryCache().backend_name == "memory"


class TestRedisCache:
    """Test the Redis backend against an in-memory fake."""

    @pytest.mark.asyncio
    async def test_round_trip_with_model(self):
        """Test that models are stored as JSON envelopes and decoded back."""
        clock = FakeClock()
        redis = FakeRedis()
        cache = RedisCache(
            redis_client=redis, key_prefix="test:", default_ttl=10, default_stale_ttl=60,
            value_type=NormalizedIpInsight, clock=clock,
        )
        insight = make_insight()
        await cache.set("8.8.8.8", insight)

        raw = json.loads(redis.store["test:8.8.8.8"])
        assert set(raw) == {"data", "staleAt", "expiresAt"}
        assert raw["staleAt"] == clock.now + 10
        assert redis.expirations["test:8.8.8.8"] == 60

        cached = await cache.get("8.8.8.8")
        assert isinstance(cached, NormalizedIpInsight)
        assert cached == insight

    @pytest.mark.asyncio
    async def test_stale_and_expired(self):
        """Test stale classification and removal of dead envelopes."""
        clock = FakeClock()
        redis = FakeRedis()
        cache = RedisCache(redis_client=redis, default_ttl=10, default_stale_ttl=60, clock=clock)
        await cache.set("k", {"v": 1})

        clock.advance(20)
        lookup = await cache.get_with_stale("k")
        assert lookup.is_stale is True
        assert lookup.entry.data == {"v": 1}

        clock.advance(60)
        assert (await cache.get_with_stale("k")).hit is False
        assert redis.store == {}

    @pytest.mark.asyncio
    async def test_faults_are_misses(self):
        """Test that Redis failures are logged and treated as misses."""
        cache = RedisCache(redis_client=FakeRedis(fail=True), clock=FakeClock())
        await cache.set("k", "v")
        assert (await cache.get_with_stale("k")).hit is False
        assert await cache.size() == 0
        await cache.delete("k")
        await cache.clear()

    @pytest.mark.asyncio
    async def test_corrupt_envelope_is_miss(self):
        """Test that undecodable values are misses."""
        redis = FakeRedis()
        redis.store["risk_intel:k"] = "{broken"
        cache = RedisCache(redis_client=redis, clock=FakeClock())
        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_clear_and_size_scoped_to_prefix(self):
        """Test that clear and size only touch the cache's own prefix."""
        redis = FakeRedis()
        redis.store["other:key"] = "keep"
        cache = RedisCache(redis_client=redis, key_prefix="mine:", clock=FakeClock())
        await cache.set("a", 1)
        await cache.set("b", 2)
        assert await cache.size() == 2

        await cache.clear()
        assert await cache.size() == 0
        assert redis.store == {"other:key": "keep"}

    @pytest.mark.asyncio
    async def test_injected_client_not_closed(self):
        """Test that aclose leaves an injected client open."""
        redis = FakeRedis()
        cache = RedisCache(redis_client=redis)
        await cache.aclose()
        assert redis.closed is False
        assert cache.backend_name == "redis"


class FakeKVStore:
    """Serves the Workers KV REST endpoints from a dict."""

    def __init__(self):
        self.values = {}
        self.expirations = {}
        self.transport = RecordingTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if "/values/" in path:
            key = unquote(path.split("/values/", 1)[1])
            if request.method == "GET":
                if key not in self.values:
                    return json_response({"success": False}, status_code=404)
                return httpx.Response(200, text=self.values[key])
            if request.method == "PUT":
                self.values[key] = request.content.decode()
                self.expirations[key] = int(request.url.params["expiration_ttl"])
                return json_response({"success": True})
            if request.method == "DELETE":
                self.values.pop(key, None)
                return json_response({"success": True})
        if path.endswith("/keys"):
            prefix = request.url.params.get("prefix", "")
            names = [{"name": key} for key in self.values if key.startswith(prefix)]
            cursor = request.url.params.get("cursor")
            # Two pages to exercise pagination
            page = names[1:] if cursor else names[:1]
            next_cursor = "" if cursor or len(names) <= 1 else "page-2"
            return json_response({"success": True, "result": page, "result_info": {"cursor": next_cursor}})
        return json_response({"success": False}, status_code=400)


class TestKVCache:
    """Test the Workers KV backend against a fake REST API."""

    def _cache(self, store: FakeKVStore, clock: FakeClock, **kwargs) -> KVCache:
        return KVCache(
            http_client=store.transport.http_client(),
            account_id="acct",
            namespace_id="ns",
            api_token="kv-token",
            key_prefix="ip-insight:",
            clock=clock,
            **kwargs
        )

    @pytest.mark.asyncio
    async def test_round_trip(self):
        """Test writing and reading an envelope."""
        store = FakeKVStore()
        clock = FakeClock()
        cache = self._cache(store, clock, default_ttl=300, default_stale_ttl=1800)
        await cache.set("8.8.8.8", {"city": "Mountain View"})

        assert "ip-insight:8.8.8.8" in store.values
        assert store.expirations["ip-insight:8.8.8.8"] == 1800
        assert await cache.get("8.8.8.8") == {"city": "Mountain View"}

        request = store.transport.requests[0]
        assert request.headers["Authorization"] == "Bearer kv-token"
        assert "/accounts/acct/storage/kv/namespaces/ns/values/" in request.url.path

    @pytest.mark.asyncio
    async def test_minimum_expiration(self):
        """Test that short lifetimes are raised to the KV minimum."""
        store = FakeKVStore()
        cache = self._cache(store, FakeClock(), default_ttl=5, default_stale_ttl=10)
        await cache.set("k", "v")
        assert store.expirations["ip-insight:k"] == KV_MIN_EXPIRATION_TTL

    @pytest.mark.asyncio
    async def test_missing_key(self):
        """Test that 404 is a plain miss."""
        cache = self._cache(FakeKVStore(), FakeClock())
        assert (await cache.get_with_stale("absent")).hit is False

    @pytest.mark.asyncio
    async def test_stale_then_dead(self):
        """Test that envelope deadlines drive staleness and deletion."""
        store = FakeKVStore()
        clock = FakeClock()
        cache = self._cache(store, clock, default_ttl=300, default_stale_ttl=1800)
        await cache.set("k", "v")

        clock.advance(600)
        assert (await cache.get_with_stale("k")).is_stale is True

        clock.advance(1800)
        assert (await cache.get_with_stale("k")).hit is False
        assert "ip-insight:k" not in store.values

    @pytest.mark.asyncio
    async def test_size_and_clear_paginate(self):
        """Test that listing follows the cursor across pages."""
        store = FakeKVStore()
        store.values["other:x"] = "{}"
        cache = self._cache(store, FakeClock())
        await cache.set("a", 1)
        await cache.set("b", 2)
        assert await cache.size() == 2

        await cache.clear()
        assert await cache.size() == 0
        assert list(store.values) == ["other:x"]

    @pytest.mark.asyncio
    async def test_faults_are_misses(self):
        """Test that API failures are misses rather than errors."""
        transport = RecordingTransport(lambda request: json_response({}, status_code=500))
        cache = KVCache(
            http_client=transport.http_client(), account_id="a", namespace_id="n", api_token="t",
            clock=FakeClock(),
        )
        await cache.set("k", "v")
        assert (await cache.get_with_stale("k")).hit is False
        assert await cache.size() == 0


class TestCacheFactory:
    """Test cache backend selection."""

    def test_memory_default(self):
        """Test that memory is the default backend."""
        config = IntelConfig(ipinfo_token="t", cache_max_items=3)
        cache = create_cache(config, "ip-insight")
        assert isinstance(cache, MemoryCache)
        assert cache.max_size == 3
        assert cache.default_ttl == 300
        assert cache.default_stale_ttl == 1800

    def test_explicit_windows(self):
        """Test that per-cache windows override the config defaults."""
        config = IntelConfig(ipinfo_token="t")
        cache = create_cache(config, "asn", ttl=86400, stale_ttl=86400)
        assert cache.default_ttl == 86400
        assert cache.default_stale_ttl == 86400

    def test_redis_backend(self):
        """Test that redis is selected with a namespaced prefix."""
        config = IntelConfig(ipinfo_token="t", cache_backend="redis", redis_url="redis://localhost:6379/1")
        cache = create_cache(config, "threat", redis_client=FakeRedis())
        assert isinstance(cache, RedisCache)
        assert cache.key_prefix == "risk_intel:threat:"

    def test_redis_without_url_falls_back(self):
        """Test the memory fallback when Redis is not configured."""
        config = IntelConfig(ipinfo_token="t", cache_backend="redis")
        assert isinstance(create_cache(config, "threat"), MemoryCache)

    def test_kv_backend(self):
        """Test that kv is selected when fully configured."""
        config = IntelConfig(
            ipinfo_token="t", cache_backend="kv", cloudflare_account_id="acct",
            kv_namespace_id="ns", kv_api_token="kv",
        )
        store = FakeKVStore()
        cache = create_cache(config, "asn", http_client=store.transport.http_client())
        assert isinstance(cache, KVCache)
        assert cache.key_prefix == "asn:"

    def test_kv_missing_settings_falls_back(self):
        """Test the memory fallback when KV settings are incomplete."""
        config = IntelConfig(ipinfo_token="t", cache_backend="kv", cloudflare_account_id="acct")
        store = FakeKVStore()
        assert isinstance(create_cache(config, "asn", http_client=store.transport.http_client()), MemoryCache)

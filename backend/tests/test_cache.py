"""Tests for the Redis read-through cache."""

import fnmatch

import pytest
import redis.asyncio as redis

from harvestchain.config import settings
from harvestchain.utils import cache
from harvestchain.utils.cache import cache_key, cached, invalidate_cache


class InMemoryRedis:
    """The handful of redis.asyncio calls the cache makes."""

    def __init__(self):
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.broken = False

    def _check(self):
        if self.broken:
            raise redis.ConnectionError("Connection refused")

    async def get(self, key):
        self._check()
        return self.store.get(key)

    async def setex(self, key, ttl, value):
        self._check()
        self.store[key] = value
        self.ttls[key] = ttl

    async def scan_iter(self, match="*"):
        self._check()
        for key in list(self.store):
            if fnmatch.fnmatchcase(key, match):
                yield key

    async def delete(self, *keys):
        self._check()
        for key in keys:
            self.store.pop(key, None)


@pytest.fixture
def fake_redis(monkeypatch):
    client = InMemoryRedis()
    monkeypatch.setattr(settings, "cache_enabled", True)
    monkeypatch.setattr(cache, "_redis_client", client)
    return client


@pytest.mark.unit
class TestCacheUtility:

    def test_cache_key_generation(self):
        key1 = cache_key(limit=50, offset=0)
        key2 = cache_key(offset=0, limit=50)
        key3 = cache_key(limit=100, offset=0)

        assert key1 == key2
        assert key1 != key3
        assert cache_key() == "default"

    async def test_cached_decorator(self, fake_redis):
        call_count = 0

        @cached(ttl=10, prefix="test")
        async def expensive_function(*, batch_id: str):
            nonlocal call_count
            call_count += 1
            return {"batch": batch_id}

        assert await expensive_function(batch_id="a") == {"batch": "a"}
        assert await expensive_function(batch_id="a") == {"batch": "a"}
        assert call_count == 1

        assert await expensive_function(batch_id="b") == {"batch": "b"}
        assert call_count == 2
        assert set(fake_redis.ttls.values()) == {10}

    async def test_key_builder(self, fake_redis):
        @cached(ttl=30, prefix="trace", key_builder=lambda db, *, batch_id: f"trace:{batch_id}")
        async def view(db, *, batch_id):
            return {"id": batch_id}

        await view(object(), batch_id="42")
        assert "trace:42" in fake_redis.store

    async def test_redis_failure_falls_back_to_uncached(self, fake_redis):
        fake_redis.broken = True
        call_count = 0

        @cached(ttl=10, prefix="test")
        async def compute(*, x: int):
            nonlocal call_count
            call_count += 1
            return {"x": x}

        assert await compute(x=1) == {"x": 1}
        assert await compute(x=1) == {"x": 1}
        assert call_count == 2

    async def test_disabled_cache_is_bypassed(self, fake_redis, monkeypatch):
        monkeypatch.setattr(settings, "cache_enabled", False)

        @cached(ttl=10, prefix="test")
        async def compute(*, x: int):
            return {"x": x}

        await compute(x=1)
        assert fake_redis.store == {}

    async def test_cache_invalidation(self, fake_redis):
        fake_redis.store.update({
            "traceability:abc": "1",
            "traceability:def": "2",
            "other:abc": "3",
        })

        await invalidate_cache("traceability:*")
        assert list(fake_redis.store) == ["other:abc"]

    async def test_invalidation_survives_redis_failure(self, fake_redis):
        fake_redis.store["traceability:abc"] = "1"
        fake_redis.broken = True

        await invalidate_cache("traceability:*")
        assert "traceability:abc" in fake_redis.store

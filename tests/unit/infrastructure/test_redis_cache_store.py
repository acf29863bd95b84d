"""
Unit tests for the Redis cache store.

Uses a mocked redis.asyncio client to check the stored envelope, expiry
handling, retries and error mapping.
"""

import struct
from unittest.mock import AsyncMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError, ResponseError

from stampede_guard.domain.cache.exceptions import (
    CacheUnavailableError,
    CircuitBreakerOpenError,
    SerializationError,
)
from stampede_guard.domain.cache.value_objects import CachedValue, CacheRegionConfig
from stampede_guard.infrastructure.redis.circuit_breaker import (
    CircuitBreakerConfig,
    CircuitState,
    StoreCircuitBreaker,
)
from stampede_guard.infrastructure.repositories.redis_cache_store import (
    RedisCacheStore,
)
from stampede_guard.infrastructure.serializers import JsonSerializer

NOW_MS = 1_700_000_000_000
MODULE = "stampede_guard.infrastructure.repositories.redis_cache_store"


def envelope(value, deadline_ms=0):
    return struct.pack(">q", deadline_ms) + JsonSerializer().dumps(value)


@pytest.fixture
def client():
    return AsyncMock()


@pytest.fixture
def store(client):
    return RedisCacheStore(client, serializer=JsonSerializer(), key_prefix="app")


@pytest.fixture(autouse=True)
def frozen_now():
    with patch(f"{MODULE}._now_ms", return_value=NOW_MS) as now:
        yield now


class TestRedisCacheStorePut:
    """Test RedisCacheStore.put."""

    @pytest.mark.asyncio
    async def test_put_with_ttl_and_idle(self, store, client):
        """Test SET uses the shorter expiry and the envelope holds the ttl deadline."""
        region = CacheRegionConfig(name="books", ttl_seconds=1800, max_idle_seconds=900)

        await store.put(region, "123", {"title": "Dune"})

        client.set.assert_awaited_once()
        args, kwargs = client.set.call_args
        assert args[0] == "app:books:123"
        assert args[1] == envelope({"title": "Dune"}, NOW_MS + 1_800_000)
        assert kwargs["px"] == 900_000

    @pytest.mark.asyncio
    async def test_put_without_expiry(self, store, client):
        """Test regions without ttl store with no expiry and a zero deadline."""
        region = CacheRegionConfig(name="books")

        await store.put(region, "1", "v")

        args, kwargs = client.set.call_args
        assert args[1] == envelope("v", 0)
        assert kwargs["px"] is None

    @pytest.mark.asyncio
    async def test_unserializable_value(self, store, client):
        """Test serialization failures surface before any Redis call."""
        region = CacheRegionConfig(name="books")

        with pytest.raises(SerializationError):
            await store.put(region, "1", object())

        client.set.assert_not_called()


class TestRedisCacheStoreGet:
    """Test RedisCacheStore.get."""

    @pytest.mark.asyncio
    async def test_miss(self, store, client):
        """Test absent key is a miss."""
        client.get.return_value = None

        assert await store.get(CacheRegionConfig(name="books"), "1") is None
        client.get.assert_awaited_once_with("app:books:1")

    @pytest.mark.asyncio
    async def test_hit_without_idle_does_not_touch(self, store, client):
        """Test a ttl-only region reads without PEXPIRE."""
        client.get.return_value = envelope(None, NOW_MS + 1000)

        cached = await store.get(CacheRegionConfig(name="books", ttl_seconds=10), "1")

        assert cached == CachedValue(None)
        client.pexpire.assert_not_called()

    @pytest.mark.asyncio
    async def test_hit_slides_idle_expiry(self, store, client):
        """Test an idle region refreshes the expiry up to the deadline."""
        region = CacheRegionConfig(name="books", ttl_seconds=1800, max_idle_seconds=900)
        client.get.return_value = envelope("v", NOW_MS + 300_000)

        assert await store.get(region, "1") == CachedValue("v")

        client.pexpire.assert_awaited_once_with("app:books:1", 300_000)

    @pytest.mark.asyncio
    async def test_hit_idle_only_region(self, store, client):
        """Test idle-only regions refresh by the full idle period."""
        region = CacheRegionConfig(name="books", max_idle_seconds=60)
        client.get.return_value = envelope("v")

        await store.get(region, "1")

        client.pexpire.assert_awaited_once_with("app:books:1", 60_000)

    @pytest.mark.asyncio
    async def test_past_deadline_is_evicted(self, store, client):
        """Test an entry past its absolute deadline is deleted and missed."""
        region = CacheRegionConfig(name="books", ttl_seconds=10, max_idle_seconds=5)
        client.get.return_value = envelope("v", NOW_MS - 1)

        assert await store.get(region, "1") is None

        client.delete.assert_awaited_once_with("app:books:1")
        client.pexpire.assert_not_called()

    @pytest.mark.asyncio
    async def test_truncated_entry(self, store, client):
        """Test corrupt entries raise SerializationError."""
        client.get.return_value = b"\x00\x01"

        with pytest.raises(SerializationError):
            await store.get(CacheRegionConfig(name="books"), "1")


class TestRedisCacheStoreFailures:
    """Test retry, circuit breaking and error mapping."""

    @pytest.mark.asyncio
    async def test_transient_error_is_retried(self, store, client):
        """Test a single connection error is absorbed by the retry."""
        client.get.side_effect = [RedisConnectionError("reset"), envelope("v")]

        assert await store.get(CacheRegionConfig(name="books"), "1") == CachedValue("v")
        assert client.get.await_count == 2

    @pytest.mark.asyncio
    async def test_persistent_error_maps_to_unavailable(self, store, client):
        """Test exhausted retries raise CacheUnavailableError."""
        client.get.side_effect = RedisConnectionError("down")

        with pytest.raises(CacheUnavailableError) as exc_info:
            await store.get(CacheRegionConfig(name="books"), "1")

        assert exc_info.value.details["operation"] == "get"
        assert exc_info.value.details["cache_name"] == "books"
        assert client.get.await_count == 2

    @pytest.mark.asyncio
    async def test_response_error_not_retried(self, store, client):
        """Test non-transient Redis errors fail without retry."""
        client.set.side_effect = ResponseError("WRONGTYPE")

        with pytest.raises(CacheUnavailableError):
            await store.put(CacheRegionConfig(name="books"), "1", "v")

        assert client.set.await_count == 1

    @pytest.mark.asyncio
    async def test_open_circuit_rejects_fast(self, client):
        """Test an open breaker stops calls reaching Redis."""
        breaker = StoreCircuitBreaker(
            CircuitBreakerConfig(failure_threshold=1, recovery_timeout=60)
        )
        store = RedisCacheStore(client, retry_attempts=1, circuit_breaker=breaker)
        client.get.side_effect = RedisConnectionError("down")
        region = CacheRegionConfig(name="books")

        with pytest.raises(CacheUnavailableError):
            await store.get(region, "1")
        assert breaker.state == CircuitState.OPEN

        with pytest.raises(CircuitBreakerOpenError):
            await store.get(region, "1")
        assert client.get.await_count == 1

    @pytest.mark.asyncio
    async def test_evict(self, store, client):
        """Test evict reports whether a key was removed."""
        client.delete.return_value = 1

        assert await store.evict(CacheRegionConfig(name="books"), "1")
        client.delete.assert_awaited_once_with("app:books:1")

    @pytest.mark.asyncio
    async def test_health_check(self, store, client):
        """Test health reflects PING."""
        assert (await store.health_check())["status"] == "healthy"

        client.ping.side_effect = RedisConnectionError("down")
        health = await store.health_check()

        assert health["status"] == "unhealthy"
        assert health["circuit_breaker"]["state"] == "closed"

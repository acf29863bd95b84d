"""
Unit tests for guard wiring and the process default guard.
"""

from unittest.mock import MagicMock, patch

import pytest

from stampede_guard.bootstrap import build_guard, get_guard, set_guard
from stampede_guard.core.config import CacheRegionSettings, Settings
from stampede_guard.infrastructure.locks.memory_mutex import InMemoryMutexService
from stampede_guard.infrastructure.locks.redis_mutex import RedisMutexService
from stampede_guard.infrastructure.repositories.memory_cache_store import (
    InMemoryCacheStore,
)
from stampede_guard.infrastructure.repositories.redis_cache_store import (
    RedisCacheStore,
)
from stampede_guard.infrastructure.serializers import JsonSerializer
from stampede_guard.services.cache.orchestrator import StampedeGuard


@pytest.fixture
def reset_default_guard():
    set_guard(None)
    yield
    set_guard(None)


class TestBuildGuard:
    """Test build_guard."""

    def test_memory_backend(self):
        """Test memory backend wires in-process store and mutex."""
        settings = Settings(
            _env_file=None,
            CACHE_BACKEND="memory",
            CACHE_DEFAULT_LOCK_TIMEOUT=2.5,
            CACHE_REGIONS={"authors": CacheRegionSettings(ttl_seconds=60)},
        )

        guard = build_guard(settings)

        assert isinstance(guard.cache.store, InMemoryCacheStore)
        assert isinstance(guard.mutex.mutex, InMemoryMutexService)
        assert guard.default_lock_timeout == 2.5
        assert guard.cache.region("authors").ttl_seconds == 60
        assert not guard.cache.region_exists("books")

    def test_redis_backend_without_io(self):
        """Test redis backend shares one client between store and mutex."""
        settings = Settings(
            _env_file=None,
            CACHE_BACKEND="redis",
            CACHE_SERIALIZER="json",
            CACHE_KEY_PREFIX="shop",
            CIRCUIT_BREAKER_FAILURE_THRESHOLD=3,
            LOCK_WATCHDOG_ENABLED=False,
        )
        client = MagicMock()
        factory = MagicMock()
        factory.create_client.return_value = client

        guard = build_guard(settings, connection_factory=factory)

        store = guard.cache.store
        assert isinstance(store, RedisCacheStore)
        assert isinstance(store._serializer, JsonSerializer)
        assert store.circuit_breaker.config.failure_threshold == 3
        assert store.store_key(guard.cache.region("books"), "1") == "shop:books:1"
        assert isinstance(guard.mutex.mutex, RedisMutexService)
        factory.create_client.assert_called_once_with()
        client.ping.assert_not_called()

    def test_redis_backend_default_factory(self):
        """Test the default factory builds a pool without connecting."""
        settings = Settings(_env_file=None, CACHE_BACKEND="redis")

        guard = build_guard(settings)

        assert isinstance(guard.cache.store, RedisCacheStore)


class TestDefaultGuard:
    """Test get_guard and set_guard."""

    def test_lazy_single_construction(self, reset_default_guard):
        """Test the default guard is built once on first use."""
        built = MagicMock(spec=StampedeGuard)
        with patch("stampede_guard.bootstrap.build_guard", return_value=built) as build:
            assert get_guard() is built
            assert get_guard() is built

        build.assert_called_once_with()

    def test_set_guard_replaces_default(self, reset_default_guard, guard):
        """Test an installed guard is returned as-is."""
        set_guard(guard)

        assert get_guard() is guard

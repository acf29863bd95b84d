"""
Guard Bootstrap

Wires a StampedeGuard from settings and holds the process default used by
``distributed_cacheable``.
"""

import threading
from typing import Optional

import structlog

from .core.config import Settings, get_settings
from .domain.cache.value_objects import CacheRegionConfig
from .infrastructure.locks.memory_mutex import InMemoryMutexService
from .infrastructure.locks.redis_mutex import RedisMutexService
from .infrastructure.redis.circuit_breaker import (
    CircuitBreakerConfig,
    StoreCircuitBreaker,
)
from .infrastructure.redis.connection_factory import RedisConnectionFactory
from .infrastructure.repositories.memory_cache_store import InMemoryCacheStore
from .infrastructure.repositories.redis_cache_store import RedisCacheStore
from .infrastructure.serializers import get_serializer
from .monitoring.cache_metrics import cache_metrics
from .services.cache.cache_facade import SharedCache
from .services.cache.orchestrator import StampedeGuard

logger = structlog.get_logger(__name__)

_guard: Optional[StampedeGuard] = None
_guard_lock = threading.Lock()


def _regions(settings: Settings):
    return [
        CacheRegionConfig(
            name=name,
            ttl_seconds=policy.ttl_seconds,
            max_idle_seconds=policy.max_idle_seconds,
        )
        for name, policy in settings.CACHE_REGIONS.items()
    ]


def build_guard(
    settings: Optional[Settings] = None,
    connection_factory: Optional[RedisConnectionFactory] = None,
) -> StampedeGuard:
    """Create a guard for the configured backend. Performs no I/O."""
    settings = settings or get_settings()

    if settings.CACHE_BACKEND == "memory":
        store = InMemoryCacheStore()
        mutex = InMemoryMutexService()
    else:
        factory = connection_factory or RedisConnectionFactory(settings)
        client = factory.create_client()
        store = RedisCacheStore(
            client,
            serializer=get_serializer(settings.CACHE_SERIALIZER),
            key_prefix=settings.CACHE_KEY_PREFIX,
            retry_attempts=settings.CACHE_STORE_RETRY_ATTEMPTS,
            circuit_breaker=StoreCircuitBreaker(
                CircuitBreakerConfig(
                    failure_threshold=settings.CIRCUIT_BREAKER_FAILURE_THRESHOLD,
                    recovery_timeout=settings.CIRCUIT_BREAKER_RECOVERY_TIMEOUT,
                )
            ),
        )
        mutex = RedisMutexService(
            client,
            lease_seconds=settings.LOCK_LEASE_SECONDS,
            retry_interval=settings.LOCK_RETRY_INTERVAL,
            watchdog_enabled=settings.LOCK_WATCHDOG_ENABLED,
        )

    guard = StampedeGuard(
        cache=SharedCache(store, _regions(settings)),
        mutex=mutex,
        metrics=cache_metrics,
        default_lock_timeout=settings.CACHE_DEFAULT_LOCK_TIMEOUT,
    )
    logger.info(
        "Stampede guard configured",
        backend=settings.CACHE_BACKEND,
        regions=settings.region_names,
    )
    return guard


def get_guard() -> StampedeGuard:
    """Return the process default guard, building it on first use."""
    global _guard
    if _guard is None:
        with _guard_lock:
            if _guard is None:
                _guard = build_guard()
    return _guard


def set_guard(guard: Optional[StampedeGuard]) -> None:
    """Replace the process default guard; None resets to lazy construction."""
    global _guard
    with _guard_lock:
        _guard = guard

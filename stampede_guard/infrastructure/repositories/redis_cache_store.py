"""
Redis Cache Store

CacheStore backed by Redis. Each entry is a single string key holding a
small envelope: an 8-byte absolute deadline (epoch milliseconds, 0 when
the region has no TTL) followed by the serialized value.

- TTL: ``SET ... PX`` with the region's effective expiry.
- Idle eviction: every hit slides the expiry forward with ``PEXPIRE``,
  never past the absolute deadline.
- Transient connection errors are retried with tenacity; repeated
  failures open the store circuit breaker.
"""

import logging
import struct
import time
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from opentelemetry import trace
from redis.asyncio import Redis
from redis.exceptions import (
    ConnectionError as RedisConnectionError,
    RedisError,
    TimeoutError as RedisTimeoutError,
)
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ...domain.cache.exceptions import CacheUnavailableError, SerializationError
from ...domain.cache.repository_interfaces import CacheStore
from ...domain.cache.value_objects import CachedValue, CacheRegionConfig
from ..redis.circuit_breaker import StoreCircuitBreaker
from ..serializers import PickleSerializer, Serializer

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

T = TypeVar("T")

_HEADER = struct.Struct(">q")
TRANSIENT_ERRORS = (RedisConnectionError, RedisTimeoutError)


def _now_ms() -> int:
    return int(time.time() * 1000)


class RedisCacheStore(CacheStore):
    """Redis-backed shared cache store."""

    def __init__(
        self,
        client: Redis,
        serializer: Optional[Serializer] = None,
        key_prefix: str = "cache",
        retry_attempts: int = 2,
        circuit_breaker: Optional[StoreCircuitBreaker] = None,
    ):
        self._client = client
        self._serializer = serializer or PickleSerializer()
        self._key_prefix = key_prefix
        self._retry_attempts = max(1, retry_attempts)
        self._circuit_breaker = circuit_breaker or StoreCircuitBreaker()

    @property
    def circuit_breaker(self) -> StoreCircuitBreaker:
        return self._circuit_breaker

    def store_key(self, region: CacheRegionConfig, key: str) -> str:
        """Physical Redis key for an entry."""
        return f"{self._key_prefix}:{region.name}:{key}"

    async def _execute(
        self,
        operation: str,
        region: CacheRegionConfig,
        func: Callable[[], Awaitable[T]],
    ) -> T:
        """Run a Redis call with retry and circuit breaking; map failures."""

        async def with_retry() -> T:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._retry_attempts),
                wait=wait_exponential(multiplier=0.05, max=0.5),
                retry=retry_if_exception_type(TRANSIENT_ERRORS),
                reraise=True,
            ):
                with attempt:
                    return await func()

        try:
            return await self._circuit_breaker.call(with_retry)
        except CacheUnavailableError:
            raise
        except (RedisError, OSError) as e:
            logger.warning(
                "Redis cache operation failed",
                extra={
                    "operation": operation,
                    "cache_name": region.name,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )
            raise CacheUnavailableError(
                f"Redis {operation} failed: {e}",
                operation=operation,
                cache_name=region.name,
                original_error=e,
            )

    async def get(self, region: CacheRegionConfig, key: str) -> Optional[CachedValue]:
        store_key = self.store_key(region, key)
        with tracer.start_as_current_span("cache_store.get") as span:
            span.set_attribute("cache.name", region.name)
            span.set_attribute("cache.key", key)
            try:
                raw = await self._execute(
                    "get", region, lambda: self._client.get(store_key)
                )
                if raw is None:
                    span.set_attribute("cache.hit", False)
                    return None
                if len(raw) < _HEADER.size:
                    raise SerializationError(
                        "Cached entry is truncated", serializer=self._serializer.name
                    )

                deadline_ms = _HEADER.unpack_from(raw)[0]
                if region.max_idle_seconds is not None:
                    if not await self._touch(region, store_key, deadline_ms):
                        span.set_attribute("cache.hit", False)
                        return None

                value = self._serializer.loads(raw[_HEADER.size :])
                span.set_attribute("cache.hit", True)
                return CachedValue(value)
            except Exception as e:
                span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                raise

    async def _touch(
        self, region: CacheRegionConfig, store_key: str, deadline_ms: int
    ) -> bool:
        """Slide the idle expiry forward. False when the deadline has passed."""
        expiry_ms = int(region.max_idle_seconds * 1000)
        if deadline_ms:
            remaining = deadline_ms - _now_ms()
            if remaining <= 0:
                await self._execute(
                    "evict", region, lambda: self._client.delete(store_key)
                )
                return False
            expiry_ms = min(expiry_ms, remaining)

        await self._execute(
            "touch", region, lambda: self._client.pexpire(store_key, expiry_ms)
        )
        return True

    async def put(self, region: CacheRegionConfig, key: str, value: Any) -> None:
        store_key = self.store_key(region, key)
        with tracer.start_as_current_span("cache_store.put") as span:
            span.set_attribute("cache.name", region.name)
            span.set_attribute("cache.key", key)
            try:
                payload = self._serializer.dumps(value)
                deadline_ms = (
                    _now_ms() + int(region.ttl_seconds * 1000)
                    if region.ttl_seconds is not None
                    else 0
                )
                expiry = region.effective_expiry()
                px = int(expiry * 1000) if expiry is not None else None

                await self._execute(
                    "put",
                    region,
                    lambda: self._client.set(
                        store_key, _HEADER.pack(deadline_ms) + payload, px=px
                    ),
                )
                logger.debug(
                    "Cached value stored",
                    extra={"cache_name": region.name, "key": key, "expiry_ms": px},
                )
            except Exception as e:
                span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                raise

    async def evict(self, region: CacheRegionConfig, key: str) -> bool:
        store_key = self.store_key(region, key)
        removed = await self._execute(
            "evict", region, lambda: self._client.delete(store_key)
        )
        return bool(removed)

    async def health_check(self) -> Dict[str, Any]:
        start = time.perf_counter()
        try:
            await self._client.ping()
            return {
                "status": "healthy",
                "backend": "redis",
                "response_time_ms": round((time.perf_counter() - start) * 1000, 2),
                "circuit_breaker": self._circuit_breaker.get_status(),
            }
        except (RedisError, OSError) as e:
            logger.error(f"Redis cache store health check failed: {e}")
            return {
                "status": "unhealthy",
                "backend": "redis",
                "error": str(e),
                "circuit_breaker": self._circuit_breaker.get_status(),
            }

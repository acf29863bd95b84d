"""
Redis Connection Factory

Builds the shared ``redis.asyncio`` client used by the cache store and the
mutex service. One connection pool per factory; values are stored as raw
bytes so serializers control the encoding.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import (
    AuthenticationError as RedisAuthError,
    ConnectionError as RedisConnectionError,
    TimeoutError as RedisTimeoutError,
)
from tenacity import (
    retry,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ...core.config import Settings, get_settings
from ...domain.cache.exceptions import CacheUnavailableError, ConfigurationError

logger = logging.getLogger(__name__)


class RedisConnectionFactory:
    """
    Factory for the process-wide Redis client.

    ``create_client`` builds the pool lazily; ``get_client`` additionally
    verifies connectivity with a ping before handing the client out.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self._settings = settings or get_settings()
        self._pool: Optional[ConnectionPool] = None
        self._client: Optional[Redis] = None
        self._lock = asyncio.Lock()

    def _connection_kwargs(self) -> Dict[str, Any]:
        s = self._settings
        return {
            "decode_responses": False,
            "socket_connect_timeout": s.REDIS_CONNECTION_TIMEOUT,
            "socket_timeout": s.REDIS_OPERATION_TIMEOUT,
            "retry_on_timeout": True,
            "health_check_interval": s.REDIS_HEALTH_CHECK_INTERVAL,
            "max_connections": s.REDIS_MAX_CONNECTIONS,
        }

    def create_client(self) -> Redis:
        """Return the shared client, building the pool on first use (no I/O)."""
        if self._client is not None:
            return self._client

        try:
            pool = ConnectionPool.from_url(
                self._settings.REDIS_URL, **self._connection_kwargs()
            )
        except ValueError as e:
            raise ConfigurationError(
                f"Invalid Redis configuration: {e}",
                config_key="REDIS_URL",
                original_error=e,
            )

        self._pool = pool
        self._client = Redis(connection_pool=pool)
        logger.info(
            "Redis connection pool created",
            extra={"max_connections": self._settings.REDIS_MAX_CONNECTIONS},
        )
        return self._client

    async def get_client(self) -> Redis:
        """Return the shared client after verifying connectivity."""
        async with self._lock:
            client = self.create_client()
            await self._ping(client)
            return client

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.2, max=2),
        retry=retry_if_exception_type((RedisConnectionError, RedisTimeoutError))
        & retry_if_not_exception_type(RedisAuthError),
        reraise=True,
    )
    async def _ping_with_retry(self, client: Redis) -> None:
        await client.ping()

    async def _ping(self, client: Redis) -> None:
        """Test connectivity; map failures to CacheUnavailableError."""
        try:
            await self._ping_with_retry(client)
            logger.debug("Redis connection test successful")
        except RedisAuthError as e:
            raise ConfigurationError(
                "Redis authentication failed",
                config_key="REDIS_URL",
                original_error=e,
            )
        except (RedisConnectionError, RedisTimeoutError, OSError) as e:
            logger.error(
                "Redis connection test failed",
                extra={"error": str(e), "error_type": type(e).__name__},
            )
            raise CacheUnavailableError(
                "Redis connection test failed",
                operation="ping",
                original_error=e,
            )

    async def close(self) -> None:
        """Close the client and disconnect the pool."""
        async with self._lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None
            if self._pool is not None:
                await self._pool.disconnect()
                self._pool = None
            logger.info("Redis connection factory closed")

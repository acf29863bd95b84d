"""
Redis Mutex Service

Cluster-wide named mutex using ``redis.asyncio`` locks. Each lock carries
a lease so a crashed holder cannot block a key forever; an optional
watchdog renews the lease while the holder is still running.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from opentelemetry import trace
from redis.asyncio import Redis
from redis.asyncio.lock import Lock
from redis.exceptions import LockError, LockNotOwnedError, RedisError

from ...domain.cache.exceptions import LockServiceUnavailableError
from ...domain.cache.repository_interfaces import MutexService

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass
class RedisLease:
    """Granted Redis lock plus its renewal task."""

    lock: Lock
    watchdog: Optional["asyncio.Task[None]"] = None


class RedisMutexService(MutexService):
    """
    MutexService backed by Redis ``SET NX PX`` locks.

    Args:
        client: Shared Redis client
        lease_seconds: Lock expiry if the holder stops renewing it
        retry_interval: Polling interval while waiting
        watchdog_enabled: Renew the lease every third of its length
    """

    def __init__(
        self,
        client: Redis,
        lease_seconds: float = 30.0,
        retry_interval: float = 0.05,
        watchdog_enabled: bool = True,
    ):
        self._client = client
        self._lease_seconds = lease_seconds
        self._retry_interval = retry_interval
        self._watchdog_enabled = watchdog_enabled

    async def acquire(self, name: str, timeout: float) -> Optional[RedisLease]:
        with tracer.start_as_current_span("mutex.acquire") as span:
            span.set_attribute("lock.name", name)
            span.set_attribute("lock.timeout", timeout)

            lock = self._client.lock(
                name,
                timeout=self._lease_seconds,
                sleep=self._retry_interval,
                blocking=True,
                blocking_timeout=timeout,
                thread_local=False,
            )
            try:
                acquired = await lock.acquire()
            except (RedisError, OSError) as e:
                span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                raise LockServiceUnavailableError(
                    name,
                    message=f"Redis lock acquisition failed: {e}",
                    original_error=e,
                )

            span.set_attribute("lock.acquired", bool(acquired))
            if not acquired:
                return None

            lease = RedisLease(lock=lock)
            if self._watchdog_enabled:
                lease.watchdog = asyncio.create_task(
                    self._renew(name, lock), name=f"lock-watchdog:{name}"
                )
            return lease

    async def _renew(self, name: str, lock: Lock) -> None:
        """Keep extending the lease until cancelled or ownership is lost."""
        interval = self._lease_seconds / 3
        while True:
            await asyncio.sleep(interval)
            try:
                await lock.reacquire()
            except LockError as e:
                logger.warning(
                    "Lock lease lost, watchdog stopping",
                    extra={"lock_name": name, "error": str(e)},
                )
                return
            except (RedisError, OSError) as e:
                logger.warning(
                    "Lock lease renewal failed",
                    extra={"lock_name": name, "error": str(e)},
                )

    async def release(self, name: str, lease: RedisLease) -> None:
        if lease.watchdog is not None:
            lease.watchdog.cancel()
            try:
                await lease.watchdog
            except asyncio.CancelledError:
                if not lease.watchdog.cancelled():
                    raise
                # the watchdog itself was cancelled; keep releasing
            lease.watchdog = None

        try:
            await lease.lock.release()
        except LockNotOwnedError:
            logger.warning(
                "Lock expired before release; another holder may own it",
                extra={"lock_name": name},
            )
        except LockError as e:
            logger.warning(
                "Lock already released", extra={"lock_name": name, "error": str(e)}
            )
        except (RedisError, OSError) as e:
            raise LockServiceUnavailableError(
                name, message=f"Redis lock release failed: {e}", original_error=e
            )

    async def health_check(self) -> Dict[str, Any]:
        start = time.perf_counter()
        try:
            await self._client.ping()
            return {
                "status": "healthy",
                "backend": "redis",
                "response_time_ms": round((time.perf_counter() - start) * 1000, 2),
                "lease_seconds": self._lease_seconds,
            }
        except (RedisError, OSError) as e:
            logger.error(f"Redis mutex health check failed: {e}")
            return {"status": "unhealthy", "backend": "redis", "error": str(e)}

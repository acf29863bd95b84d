"""
Distributed Mutex Coordinator

Per-key mutual exclusion over a MutexService. Lock names are scoped as
``<cache_name>:lock:<cache_key>``, so distinct keys never contend.
"""

import time
from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog

from ...domain.cache.exceptions import LockServiceUnavailableError
from ...domain.cache.repository_interfaces import MutexService
from ...domain.cache.value_objects import (
    LockAcquisition,
    LockHandle,
    LockOutcome,
    lock_name_for,
)

logger = structlog.get_logger(__name__)


class DistributedMutexCoordinator:
    """Acquire and release per-key locks; never raises on timeout."""

    def __init__(self, mutex: MutexService):
        self._mutex = mutex

    @property
    def mutex(self) -> MutexService:
        return self._mutex

    async def try_acquire(
        self, cache_name: str, cache_key: str, timeout: float
    ) -> LockAcquisition:
        """
        Wait up to ``timeout`` seconds for the lock on one key.

        Returns ACQUIRED with a handle, TIMED_OUT, or UNAVAILABLE when the
        lock service cannot be reached. Cancellation propagates.
        """
        name = lock_name_for(cache_name, cache_key)
        started = time.monotonic()
        try:
            lease = await self._mutex.acquire(name, timeout)
        except LockServiceUnavailableError as e:
            waited = time.monotonic() - started
            logger.warning(
                "Lock service unavailable",
                lock_name=name,
                error=e.message,
                waited_seconds=waited,
            )
            return LockAcquisition(LockOutcome.UNAVAILABLE, waited_seconds=waited)

        waited = time.monotonic() - started
        if lease is None:
            logger.debug("Lock wait timed out", lock_name=name, timeout=timeout)
            return LockAcquisition(LockOutcome.TIMED_OUT, waited_seconds=waited)

        handle = LockHandle(
            name=name, cache_name=cache_name, cache_key=cache_key, lease=lease
        )
        logger.debug("Lock acquired", lock_name=name, waited_seconds=waited)
        return LockAcquisition(LockOutcome.ACQUIRED, handle=handle, waited_seconds=waited)

    async def release(self, handle: LockHandle) -> None:
        """Release a held lock. Repeated releases and backend failures are logged."""
        if handle.released:
            logger.warning("Lock already released", lock_name=handle.name)
            return

        handle.released = True
        try:
            await self._mutex.release(handle.name, handle.lease)
        except Exception as e:
            logger.warning(
                "Lock release failed",
                lock_name=handle.name,
                error=str(e),
                error_type=type(e).__name__,
                held_seconds=handle.held_seconds,
            )
            return

        logger.debug(
            "Lock released", lock_name=handle.name, held_seconds=handle.held_seconds
        )

    @asynccontextmanager
    async def hold(
        self, cache_name: str, cache_key: str, timeout: float
    ) -> AsyncIterator[LockAcquisition]:
        """
        Context manager form of try_acquire/release.

        Yields the acquisition; the lock, if acquired, is released on exit.
        """
        acquisition = await self.try_acquire(cache_name, cache_key, timeout)
        try:
            yield acquisition
        finally:
            if acquisition.acquired:
                await self.release(acquisition.handle)

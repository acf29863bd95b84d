"""
Cache Backend Interfaces

Abstract contracts for the shared cache store and the distributed mutex
service. The orchestrator depends only on these, so the in-memory
implementations can stand in for Redis in tests and single-process setups.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from .value_objects import CachedValue, CacheRegionConfig


class CacheStore(ABC):
    """
    Region-scoped key/value store.

    Implementations raise CacheUnavailableError when the backing store
    cannot be reached. They provide no mutual exclusion.
    """

    @abstractmethod
    async def get(self, region: CacheRegionConfig, key: str) -> Optional[CachedValue]:
        """Return the cached value or None when absent."""
        pass

    @abstractmethod
    async def put(self, region: CacheRegionConfig, key: str, value: Any) -> None:
        """Store a value using the region's expiry policy."""
        pass

    @abstractmethod
    async def evict(self, region: CacheRegionConfig, key: str) -> bool:
        """Remove a single entry. Returns True if something was removed."""
        pass

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        """Report store health."""
        pass

    async def close(self) -> None:
        """Release backend resources."""
        return None


class MutexService(ABC):
    """
    Named distributed mutex.

    ``acquire`` returns an opaque lease object when the lock is granted and
    None when ``timeout`` elapses first. It raises LockServiceUnavailableError
    when the backend is unreachable and lets asyncio.CancelledError through.
    """

    @abstractmethod
    async def acquire(self, name: str, timeout: float) -> Optional[Any]:
        """Wait up to ``timeout`` seconds for the named lock."""
        pass

    @abstractmethod
    async def release(self, name: str, lease: Any) -> None:
        """Release a previously granted lease."""
        pass

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        """Report lock service health."""
        pass

    async def close(self) -> None:
        """Release backend resources."""
        return None

"""
In-Memory Cache Store

Process-local CacheStore with TTL and idle eviction on a monotonic clock.
Used for tests and single-process deployments.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from ...domain.cache.repository_interfaces import CacheStore
from ...domain.cache.value_objects import CachedValue, CacheRegionConfig

logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    value: Any
    expires_at: Optional[float]
    max_idle: Optional[float]
    last_access: float

    def is_expired(self, now: float) -> bool:
        if self.expires_at is not None and now >= self.expires_at:
            return True
        return self.max_idle is not None and now - self.last_access >= self.max_idle


class InMemoryCacheStore(CacheStore):
    """
    Dictionary-backed cache store.

    Entries expire lazily on read. Writes also sweep every expired entry,
    at most once per ``sweep_interval`` seconds, so keys that are never
    read again do not accumulate. Values are stored as-is, so callers
    share the cached object.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        sweep_interval: float = 60.0,
    ):
        self._clock = clock
        self._sweep_interval = sweep_interval
        self._last_sweep = clock()
        self._entries: Dict[Tuple[str, str], _Entry] = {}

    async def get(self, region: CacheRegionConfig, key: str) -> Optional[CachedValue]:
        slot = (region.name, key)
        entry = self._entries.get(slot)
        if entry is None:
            return None

        now = self._clock()
        if entry.is_expired(now):
            del self._entries[slot]
            logger.debug(
                "Cache entry expired", extra={"cache_name": region.name, "key": key}
            )
            return None

        entry.last_access = now
        return CachedValue(entry.value)

    async def put(self, region: CacheRegionConfig, key: str, value: Any) -> None:
        now = self._clock()
        expires_at = now + region.ttl_seconds if region.ttl_seconds is not None else None
        self._entries[(region.name, key)] = _Entry(
            value=value,
            expires_at=expires_at,
            max_idle=region.max_idle_seconds,
            last_access=now,
        )
        if now - self._last_sweep >= self._sweep_interval:
            self.sweep(now)

    def sweep(self, now: Optional[float] = None) -> int:
        """Remove expired entries in every region. Returns the number removed."""
        now = self._clock() if now is None else now
        self._last_sweep = now
        expired = [slot for slot, entry in self._entries.items() if entry.is_expired(now)]
        for slot in expired:
            del self._entries[slot]
        if expired:
            logger.debug("Swept expired cache entries", extra={"removed": len(expired)})
        return len(expired)

    async def evict(self, region: CacheRegionConfig, key: str) -> bool:
        return self._entries.pop((region.name, key), None) is not None

    def clear(self) -> None:
        """Drop every entry in every region."""
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    async def health_check(self) -> Dict[str, Any]:
        return {"status": "healthy", "backend": "memory", "entries": len(self._entries)}

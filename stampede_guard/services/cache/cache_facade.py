"""
Shared Cache Facade

Region-aware front for a CacheStore. Resolves region names to their
configured expiry policy; provides no mutual exclusion.
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional

import structlog

from ...domain.cache.exceptions import ConfigurationError
from ...domain.cache.repository_interfaces import CacheStore
from ...domain.cache.value_objects import CachedValue, CacheRegionConfig

logger = structlog.get_logger(__name__)


class SharedCache:
    """
    Named cache regions over one store.

    ``get``/``put`` on an unconfigured region raise ConfigurationError;
    callers check ``region_exists`` first. Store failures surface as
    CacheUnavailableError from the underlying store.
    """

    def __init__(self, store: CacheStore, regions: Iterable[CacheRegionConfig] = ()):
        self._store = store
        self._regions: Dict[str, CacheRegionConfig] = {}
        for region in regions:
            self.add_region(region)

    @classmethod
    def from_mapping(
        cls, store: CacheStore, regions: Mapping[str, Mapping[str, Any]]
    ) -> "SharedCache":
        """Build from ``{name: {ttl_seconds, max_idle_seconds}}``."""
        return cls(
            store,
            [
                CacheRegionConfig(
                    name=name,
                    ttl_seconds=policy.get("ttl_seconds"),
                    max_idle_seconds=policy.get("max_idle_seconds"),
                )
                for name, policy in regions.items()
            ],
        )

    @property
    def store(self) -> CacheStore:
        return self._store

    def add_region(self, region: CacheRegionConfig) -> None:
        self._regions[region.name] = region
        logger.debug(
            "Cache region registered",
            cache_name=region.name,
            ttl_seconds=region.ttl_seconds,
            max_idle_seconds=region.max_idle_seconds,
        )

    def region_exists(self, cache_name: str) -> bool:
        return cache_name in self._regions

    def region(self, cache_name: str) -> CacheRegionConfig:
        try:
            return self._regions[cache_name]
        except KeyError:
            raise ConfigurationError(
                f"Cache region '{cache_name}' is not configured",
                cache_name=cache_name,
            )

    def regions(self) -> List[CacheRegionConfig]:
        return [self._regions[name] for name in sorted(self._regions)]

    async def get(self, cache_name: str, key: str) -> Optional[CachedValue]:
        """Look up a key; None when absent or expired."""
        return await self._store.get(self.region(cache_name), key)

    async def put(self, cache_name: str, key: str, value: Any) -> None:
        """Store a value (``None`` included) under the region's expiry policy."""
        await self._store.put(self.region(cache_name), key, value)

    async def evict(self, cache_name: str, key: str) -> bool:
        return await self._store.evict(self.region(cache_name), key)

    async def health_check(self) -> Dict[str, Any]:
        health = await self._store.health_check()
        health["regions"] = sorted(self._regions)
        return health

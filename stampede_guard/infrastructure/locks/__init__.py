"""Distributed mutex implementations."""

from .memory_mutex import InMemoryMutexService
from .redis_mutex import RedisLease, RedisMutexService

__all__ = ["InMemoryMutexService", "RedisLease", "RedisMutexService"]

"""
Cache Services

Key resolution, per-key locking, region-aware cache access and the
stampede-safe invocation orchestrator.
"""

from .cache_facade import SharedCache
from .decorators import bind_cacheable, distributed_cacheable
from .key_resolver import (
    METHOD_SIGNATURE_GENERATOR,
    KeyGeneratorRegistry,
    KeyResolver,
    key_generator,
    key_generators,
    method_signature_key,
)
from .mutex_coordinator import DistributedMutexCoordinator
from .orchestrator import StampedeGuard

__all__ = [
    "SharedCache",
    "bind_cacheable",
    "distributed_cacheable",
    "METHOD_SIGNATURE_GENERATOR",
    "KeyGeneratorRegistry",
    "KeyResolver",
    "key_generator",
    "key_generators",
    "method_signature_key",
    "DistributedMutexCoordinator",
    "StampedeGuard",
]

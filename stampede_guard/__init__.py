"""
Stampede Guard

Stampede-safe memoization: cached operations are computed by at most one
caller per key across every process sharing the lock service, while the
others wait and then read the freshly cached value.
"""

from .bootstrap import build_guard, get_guard, set_guard
from .domain.cache.exceptions import (
    CacheUnavailableError,
    CircuitBreakerOpenError,
    ConfigurationError,
    ExpressionError,
    LockServiceUnavailableError,
    SerializationError,
    StampedeGuardException,
)
from .domain.cache.value_objects import (
    CachedValue,
    CacheableSpec,
    CacheRegionConfig,
    CallContext,
    LockOutcome,
)
from .services.cache.decorators import distributed_cacheable
from .services.cache.key_resolver import key_generator, key_generators
from .services.cache.orchestrator import StampedeGuard

__version__ = "0.1.0"

__all__ = [
    "build_guard",
    "get_guard",
    "set_guard",
    "CacheUnavailableError",
    "CircuitBreakerOpenError",
    "ConfigurationError",
    "ExpressionError",
    "LockServiceUnavailableError",
    "SerializationError",
    "StampedeGuardException",
    "CachedValue",
    "CacheableSpec",
    "CacheRegionConfig",
    "CallContext",
    "LockOutcome",
    "distributed_cacheable",
    "key_generator",
    "key_generators",
    "StampedeGuard",
]

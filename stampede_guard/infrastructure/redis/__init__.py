"""
Redis Infrastructure

Connection management and circuit breaking shared by the Redis cache store
and the Redis mutex service.
"""

from .circuit_breaker import (
    CircuitBreakerConfig,
    CircuitState,
    StoreCircuitBreaker,
)
from .connection_factory import RedisConnectionFactory

__all__ = [
    "CircuitBreakerConfig",
    "CircuitState",
    "StoreCircuitBreaker",
    "RedisConnectionFactory",
]

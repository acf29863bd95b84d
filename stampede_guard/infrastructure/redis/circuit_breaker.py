"""
Store Circuit Breaker

Turns a Redis outage into immediate CircuitBreakerOpenError failures for
cache store calls, instead of paying a socket timeout on every cached
invocation. After ``recovery_timeout`` exactly one trial call is let
through while the rest keep failing fast; its outcome closes or reopens the
circuit.
"""

import asyncio
import logging
import time
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from redis.exceptions import (
    ConnectionError as RedisConnectionError,
    TimeoutError as RedisTimeoutError,
)

from ...domain.cache.exceptions import CircuitBreakerOpenError

logger = logging.getLogger(__name__)

T = TypeVar("T")

STORE_FAILURES = (
    RedisConnectionError,
    RedisTimeoutError,
    ConnectionError,
    TimeoutError,
    OSError,
)


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"  # rejecting calls
    HALF_OPEN = "half_open"  # one trial call admitted


@dataclass
class CircuitBreakerConfig:
    """Thresholds for opening and closing the store circuit."""

    failure_threshold: int = 5
    recovery_timeout: float = 30.0
    success_threshold: int = 1
    failure_exceptions: tuple = STORE_FAILURES


@dataclass
class BreakerStats:
    """Lifetime counters, reported by get_status."""

    calls: int = 0
    successes: int = 0
    failures: int = 0
    rejected: int = 0
    opened: int = 0

    @property
    def failure_rate(self) -> float:
        return self.failures / self.calls if self.calls else 0.0


class StoreCircuitBreaker:
    """
    Circuit breaker guarding cache store calls.

    Only ``failure_exceptions`` count against the store. Anything else
    (a serialization bug, a Redis command error) propagates without
    changing circuit state.
    """

    def __init__(self, config: Optional[CircuitBreakerConfig] = None):
        self.config = config or CircuitBreakerConfig()
        self.state = CircuitState.CLOSED
        self.consecutive_failures = 0
        self.trial_successes = 0
        self.trial_in_flight = False
        self.last_failure_at: Optional[float] = None
        self.stats = BreakerStats()
        self._lock = asyncio.Lock()

    async def call(self, func: Callable[[], Awaitable[T]]) -> T:
        """
        Run a zero-argument coroutine function under the breaker.

        Raises:
            CircuitBreakerOpenError: The circuit is open, or half-open with a trial
                call already running
        """
        await self._admit()
        try:
            result = await func()
        except self.config.failure_exceptions as e:
            await self._on_failure(e)
            raise
        except BaseException:
            # neutral outcome, including cancellation: free the trial slot
            self.trial_in_flight = False
            raise
        await self._on_success()
        return result

    async def _admit(self) -> None:
        async with self._lock:
            self.stats.calls += 1
            if self.state == CircuitState.CLOSED:
                return
            if self.state == CircuitState.OPEN:
                if not self._recovery_due():
                    self.stats.rejected += 1
                    raise CircuitBreakerOpenError()
                self.state = CircuitState.HALF_OPEN
                logger.info("Store circuit half-open, trying Redis")
            elif self.trial_in_flight:
                # half-open with a trial call already running
                self.stats.rejected += 1
                raise CircuitBreakerOpenError()
            self.trial_in_flight = True

    async def _on_success(self) -> None:
        async with self._lock:
            self.trial_in_flight = False
            self.stats.successes += 1
            if self.state == CircuitState.CLOSED:
                self.consecutive_failures = 0
                return
            self.trial_successes += 1
            if self.trial_successes >= self.config.success_threshold:
                self._close()
                logger.info("Store circuit closed, Redis recovered")

    async def _on_failure(self, error: BaseException) -> None:
        async with self._lock:
            self.trial_in_flight = False
            self.stats.failures += 1
            self.last_failure_at = time.monotonic()

            if self.state == CircuitState.HALF_OPEN:
                self._open()
                logger.warning(
                    "Store circuit reopened, trial call failed",
                    extra={"error_type": type(error).__name__},
                )
                return

            self.consecutive_failures += 1
            logger.warning(
                "Store call failed",
                extra={
                    "error_type": type(error).__name__,
                    "consecutive_failures": self.consecutive_failures,
                },
            )
            if (
                self.state == CircuitState.CLOSED
                and self.consecutive_failures >= self.config.failure_threshold
            ):
                self._open()
                logger.warning(
                    "Store circuit opened",
                    extra={
                        "consecutive_failures": self.consecutive_failures,
                        "recovery_timeout": self.config.recovery_timeout,
                    },
                )

    def _open(self) -> None:
        self.state = CircuitState.OPEN
        self.trial_successes = 0
        self.stats.opened += 1

    def _close(self) -> None:
        self.state = CircuitState.CLOSED
        self.trial_in_flight = False
        self.consecutive_failures = 0
        self.trial_successes = 0

    def _recovery_due(self) -> bool:
        if self.last_failure_at is None:
            return True
        return time.monotonic() - self.last_failure_at >= self.config.recovery_timeout

    def get_status(self) -> Dict[str, Any]:
        """Breaker state for health endpoints."""
        stats = asdict(self.stats)
        stats["failure_rate"] = self.stats.failure_rate
        return {
            "state": self.state.value,
            "consecutive_failures": self.consecutive_failures,
            "stats": stats,
            "config": {
                "failure_threshold": self.config.failure_threshold,
                "recovery_timeout": self.config.recovery_timeout,
                "success_threshold": self.config.success_threshold,
            },
        }

    async def reset(self) -> None:
        """Force the circuit closed."""
        async with self._lock:
            self._close()
            self.last_failure_at = None
            logger.info("Store circuit manually reset")

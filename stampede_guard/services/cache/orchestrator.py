"""
Stampede-Safe Invocation Orchestrator

Double-checked locking around a cached operation:

1. resolve the key
2. condition false -> run uncached
3. first cache check (region missing or store down -> run uncached)
4. acquire the per-key lock (timeout or lock service down -> run uncached)
5. second cache check under the lock
6. compute
7. unless true -> return uncached
8. store, release, return

The lock is released on every path once acquired. Computation failures
propagate unchanged; cancellation is never converted into an uncached run.
"""

import inspect
from typing import Any, Awaitable, Callable, Optional, Sequence, Union

import structlog
from opentelemetry import trace

from ...domain.cache.exceptions import CacheUnavailableError, SerializationError
from ...domain.cache.repository_interfaces import MutexService
from ...domain.cache.value_objects import (
    CacheableSpec,
    CallContext,
    LockOutcome,
)
from ...expressions.evaluator import ExpressionEvaluator, expression_evaluator
from ...monitoring.cache_metrics import (
    CacheMetricsCollector,
    InvocationOutcome,
    cache_metrics,
)
from .cache_facade import SharedCache
from .decorators import bind_cacheable
from .key_resolver import KeyResolver
from .mutex_coordinator import DistributedMutexCoordinator

logger = structlog.get_logger(__name__)
tracer = trace.get_tracer(__name__)

# Store-side failures that degrade to an uncached run
STORE_ERRORS = (CacheUnavailableError, SerializationError)

Operation = Callable[[], Union[Any, Awaitable[Any]]]


class StampedeGuard:
    """
    Memoizes operations in a shared cache with at most one concurrent
    computation per key across every process sharing the lock service.

    Args:
        cache: Region-aware cache facade
        mutex: Lock coordinator, or a bare MutexService to wrap
        key_resolver: Key resolver (defaults to the global generator registry)
        evaluator: Evaluator for condition and unless expressions
        metrics: Metrics collector
        default_lock_timeout: Lock wait used when a declaration sets none
    """

    def __init__(
        self,
        cache: SharedCache,
        mutex: Union[DistributedMutexCoordinator, MutexService],
        key_resolver: Optional[KeyResolver] = None,
        evaluator: Optional[ExpressionEvaluator] = None,
        metrics: Optional[CacheMetricsCollector] = None,
        default_lock_timeout: float = 10.0,
    ):
        if isinstance(mutex, MutexService):
            mutex = DistributedMutexCoordinator(mutex)
        self.cache = cache
        self.mutex = mutex
        self.evaluator = evaluator or expression_evaluator
        self.key_resolver = key_resolver or KeyResolver(evaluator=self.evaluator)
        self.metrics = metrics or cache_metrics
        self.default_lock_timeout = default_lock_timeout

    async def invoke(
        self,
        spec: CacheableSpec,
        context: CallContext,
        func: Operation,
        *,
        target: Any = None,
        method: Optional[Callable[..., Any]] = None,
        args: Sequence[Any] = (),
    ) -> Any:
        """
        Run ``func`` through the cache.

        Args:
            spec: Caching declaration of the operation
            context: Parameter bindings of this call
            func: Zero-argument callable returning a value or an awaitable
            target: Bound instance for key generators
            method: Decorated function for key generators
            args: Argument values for key generators

        Returns:
            Cached or freshly computed result

        Raises:
            ConfigurationError: Invalid declaration or unknown key generator
            ExpressionError: Key, condition or unless expression failed
            Exception: Whatever ``func`` raised, unchanged
        """
        with tracer.start_as_current_span("stampede_guard.invoke") as span:
            span.set_attribute("cache.name", spec.cache_name)
            try:
                return await self._invoke(spec, context, func, target, method, args, span)
            except Exception as e:
                span.set_status(trace.Status(trace.StatusCode.ERROR, str(e)))
                raise

    async def _invoke(self, spec, context, func, target, method, args, span) -> Any:
        cache_name = spec.cache_name
        key = self.key_resolver.resolve_key(spec, context, target, method, args)
        span.set_attribute("cache.key", key)
        log = logger.bind(cache_name=cache_name, cache_key=key)

        if spec.has_condition and not self.evaluator.evaluate_boolean(
            spec.condition, context
        ):
            log.debug("Condition false, bypassing cache")
            return await self._bypass(spec, func, InvocationOutcome.CONDITION_BYPASS, span)

        if not self.cache.region_exists(cache_name):
            log.warning("Cache region not configured, executing without cache")
            return await self._bypass(spec, func, InvocationOutcome.REGION_MISSING, span)

        try:
            cached = await self.cache.get(cache_name, key)
        except STORE_ERRORS as e:
            log.warning(
                "Cache store unavailable, executing without cache",
                error=str(e),
                error_type=type(e).__name__,
            )
            return await self._bypass(spec, func, InvocationOutcome.STORE_UNAVAILABLE, span)

        if cached is not None:
            log.debug("Cache hit")
            self._finish(span, cache_name, InvocationOutcome.HIT)
            return cached.value

        acquisition = await self.mutex.try_acquire(cache_name, key, spec.lock_timeout)
        self.metrics.record_lock_wait(
            cache_name, acquisition.waited_seconds, acquisition.acquired
        )

        if not acquisition.acquired:
            if acquisition.outcome == LockOutcome.UNAVAILABLE:
                outcome = InvocationOutcome.LOCK_UNAVAILABLE
                log.warning("Lock service unavailable, executing without cache")
            else:
                outcome = InvocationOutcome.LOCK_TIMEOUT
                log.warning(
                    "Lock wait timed out, executing without cache",
                    lock_timeout=spec.lock_timeout,
                )
            return await self._bypass(spec, func, outcome, span)

        handle = acquisition.handle
        try:
            store_available = True
            try:
                cached = await self.cache.get(cache_name, key)
            except STORE_ERRORS as e:
                log.warning(
                    "Cache store unavailable on double check, result will not be cached",
                    error=str(e),
                    error_type=type(e).__name__,
                )
                cached, store_available = None, False

            if cached is not None:
                log.debug("Cache hit after lock wait")
                self._finish(span, cache_name, InvocationOutcome.DOUBLE_CHECK_HIT)
                return cached.value

            result = await self._execute(spec, func, span)

            if spec.has_unless and self.evaluator.evaluate_boolean(
                spec.unless, context.with_result(result)
            ):
                log.debug("Unless true, result not cached")
                self._finish(span, cache_name, InvocationOutcome.UNLESS_SKIPPED)
                return result

            if not store_available:
                self._finish(span, cache_name, InvocationOutcome.STORE_UNAVAILABLE)
                return result

            if await self._store(cache_name, key, result):
                self._finish(span, cache_name, InvocationOutcome.STORED)
            else:
                self._finish(span, cache_name, InvocationOutcome.STORE_UNAVAILABLE)
            return result
        finally:
            await self.mutex.release(handle)

    async def _store(self, cache_name: str, key: str, result: Any) -> bool:
        try:
            await self.cache.put(cache_name, key, result)
        except STORE_ERRORS as e:
            logger.warning(
                "Failed to store computed value",
                cache_name=cache_name,
                cache_key=key,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False
        logger.debug("Computed value cached", cache_name=cache_name, cache_key=key)
        return True

    async def _bypass(
        self, spec: CacheableSpec, func: Operation, outcome: InvocationOutcome, span
    ) -> Any:
        result = await self._execute(spec, func, span)
        self._finish(span, spec.cache_name, outcome)
        return result

    async def _execute(self, spec: CacheableSpec, func: Operation, span) -> Any:
        """Run the operation once; failures are counted and re-raised unchanged."""
        self.metrics.record_execution(spec.cache_name)
        try:
            result = func()
            if inspect.isawaitable(result):
                result = await result
        except Exception:
            self._finish(span, spec.cache_name, InvocationOutcome.COMPUTATION_FAILURE)
            raise
        return result

    def _finish(self, span, cache_name: str, outcome: InvocationOutcome) -> None:
        span.set_attribute("cache.outcome", outcome.value)
        self.metrics.record_outcome(cache_name, outcome)

    def cacheable(
        self,
        cache_name: str,
        *,
        key: Optional[str] = None,
        key_generator: Optional[str] = None,
        lock_timeout: Optional[float] = None,
        condition: Optional[str] = None,
        unless: Optional[str] = None,
    ):
        """
        Decorator binding a caching declaration to a function.

        The declaration is validated immediately. See
        ``stampede_guard.services.cache.decorators.distributed_cacheable``.
        """
        spec = CacheableSpec(
            cache_name=cache_name,
            key=key,
            key_generator=key_generator,
            lock_timeout=self.default_lock_timeout if lock_timeout is None else lock_timeout,
            condition=condition,
            unless=unless,
        )
        return bind_cacheable(spec, lambda: self)

    async def health_check(self) -> dict:
        """Health of the cache store and the lock service."""
        store = await self.cache.health_check()
        lock_service = await self.mutex.mutex.health_check()
        healthy = store.get("status") == "healthy" and lock_service.get("status") == "healthy"
        return {
            "status": "healthy" if healthy else "unhealthy",
            "cache_store": store,
            "lock_service": lock_service,
        }

    async def close(self) -> None:
        """Release backend resources."""
        await self.cache.store.close()
        await self.mutex.mutex.close()


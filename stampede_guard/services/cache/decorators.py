"""
Cacheable Decorators

Bind a caching declaration to a function. The wrapped function is always
a coroutine function; synchronous functions run in a worker thread so a
blocked computation never stalls the event loop.
"""

import asyncio
import functools
import inspect
from typing import Any, Callable, Optional

from ...domain.cache.value_objects import CacheableSpec, CallContext


def bind_cacheable(spec: CacheableSpec, guard_provider: Callable[[], Any]):
    """
    Build a decorator that routes calls through ``guard_provider()``.

    The provider is called per invocation so a guard can be configured
    after the decorated function is defined.
    """

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        is_async = inspect.iscoroutinefunction(func)

        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            context = CallContext.from_call(func, args, kwargs)

            if is_async:
                operation = functools.partial(func, *args, **kwargs)
            else:
                operation = functools.partial(asyncio.to_thread, func, *args, **kwargs)

            return await guard_provider().invoke(
                spec,
                context,
                operation,
                target=context.target,
                method=func,
                args=context.arguments,
            )

        wrapper.cache_spec = spec  # type: ignore[attr-defined]
        return wrapper

    return decorator


def _default_guard():
    from ...bootstrap import get_guard

    return get_guard()


def distributed_cacheable(
    cache_name: str,
    *,
    key: Optional[str] = None,
    key_generator: Optional[str] = None,
    lock_timeout: float = 10.0,
    condition: Optional[str] = None,
    unless: Optional[str] = None,
):
    """
    Memoize a function in a shared cache region with per-key locking.

    Exactly one of ``key`` (expression over the parameters) or
    ``key_generator`` (registered generator name) must be given.
    ``condition`` must be true for the cache to be used at all; ``unless``
    is evaluated against the result (bound as ``result``) and, when true,
    keeps the result out of the cache.

    Example:
        @distributed_cacheable(
            "books",
            key="#isbn",
            condition="#isbn != null && #isbn.length() > 10",
            unless="#result == null",
        )
        async def find_book(isbn: str) -> Optional[Book]:
            ...

    Raises:
        ConfigurationError: At decoration time, for an invalid declaration
    """
    spec = CacheableSpec(
        cache_name=cache_name,
        key=key,
        key_generator=key_generator,
        lock_timeout=lock_timeout,
        condition=condition,
        unless=unless,
    )
    return bind_cacheable(spec, _default_guard)

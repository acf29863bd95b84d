"""
Cache Value Objects

Immutable value objects shared by the key resolver, the mutex coordinator
and the invocation orchestrator.
"""

import inspect
import time
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterator, Mapping, Optional, Tuple

from .exceptions import ConfigurationError

LOCK_NAME_SEPARATOR = ":lock:"
BOUND_INSTANCE_PARAMETERS = ("self", "cls")


def to_canonical_string(value: Any) -> str:
    """Convert a key value to its canonical string form."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return to_canonical_string(value.value)
    if isinstance(value, Decimal):
        return str(value)
    return str(value)


def lock_name_for(cache_name: str, cache_key: str) -> str:
    """Lock name scoped per cache region and key."""
    return f"{cache_name}{LOCK_NAME_SEPARATOR}{cache_key}"


def _has_text(value: Optional[str]) -> bool:
    return value is not None and value.strip() != ""


def validate_key_strategy(
    key: Optional[str], key_generator: Optional[str], cache_name: Optional[str] = None
) -> None:
    """Ensure exactly one of key expression or key generator name is set."""
    has_key = _has_text(key)
    has_generator = _has_text(key_generator)

    if has_key and has_generator:
        raise ConfigurationError(
            "Cannot specify both 'key' and 'key_generator'. Use one or the other.",
            cache_name=cache_name,
            config_key="key",
        )
    if not has_key and not has_generator:
        raise ConfigurationError(
            "Must specify either 'key' (expression) or 'key_generator' (registered name).",
            cache_name=cache_name,
            config_key="key",
        )


@dataclass(frozen=True)
class CacheableSpec:
    """
    Declarative caching configuration for one operation.

    Shared by every invocation of the operation. Validation runs at
    construction so an invalid declaration fails at registration time,
    before any cache or lock is touched.
    """

    cache_name: str
    key: Optional[str] = None
    key_generator: Optional[str] = None
    lock_timeout: float = 10.0
    condition: Optional[str] = None
    unless: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate declaration."""
        if not _has_text(self.cache_name):
            raise ConfigurationError(
                "Cache name cannot be empty", config_key="cache_name"
            )
        validate_key_strategy(self.key, self.key_generator, self.cache_name)
        if self.lock_timeout is None or self.lock_timeout < 0:
            raise ConfigurationError(
                f"lock_timeout must be >= 0, got {self.lock_timeout}",
                cache_name=self.cache_name,
                config_key="lock_timeout",
            )

    @property
    def has_condition(self) -> bool:
        return _has_text(self.condition)

    @property
    def has_unless(self) -> bool:
        return _has_text(self.unless)

    @property
    def uses_key_generator(self) -> bool:
        return _has_text(self.key_generator)


class CallContext(Mapping[str, Any]):
    """
    Read-only name -> value bindings for one invocation.

    Holds the call's parameters and, once the operation has run, the
    ``result`` binding used by unless expressions. ``target`` is the bound
    instance or class of a method call, ``arguments`` the remaining
    argument values in declaration order.
    """

    RESULT = "result"

    def __init__(
        self,
        bindings: Optional[Mapping[str, Any]] = None,
        target: Any = None,
        arguments: Tuple[Any, ...] = (),
    ):
        self._bindings = MappingProxyType(dict(bindings or {}))
        self.target = target
        self.arguments = tuple(arguments)

    @classmethod
    def from_call(
        cls,
        func: Callable[..., Any],
        args: Tuple[Any, ...] = (),
        kwargs: Optional[Mapping[str, Any]] = None,
    ) -> "CallContext":
        """
        Bind a call's arguments to the function's parameter names.

        A leading ``self``/``cls`` parameter is excluded. Positional aliases
        ``p0``/``a0`` and a ``root`` binding (method name, arguments, target)
        are added when they do not shadow a real parameter.
        """
        signature = inspect.signature(func)
        bound = signature.bind(*args, **(kwargs or {}))
        bound.apply_defaults()

        params: Dict[str, Any] = {}
        target = None
        for index, (name, value) in enumerate(bound.arguments.items()):
            if index == 0 and name in BOUND_INSTANCE_PARAMETERS:
                target = value
                continue
            params[name] = value

        bindings: Dict[str, Any] = dict(params)
        for index, value in enumerate(params.values()):
            for alias in (f"p{index}", f"a{index}"):
                bindings.setdefault(alias, value)

        target_class = None
        if target is not None:
            target_class = target if isinstance(target, type) else type(target)

        arguments = tuple(params.values())
        bindings.setdefault(
            "root",
            MappingProxyType(
                {
                    "method_name": func.__name__,
                    "args": arguments,
                    "target": target,
                    "target_class": target_class,
                }
            ),
        )
        return cls(bindings, target=target, arguments=arguments)

    def with_result(self, result: Any) -> "CallContext":
        """Return a new context that also binds the operation result."""
        bindings = dict(self._bindings)
        bindings[self.RESULT] = result
        return CallContext(bindings, target=self.target, arguments=self.arguments)

    def __getitem__(self, name: str) -> Any:
        return self._bindings[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._bindings)

    def __len__(self) -> int:
        return len(self._bindings)

    def __repr__(self) -> str:
        return f"CallContext({dict(self._bindings)!r})"


@dataclass(frozen=True)
class CachedValue:
    """
    Wrapper for a value found in a cache region.

    A cached ``None`` is a hit; an absent entry is represented by ``None``
    instead of a CachedValue.
    """

    value: Any


@dataclass(frozen=True)
class CacheRegionConfig:
    """
    Cache region settings.

    TTL and idle eviction are enforced by the backing store.
    """

    name: str
    ttl_seconds: Optional[float] = None
    max_idle_seconds: Optional[float] = None

    def __post_init__(self) -> None:
        """Validate region settings."""
        if not _has_text(self.name):
            raise ConfigurationError("Cache region name cannot be empty")
        for attr in ("ttl_seconds", "max_idle_seconds"):
            value = getattr(self, attr)
            if value is not None and value <= 0:
                raise ConfigurationError(
                    f"{attr} must be positive", cache_name=self.name, config_key=attr
                )

    def effective_expiry(self) -> Optional[float]:
        """Initial expiry in seconds for a freshly written entry."""
        candidates = [
            value
            for value in (self.ttl_seconds, self.max_idle_seconds)
            if value is not None
        ]
        return min(candidates) if candidates else None


class LockOutcome(str, Enum):
    """Result of a lock acquisition attempt."""

    ACQUIRED = "acquired"
    TIMED_OUT = "timed_out"
    UNAVAILABLE = "unavailable"


@dataclass
class LockHandle:
    """
    Ownership of one distributed mutex for one invocation.

    Released exactly once and never reused.
    """

    name: str
    cache_name: str
    cache_key: str
    lease: Any = None
    token: str = field(default_factory=lambda: uuid.uuid4().hex)
    acquired_at: float = field(default_factory=time.monotonic)
    released: bool = False

    @property
    def held_seconds(self) -> float:
        return time.monotonic() - self.acquired_at


@dataclass(frozen=True)
class LockAcquisition:
    """Outcome of ``try_acquire``; ``handle`` is set only when acquired."""

    outcome: LockOutcome
    handle: Optional[LockHandle] = None
    waited_seconds: float = 0.0

    @property
    def acquired(self) -> bool:
        return self.outcome == LockOutcome.ACQUIRED and self.handle is not None

"""
Key Resolver

Computes the cache key for one invocation, either by evaluating the
declared key expression or by calling a named key generator.
"""

from typing import Any, Callable, Dict, List, Optional, Sequence

import structlog

from ...domain.cache.exceptions import ConfigurationError
from ...domain.cache.value_objects import (
    CacheableSpec,
    CallContext,
    to_canonical_string,
    validate_key_strategy,
)
from ...expressions.evaluator import ExpressionEvaluator, expression_evaluator

logger = structlog.get_logger(__name__)

# (target, method, args) -> key value
KeyGenerator = Callable[[Any, Callable[..., Any], Sequence[Any]], Any]

METHOD_SIGNATURE_GENERATOR = "method_signature"


def method_signature_key(target: Any, method: Callable[..., Any], args: Sequence[Any]) -> str:
    """``ClassName.method_name(arg1,arg2)``; plain functions use their qualname."""
    method_name = getattr(method, "__name__", str(method))
    if target is not None:
        owner = target if isinstance(target, type) else type(target)
        prefix = f"{owner.__name__}.{method_name}"
    else:
        prefix = getattr(method, "__qualname__", method_name)
    return f"{prefix}({','.join(to_canonical_string(arg) for arg in args)})"


class KeyGeneratorRegistry:
    """Name -> key generator lookup."""

    def __init__(self):
        self._generators: Dict[str, KeyGenerator] = {}

    def register(self, name: str, generator: KeyGenerator) -> KeyGenerator:
        if not name or not name.strip():
            raise ConfigurationError("Key generator name cannot be empty")
        if not callable(generator):
            raise ConfigurationError(
                f"Key generator '{name}' is not callable", config_key="key_generator"
            )
        self._generators[name] = generator
        return generator

    def unregister(self, name: str) -> None:
        self._generators.pop(name, None)

    def get(self, name: str) -> Optional[KeyGenerator]:
        return self._generators.get(name)

    def names(self) -> List[str]:
        return sorted(self._generators)

    def __contains__(self, name: object) -> bool:
        return name in self._generators


def _default_registry() -> KeyGeneratorRegistry:
    registry = KeyGeneratorRegistry()
    registry.register(METHOD_SIGNATURE_GENERATOR, method_signature_key)
    return registry


# Global key generator registry
key_generators = _default_registry()


def key_generator(name: str, registry: Optional[KeyGeneratorRegistry] = None):
    """Register the decorated function as a named key generator."""

    def decorator(func: KeyGenerator) -> KeyGenerator:
        return (registry or key_generators).register(name, func)

    return decorator


class KeyResolver:
    """Resolve cache keys from expressions or named generators."""

    def __init__(
        self,
        evaluator: Optional[ExpressionEvaluator] = None,
        registry: Optional[KeyGeneratorRegistry] = None,
    ):
        self._evaluator = evaluator or expression_evaluator
        self._registry = registry or key_generators

    @property
    def registry(self) -> KeyGeneratorRegistry:
        return self._registry

    def check_generator(self, spec: CacheableSpec) -> None:
        """Fail fast when the declared generator is not registered."""
        if spec.uses_key_generator and spec.key_generator not in self._registry:
            raise ConfigurationError(
                f"Key generator '{spec.key_generator}' is not registered. "
                f"Available: {self._registry.names()}",
                cache_name=spec.cache_name,
                config_key="key_generator",
            )

    def resolve_key(
        self,
        spec: CacheableSpec,
        context: CallContext,
        target: Any = None,
        method: Optional[Callable[..., Any]] = None,
        args: Sequence[Any] = (),
    ) -> str:
        """
        Compute the key for one invocation.

        Raises:
            ConfigurationError: both or neither of key/key_generator set, or
                the generator is not registered
            ExpressionError: the key expression cannot be evaluated
        """
        validate_key_strategy(spec.key, spec.key_generator, spec.cache_name)

        if spec.uses_key_generator:
            self.check_generator(spec)
            generator = self._registry.get(spec.key_generator)
            value = generator(target, method, tuple(args))
        else:
            value = self._evaluator.evaluate(spec.key, context)

        key = to_canonical_string(value)
        logger.debug("Cache key resolved", cache_name=spec.cache_name, cache_key=key)
        return key

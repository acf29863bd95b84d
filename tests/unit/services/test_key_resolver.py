"""
Unit tests for the Key Resolver.

Tests expression keys, named key generators and configuration errors.
"""

from decimal import Decimal

import pytest

from stampede_guard.domain.cache.exceptions import ConfigurationError, ExpressionError
from stampede_guard.domain.cache.value_objects import CacheableSpec, CallContext
from stampede_guard.services.cache.key_resolver import (
    METHOD_SIGNATURE_GENERATOR,
    KeyGeneratorRegistry,
    KeyResolver,
    key_generator,
    key_generators,
    method_signature_key,
)


class BookService:
    def find_books(self, title, author, page):
        pass


class TestKeyResolver:
    """Test KeyResolver."""

    @pytest.fixture
    def registry(self):
        """Registry with the built-in generator."""
        registry = KeyGeneratorRegistry()
        registry.register(METHOD_SIGNATURE_GENERATOR, method_signature_key)
        return registry

    @pytest.fixture
    def resolver(self, registry):
        """Create key resolver."""
        return KeyResolver(registry=registry)

    def test_expression_key(self, resolver):
        """Test key from a parameter expression."""
        spec = CacheableSpec(cache_name="books", key="#isbn")

        assert resolver.resolve_key(spec, CallContext({"isbn": "123"})) == "123"

    def test_expression_key_canonicalised(self, resolver):
        """Test non-string key values are converted to canonical strings."""
        spec = CacheableSpec(cache_name="books", key="#id")

        assert resolver.resolve_key(spec, CallContext({"id": 42})) == "42"
        assert resolver.resolve_key(spec, CallContext({"id": None})) == "null"
        assert resolver.resolve_key(spec, CallContext({"id": True})) == "true"
        assert resolver.resolve_key(spec, CallContext({"id": Decimal("9.50")})) == "9.50"

    def test_method_signature_generator(self, resolver):
        """Test ClassName.method(args) keys."""
        spec = CacheableSpec(cache_name="books", key_generator="method_signature")
        service = BookService()

        key = resolver.resolve_key(
            spec,
            CallContext(),
            target=service,
            method=BookService.find_books,
            args=("Java", None, 2),
        )

        assert key == "BookService.find_books(Java,null,2)"

    def test_method_signature_for_plain_function(self):
        """Test plain functions use their qualified name."""

        def lookup(isbn):
            pass

        key = method_signature_key(None, lookup, ("1",))

        assert key.endswith("lookup(1)")

    def test_custom_generator(self, resolver, registry):
        """Test registered generator receives target, method and args."""
        calls = []

        def by_first_arg(target, method, args):
            calls.append((target, method, args))
            return f"custom:{args[0]}"

        registry.register("first_arg", by_first_arg)
        spec = CacheableSpec(cache_name="books", key_generator="first_arg")

        key = resolver.resolve_key(spec, CallContext(), target=None, method=print, args=["x"])

        assert key == "custom:x"
        assert calls == [(None, print, ("x",))]

    def test_unknown_generator(self, resolver):
        """Test unregistered generator name fails with ConfigurationError."""
        spec = CacheableSpec(cache_name="books", key_generator="missing")

        with pytest.raises(ConfigurationError) as exc_info:
            resolver.resolve_key(spec, CallContext())

        assert "missing" in exc_info.value.message
        assert exc_info.value.details["config_key"] == "key_generator"

    def test_expression_error_propagates(self, resolver):
        """Test invalid key expression surfaces ExpressionError."""
        spec = CacheableSpec(cache_name="books", key="#missing")

        with pytest.raises(ExpressionError):
            resolver.resolve_key(spec, CallContext({"isbn": "1"}))


class TestKeyGeneratorRegistry:
    """Test the generator registry."""

    def test_global_registry_has_method_signature(self):
        """Test built-in generator is registered by default."""
        assert METHOD_SIGNATURE_GENERATOR in key_generators

    def test_decorator_registration(self):
        """Test @key_generator registers into the given registry."""
        registry = KeyGeneratorRegistry()

        @key_generator("isbn_only", registry=registry)
        def isbn_only(target, method, args):
            return args[0]

        assert registry.get("isbn_only") is isbn_only
        assert registry.names() == ["isbn_only"]

    def test_rejects_non_callable(self):
        """Test registering a non-callable generator."""
        with pytest.raises(ConfigurationError):
            KeyGeneratorRegistry().register("bad", "not callable")

    def test_unregister(self):
        """Test removing a generator."""
        registry = KeyGeneratorRegistry()
        registry.register("tmp", method_signature_key)
        registry.unregister("tmp")

        assert "tmp" not in registry

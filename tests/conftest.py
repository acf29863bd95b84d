"""
Main pytest configuration for stampede guard tests.

Fixtures for in-memory guards, call counters and sample domain objects.
"""

import os

# Set test environment variables before importing package modules
os.environ["ENVIRONMENT"] = "test"
os.environ["CACHE_BACKEND"] = "memory"
os.environ["LOG_LEVEL"] = "DEBUG"
os.environ["LOG_FORMAT"] = "console"

import asyncio
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

import pytest

from stampede_guard.bootstrap import set_guard
from stampede_guard.core.logging import configure_logging
from stampede_guard.domain.cache.value_objects import CacheRegionConfig
from stampede_guard.infrastructure.locks.memory_mutex import InMemoryMutexService
from stampede_guard.infrastructure.repositories.memory_cache_store import (
    InMemoryCacheStore,
)
from stampede_guard.monitoring.cache_metrics import CacheMetricsCollector
from stampede_guard.services.cache.cache_facade import SharedCache
from stampede_guard.services.cache.orchestrator import StampedeGuard

configure_logging()


@dataclass
class Author:
    name: str
    country: str


@dataclass
class Book:
    isbn: str
    title: str
    price: Decimal
    author: Author

    def is_expensive(self) -> bool:
        return self.price > Decimal("100")


@dataclass
class SearchRequest:
    query: str
    search_type: str


@dataclass
class SearchResult:
    items: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.items

    def has_errors(self) -> bool:
        return bool(self.errors)


class CallCounter:
    """Counts executions of a test operation."""

    def __init__(self):
        self.count = 0

    def increment(self) -> int:
        self.count += 1
        return self.count


@pytest.fixture
def books_region():
    """The books region: 30 minute TTL, 15 minute idle."""
    return CacheRegionConfig(name="books", ttl_seconds=1800, max_idle_seconds=900)


@pytest.fixture
def memory_store():
    """Create in-memory cache store."""
    return InMemoryCacheStore()


@pytest.fixture
def memory_mutex():
    """Create in-memory mutex service."""
    return InMemoryMutexService()


@pytest.fixture
def metrics():
    """Metrics collector with its own registry."""
    return CacheMetricsCollector()


@pytest.fixture
def shared_cache(memory_store, books_region):
    """Cache facade with the books region configured."""
    return SharedCache(memory_store, [books_region])


@pytest.fixture
def guard(shared_cache, memory_mutex, metrics):
    """In-memory stampede guard."""
    return StampedeGuard(cache=shared_cache, mutex=memory_mutex, metrics=metrics)


@pytest.fixture
def default_guard(guard):
    """Install ``guard`` as the process default for module-level decorators."""
    set_guard(guard)
    yield guard
    set_guard(None)


@pytest.fixture
def counter():
    """Execution counter."""
    return CallCounter()


@pytest.fixture
def sample_book():
    """Sample book for expression tests."""
    return Book(
        isbn="978-0134685991",
        title="Effective Java",
        price=Decimal("54.99"),
        author=Author(name="Joshua Bloch", country="US"),
    )


async def slow_value(value, delay: float = 0.05):
    """Simulate an expensive computation."""
    await asyncio.sleep(delay)
    return value

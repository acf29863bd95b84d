"""
Cache Metrics Collector

Counts cached-invocation outcomes, callable executions and lock waits.
Exported through a dedicated Prometheus registry and mirrored to the
OpenTelemetry meter API.
"""

from collections import Counter as TallyCounter
from enum import Enum
from typing import Any, Dict, Optional

import structlog
from opentelemetry import metrics
from prometheus_client import (
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

logger = structlog.get_logger(__name__)


class InvocationOutcome(str, Enum):
    """How a cached invocation was served."""

    HIT = "hit"  # FirstCheck hit
    DOUBLE_CHECK_HIT = "double_check_hit"  # filled by another holder while waiting
    STORED = "stored"  # computed and cached
    UNLESS_SKIPPED = "unless_skipped"  # computed, unless vetoed caching
    CONDITION_BYPASS = "condition_bypass"
    REGION_MISSING = "region_missing"
    LOCK_TIMEOUT = "lock_timeout"
    LOCK_UNAVAILABLE = "lock_unavailable"
    STORE_UNAVAILABLE = "store_unavailable"
    COMPUTATION_FAILURE = "computation_failure"


class CacheMetricsCollector:
    """Collector for stampede guard metrics."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()
        self._tallies: TallyCounter = TallyCounter()
        self._executions: TallyCounter = TallyCounter()

        self._setup_prometheus_metrics()
        self._setup_opentelemetry()

    def _setup_prometheus_metrics(self) -> None:
        """Setup Prometheus metrics."""
        self.prom_invocations_total = Counter(
            "stampede_guard_invocations_total",
            "Cached invocations by outcome",
            ["cache_name", "outcome"],
            registry=self.registry,
        )

        self.prom_executions_total = Counter(
            "stampede_guard_executions_total",
            "Underlying callable executions",
            ["cache_name"],
            registry=self.registry,
        )

        self.prom_lock_wait_seconds = Histogram(
            "stampede_guard_lock_wait_seconds",
            "Time spent waiting for the per-key lock",
            ["cache_name", "acquired"],
            buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
            registry=self.registry,
        )

    def _setup_opentelemetry(self) -> None:
        """Setup OpenTelemetry instruments."""
        self.meter = metrics.get_meter(__name__)
        self.otel_invocations = self.meter.create_counter(
            "stampede_guard.invocations",
            description="Cached invocations by outcome",
        )
        self.otel_lock_wait = self.meter.create_histogram(
            "stampede_guard.lock_wait",
            description="Time spent waiting for the per-key lock",
            unit="s",
        )

    def record_outcome(self, cache_name: str, outcome: InvocationOutcome) -> None:
        """Count one invocation outcome."""
        self._tallies[(cache_name, outcome.value)] += 1
        self.prom_invocations_total.labels(
            cache_name=cache_name, outcome=outcome.value
        ).inc()
        self.otel_invocations.add(
            1, {"cache.name": cache_name, "cache.outcome": outcome.value}
        )

    def record_execution(self, cache_name: str) -> None:
        """Count one execution of the underlying callable."""
        self._executions[cache_name] += 1
        self.prom_executions_total.labels(cache_name=cache_name).inc()

    def record_lock_wait(self, cache_name: str, seconds: float, acquired: bool) -> None:
        """Observe lock wait duration."""
        self.prom_lock_wait_seconds.labels(
            cache_name=cache_name, acquired=str(acquired).lower()
        ).observe(seconds)
        self.otel_lock_wait.record(
            seconds, {"cache.name": cache_name, "lock.acquired": acquired}
        )

    def outcome_count(self, cache_name: str, outcome: InvocationOutcome) -> int:
        return self._tallies[(cache_name, outcome.value)]

    def execution_count(self, cache_name: str) -> int:
        return self._executions[cache_name]

    def get_summary(self) -> Dict[str, Any]:
        """Per-region outcome counts and hit ratio."""
        regions: Dict[str, Dict[str, Any]] = {}
        for (cache_name, outcome), count in self._tallies.items():
            region = regions.setdefault(cache_name, {"outcomes": {}})
            region["outcomes"][outcome] = count

        for cache_name, region in regions.items():
            outcomes = region["outcomes"]
            total = sum(outcomes.values())
            hits = outcomes.get(InvocationOutcome.HIT.value, 0) + outcomes.get(
                InvocationOutcome.DOUBLE_CHECK_HIT.value, 0
            )
            region["total"] = total
            region["hit_ratio"] = hits / total if total else 0.0
            region["executions"] = self._executions[cache_name]

        return {"regions": regions}

    def export_prometheus(self) -> bytes:
        """Prometheus text exposition of the cache registry."""
        return generate_latest(self.registry)

    def reset(self) -> None:
        """Start from a fresh registry (tests)."""
        self.registry = CollectorRegistry()
        self._tallies.clear()
        self._executions.clear()
        self._setup_prometheus_metrics()
        logger.debug("Cache metrics reset")


# Global metrics collector instance
cache_metrics = CacheMetricsCollector()

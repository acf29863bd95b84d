"""
Monitoring

Prometheus and OpenTelemetry metrics for cached invocations.
"""

from .cache_metrics import CacheMetricsCollector, InvocationOutcome, cache_metrics

__all__ = ["CacheMetricsCollector", "InvocationOutcome", "cache_metrics"]

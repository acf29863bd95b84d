"""API endpoints."""

from .cache_monitoring import CacheHTTPException, router as cache_monitoring_router

__all__ = ["CacheHTTPException", "cache_monitoring_router"]

"""
Cache Monitoring API Endpoints

Health, region and metrics endpoints for the stampede guard. Mount the
router into an existing FastAPI application.
"""

from typing import Any, Dict, List, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel
from prometheus_client import CONTENT_TYPE_LATEST

from ...bootstrap import get_guard
from ...domain.cache.exceptions import CacheUnavailableError, StampedeGuardException
from ...services.cache.orchestrator import StampedeGuard

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/cache", tags=["cache-monitoring"])


class CacheHTTPException(HTTPException):
    """HTTP exception wrapper for stampede guard errors."""

    def __init__(self, error: StampedeGuardException, status_code: int = 503):
        self.error = error
        super().__init__(
            status_code=status_code,
            detail={
                "error": error.error_code,
                "message": error.message,
                "details": error.details,
            },
        )


class CacheRegionInfo(BaseModel):
    """Cache region model."""

    name: str
    ttl_seconds: Optional[float] = None
    max_idle_seconds: Optional[float] = None


class CacheHealthStatus(BaseModel):
    """Cache health model."""

    status: str
    cache_store: Dict[str, Any]
    lock_service: Dict[str, Any]


@router.get("/health", response_model=CacheHealthStatus)
async def get_cache_health(guard: StampedeGuard = Depends(get_guard)):
    """
    Check the cache store and the lock service.

    Responds 503 when either backend is unhealthy.
    """
    health = await guard.health_check()
    if health["status"] != "healthy":
        logger.warning("Cache health check failed", health=health)
        raise CacheHTTPException(
            CacheUnavailableError(
                "Cache backend unhealthy", operation="health_check"
            )
        )
    return CacheHealthStatus(**health)


@router.get("/regions", response_model=List[CacheRegionInfo])
async def get_cache_regions(guard: StampedeGuard = Depends(get_guard)):
    """List configured cache regions and their expiry policies."""
    return [
        CacheRegionInfo(
            name=region.name,
            ttl_seconds=region.ttl_seconds,
            max_idle_seconds=region.max_idle_seconds,
        )
        for region in guard.cache.regions()
    ]


@router.get("/metrics/summary")
async def get_cache_metrics_summary(guard: StampedeGuard = Depends(get_guard)):
    """Per-region outcome counts and hit ratio."""
    return guard.metrics.get_summary()


@router.get("/metrics")
async def get_prometheus_metrics(guard: StampedeGuard = Depends(get_guard)):
    """
    Cache metrics in Prometheus format.

    Returns metrics that can be scraped by Prometheus server.
    """
    return PlainTextResponse(
        content=guard.metrics.export_prometheus(), media_type=CONTENT_TYPE_LATEST
    )

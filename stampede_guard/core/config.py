"""
Stampede Guard Configuration

Configuration management with environment variable support.
Implements secure defaults and validation for all settings.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field, field_validator
from typing import Dict, Optional, List
from functools import lru_cache
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class CacheRegionSettings(BaseModel):
    """Expiry policy for one cache region."""

    ttl_seconds: Optional[float] = Field(
        default=None, gt=0, description="Absolute time to live in seconds"
    )
    max_idle_seconds: Optional[float] = Field(
        default=None, gt=0, description="Evict after this many seconds without reads"
    )


def _default_regions() -> Dict[str, CacheRegionSettings]:
    # books: 30 minutes TTL, 15 minutes max idle
    return {
        "books": CacheRegionSettings(ttl_seconds=1800, max_idle_seconds=900),
    }


class Settings(BaseSettings):
    """Application settings with validation and secure defaults."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=True, extra="ignore"
    )

    # Environment settings
    ENVIRONMENT: str = Field(
        default="development", description="Application environment"
    )
    SERVICE_NAME: str = Field(
        default="stampede-guard", description="Service name used in logs and spans"
    )

    # Redis configuration
    REDIS_URL: str = Field(
        default="redis://localhost:6379/0", description="Redis connection URL"
    )
    REDIS_MAX_CONNECTIONS: int = Field(
        default=10, ge=1, le=200, description="Redis connection pool size"
    )
    REDIS_CONNECTION_TIMEOUT: float = Field(
        default=5.0, gt=0, le=60, description="Redis socket connect timeout in seconds"
    )
    REDIS_OPERATION_TIMEOUT: float = Field(
        default=5.0, gt=0, le=60, description="Redis socket timeout in seconds"
    )
    REDIS_HEALTH_CHECK_INTERVAL: int = Field(
        default=30, ge=0, le=300, description="Redis connection health check interval"
    )

    # Cache configuration
    CACHE_BACKEND: str = Field(
        default="redis", description="Cache and lock backend: redis or memory"
    )
    CACHE_KEY_PREFIX: str = Field(
        default="cache", description="Prefix for cached value keys in the store"
    )
    CACHE_SERIALIZER: str = Field(
        default="pickle", description="Value serializer: pickle or json"
    )
    CACHE_REGIONS: Dict[str, CacheRegionSettings] = Field(
        default_factory=_default_regions,
        description="Cache regions (JSON mapping of name to expiry policy)",
    )
    CACHE_DEFAULT_LOCK_TIMEOUT: float = Field(
        default=10.0, ge=0, description="Default lock wait in seconds"
    )
    CACHE_STORE_RETRY_ATTEMPTS: int = Field(
        default=2, ge=1, le=10, description="Attempts for transient store errors"
    )

    # Distributed lock configuration
    LOCK_LEASE_SECONDS: float = Field(
        default=30.0,
        gt=0,
        le=3600,
        description="Lock lease; abandoned locks expire after this long",
    )
    LOCK_WATCHDOG_ENABLED: bool = Field(
        default=True, description="Renew the lease while the holder is alive"
    )
    LOCK_RETRY_INTERVAL: float = Field(
        default=0.05, gt=0, le=5, description="Polling interval while waiting for a lock"
    )

    # Circuit breaker settings
    CIRCUIT_BREAKER_FAILURE_THRESHOLD: int = Field(
        default=5, ge=1, le=20, description="Circuit breaker failure threshold"
    )
    CIRCUIT_BREAKER_RECOVERY_TIMEOUT: float = Field(
        default=30.0,
        ge=1,
        le=300,
        description="Circuit breaker recovery timeout in seconds",
    )

    # Development and debugging
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: str = Field(default="json", description="Log renderer: json or console")

    @field_validator("ENVIRONMENT")
    @classmethod
    def validate_environment(cls, v):
        """Validate environment value."""
        allowed = ["development", "test", "staging", "production"]
        if v not in allowed:
            raise ValueError(f"ENVIRONMENT must be one of: {allowed}")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of: {allowed}")
        return v.upper()

    @field_validator("LOG_FORMAT")
    @classmethod
    def validate_log_format(cls, v):
        """Validate log renderer."""
        if v.lower() not in ("json", "console"):
            raise ValueError("LOG_FORMAT must be 'json' or 'console'")
        return v.lower()

    @field_validator("CACHE_BACKEND")
    @classmethod
    def validate_cache_backend(cls, v):
        """Validate cache backend."""
        if v.lower() not in ("redis", "memory"):
            raise ValueError("CACHE_BACKEND must be 'redis' or 'memory'")
        return v.lower()

    @field_validator("CACHE_SERIALIZER")
    @classmethod
    def validate_cache_serializer(cls, v):
        """Validate serializer name."""
        if v.lower() not in ("pickle", "json"):
            raise ValueError("CACHE_SERIALIZER must be 'pickle' or 'json'")
        return v.lower()

    @field_validator("REDIS_URL")
    @classmethod
    def validate_redis_url(cls, v):
        """Validate Redis URL format."""
        if not v.startswith(("redis://", "rediss://", "unix://")):
            raise ValueError("REDIS_URL must be a redis://, rediss:// or unix:// URL")
        return v

    @property
    def region_names(self) -> List[str]:
        """Configured cache region names."""
        return sorted(self.CACHE_REGIONS)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Create global settings instance
settings = get_settings()

"""
Unit tests for settings loading and validation.
"""

import logging
from unittest.mock import patch

import pytest
import structlog
from pydantic import ValidationError

from stampede_guard.core.config import CacheRegionSettings, Settings
from stampede_guard.core.logging import configure_logging, service_context_processor


def make_settings(**overrides):
    return Settings(_env_file=None, **overrides)


class TestSettings:
    """Test Settings."""

    def test_defaults(self):
        """Test defaults describe the books region."""
        settings = make_settings()

        assert settings.CACHE_BACKEND == "memory"  # set by conftest
        assert settings.CACHE_KEY_PREFIX == "cache"
        assert settings.CACHE_SERIALIZER == "pickle"
        assert settings.CACHE_DEFAULT_LOCK_TIMEOUT == 10.0
        assert settings.region_names == ["books"]
        assert settings.CACHE_REGIONS["books"].ttl_seconds == 1800
        assert settings.CACHE_REGIONS["books"].max_idle_seconds == 900

    def test_regions_from_environment(self, monkeypatch):
        """Test CACHE_REGIONS is parsed as a JSON mapping."""
        monkeypatch.setenv(
            "CACHE_REGIONS", '{"authors": {"ttl_seconds": 60}, "books": {}}'
        )

        settings = make_settings()

        assert settings.region_names == ["authors", "books"]
        assert settings.CACHE_REGIONS["authors"].ttl_seconds == 60
        assert settings.CACHE_REGIONS["books"].ttl_seconds is None

    def test_normalises_case(self):
        """Test enumerated settings are case-normalised."""
        settings = make_settings(
            CACHE_BACKEND="REDIS", CACHE_SERIALIZER="Json", LOG_LEVEL="debug"
        )

        assert settings.CACHE_BACKEND == "redis"
        assert settings.CACHE_SERIALIZER == "json"
        assert settings.LOG_LEVEL == "DEBUG"

    @pytest.mark.parametrize(
        "field,value",
        [
            ("ENVIRONMENT", "qa"),
            ("CACHE_BACKEND", "memcached"),
            ("CACHE_SERIALIZER", "msgpack"),
            ("LOG_LEVEL", "TRACE"),
            ("LOG_FORMAT", "xml"),
            ("REDIS_URL", "http://localhost:6379"),
            ("CACHE_DEFAULT_LOCK_TIMEOUT", -1),
            ("LOCK_LEASE_SECONDS", 0),
        ],
    )
    def test_invalid_values(self, field, value):
        """Test invalid values are rejected at load time."""
        with pytest.raises(ValidationError):
            make_settings(**{field: value})

    def test_region_policy_must_be_positive(self):
        """Test zero or negative expiry is rejected."""
        with pytest.raises(ValidationError):
            CacheRegionSettings(ttl_seconds=0)

    def test_environment_and_service_name(self):
        """Test environment and service name load from overrides."""
        settings = make_settings(ENVIRONMENT="production", SERVICE_NAME="catalog")

        assert settings.ENVIRONMENT == "production"
        assert settings.SERVICE_NAME == "catalog"


class TestConfigureLogging:
    """Test configure_logging."""

    @pytest.mark.parametrize("log_format", ["json", "console"])
    def test_configures_structlog(self, log_format):
        """Test both renderers configure structlog and the package logger level."""
        configure_logging(make_settings(LOG_FORMAT=log_format, LOG_LEVEL="WARNING"))

        assert structlog.is_configured()
        assert logging.getLogger("stampede_guard").level == logging.WARNING

        configure_logging(make_settings())

    def test_events_carry_service_and_environment(self):
        """Test every event is stamped with SERVICE_NAME and ENVIRONMENT."""
        add_context = service_context_processor(
            make_settings(ENVIRONMENT="staging", SERVICE_NAME="catalog")
        )

        event = add_context(None, "info", {"event": "cache hit"})

        assert event["service"] == "catalog"
        assert event["environment"] == "staging"

    def test_renderer_follows_log_format_not_environment(self):
        """Test production with LOG_FORMAT=console still renders for the console."""
        with patch("structlog.configure") as configure:
            configure_logging(
                make_settings(ENVIRONMENT="production", LOG_FORMAT="console")
            )

        processors = configure.call_args.kwargs["processors"]
        assert isinstance(processors[-1], structlog.dev.ConsoleRenderer)
        configure_logging(make_settings())

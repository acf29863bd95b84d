"""
Structured logging setup.

structlog processors over the standard library logger so that both
``structlog.get_logger`` and ``logging.getLogger`` output share one format.
"""

import logging
import sys
from typing import Optional

import structlog

from .config import Settings, get_settings


def service_context_processor(settings: Settings):
    """Stamp every event with the service name and environment."""

    def add_service_context(logger, method_name, event_dict):
        event_dict.setdefault("service", settings.SERVICE_NAME)
        event_dict.setdefault("environment", settings.ENVIRONMENT)
        return event_dict

    return add_service_context


def configure_logging(settings: Optional[Settings] = None) -> None:
    """
    Configure structured logging for the service.

    The renderer is picked by ``LOG_FORMAT`` alone; ``ENVIRONMENT`` only
    appears as a field on each event.
    """
    settings = settings or get_settings()

    renderer = (
        structlog.dev.ConsoleRenderer()
        if settings.LOG_FORMAT == "console"
        else structlog.processors.JSONRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            service_context_processor(settings),
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.LOG_LEVEL),
    )
    logging.getLogger("stampede_guard").setLevel(settings.LOG_LEVEL)

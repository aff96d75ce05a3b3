"""
structlog setup for renewal_analytics.

Modules log through ``structlog.get_logger()``; call ``configure_logging``
once at startup to pick the level and renderer:

    from renewal_analytics.core.logging import configure_logging
    configure_logging(settings.log_level, json_logs=settings.log_json)
"""

import logging
import os
from typing import Optional

import structlog

_DEV_ENVS = ("development", "dev", "local")


def configure_logging(level: str = "INFO", json_logs: Optional[bool] = None) -> None:
    """
    Configure structlog processors.

    Args:
        level: Minimum level name ("WARN" is accepted for "WARNING")
        json_logs: Render compact JSON lines; defaults to True outside
            development (ENV=development / dev / local)
    """
    normalized = level.upper()
    if normalized == "WARN":
        normalized = "WARNING"
    min_level = logging.getLevelName(normalized)
    if not isinstance(min_level, int):
        min_level = logging.INFO

    if json_logs is None:
        json_logs = os.getenv("ENV", "development") not in _DEV_ENVS

    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(min_level),
        cache_logger_on_first_use=False,
    )

"""
Structured logging setup.

Modules log through ``structlog.get_logger()`` with dotted event names
(``sync.batch.completed``) and keyword context. This module wires the
processor chain once per process: key/value output locally, JSON elsewhere.
"""

import logging

import structlog

from core.config import get_settings

_configured = False


def configure_logging(force: bool = False) -> None:
    """Configure structlog for the API process or a Celery worker."""
    global _configured
    if _configured and not force:
        return

    settings = get_settings()
    level = logging.getLevelName(settings.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    env = settings.app_env.strip().lower()
    renderer = (
        structlog.dev.ConsoleRenderer()
        if env in {"", "local", "dev", "development", "test"}
        else structlog.processors.JSONRenderer()
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
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )
    _configured = True

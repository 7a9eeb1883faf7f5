"""Structured logging configuration for chatcache.

Logs are output as JSON in production for log aggregators and as colored
console lines in development.

Configuration:
    Set via environment variables:
    - LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
    - LOG_FORMAT: json, console (default: json in production, console in dev)
    - ENVIRONMENT: development, production (affects format default)

Usage:
    >>> from chatcache.observability.logging import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.info(LogEvents.CACHE_HIT, user_id="user-123", count=42)

Standard Events:
    Cache:
        - cache_hit / cache_miss: Per-user list lookup outcome
        - cache_populated: List written after a durable read
        - cache_appended: New message appended to a cached list
        - cache_error: Cache operation failed, durable path used

    Warm-up:
        - warm_up_started / warm_up_completed / warm_up_failed

    Reconciliation:
        - reconciliation_started / reconciliation_completed
        - user_synced / user_sync_failed
        - job_started / job_stopped
"""

import logging
import os
import sys
from typing import Any

import structlog
from structlog.types import Processor

# Module-level flag to track initialization
_configured = False


def configure_logging(
    level: str | None = None,
    log_format: str | None = None,
    is_production: bool | None = None,
) -> None:
    """Configure structured logging for the application.

    Should be called once at application startup. Safe to call multiple times
    (subsequent calls are no-ops).

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR). Default from LOG_LEVEL env.
        log_format: Output format (json, console). Default based on environment.
        is_production: Override production detection. Default from ENVIRONMENT env.
    """
    global _configured
    if _configured:
        return

    if level is None:
        level = os.getenv("LOG_LEVEL", "INFO")
    level = level.upper()

    if is_production is None:
        is_production = os.getenv("ENVIRONMENT", "development").lower() == "production"

    if log_format is None:
        log_format = os.getenv("LOG_FORMAT", "json" if is_production else "console")

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level, logging.INFO),
    )

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if log_format == "json":
        processors: list[Processor] = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(colors=True),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    _configured = True


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Auto-configures logging on first call if not already configured.

    Args:
        name: Logger name (typically __name__). If None, returns root logger.

    Returns:
        Configured structlog BoundLogger instance.
    """
    if not _configured:
        configure_logging()

    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger


def bind_context(**kwargs: Any) -> None:
    """Bind context variables to all subsequent log calls in this context.

    Example:
        >>> bind_context(job="reconciliation", run_id="abc123")
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()


def unbind_context(*keys: str) -> None:
    """Remove only the given context variables, leaving the rest bound."""
    structlog.contextvars.unbind_contextvars(*keys)


class LogEvents:
    """Standard event names for structured logging.

    Example:
        >>> logger.info(LogEvents.USER_SYNCED, user_id="user-123", inserted=3)
    """

    # Cache events
    CACHE_HIT = "cache_hit"
    CACHE_MISS = "cache_miss"
    CACHE_POPULATED = "cache_populated"
    CACHE_APPENDED = "cache_appended"
    CACHE_ERROR = "cache_error"

    # Warm-up events
    WARM_UP_STARTED = "warm_up_started"
    WARM_UP_COMPLETED = "warm_up_completed"
    WARM_UP_FAILED = "warm_up_failed"

    # Reconciliation events
    RECONCILIATION_STARTED = "reconciliation_started"
    RECONCILIATION_COMPLETED = "reconciliation_completed"
    RECONCILIATION_FAILED = "reconciliation_failed"
    USER_SYNCED = "user_synced"
    USER_SYNC_FAILED = "user_sync_failed"
    JOB_STARTED = "job_started"
    JOB_STOPPED = "job_stopped"

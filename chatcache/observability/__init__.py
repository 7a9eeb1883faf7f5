"""Logging and OpenTelemetry metrics for chatcache.

Instrumented Components:
    - Per-user message cache hit/miss/error rates
    - Reconciliation throughput and per-user failures
    - Login warm-up outcomes
"""

from chatcache.observability.logging import (
    LogEvents,
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    unbind_context,
)
from chatcache.observability.metrics import get_meter, get_metrics_summary

__all__ = [
    "configure_logging",
    "get_logger",
    "bind_context",
    "clear_context",
    "unbind_context",
    "LogEvents",
    "get_meter",
    "get_metrics_summary",
]

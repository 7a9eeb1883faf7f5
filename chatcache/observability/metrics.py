"""OpenTelemetry metrics for the chatcache message layer.

Metrics:
    - chatcache.cache.hits: Counter of per-user list cache hits
    - chatcache.cache.misses: Counter of per-user list cache misses
    - chatcache.cache.errors: Counter of degraded cache operations by operation
    - chatcache.reconciliation.messages_synced: Counter of cache-only messages copied
    - chatcache.reconciliation.user_failures: Counter of per-user sync failures
    - chatcache.warmup.runs: Counter of login warm-ups by outcome

Instruments are created lazily and only when telemetry is enabled. Without an
SDK meter provider installed the OpenTelemetry API is a no-op.
"""

from typing import Any

from opentelemetry import metrics

from chatcache.core.config import settings

_meter: metrics.Meter | None = None

_cache_hits_counter: metrics.Counter | None = None
_cache_misses_counter: metrics.Counter | None = None
_cache_errors_counter: metrics.Counter | None = None
_messages_synced_counter: metrics.Counter | None = None
_user_failures_counter: metrics.Counter | None = None
_warmup_counter: metrics.Counter | None = None


def _enabled() -> bool:
    return settings.otel_enabled and settings.otel_metrics_enabled


def get_meter(name: str = "chatcache") -> metrics.Meter:
    """Get OpenTelemetry meter instance.

    Args:
        name: Meter name

    Returns:
        Meter instance (no-op if telemetry disabled)
    """
    global _meter
    if _meter is None:
        _meter = metrics.get_meter(name)
    return _meter


def _ensure_instruments() -> None:
    """Lazy initialization of metric instruments."""
    global _cache_hits_counter
    global _cache_misses_counter
    global _cache_errors_counter
    global _messages_synced_counter
    global _user_failures_counter
    global _warmup_counter

    meter = get_meter()

    if _cache_hits_counter is None:
        _cache_hits_counter = meter.create_counter(
            name="chatcache.cache.hits",
            description="Number of message cache hits",
            unit="1",
        )

    if _cache_misses_counter is None:
        _cache_misses_counter = meter.create_counter(
            name="chatcache.cache.misses",
            description="Number of message cache misses",
            unit="1",
        )

    if _cache_errors_counter is None:
        _cache_errors_counter = meter.create_counter(
            name="chatcache.cache.errors",
            description="Cache operations that degraded to the durable path",
            unit="1",
        )

    if _messages_synced_counter is None:
        _messages_synced_counter = meter.create_counter(
            name="chatcache.reconciliation.messages_synced",
            description="Cache-only messages copied into the durable store",
            unit="1",
        )

    if _user_failures_counter is None:
        _user_failures_counter = meter.create_counter(
            name="chatcache.reconciliation.user_failures",
            description="Users whose reconciliation failed in a tick",
            unit="1",
        )

    if _warmup_counter is None:
        _warmup_counter = meter.create_counter(
            name="chatcache.warmup.runs",
            description="Login cache warm-ups by outcome",
            unit="1",
        )


def record_cache_hit() -> None:
    """Record cache hit metric."""
    if not _enabled():
        return

    _ensure_instruments()

    if _cache_hits_counter:
        _cache_hits_counter.add(1)


def record_cache_miss() -> None:
    """Record cache miss metric."""
    if not _enabled():
        return

    _ensure_instruments()

    if _cache_misses_counter:
        _cache_misses_counter.add(1)


def record_cache_error(operation: str) -> None:
    """Record a cache failure that was absorbed by a fallback.

    Args:
        operation: Repository operation that degraded (find_by_user, append, ...)
    """
    if not _enabled():
        return

    _ensure_instruments()

    if _cache_errors_counter:
        _cache_errors_counter.add(1, {"operation": operation})


def record_reconciliation(messages_synced: int, user_failures: int) -> None:
    """Record the outcome of one reconciliation run."""
    if not _enabled():
        return

    _ensure_instruments()

    if _messages_synced_counter and messages_synced:
        _messages_synced_counter.add(messages_synced)
    if _user_failures_counter and user_failures:
        _user_failures_counter.add(user_failures)


def record_warm_up(outcome: str) -> None:
    """Record a login warm-up.

    Args:
        outcome: "warmed", "empty" or "failed"
    """
    if not _enabled():
        return

    _ensure_instruments()

    if _warmup_counter:
        _warmup_counter.add(1, {"outcome": outcome})


def get_metrics_summary() -> dict[str, Any]:
    """Get current metrics configuration for debugging."""
    return {
        "otel_enabled": settings.otel_enabled,
        "metrics_enabled": settings.otel_metrics_enabled,
        "service_name": settings.otel_service_name,
    }

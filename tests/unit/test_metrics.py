"""Tests for OpenTelemetry metric recording."""

from unittest.mock import MagicMock, patch

import pytest

from chatcache.observability import metrics


@pytest.fixture(autouse=True)
def reset_instruments():
    """Drop lazily created instruments between tests."""
    names = [
        "_meter",
        "_cache_hits_counter",
        "_cache_misses_counter",
        "_cache_errors_counter",
        "_messages_synced_counter",
        "_user_failures_counter",
        "_warmup_counter",
    ]
    saved = {name: getattr(metrics, name) for name in names}
    for name in names:
        setattr(metrics, name, None)
    yield
    for name, value in saved.items():
        setattr(metrics, name, value)


class TestMetrics:
    """Test suite for metric recording helpers."""

    def test_disabled_records_nothing(self):
        """Test no instruments are created when telemetry is off."""
        with patch.object(metrics, "settings", MagicMock(otel_enabled=False)):
            with patch.object(metrics, "get_meter") as get_meter:
                metrics.record_cache_hit()
                metrics.record_reconciliation(3, 1)

        get_meter.assert_not_called()

    def test_enabled_records_counters(self):
        """Test counters are created once and receive attributes."""
        meter = MagicMock()
        enabled = MagicMock(otel_enabled=True, otel_metrics_enabled=True)
        with patch.object(metrics, "settings", enabled):
            with patch.object(metrics, "get_meter", return_value=meter):
                metrics.record_cache_error("find_by_user")
                metrics.record_warm_up("failed")

        counter = meter.create_counter.return_value
        assert meter.create_counter.call_count == 6
        counter.add.assert_any_call(1, {"operation": "find_by_user"})
        counter.add.assert_any_call(1, {"outcome": "failed"})

    def test_zero_counts_skipped(self):
        """Test an empty reconciliation run adds nothing."""
        meter = MagicMock()
        enabled = MagicMock(otel_enabled=True, otel_metrics_enabled=True)
        with patch.object(metrics, "settings", enabled):
            with patch.object(metrics, "get_meter", return_value=meter):
                metrics.record_reconciliation(0, 0)

        meter.create_counter.return_value.add.assert_not_called()

    def test_summary(self):
        summary = metrics.get_metrics_summary()

        assert set(summary) == {"otel_enabled", "metrics_enabled", "service_name"}

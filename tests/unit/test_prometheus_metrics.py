"""Unit tests for Prometheus metrics collection."""

from __future__ import annotations

import pytest

from sekoropo.observability import prometheus_metrics


class TestOperationMetrics:
    """Test suite for operation metrics."""

    def test_observe_operation_records_status(self) -> None:
        labels = {"operation_type": "test.op", "status": "success"}
        before = prometheus_metrics.get_sample_value("sekoropo_operations_total", labels)

        with prometheus_metrics.observe_operation("test.op") as record_status:
            record_status("success")

        assert prometheus_metrics.get_sample_value("sekoropo_operations_total", labels) == before + 1
        count = prometheus_metrics.get_sample_value(
            "sekoropo_operation_duration_seconds_count", {"operation_type": "test.op"}
        )
        assert count >= 1

    def test_metric_summary_uses_label_strings(self) -> None:
        prometheus_metrics.record_side_effect_failure("profiles")

        metrics = prometheus_metrics.get_metric_summary()

        samples = metrics["sekoropo_side_effect_failures_total"]
        assert any('collection="profiles"' in labels for labels in samples)

    def test_record_merge_duplicates_ignores_zero(self) -> None:
        labels = {"collection": "zero-test"}

        prometheus_metrics.record_merge_duplicates("zero-test", 0)

        assert prometheus_metrics.get_sample_value("sekoropo_merge_duplicates_total", labels) == 0.0

    def test_generate_metrics(self) -> None:
        prometheus_metrics.record_fanout_query("jobs", "success")

        output = prometheus_metrics.generate_metrics()

        assert isinstance(output, bytes)
        assert b"sekoropo_fanout_queries_total" in output


class TestMetricsSwitch:
    """Test suite for turning recording off."""

    def test_disabled_metrics_record_nothing(self) -> None:
        labels = {"collection": "switch-test"}
        prometheus_metrics.set_metrics_enabled(False)

        prometheus_metrics.record_side_effect_failure("switch-test")
        with prometheus_metrics.observe_operation("switch.op") as record_status:
            record_status("error")

        assert not prometheus_metrics.metrics_enabled()
        assert prometheus_metrics.get_sample_value("sekoropo_side_effect_failures_total", labels) == 0.0
        assert (
            prometheus_metrics.get_sample_value(
                "sekoropo_operations_total", {"operation_type": "switch.op", "status": "error"}
            )
            == 0.0
        )

    @pytest.mark.parametrize("enabled", [True, False])
    def test_toggle(self, enabled: bool) -> None:
        prometheus_metrics.set_metrics_enabled(enabled)

        assert prometheus_metrics.metrics_enabled() is enabled

    def test_registry_is_dedicated(self) -> None:
        from prometheus_client import REGISTRY as DEFAULT_REGISTRY

        assert prometheus_metrics.get_metrics_registry() is not DEFAULT_REGISTRY
        assert prometheus_metrics.get_metrics_registry() is prometheus_metrics.get_metrics_registry()

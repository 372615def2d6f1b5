"""Tests for the metric catalog, the metrics batch and unit conversions."""

import pytest
from opentelemetry.sdk.metrics.export import AggregationTemporality, Gauge, MetricsData, Sum

from hostmetrics.metadata import (
    CATALOG,
    SYSTEM_CPU_TIME,
    SYSTEM_DISK_OPERATIONS,
    SYSTEM_PAGING_USAGE,
)
from hostmetrics.model import MetricsBatch
from hostmetrics.units import millis_to_seconds, nanos_to_seconds, seconds_to_nanos, ticks_to_seconds


def test_sum_definition_builds_cumulative_metric():
    point = SYSTEM_DISK_OPERATIONS.data_point(100, 200, 7.0, {"device": "sda", "direction": "write"})
    assert point.value == 7
    assert isinstance(point.value, int)
    assert point.start_time_unix_nano == 100
    assert point.time_unix_nano == 200

    metric = SYSTEM_DISK_OPERATIONS.metric([point])
    assert metric.name == "system.disk.operations"
    assert metric.unit == "{operations}"
    assert isinstance(metric.data, Sum)
    assert metric.data.is_monotonic is True
    assert metric.data.aggregation_temporality == AggregationTemporality.CUMULATIVE


def test_gauge_definition_drops_start_time():
    point = SYSTEM_PAGING_USAGE.data_point(100, 200, 4096, {"device": "/swap", "state": "used"})
    assert point.start_time_unix_nano == 0
    assert isinstance(SYSTEM_PAGING_USAGE.metric([point]).data, Gauge)


def test_double_values_are_floats():
    point = SYSTEM_CPU_TIME.data_point(1, 2, 3, {"state": "user"})
    assert isinstance(point.value, float)


def test_undeclared_attribute_rejected():
    with pytest.raises(ValueError, match="undeclared"):
        SYSTEM_CPU_TIME.data_point(1, 2, 3.0, {"state": "user", "device": "sda"})


def test_catalog_is_keyed_by_name():
    assert CATALOG["system.cpu.time"] is SYSTEM_CPU_TIME
    assert all(name == definition.name for name, definition in CATALOG.items())


class TestMetricsBatch:
    def _metric(self, value):
        return SYSTEM_CPU_TIME.metric([SYSTEM_CPU_TIME.data_point(1, 2, value, {"state": "user"})])

    def test_append_and_extend(self):
        first = MetricsBatch()
        first.append(self._metric(1.0))
        second = MetricsBatch()
        second.append(self._metric(2.0))
        entry = second.add_resource({"process.pid": "42"}, descriptor="proc")
        entry.metrics.append(self._metric(3.0))

        first.extend(second)
        assert len(first) == 3
        assert len(first.entries) == 2
        assert first.entries[0].resource == {}
        assert first.entries[1].descriptor == "proc"
        assert first.find("system.cpu.time").data.data_points[0].value == 1.0
        assert first.find("system.disk.io") is None

    def test_empty_batch_is_falsy(self):
        assert not MetricsBatch()

    def test_to_metrics_data(self):
        batch = MetricsBatch()
        batch.append(self._metric(1.5))
        batch.add_resource({"process.pid": "7"}).metrics.append(self._metric(2.5))

        data = batch.to_metrics_data()
        assert isinstance(data, MetricsData)
        assert len(data.resource_metrics) == 2
        assert data.resource_metrics[1].resource.attributes["process.pid"] == "7"
        scope_metrics = data.resource_metrics[0].scope_metrics[0]
        assert scope_metrics.scope.name == "hostmetrics"
        assert scope_metrics.metrics[0].name == "system.cpu.time"

    def test_to_dict(self):
        batch = MetricsBatch()
        batch.append(self._metric(1.5))
        [entry] = batch.to_dict()
        [metric] = entry["metrics"]
        assert metric["type"] == "sum"
        assert metric["monotonic"] is True
        assert metric["data_points"] == [
            {"attributes": {"state": "user"}, "start_time_unix_nano": 1, "time_unix_nano": 2, "value": 1.5}
        ]


def test_unit_conversions_are_exact():
    assert ticks_to_seconds(40_000_000) == 4.0
    assert ticks_to_seconds(25_000) == 0.0025
    assert millis_to_seconds(1500) == 1.5
    assert nanos_to_seconds(10 * 10**9) == 10.0
    assert seconds_to_nanos(1_600_000_000) == 1_600_000_000 * 10**9
    assert seconds_to_nanos(1_600_000_000.5) == 1_600_000_000_500_000_000

"""Metrics batch: the container every scraper appends its metrics to."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from opentelemetry.sdk.metrics.export import (
    Gauge,
    Metric,
    MetricsData,
    ResourceMetrics,
    ScopeMetrics,
    Sum,
)
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.util.instrumentation import InstrumentationScope

from . import __version__

SCOPE_NAME = "hostmetrics"


@dataclass
class ResourceEntry:
    """Metrics sharing one resource.

    Host-wide scrapers use a single entry without attributes. The process
    scraper adds one entry per process, with the process descriptor kept in
    ``descriptor`` rather than on the data points.
    """

    resource: dict[str, str] = field(default_factory=dict)
    descriptor: Any = None
    metrics: list[Metric] = field(default_factory=list)


class MetricsBatch:
    """Ordered collection of metrics produced during one scrape cycle."""

    def __init__(self) -> None:
        self._entries: list[ResourceEntry] = []
        self._host_entry: ResourceEntry | None = None

    @property
    def entries(self) -> list[ResourceEntry]:
        return list(self._entries)

    @property
    def metrics(self) -> list[Metric]:
        return [metric for entry in self._entries for metric in entry.metrics]

    def __len__(self) -> int:
        return sum(len(entry.metrics) for entry in self._entries)

    def __bool__(self) -> bool:
        return len(self) > 0

    def append(self, metric: Metric) -> None:
        """Append a host-level metric."""
        if self._host_entry is None:
            self._host_entry = ResourceEntry()
            self._entries.append(self._host_entry)
        self._host_entry.metrics.append(metric)

    def add_resource(self, resource: dict[str, str], descriptor: Any = None) -> ResourceEntry:
        """Start a new resource entry and return it for appending."""
        entry = ResourceEntry(resource=dict(resource), descriptor=descriptor)
        self._entries.append(entry)
        return entry

    def extend(self, other: MetricsBatch) -> None:
        for entry in other.entries:
            if not entry.resource and entry.descriptor is None:
                for metric in entry.metrics:
                    self.append(metric)
            else:
                self._entries.append(entry)

    def find(self, name: str) -> Metric | None:
        """Return the first metric called *name*, if any."""
        for metric in self.metrics:
            if metric.name == name:
                return metric
        return None

    def to_metrics_data(self) -> MetricsData:
        """Convert to the OpenTelemetry SDK export representation."""
        scope = InstrumentationScope(SCOPE_NAME, __version__)
        return MetricsData(
            resource_metrics=[
                ResourceMetrics(
                    resource=Resource(dict(entry.resource)),
                    scope_metrics=[ScopeMetrics(scope=scope, metrics=list(entry.metrics), schema_url="")],
                    schema_url="",
                )
                for entry in self._entries
            ]
        )

    def to_dict(self) -> list[dict[str, Any]]:
        """Serialize the batch to plain dictionaries."""
        return [
            {
                "resource": dict(entry.resource),
                "metrics": [metric_to_dict(m) for m in entry.metrics],
            }
            for entry in self._entries
        ]


def metric_to_dict(metric: Metric) -> dict[str, Any]:
    data = metric.data
    if isinstance(data, Sum):
        kind = "sum"
    elif isinstance(data, Gauge):
        kind = "gauge"
    else:
        kind = type(data).__name__.lower()
    return {
        "name": metric.name,
        "description": metric.description,
        "unit": metric.unit,
        "type": kind,
        "monotonic": bool(getattr(data, "is_monotonic", False)),
        "data_points": [
            {
                "attributes": dict(point.attributes or {}),
                "start_time_unix_nano": point.start_time_unix_nano,
                "time_unix_nano": point.time_unix_nano,
                "value": point.value,
            }
            for point in data.data_points
        ],
    }

"""Metric catalog: the static schema of every metric the scrapers emit."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum

from opentelemetry.sdk.metrics.export import (
    AggregationTemporality,
    Gauge,
    Metric,
    NumberDataPoint,
    Sum,
)

# Attribute keys
ATTR_CPU = "cpu"
ATTR_STATE = "state"
ATTR_DEVICE = "device"
ATTR_DIRECTION = "direction"
ATTR_TYPE = "type"

# Attribute values
STATE_USER = "user"
STATE_SYSTEM = "system"
STATE_WAIT = "wait"
STATE_USED = "used"
STATE_FREE = "free"

DIRECTION_READ = "read"
DIRECTION_WRITE = "write"
DIRECTION_PAGE_IN = "page_in"
DIRECTION_PAGE_OUT = "page_out"

TYPE_MAJOR = "major"


class Shape(str, Enum):
    SUM = "sum"
    GAUGE = "gauge"


class ValueType(str, Enum):
    INT = "int"
    DOUBLE = "double"


@dataclass(frozen=True)
class MetricDefinition:
    """Immutable description of one metric.

    ``attributes`` lists every attribute key a data point of this metric may
    carry; points may use a subset (e.g. ``cpu`` is dropped for the
    system-wide aggregate) but never a key outside it.
    """

    name: str
    description: str
    unit: str
    shape: Shape
    value_type: ValueType
    monotonic: bool = False
    attributes: tuple[str, ...] = ()

    def data_point(
        self,
        start_time: int,
        now: int,
        value: int | float,
        attributes: Mapping[str, str] | None = None,
    ) -> NumberDataPoint:
        """Build one data point. Gauges carry no start timestamp."""
        attrs = dict(attributes or {})
        unknown = set(attrs) - set(self.attributes)
        if unknown:
            raise ValueError(f"{self.name}: undeclared attributes {sorted(unknown)}")
        value = int(value) if self.value_type is ValueType.INT else float(value)
        return NumberDataPoint(
            attributes=attrs,
            start_time_unix_nano=start_time if self.shape is Shape.SUM else 0,
            time_unix_nano=now,
            value=value,
        )

    def metric(self, data_points: Iterable[NumberDataPoint]) -> Metric:
        points = list(data_points)
        if self.shape is Shape.SUM:
            data = Sum(
                data_points=points,
                aggregation_temporality=AggregationTemporality.CUMULATIVE,
                is_monotonic=self.monotonic,
            )
        else:
            data = Gauge(data_points=points)
        return Metric(name=self.name, description=self.description, unit=self.unit, data=data)


def _cumulative(name: str, description: str, unit: str, value_type: ValueType, *attributes: str) -> MetricDefinition:
    return MetricDefinition(name, description, unit, Shape.SUM, value_type, True, attributes)


def _gauge(name: str, description: str, unit: str, value_type: ValueType, *attributes: str) -> MetricDefinition:
    return MetricDefinition(name, description, unit, Shape.GAUGE, value_type, False, attributes)


# CPU
SYSTEM_CPU_TIME = _cumulative(
    "system.cpu.time", "Total CPU seconds broken down by different states.", "s",
    ValueType.DOUBLE, ATTR_CPU, ATTR_STATE,
)

# Load
SYSTEM_CPU_LOAD_AVERAGE_1M = _gauge(
    "system.cpu.load_average.1m", "Average CPU Load over 1 minute.", "1", ValueType.DOUBLE,
)
SYSTEM_CPU_LOAD_AVERAGE_5M = _gauge(
    "system.cpu.load_average.5m", "Average CPU Load over 5 minutes.", "1", ValueType.DOUBLE,
)
SYSTEM_CPU_LOAD_AVERAGE_15M = _gauge(
    "system.cpu.load_average.15m", "Average CPU Load over 15 minutes.", "1", ValueType.DOUBLE,
)

# Disk
SYSTEM_DISK_IO = _cumulative(
    "system.disk.io", "Disk bytes transferred.", "By", ValueType.INT, ATTR_DEVICE, ATTR_DIRECTION,
)
SYSTEM_DISK_OPERATIONS = _cumulative(
    "system.disk.operations", "Disk operations count.", "{operations}",
    ValueType.INT, ATTR_DEVICE, ATTR_DIRECTION,
)
SYSTEM_DISK_IO_TIME = _cumulative(
    "system.disk.io_time", "Time disk spent activated.", "s", ValueType.DOUBLE, ATTR_DEVICE,
)
SYSTEM_DISK_OPERATION_TIME = _cumulative(
    "system.disk.operation_time", "Time spent in disk operations.", "s",
    ValueType.DOUBLE, ATTR_DEVICE, ATTR_DIRECTION,
)
SYSTEM_DISK_WEIGHTED_IO_TIME = _cumulative(
    "system.disk.weighted_io_time",
    "Time disk spent activated multiplied by the queue length.", "s",
    ValueType.DOUBLE, ATTR_DEVICE,
)
SYSTEM_DISK_MERGED = _cumulative(
    "system.disk.merged",
    "The number of disk reads merged into single physical disk access operations.",
    "{operations}", ValueType.INT, ATTR_DEVICE, ATTR_DIRECTION,
)
SYSTEM_DISK_PENDING_OPERATIONS = _gauge(
    "system.disk.pending_operations", "The queue size of pending I/O operations.",
    "{operations}", ValueType.INT, ATTR_DEVICE,
)

# Paging
SYSTEM_PAGING_USAGE = _gauge(
    "system.paging.usage", "Swap (unix) or pagefile (windows) usage.", "By",
    ValueType.INT, ATTR_DEVICE, ATTR_STATE,
)
SYSTEM_PAGING_OPERATIONS = _cumulative(
    "system.paging.operations", "The number of paging operations.", "{operations}",
    ValueType.INT, ATTR_DIRECTION, ATTR_TYPE,
)

# Process
PROCESS_CPU_TIME = _cumulative(
    "process.cpu.time", "Total CPU seconds broken down by different states.", "s",
    ValueType.DOUBLE, ATTR_STATE,
)
PROCESS_MEMORY_PHYSICAL_USAGE = _gauge(
    "process.memory.physical_usage", "The amount of physical memory in use.", "By", ValueType.INT,
)
PROCESS_MEMORY_VIRTUAL_USAGE = _gauge(
    "process.memory.virtual_usage", "Virtual memory size.", "By", ValueType.INT,
)
PROCESS_DISK_IO = _cumulative(
    "process.disk.io", "Disk bytes transferred.", "By", ValueType.INT, ATTR_DIRECTION,
)

CATALOG: dict[str, MetricDefinition] = {
    definition.name: definition
    for definition in (
        SYSTEM_CPU_TIME,
        SYSTEM_CPU_LOAD_AVERAGE_1M,
        SYSTEM_CPU_LOAD_AVERAGE_5M,
        SYSTEM_CPU_LOAD_AVERAGE_15M,
        SYSTEM_DISK_IO,
        SYSTEM_DISK_OPERATIONS,
        SYSTEM_DISK_IO_TIME,
        SYSTEM_DISK_OPERATION_TIME,
        SYSTEM_DISK_WEIGHTED_IO_TIME,
        SYSTEM_DISK_MERGED,
        SYSTEM_DISK_PENDING_OPERATIONS,
        SYSTEM_PAGING_USAGE,
        SYSTEM_PAGING_OPERATIONS,
        PROCESS_CPU_TIME,
        PROCESS_MEMORY_PHYSICAL_USAGE,
        PROCESS_MEMORY_VIRTUAL_USAGE,
        PROCESS_DISK_IO,
    )
}

"""Disk I/O scraper.

Two counter sources are supported. The direct source reads cumulative
per-device counters through psutil (plus ``/proc/diskstats`` for the queue
and weighted I/O time on Linux). The perf-counter source queries the
``LogicalDisk`` category of a :class:`PerfCounterBackend`, where latencies
and idle time come in 100-ns ticks.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import psutil
from opentelemetry.sdk.metrics.export import Metric, NumberDataPoint

from ..config import BACKEND_PERFCOUNTER, DiskScraperConfig, resolve_backend
from ..errors import PerfCounterError, ScrapeError, ScraperStartError
from ..filterset import DeviceFilter
from ..metadata import (
    ATTR_DEVICE,
    ATTR_DIRECTION,
    DIRECTION_READ,
    DIRECTION_WRITE,
    SYSTEM_DISK_IO,
    SYSTEM_DISK_IO_TIME,
    SYSTEM_DISK_MERGED,
    SYSTEM_DISK_OPERATION_TIME,
    SYSTEM_DISK_OPERATIONS,
    SYSTEM_DISK_PENDING_OPERATIONS,
    SYSTEM_DISK_WEIGHTED_IO_TIME,
    MetricDefinition,
)
from ..model import MetricsBatch
from ..perfcounters import (
    AVG_DISK_SECS_PER_READ,
    AVG_DISK_SECS_PER_WRITE,
    CURRENT_DISK_QUEUE_LENGTH,
    DISK_READ_BYTES_PER_SEC,
    DISK_READS_PER_SEC,
    DISK_WRITE_BYTES_PER_SEC,
    DISK_WRITES_PER_SEC,
    IDLE_TIME,
    LOGICAL_DISK,
    CounterValues,
    PerfCounterBackend,
    PsutilPerfCounterBackend,
)
from ..units import millis_to_seconds, nanos_to_seconds, now_unix_nano, ticks_to_seconds
from .base import BaseScraper, BootTimeSource, ScrapeContext, ScrapeResult

logger = logging.getLogger(__name__)

LOGICAL_DISK_COUNTERS = (
    DISK_READS_PER_SEC,
    DISK_WRITES_PER_SEC,
    DISK_READ_BYTES_PER_SEC,
    DISK_WRITE_BYTES_PER_SEC,
    IDLE_TIME,
    AVG_DISK_SECS_PER_READ,
    AVG_DISK_SECS_PER_WRITE,
    CURRENT_DISK_QUEUE_LENGTH,
)

DISKSTATS_PATH = Path("/proc/diskstats")


@dataclass(frozen=True)
class DiskCounters:
    """Cumulative counters of one device. Times are in milliseconds."""

    read_bytes: int = 0
    write_bytes: int = 0
    read_count: int = 0
    write_count: int = 0
    read_time: int = 0
    write_time: int = 0
    busy_time: int = 0
    read_merged_count: int = 0
    write_merged_count: int = 0
    weighted_io_time: int = 0
    pending_operations: int = 0


class DiskCounterSource(Protocol):
    def io_counters(self) -> dict[str, DiskCounters]:
        """Return cumulative counters keyed by device name."""


def parse_diskstats(text: str) -> dict[str, tuple[int, int]]:
    """Parse ``/proc/diskstats`` into ``{device: (in_flight, weighted_io_ms)}``."""
    stats: dict[str, tuple[int, int]] = {}
    for line in text.splitlines():
        fields = line.split()
        if len(fields) < 14:
            continue
        try:
            stats[fields[2]] = (int(fields[11]), int(fields[13]))
        except ValueError:
            continue
    return stats


class PsutilDiskSource:
    def __init__(self, diskstats_path: Path = DISKSTATS_PATH) -> None:
        self._diskstats_path = diskstats_path

    def _read_diskstats(self) -> dict[str, tuple[int, int]]:
        try:
            return parse_diskstats(self._diskstats_path.read_text(encoding="utf-8"))
        except OSError:
            return {}

    def io_counters(self) -> dict[str, DiskCounters]:
        counters = psutil.disk_io_counters(perdisk=True, nowrap=True) or {}
        extra = self._read_diskstats()
        result: dict[str, DiskCounters] = {}
        for device, io in counters.items():
            in_flight, weighted = extra.get(device, (0, 0))
            result[device] = DiskCounters(
                read_bytes=io.read_bytes,
                write_bytes=io.write_bytes,
                read_count=io.read_count,
                write_count=io.write_count,
                read_time=io.read_time,
                write_time=io.write_time,
                busy_time=getattr(io, "busy_time", 0),
                read_merged_count=getattr(io, "read_merged_count", 0),
                write_merged_count=getattr(io, "write_merged_count", 0),
                weighted_io_time=weighted,
                pending_operations=in_flight,
            )
        return result


def disk_active_time(start_time: int, now: int, idle_ticks: int) -> float:
    """Seconds a disk was active: wall time since *start_time* minus idle time.

    Clamped at zero when the idle counter exceeds the elapsed time, which
    happens after counter resets.
    """
    active = nanos_to_seconds(now - start_time) - ticks_to_seconds(idle_ticks)
    if active < 0:
        logger.debug("Disk idle time exceeds elapsed time by %.3fs, clamping to 0", -active)
        return 0.0
    return active


def _direction_points(
    definition: MetricDefinition,
    start_time: int,
    now: int,
    device: str,
    read: int | float,
    write: int | float,
) -> list[NumberDataPoint]:
    return [
        definition.data_point(start_time, now, read, {ATTR_DEVICE: device, ATTR_DIRECTION: DIRECTION_READ}),
        definition.data_point(start_time, now, write, {ATTR_DEVICE: device, ATTR_DIRECTION: DIRECTION_WRITE}),
    ]


# -- direct source -----------------------------------------------------------


def build_disk_io_metric(start_time: int, now: int, counters: Mapping[str, DiskCounters]) -> Metric:
    points: list[NumberDataPoint] = []
    for device, io in counters.items():
        points.extend(_direction_points(SYSTEM_DISK_IO, start_time, now, device, io.read_bytes, io.write_bytes))
    return SYSTEM_DISK_IO.metric(points)


def build_disk_operations_metric(start_time: int, now: int, counters: Mapping[str, DiskCounters]) -> Metric:
    points: list[NumberDataPoint] = []
    for device, io in counters.items():
        points.extend(
            _direction_points(SYSTEM_DISK_OPERATIONS, start_time, now, device, io.read_count, io.write_count)
        )
    return SYSTEM_DISK_OPERATIONS.metric(points)


def build_disk_io_time_metric(start_time: int, now: int, counters: Mapping[str, DiskCounters]) -> Metric:
    return SYSTEM_DISK_IO_TIME.metric(
        SYSTEM_DISK_IO_TIME.data_point(start_time, now, millis_to_seconds(io.busy_time), {ATTR_DEVICE: device})
        for device, io in counters.items()
    )


def build_disk_operation_time_metric(start_time: int, now: int, counters: Mapping[str, DiskCounters]) -> Metric:
    points: list[NumberDataPoint] = []
    for device, io in counters.items():
        points.extend(
            _direction_points(
                SYSTEM_DISK_OPERATION_TIME,
                start_time,
                now,
                device,
                millis_to_seconds(io.read_time),
                millis_to_seconds(io.write_time),
            )
        )
    return SYSTEM_DISK_OPERATION_TIME.metric(points)


def build_disk_weighted_io_time_metric(start_time: int, now: int, counters: Mapping[str, DiskCounters]) -> Metric:
    return SYSTEM_DISK_WEIGHTED_IO_TIME.metric(
        SYSTEM_DISK_WEIGHTED_IO_TIME.data_point(
            start_time, now, millis_to_seconds(io.weighted_io_time), {ATTR_DEVICE: device}
        )
        for device, io in counters.items()
    )


def build_disk_merged_metric(start_time: int, now: int, counters: Mapping[str, DiskCounters]) -> Metric:
    points: list[NumberDataPoint] = []
    for device, io in counters.items():
        points.extend(
            _direction_points(
                SYSTEM_DISK_MERGED, start_time, now, device, io.read_merged_count, io.write_merged_count
            )
        )
    return SYSTEM_DISK_MERGED.metric(points)


def build_disk_pending_operations_metric(now: int, counters: Mapping[str, DiskCounters]) -> Metric:
    return SYSTEM_DISK_PENDING_OPERATIONS.metric(
        SYSTEM_DISK_PENDING_OPERATIONS.data_point(0, now, io.pending_operations, {ATTR_DEVICE: device})
        for device, io in counters.items()
    )


# -- perf-counter source -----------------------------------------------------


def build_perf_disk_io_metric(start_time: int, now: int, values: Sequence[CounterValues]) -> Metric:
    points: list[NumberDataPoint] = []
    for disk in values:
        points.extend(
            _direction_points(
                SYSTEM_DISK_IO,
                start_time,
                now,
                disk.instance_name,
                disk.values[DISK_READ_BYTES_PER_SEC],
                disk.values[DISK_WRITE_BYTES_PER_SEC],
            )
        )
    return SYSTEM_DISK_IO.metric(points)


def build_perf_disk_operations_metric(start_time: int, now: int, values: Sequence[CounterValues]) -> Metric:
    points: list[NumberDataPoint] = []
    for disk in values:
        points.extend(
            _direction_points(
                SYSTEM_DISK_OPERATIONS,
                start_time,
                now,
                disk.instance_name,
                disk.values[DISK_READS_PER_SEC],
                disk.values[DISK_WRITES_PER_SEC],
            )
        )
    return SYSTEM_DISK_OPERATIONS.metric(points)


def build_perf_disk_io_time_metric(start_time: int, now: int, values: Sequence[CounterValues]) -> Metric:
    return SYSTEM_DISK_IO_TIME.metric(
        SYSTEM_DISK_IO_TIME.data_point(
            start_time,
            now,
            disk_active_time(start_time, now, disk.values[IDLE_TIME]),
            {ATTR_DEVICE: disk.instance_name},
        )
        for disk in values
    )


def build_perf_disk_operation_time_metric(start_time: int, now: int, values: Sequence[CounterValues]) -> Metric:
    points: list[NumberDataPoint] = []
    for disk in values:
        points.extend(
            _direction_points(
                SYSTEM_DISK_OPERATION_TIME,
                start_time,
                now,
                disk.instance_name,
                ticks_to_seconds(disk.values[AVG_DISK_SECS_PER_READ]),
                ticks_to_seconds(disk.values[AVG_DISK_SECS_PER_WRITE]),
            )
        )
    return SYSTEM_DISK_OPERATION_TIME.metric(points)


def build_perf_disk_pending_operations_metric(now: int, values: Sequence[CounterValues]) -> Metric:
    return SYSTEM_DISK_PENDING_OPERATIONS.metric(
        SYSTEM_DISK_PENDING_OPERATIONS.data_point(
            0, now, disk.values[CURRENT_DISK_QUEUE_LENGTH], {ATTR_DEVICE: disk.instance_name}
        )
        for disk in values
    )


class DiskScraper(BaseScraper):
    """Scrapes per-device disk I/O metrics.

    The counter source is picked from ``config.backend`` unless one is
    passed explicitly.
    """

    def __init__(
        self,
        config: DiskScraperConfig | None = None,
        *,
        source: DiskCounterSource | None = None,
        backend: PerfCounterBackend | None = None,
        boot_time_source: BootTimeSource | None = None,
    ) -> None:
        super().__init__(boot_time_source=boot_time_source)
        self._config = config or DiskScraperConfig()
        self._filter = DeviceFilter.from_config(self._config.include, self._config.exclude)

        self._source: DiskCounterSource | None = None
        self._backend: PerfCounterBackend | None = None
        if backend is not None:
            self._backend = backend
        elif source is not None:
            self._source = source
        elif resolve_backend(self._config.backend) == BACKEND_PERFCOUNTER:
            self._backend = PsutilPerfCounterBackend()
        else:
            self._source = PsutilDiskSource()

    @property
    def name(self) -> str:
        return "disk"

    @property
    def uses_perfcounters(self) -> bool:
        return self._backend is not None

    def _on_start(self) -> None:
        if self._backend is None:
            return
        try:
            self._backend.initialize(LOGICAL_DISK)
        except PerfCounterError as exc:
            raise ScraperStartError(f"disk: {exc}") from exc

    def _scrape(self, context: ScrapeContext) -> ScrapeResult:
        if self._backend is not None:
            return self._scrape_perfcounters()
        return self._scrape_direct()

    def _scrape_direct(self) -> ScrapeResult:
        batch = MetricsBatch()
        now = now_unix_nano()
        assert self._source is not None
        try:
            io_counters = self._source.io_counters()
        except (OSError, psutil.Error, RuntimeError) as exc:
            return ScrapeResult(batch, ScrapeError(f"failed to read disk io counters: {exc}"))

        devices = self._filter.apply(io_counters)
        counters = {device: io_counters[device] for device in devices}
        if counters:
            start_time = self._start_time
            batch.append(build_disk_io_metric(start_time, now, counters))
            batch.append(build_disk_operations_metric(start_time, now, counters))
            batch.append(build_disk_io_time_metric(start_time, now, counters))
            batch.append(build_disk_operation_time_metric(start_time, now, counters))
            batch.append(build_disk_weighted_io_time_metric(start_time, now, counters))
            batch.append(build_disk_merged_metric(start_time, now, counters))
            batch.append(build_disk_pending_operations_metric(now, counters))
        return ScrapeResult(batch)

    def _scrape_perfcounters(self) -> ScrapeResult:
        batch = MetricsBatch()
        now = now_unix_nano()
        assert self._backend is not None
        try:
            counters = self._backend.scrape()
            logical_disk = counters.get_object(LOGICAL_DISK)
            logical_disk.filter(self._filter.include, self._filter.exclude, exclude_total=False)
            values = logical_disk.get_values(*LOGICAL_DISK_COUNTERS)
        except PerfCounterError as exc:
            return ScrapeResult(batch, ScrapeError(f"failed to read {LOGICAL_DISK} counters: {exc}"))

        if values:
            start_time = self._start_time
            batch.append(build_perf_disk_io_metric(start_time, now, values))
            batch.append(build_perf_disk_operations_metric(start_time, now, values))
            batch.append(build_perf_disk_io_time_metric(start_time, now, values))
            batch.append(build_perf_disk_operation_time_metric(start_time, now, values))
            batch.append(build_perf_disk_pending_operations_metric(now, values))
        return ScrapeResult(batch)

    def shutdown(self) -> None:
        if self._backend is not None:
            self._backend.close()

"""Performance-counter backend.

A stateful counter source modelled on Windows performance counters: a
backend is initialized once per counter category (object), then re-queried
every scrape. Values come back per instance, and the ``_Total`` pseudo
instance aggregates all others.
"""

from __future__ import annotations

import abc
import logging
import mmap
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

import psutil

from .errors import PerfCounterError
from .filterset import FilterSet

logger = logging.getLogger(__name__)

TOTAL_INSTANCE = "_Total"

LOGICAL_DISK = "LogicalDisk"
MEMORY = "Memory"

DISK_READS_PER_SEC = "Disk Reads/sec"
DISK_WRITES_PER_SEC = "Disk Writes/sec"
DISK_READ_BYTES_PER_SEC = "Disk Read Bytes/sec"
DISK_WRITE_BYTES_PER_SEC = "Disk Write Bytes/sec"
IDLE_TIME = "% Idle Time"
AVG_DISK_SECS_PER_READ = "Avg. Disk sec/Read"
AVG_DISK_SECS_PER_WRITE = "Avg. Disk sec/Write"
CURRENT_DISK_QUEUE_LENGTH = "Current Disk Queue Length"

PAGE_READS_PER_SEC = "Page Reads/sec"
PAGE_WRITES_PER_SEC = "Page Writes/sec"


@dataclass
class CounterValues:
    """Requested counter values for one instance."""

    instance_name: str
    values: dict[str, int] = field(default_factory=dict)


class PerfCounterObject:
    """The result set of one counter category."""

    def __init__(
        self,
        name: str,
        counter_names: Iterable[str],
        instances: dict[str, dict[str, int]],
    ) -> None:
        self.name = name
        self._counter_names = tuple(counter_names)
        self._instances = dict(instances)

    @property
    def counter_names(self) -> tuple[str, ...]:
        return self._counter_names

    @property
    def instance_names(self) -> list[str]:
        return list(self._instances)

    def filter(
        self,
        include: FilterSet | None,
        exclude: FilterSet | None,
        exclude_total: bool,
    ) -> None:
        """Drop instances in place.

        An instance survives iff include is unset or matches it, exclude is
        unset or does not match it, and it is not ``_Total`` while
        *exclude_total* is set.
        """
        if include is None and exclude is None and not exclude_total:
            return
        kept: dict[str, dict[str, int]] = {}
        for instance, values in self._instances.items():
            if exclude_total and instance == TOTAL_INSTANCE:
                continue
            if include is not None and not include.matches(instance):
                continue
            if exclude is not None and exclude.matches(instance):
                continue
            kept[instance] = values
        self._instances = kept

    def get_values(self, *names: str) -> list[CounterValues]:
        """Extract *names* for every instance, in instance order.

        Raises:
            PerfCounterError: a name is not part of this category.
        """
        missing = [n for n in names if n not in self._counter_names]
        if missing:
            raise PerfCounterError(f"counter(s) {missing} not found in object {self.name!r}")
        return [
            CounterValues(instance, {n: int(values.get(n, 0)) for n in names})
            for instance, values in self._instances.items()
        ]


class PerfCounterResult:
    """All categories returned by one :meth:`PerfCounterBackend.scrape` call."""

    def __init__(self, objects: dict[str, PerfCounterObject]) -> None:
        self._objects = dict(objects)

    def get_object(self, name: str) -> PerfCounterObject:
        try:
            return self._objects[name]
        except KeyError:
            raise PerfCounterError(f"counter object {name!r} not found") from None


class PerfCounterBackend(abc.ABC):
    """Stateful performance-counter query handle.

    Not safe for concurrent use; each scraper owns its own backend.
    """

    @abc.abstractmethod
    def initialize(self, category: str) -> None:
        """Open the query for *category*. Call once before :meth:`scrape`."""

    @abc.abstractmethod
    def scrape(self) -> PerfCounterResult:
        """Re-query every initialized category."""

    def close(self) -> None:
        """Release the query handle."""


_CategoryReader = Callable[[], PerfCounterObject]


def logical_disk_values(io: Any, uptime_ms: int) -> dict[str, int]:
    """Map one psutil disk counter tuple to ``LogicalDisk`` counter values.

    psutil reports no ``busy_time`` on Windows; there the busy time is estimated
    as ``read_time + write_time``, capped at the uptime.
    """
    busy_ms = getattr(io, "busy_time", None)
    if busy_ms is None:
        busy_ms = min(io.read_time + io.write_time, uptime_ms)
    return {
        DISK_READS_PER_SEC: io.read_count,
        DISK_WRITES_PER_SEC: io.write_count,
        DISK_READ_BYTES_PER_SEC: io.read_bytes,
        DISK_WRITE_BYTES_PER_SEC: io.write_bytes,
        IDLE_TIME: max(uptime_ms - busy_ms, 0) * 10_000,
        AVG_DISK_SECS_PER_READ: io.read_time * 10_000 // io.read_count if io.read_count else 0,
        AVG_DISK_SECS_PER_WRITE: io.write_time * 10_000 // io.write_count if io.write_count else 0,
        CURRENT_DISK_QUEUE_LENGTH: 0,
    }


class PsutilPerfCounterBackend(PerfCounterBackend):
    """Performance-counter backend materialised from psutil.

    Exposes the ``LogicalDisk`` and ``Memory`` categories with their raw
    cumulative values in perf-counter units: operation and byte counts,
    ``% Idle Time`` and average latencies in 100-ns ticks. psutil does not
    report the current queue length, so ``Current Disk Queue Length`` is 0.
    """

    def __init__(self) -> None:
        self._readers: dict[str, _CategoryReader] = {
            LOGICAL_DISK: self._logical_disk,
            MEMORY: self._memory,
        }
        self._categories: list[str] = []

    def initialize(self, category: str) -> None:
        if category not in self._readers:
            raise PerfCounterError(f"counter object {category!r} does not exist")
        if category in self._categories:
            return
        # probe once so an unavailable counter subsystem fails here, not mid-scrape
        try:
            self._readers[category]()
        except (OSError, psutil.Error, RuntimeError) as exc:
            raise PerfCounterError(f"failed to initialize {category!r}: {exc}") from exc
        self._categories.append(category)
        logger.debug("Initialized perf counter category %s", category)

    def scrape(self) -> PerfCounterResult:
        if not self._categories:
            raise PerfCounterError("perf counter query has not been initialized")
        objects: dict[str, PerfCounterObject] = {}
        for category in self._categories:
            try:
                objects[category] = self._readers[category]()
            except (OSError, psutil.Error, RuntimeError) as exc:
                raise PerfCounterError(f"failed to query {category!r}: {exc}") from exc
        return PerfCounterResult(objects)

    def close(self) -> None:
        self._categories.clear()

    @staticmethod
    def _logical_disk() -> PerfCounterObject:
        counters = psutil.disk_io_counters(perdisk=True, nowrap=True) or {}
        uptime_ms = max(int((time.time() - psutil.boot_time()) * 1000), 0)

        instances = {device: logical_disk_values(io, uptime_ms) for device, io in counters.items()}
        if instances:
            total: dict[str, int] = {}
            for name in _LOGICAL_DISK_COUNTERS:
                column = [values[name] for values in instances.values()]
                if name in _AVERAGED_COUNTERS:
                    total[name] = sum(column) // len(column)
                else:
                    total[name] = sum(column)
            instances[TOTAL_INSTANCE] = total
        return PerfCounterObject(LOGICAL_DISK, _LOGICAL_DISK_COUNTERS, instances)

    @staticmethod
    def _memory() -> PerfCounterObject:
        swap = psutil.swap_memory()
        values = {
            PAGE_READS_PER_SEC: swap.sin // mmap.PAGESIZE,
            PAGE_WRITES_PER_SEC: swap.sout // mmap.PAGESIZE,
        }
        return PerfCounterObject(MEMORY, _MEMORY_COUNTERS, {"": values})


_LOGICAL_DISK_COUNTERS = (
    DISK_READS_PER_SEC,
    DISK_WRITES_PER_SEC,
    DISK_READ_BYTES_PER_SEC,
    DISK_WRITE_BYTES_PER_SEC,
    IDLE_TIME,
    AVG_DISK_SECS_PER_READ,
    AVG_DISK_SECS_PER_WRITE,
    CURRENT_DISK_QUEUE_LENGTH,
)
_AVERAGED_COUNTERS = frozenset({IDLE_TIME, AVG_DISK_SECS_PER_READ, AVG_DISK_SECS_PER_WRITE})
_MEMORY_COUNTERS = (PAGE_READS_PER_SEC, PAGE_WRITES_PER_SEC)

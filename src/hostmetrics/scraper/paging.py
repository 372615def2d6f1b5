"""Paging (swap / page file) scraper."""

from __future__ import annotations

import mmap
from collections.abc import Sequence
from pathlib import Path
from typing import NamedTuple, Protocol

import psutil
from opentelemetry.sdk.metrics.export import Metric

from ..config import BACKEND_PERFCOUNTER, PagingScraperConfig, resolve_backend
from ..errors import PerfCounterError, ScrapeError, ScrapeErrors, ScraperStartError
from ..metadata import (
    ATTR_DEVICE,
    ATTR_DIRECTION,
    ATTR_STATE,
    ATTR_TYPE,
    DIRECTION_PAGE_IN,
    DIRECTION_PAGE_OUT,
    STATE_FREE,
    STATE_USED,
    SYSTEM_PAGING_OPERATIONS,
    SYSTEM_PAGING_USAGE,
    TYPE_MAJOR,
)
from ..model import MetricsBatch
from ..perfcounters import (
    MEMORY,
    PAGE_READS_PER_SEC,
    PAGE_WRITES_PER_SEC,
    PerfCounterBackend,
    PsutilPerfCounterBackend,
)
from ..units import now_unix_nano
from .base import BaseScraper, BootTimeSource, ScrapeContext, ScrapeResult

PAGING_USAGE_METRICS_LEN = 1
PAGING_OPERATIONS_METRICS_LEN = 1

SWAPS_PATH = Path("/proc/swaps")


class PageFileStats(NamedTuple):
    device_name: str
    used_bytes: int
    free_bytes: int


class PageOperations(NamedTuple):
    """Cumulative number of pages swapped in and out."""

    page_in: int
    page_out: int


class PagingSource(Protocol):
    def page_file_stats(self) -> list[PageFileStats]:
        """Usage of each swap device or page file."""

    def page_operations(self) -> PageOperations:
        """Cumulative page-in/page-out counts."""


def parse_swaps(text: str) -> list[PageFileStats]:
    """Parse ``/proc/swaps``; sizes there are in KiB."""
    stats: list[PageFileStats] = []
    for line in text.splitlines()[1:]:
        fields = line.split()
        if len(fields) < 4:
            continue
        try:
            size_kib = int(fields[2])
            used_kib = int(fields[3])
        except ValueError:
            continue
        stats.append(PageFileStats(fields[0], used_kib * 1024, (size_kib - used_kib) * 1024))
    return stats


class PsutilPagingSource:
    def __init__(self, swaps_path: Path = SWAPS_PATH) -> None:
        self._swaps_path = swaps_path

    def page_file_stats(self) -> list[PageFileStats]:
        if self._swaps_path.exists():
            return parse_swaps(self._swaps_path.read_text(encoding="utf-8"))
        swap = psutil.swap_memory()
        if not swap.total:
            return []
        return [PageFileStats("swap", swap.used, swap.free)]

    def page_operations(self) -> PageOperations:
        swap = psutil.swap_memory()
        return PageOperations(swap.sin // mmap.PAGESIZE, swap.sout // mmap.PAGESIZE)


def build_paging_usage_metric(now: int, page_files: Sequence[PageFileStats]) -> Metric:
    points = []
    for page_file in page_files:
        points.append(
            SYSTEM_PAGING_USAGE.data_point(
                0, now, page_file.used_bytes, {ATTR_DEVICE: page_file.device_name, ATTR_STATE: STATE_USED}
            )
        )
        points.append(
            SYSTEM_PAGING_USAGE.data_point(
                0, now, page_file.free_bytes, {ATTR_DEVICE: page_file.device_name, ATTR_STATE: STATE_FREE}
            )
        )
    return SYSTEM_PAGING_USAGE.metric(points)


def build_paging_operations_metric(start_time: int, now: int, operations: PageOperations) -> Metric:
    return SYSTEM_PAGING_OPERATIONS.metric(
        [
            SYSTEM_PAGING_OPERATIONS.data_point(
                start_time, now, operations.page_in, {ATTR_TYPE: TYPE_MAJOR, ATTR_DIRECTION: DIRECTION_PAGE_IN}
            ),
            SYSTEM_PAGING_OPERATIONS.data_point(
                start_time, now, operations.page_out, {ATTR_TYPE: TYPE_MAJOR, ATTR_DIRECTION: DIRECTION_PAGE_OUT}
            ),
        ]
    )


class PagingScraper(BaseScraper):
    """Scrapes swap usage and paging operations.

    Usage always comes from the paging source. Operations come from the
    ``Memory`` perf-counter category when a backend is in use, otherwise
    from the paging source too. The two groups fail independently.
    """

    def __init__(
        self,
        config: PagingScraperConfig | None = None,
        *,
        source: PagingSource | None = None,
        backend: PerfCounterBackend | None = None,
        boot_time_source: BootTimeSource | None = None,
    ) -> None:
        super().__init__(boot_time_source=boot_time_source)
        self._config = config or PagingScraperConfig()
        self._source = source or PsutilPagingSource()
        self._backend = backend
        if backend is None and source is None and resolve_backend(self._config.backend) == BACKEND_PERFCOUNTER:
            self._backend = PsutilPerfCounterBackend()

    @property
    def name(self) -> str:
        return "paging"

    def _on_start(self) -> None:
        if self._backend is None:
            return
        try:
            self._backend.initialize(MEMORY)
        except PerfCounterError as exc:
            raise ScraperStartError(f"paging: {exc}") from exc

    def _scrape(self, context: ScrapeContext) -> ScrapeResult:
        batch = MetricsBatch()
        errors = ScrapeErrors()

        try:
            self._scrape_usage(batch)
        except (OSError, psutil.Error, RuntimeError) as exc:
            errors.add_partial(PAGING_USAGE_METRICS_LEN, exc)

        if context.cancelled():
            errors.add_partial(PAGING_OPERATIONS_METRICS_LEN, ScrapeError("paging scrape cancelled"))
            return ScrapeResult(batch, errors.combine())

        try:
            self._scrape_operations(batch)
        except (OSError, psutil.Error, RuntimeError, PerfCounterError) as exc:
            errors.add_partial(PAGING_OPERATIONS_METRICS_LEN, exc)

        return ScrapeResult(batch, errors.combine())

    def _scrape_usage(self, batch: MetricsBatch) -> None:
        now = now_unix_nano()
        page_files = self._source.page_file_stats()
        batch.append(build_paging_usage_metric(now, page_files))

    def _scrape_operations(self, batch: MetricsBatch) -> None:
        now = now_unix_nano()
        if self._backend is None:
            operations = self._source.page_operations()
        else:
            counters = self._backend.scrape()
            memory = counters.get_object(MEMORY)
            values = memory.get_values(PAGE_READS_PER_SEC, PAGE_WRITES_PER_SEC)
            if not values:
                return
            operations = PageOperations(values[0].values[PAGE_READS_PER_SEC], values[0].values[PAGE_WRITES_PER_SEC])
        batch.append(build_paging_operations_metric(self._start_time, now, operations))

    def shutdown(self) -> None:
        if self._backend is not None:
            self._backend.close()

"""CPU time scraper."""

from __future__ import annotations

from collections.abc import Sequence
from typing import NamedTuple, Protocol

import psutil
from opentelemetry.sdk.metrics.export import Metric, NumberDataPoint

from ..config import CpuScraperConfig
from ..errors import ScrapeError
from ..metadata import (
    ATTR_CPU,
    ATTR_STATE,
    STATE_SYSTEM,
    STATE_USER,
    STATE_WAIT,
    SYSTEM_CPU_TIME,
)
from ..model import MetricsBatch
from ..units import now_unix_nano
from .base import BaseScraper, BootTimeSource, ScrapeContext, ScrapeResult

CPU_TOTAL = "cpu-total"


class CpuTimes(NamedTuple):
    """Seconds one CPU (or the aggregate) spent in each state since boot."""

    cpu: str
    user: float
    system: float
    iowait: float = 0.0


class CpuTimesSource(Protocol):
    def times(self, percpu: bool) -> list[CpuTimes]:
        """Return CPU times per CPU, or a single ``cpu-total`` entry."""


class PsutilCpuTimesSource:
    def times(self, percpu: bool) -> list[CpuTimes]:
        if percpu:
            return [
                CpuTimes(f"cpu{idx}", t.user, t.system, getattr(t, "iowait", 0.0))
                for idx, t in enumerate(psutil.cpu_times(percpu=True))
            ]
        t = psutil.cpu_times(percpu=False)
        return [CpuTimes(CPU_TOTAL, t.user, t.system, getattr(t, "iowait", 0.0))]


def cpu_time_points(start_time: int, now: int, cpu_time: CpuTimes) -> list[NumberDataPoint]:
    """One data point per state; the ``cpu`` attribute is left off for the aggregate."""
    points: list[NumberDataPoint] = []
    for state, value in (
        (STATE_USER, cpu_time.user),
        (STATE_SYSTEM, cpu_time.system),
        (STATE_WAIT, cpu_time.iowait),
    ):
        if cpu_time.cpu == CPU_TOTAL:
            attributes = {ATTR_STATE: state}
        else:
            attributes = {ATTR_CPU: cpu_time.cpu, ATTR_STATE: state}
        points.append(SYSTEM_CPU_TIME.data_point(start_time, now, value, attributes))
    return points


def build_cpu_time_metric(start_time: int, now: int, cpu_times: Sequence[CpuTimes]) -> Metric:
    points: list[NumberDataPoint] = []
    for cpu_time in cpu_times:
        points.extend(cpu_time_points(start_time, now, cpu_time))
    return SYSTEM_CPU_TIME.metric(points)


class CpuScraper(BaseScraper):
    """Scrapes ``system.cpu.time`` per CPU or for the whole system."""

    def __init__(
        self,
        config: CpuScraperConfig | None = None,
        *,
        source: CpuTimesSource | None = None,
        boot_time_source: BootTimeSource | None = None,
    ) -> None:
        super().__init__(boot_time_source=boot_time_source)
        self._config = config or CpuScraperConfig()
        self._source = source or PsutilCpuTimesSource()

    @property
    def name(self) -> str:
        return "cpu"

    def _scrape(self, context: ScrapeContext) -> ScrapeResult:
        batch = MetricsBatch()
        now = now_unix_nano()
        try:
            cpu_times = self._source.times(self._config.per_cpu)
        except (OSError, psutil.Error, RuntimeError) as exc:
            return ScrapeResult(batch, ScrapeError(f"failed to read cpu times: {exc}"))

        batch.append(build_cpu_time_metric(self._start_time, now, cpu_times))
        return ScrapeResult(batch)

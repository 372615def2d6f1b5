"""Load average scraper."""

from __future__ import annotations

from typing import NamedTuple, Protocol

import psutil

from ..config import LoadScraperConfig
from ..errors import ScrapeError, ScraperStartError
from ..metadata import (
    SYSTEM_CPU_LOAD_AVERAGE_1M,
    SYSTEM_CPU_LOAD_AVERAGE_5M,
    SYSTEM_CPU_LOAD_AVERAGE_15M,
)
from ..model import MetricsBatch
from ..units import now_unix_nano
from .base import BaseScraper, BootTimeSource, ScrapeContext, ScrapeResult


class LoadAverage(NamedTuple):
    load1: float
    load5: float
    load15: float


class LoadSource(Protocol):
    def start_sampling(self) -> None: ...

    def load_average(self) -> LoadAverage: ...

    def cpu_count(self) -> int: ...


class PsutilLoadSource:
    """psutil load averages.

    On Windows psutil emulates the load average with a background sampler
    that starts on the first call, so :meth:`start_sampling` primes it.
    """

    def start_sampling(self) -> None:
        psutil.getloadavg()

    def load_average(self) -> LoadAverage:
        return LoadAverage(*psutil.getloadavg())

    def cpu_count(self) -> int:
        return psutil.cpu_count(logical=True) or 1


class LoadScraper(BaseScraper):
    """Scrapes the 1, 5 and 15 minute load averages.

    With ``cpu_average`` set the values are divided by the logical CPU count.
    """

    def __init__(
        self,
        config: LoadScraperConfig | None = None,
        *,
        source: LoadSource | None = None,
        boot_time_source: BootTimeSource | None = None,
    ) -> None:
        super().__init__(boot_time_source=boot_time_source)
        self._config = config or LoadScraperConfig()
        self._source = source or PsutilLoadSource()

    @property
    def name(self) -> str:
        return "load"

    def _on_start(self) -> None:
        try:
            self._source.start_sampling()
        except (OSError, psutil.Error, RuntimeError) as exc:
            raise ScraperStartError(f"load: failed to start sampling: {exc}") from exc

    def _scrape(self, context: ScrapeContext) -> ScrapeResult:
        batch = MetricsBatch()
        now = now_unix_nano()
        try:
            avg = self._source.load_average()
            divisor = self._source.cpu_count() if self._config.cpu_average else 1
        except (OSError, psutil.Error, RuntimeError) as exc:
            return ScrapeResult(batch, ScrapeError(f"failed to read load average: {exc}"))

        for definition, value in (
            (SYSTEM_CPU_LOAD_AVERAGE_1M, avg.load1),
            (SYSTEM_CPU_LOAD_AVERAGE_5M, avg.load5),
            (SYSTEM_CPU_LOAD_AVERAGE_15M, avg.load15),
        ):
            batch.append(definition.metric([definition.data_point(0, now, value / divisor)]))
        return ScrapeResult(batch)

"""Base interface shared by all resource-domain scrapers."""

from __future__ import annotations

import abc
import logging
import threading
from dataclasses import dataclass, field
from typing import Protocol

import psutil

from ..errors import PartialScrapeError, ScrapeError, ScraperStartError
from ..model import MetricsBatch
from ..units import seconds_to_nanos

logger = logging.getLogger(__name__)


class BootTimeSource(Protocol):
    def boot_time(self) -> float:
        """Return the system boot time in epoch seconds."""


class PsutilBootTimeSource:
    def boot_time(self) -> float:
        return psutil.boot_time()


@dataclass
class ScrapeContext:
    """Per-call context handed to :meth:`BaseScraper.scrape`.

    Carries a cancellation event; scrapers check it between reads that can
    be skipped, a read already in progress always runs to completion.
    """

    cancel_event: threading.Event = field(default_factory=threading.Event)

    def cancel(self) -> None:
        self.cancel_event.set()

    def cancelled(self) -> bool:
        return self.cancel_event.is_set()


@dataclass
class ScrapeResult:
    """Outcome of one scrape: whatever was collected plus an optional error."""

    batch: MetricsBatch = field(default_factory=MetricsBatch)
    error: ScrapeError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def partial(self) -> bool:
        return isinstance(self.error, PartialScrapeError)


class BaseScraper(abc.ABC):
    """Abstract base class for resource-domain scrapers.

    Lifecycle: construct once, :meth:`start` once, then :meth:`scrape` once
    per collection interval. Scrapes of one instance must not overlap.
    """

    def __init__(self, *, boot_time_source: BootTimeSource | None = None) -> None:
        self._boot_time_source = boot_time_source or PsutilBootTimeSource()
        self._start_time: int | None = None

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Scraper name used in configuration and logs."""

    @property
    def start_time(self) -> int | None:
        """Boot time in unix nanoseconds, the start timestamp of cumulative metrics."""
        return self._start_time

    @property
    def started(self) -> bool:
        return self._start_time is not None

    def start(self, context: ScrapeContext | None = None) -> None:
        """Capture the boot-time baseline and open any counter queries.

        Raises:
            ScraperStartError: the scraper is unusable.
        """
        try:
            boot_time = self._boot_time_source.boot_time()
        except (OSError, psutil.Error, RuntimeError) as exc:
            raise ScraperStartError(f"{self.name}: failed to read boot time: {exc}") from exc
        start_time = seconds_to_nanos(boot_time)
        self._on_start()
        self._start_time = start_time
        logger.debug("Scraper %s started (start_time=%d)", self.name, self._start_time)

    def _on_start(self) -> None:
        """Hook for subclasses that must initialize a counter backend.

        Raise :class:`ScraperStartError` on failure.
        """

    def scrape(self, context: ScrapeContext | None = None) -> ScrapeResult:
        """Collect one batch of metrics."""
        if self._start_time is None:
            raise RuntimeError(f"scraper {self.name!r} scraped before start()")
        context = context or ScrapeContext()
        if context.cancelled():
            return ScrapeResult(error=ScrapeError(f"{self.name}: scrape cancelled"))
        return self._scrape(context)

    @abc.abstractmethod
    def _scrape(self, context: ScrapeContext) -> ScrapeResult:
        """Domain-specific scrape. Must not raise on OS read failures."""

    def shutdown(self) -> None:
        """Release counter handles."""

    def __repr__(self) -> str:
        status = "started" if self.started else "unstarted"
        return f"{self.__class__.__name__}({status})"

"""Scraper manager that drives all scrapers on an interval."""

from __future__ import annotations

import logging
import threading
from typing import Callable

from ..config import HostMetricsConfig
from ..errors import PartialScrapeError, ScraperStartError
from ..model import MetricsBatch
from . import create_scrapers
from .base import BaseScraper, ScrapeContext

logger = logging.getLogger(__name__)


class ScraperManager:
    """Starts scrapers once and scrapes them serially on an interval.

    This class is designed to be reusable: instantiate it with a
    :class:`HostMetricsConfig`, register one or more sinks via
    :meth:`add_sink`, then call :meth:`start` / :meth:`stop`.

    A scraper whose :meth:`~BaseScraper.start` fails is disabled for the
    lifetime of the manager; scrape errors are logged and collection goes on.
    """

    def __init__(self, config: HostMetricsConfig, scrapers: list[BaseScraper] | None = None) -> None:
        self._config = config
        self._scrapers = scrapers if scrapers is not None else create_scrapers(config)
        self._active: list[BaseScraper] = []
        self._scrapers_started = False
        self._sinks: list[Callable[[MetricsBatch], None]] = []
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()

    @property
    def scrapers(self) -> list[BaseScraper]:
        return list(self._scrapers)

    @property
    def active_scrapers(self) -> list[BaseScraper]:
        return list(self._active)

    def add_sink(self, sink: Callable[[MetricsBatch], None]) -> None:
        """Register a callback to receive each cycle's batch."""
        self._sinks.append(sink)

    def start_scrapers(self) -> None:
        """Start every scraper, disabling the ones that fail."""
        if self._scrapers_started:
            return
        context = ScrapeContext(self._stop_event)
        for scraper in self._scrapers:
            try:
                scraper.start(context)
            except ScraperStartError as exc:
                logger.error("Disabling scraper %s: %s", scraper.name, exc)
                continue
            except Exception:
                logger.exception("Disabling scraper %s: unexpected start failure", scraper.name)
                continue
            self._active.append(scraper)
        self._scrapers_started = True

    def collect_once(self) -> MetricsBatch:
        """Run all active scrapers once and return the combined batch."""
        self.start_scrapers()
        batch = MetricsBatch()
        context = ScrapeContext(self._stop_event)
        for scraper in self._active:
            try:
                result = scraper.scrape(context)
            except Exception:
                logger.exception("Scraper %s failed", scraper.name)
                continue
            if isinstance(result.error, PartialScrapeError):
                logger.warning(
                    "Scraper %s partially failed (%d metrics missing): %s",
                    scraper.name,
                    result.error.failed,
                    result.error,
                )
            elif result.error is not None:
                logger.warning("Scraper %s failed: %s", scraper.name, result.error)
            batch.extend(result.batch)
        return batch

    def _run(self) -> None:
        """Background thread loop."""
        while not self._stop_event.is_set():
            batch = self.collect_once()
            for sink in self._sinks:
                try:
                    sink(batch)
                except Exception:
                    logger.exception("Sink failed")
            self._stop_event.wait(self._config.interval_seconds)

    def start(self) -> None:
        """Start scraping in the background."""
        if self._thread is not None:
            return
        self._stop_event.clear()
        self.start_scrapers()
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()
        logger.info(
            "ScraperManager started (interval=%.1fs, scrapers=%s)",
            self._config.interval_seconds,
            ", ".join(s.name for s in self._active) or "none",
        )

    def stop(self) -> None:
        """Stop background scraping and release scraper resources."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None
        for scraper in self._active:
            scraper.shutdown()
        self._active = []
        self._scrapers_started = False
        logger.info("ScraperManager stopped")

"""Error taxonomy and the partial-failure aggregator used by scrapers."""

from __future__ import annotations


class HostMetricsError(Exception):
    """Base class for all hostmetrics errors."""


class ConfigError(HostMetricsError, ValueError):
    """Invalid scraper configuration. Raised at construction time."""


class FilterConfigError(ConfigError):
    """An include/exclude filter could not be compiled."""


class ScraperStartError(HostMetricsError):
    """A scraper could not be started and must not be scraped."""


class PerfCounterError(HostMetricsError):
    """A performance-counter query failed."""


class ScrapeError(HostMetricsError):
    """Nothing could be collected during one scrape."""


class PartialScrapeError(ScrapeError):
    """Some metrics of a scrape could not be produced.

    ``failed`` is the number of metrics missing from the returned batch.
    """

    def __init__(self, message: str, failed: int) -> None:
        super().__init__(message)
        self.failed = failed

    def __repr__(self) -> str:
        return f"PartialScrapeError({str(self)!r}, failed={self.failed})"


class ScrapeErrors:
    """Collects the failures of a single scrape call.

    Each construction step that fails reports how many metrics it could not
    produce via :meth:`add_partial`; unrecoverable failures go through
    :meth:`add`. :meth:`combine` folds everything into one error.
    """

    def __init__(self) -> None:
        self._errors: list[Exception] = []
        self._failed = 0
        self._fatal = False

    def add_partial(self, failed: int, error: Exception) -> None:
        self._errors.append(error)
        self._failed += failed

    def add(self, error: Exception) -> None:
        self._errors.append(error)
        self._fatal = True

    @property
    def failed(self) -> int:
        return self._failed

    def __len__(self) -> int:
        return len(self._errors)

    def combine(self) -> ScrapeError | None:
        """Return ``None`` if nothing failed, else one combined error."""
        if not self._errors:
            return None
        message = "; ".join(str(err) for err in self._errors)
        if self._fatal:
            return ScrapeError(message)
        return PartialScrapeError(message, self._failed)

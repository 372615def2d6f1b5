"""Resource-domain scrapers and the factory that builds them from config."""

from __future__ import annotations

from ..config import HostMetricsConfig
from .base import BaseScraper, ScrapeContext, ScrapeResult
from .cpu import CpuScraper
from .disk import DiskScraper
from .load import LoadScraper
from .paging import PagingScraper
from .process import ProcessScraper

SCRAPER_NAMES = ("cpu", "disk", "load", "paging", "process")

__all__ = [
    "BaseScraper",
    "CpuScraper",
    "DiskScraper",
    "LoadScraper",
    "PagingScraper",
    "ProcessScraper",
    "ScrapeContext",
    "ScrapeResult",
    "SCRAPER_NAMES",
    "create_scraper",
    "create_scrapers",
]


def create_scraper(name: str, config: HostMetricsConfig) -> BaseScraper:
    """Build the scraper called *name*.

    Raises:
        ValueError: unknown scraper name.
        ConfigError: invalid filter or backend configuration.
    """
    scrapers = config.scrapers
    if name == "cpu":
        return CpuScraper(scrapers.cpu)
    if name == "disk":
        return DiskScraper(scrapers.disk)
    if name == "load":
        return LoadScraper(scrapers.load)
    if name == "paging":
        return PagingScraper(scrapers.paging)
    if name == "process":
        return ProcessScraper(scrapers.process)
    raise ValueError(f"unknown scraper {name!r}, expected one of {SCRAPER_NAMES}")


def create_scrapers(config: HostMetricsConfig) -> list[BaseScraper]:
    """Build every scraper enabled in *config*."""
    return [
        create_scraper(name, config)
        for name in SCRAPER_NAMES
        if getattr(config.scrapers, name).enabled
    ]

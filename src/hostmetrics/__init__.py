"""hostmetrics: scrape host resource counters into OpenTelemetry metrics."""

__version__ = "0.1.0"

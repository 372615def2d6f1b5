"""CLI interface for hostmetrics."""

from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
import time

from . import __version__
from .config import load_config
from .errors import ConfigError

logger = logging.getLogger(__name__)


def _build_manager(args: argparse.Namespace):
    from .scraper import SCRAPER_NAMES, create_scraper
    from .scraper.manager import ScraperManager

    cfg = load_config(args.config)
    if args.interval is not None:
        cfg.interval_seconds = args.interval

    names = args.only or [n for n in SCRAPER_NAMES if getattr(cfg.scrapers, n).enabled]
    scrapers = [create_scraper(name, cfg) for name in names]
    return cfg, ScraperManager(cfg, scrapers)


def _cmd_scrape(args: argparse.Namespace) -> None:
    """Run a single scrape cycle and print the result."""
    from .report import print_batch

    _cfg, manager = _build_manager(args)
    batch = manager.collect_once()
    manager.stop()

    if args.json:
        json.dump(batch.to_dict(), sys.stdout, indent=2)
        sys.stdout.write("\n")
    else:
        print_batch(batch, max_rows=args.max_rows)


def _cmd_run(args: argparse.Namespace) -> None:
    """Scrape on an interval until interrupted."""
    from .report import summarize_batch

    cfg, manager = _build_manager(args)

    def _log_summary(batch) -> None:
        counts = summarize_batch(batch)
        logger.info(
            "Scraped %d metrics, %d data points",
            len(batch),
            sum(counts.values()),
        )

    manager.add_sink(_log_summary)

    stop = False

    def _handle_signal(_sig: int, _frame: object) -> None:
        nonlocal stop
        stop = True

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    manager.start()
    print(f"hostmetrics running (interval={cfg.interval_seconds}s)")
    print("Press Ctrl+C to stop.\n")
    try:
        while not stop:
            time.sleep(0.5)
    finally:
        manager.stop()
    print("\nScraping stopped.")


def _cmd_catalog(_args: argparse.Namespace) -> None:
    from .report import print_catalog

    print_catalog()


def _cmd_version(_args: argparse.Namespace) -> None:
    print(f"hostmetrics {__version__}")


def main(argv: list[str] | None = None) -> None:
    """Entry point for the hostmetrics CLI."""
    parser = argparse.ArgumentParser(
        prog="hostmetrics",
        description="Scrape host resource counters into OpenTelemetry metrics",
    )
    parser.add_argument("--config", "-c", default=None, help="Path to hostmetrics.yaml")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command")

    def _add_scraper_args(p: argparse.ArgumentParser) -> None:
        p.add_argument(
            "--only",
            action="append",
            default=None,
            metavar="SCRAPER",
            help="Scraper to run (repeatable); defaults to all enabled scrapers",
        )
        p.add_argument("--interval", type=float, default=None, help="Override the scrape interval (seconds)")

    # scrape
    scrape_p = sub.add_parser("scrape", help="Scrape once and print the metrics")
    _add_scraper_args(scrape_p)
    scrape_p.add_argument("--json", action="store_true", help="Print JSON instead of a table")
    scrape_p.add_argument("--max-rows", type=int, default=200, help="Maximum table rows")
    scrape_p.set_defaults(func=_cmd_scrape)

    # run
    run_p = sub.add_parser("run", help="Scrape on an interval until interrupted")
    _add_scraper_args(run_p)
    run_p.set_defaults(func=_cmd_run)

    # catalog
    cat_p = sub.add_parser("catalog", help="List the metrics the scrapers can emit")
    cat_p.set_defaults(func=_cmd_catalog)

    # version
    ver_p = sub.add_parser("version", help="Print version")
    ver_p.set_defaults(func=_cmd_version)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if not hasattr(args, "func"):
        parser.print_help()
        sys.exit(1)

    try:
        args.func(args)
    except (ConfigError, ValueError) as exc:
        logger.error("Invalid configuration: %s", exc)
        sys.exit(2)


if __name__ == "__main__":
    main()

"""Tests for the CPU scraper."""

import time

import psutil
import pytest

from hostmetrics.config import CpuScraperConfig
from hostmetrics.errors import PartialScrapeError, ScrapeError, ScraperStartError
from hostmetrics.scraper.base import ScrapeContext
from hostmetrics.scraper.cpu import CPU_TOTAL, CpuScraper, CpuTimes, PsutilCpuTimesSource


class StubCpuSource:
    def __init__(self, times=None, error=None):
        self._times = times or []
        self._error = error
        self.calls = []

    def times(self, percpu):
        self.calls.append(percpu)
        if self._error is not None:
            raise self._error
        return self._times


def _points(result):
    metric = result.batch.find("system.cpu.time")
    assert metric is not None
    return metric.data.data_points


def test_start_captures_boot_time(boot_time, start_time):
    scraper = CpuScraper(source=StubCpuSource(), boot_time_source=boot_time)
    assert not scraper.started
    scraper.start()
    assert scraper.started
    assert scraper.start_time == start_time


def test_start_is_idempotent(boot_time):
    scraper = CpuScraper(source=StubCpuSource(), boot_time_source=boot_time)
    scraper.start()
    first = scraper.start_time
    scraper.start()
    assert scraper.start_time == first


def test_start_fails_when_boot_time_unreadable(make_boot_time):
    scraper = CpuScraper(source=StubCpuSource(), boot_time_source=make_boot_time(error=OSError("no /proc/stat")))
    with pytest.raises(ScraperStartError, match="boot time"):
        scraper.start()
    assert not scraper.started


def test_scrape_before_start_is_a_programming_error(boot_time):
    scraper = CpuScraper(source=StubCpuSource(), boot_time_source=boot_time)
    with pytest.raises(RuntimeError):
        scraper.scrape()


def test_per_cpu_states(boot_time, start_time):
    source = StubCpuSource([CpuTimes("cpu0", 10.0, 5.0, 1.0), CpuTimes("cpu1", 20.0, 6.0, 2.0)])
    scraper = CpuScraper(CpuScraperConfig(per_cpu=True), source=source, boot_time_source=boot_time)
    scraper.start()
    result = scraper.scrape()

    assert result.ok
    assert source.calls == [True]
    points = _points(result)
    assert [(dict(p.attributes), p.value) for p in points] == [
        ({"cpu": "cpu0", "state": "user"}, 10.0),
        ({"cpu": "cpu0", "state": "system"}, 5.0),
        ({"cpu": "cpu0", "state": "wait"}, 1.0),
        ({"cpu": "cpu1", "state": "user"}, 20.0),
        ({"cpu": "cpu1", "state": "system"}, 6.0),
        ({"cpu": "cpu1", "state": "wait"}, 2.0),
    ]
    assert {p.start_time_unix_nano for p in points} == {start_time}
    assert len({p.time_unix_nano for p in points}) == 1


def test_total_cpu_omits_cpu_attribute(boot_time):
    source = StubCpuSource([CpuTimes(CPU_TOTAL, 30.0, 11.0, 3.0)])
    scraper = CpuScraper(CpuScraperConfig(per_cpu=False), source=source, boot_time_source=boot_time)
    scraper.start()
    points = _points(scraper.scrape())
    assert source.calls == [False]
    assert [dict(p.attributes) for p in points] == [{"state": "user"}, {"state": "system"}, {"state": "wait"}]


def test_read_failure_is_fatal_and_empty(boot_time):
    scraper = CpuScraper(source=StubCpuSource(error=psutil.AccessDenied()), boot_time_source=boot_time)
    scraper.start()
    result = scraper.scrape()
    assert len(result.batch) == 0
    assert isinstance(result.error, ScrapeError)
    assert not isinstance(result.error, PartialScrapeError)

    # the scraper stays usable on the next interval
    scraper._source = StubCpuSource([CpuTimes("cpu0", 1.0, 1.0, 0.0)])
    assert scraper.scrape().ok


def test_cancelled_context_skips_read(boot_time):
    source = StubCpuSource([CpuTimes("cpu0", 1.0, 1.0, 0.0)])
    scraper = CpuScraper(source=source, boot_time_source=boot_time)
    scraper.start()
    context = ScrapeContext()
    context.cancel()
    result = scraper.scrape(context)
    assert isinstance(result.error, ScrapeError)
    assert source.calls == []


def test_real_cpu_scrape():
    scraper = CpuScraper()
    scraper.start()
    result = scraper.scrape()
    assert result.ok
    points = _points(result)
    assert len(points) == 3 * len(psutil.cpu_times(percpu=True))


def test_single_cpu_state_delta_within_wall_time():
    source = PsutilCpuTimesSource()
    before = source.times(percpu=True)[0]
    started = time.monotonic()
    time.sleep(0.3)
    after = source.times(percpu=True)[0]
    elapsed = time.monotonic() - started

    busy = (after.user - before.user) + (after.system - before.system) + (after.iowait - before.iowait)
    # /proc/stat has clock-tick granularity
    assert 0 <= busy <= elapsed + 0.1


def test_boot_time_runtime_error_is_start_error(make_boot_time):
    source = make_boot_time(error=RuntimeError("line 'btime' not found in /proc/stat"))
    scraper = CpuScraper(source=StubCpuSource(), boot_time_source=source)
    with pytest.raises(ScraperStartError, match="btime"):
        scraper.start()


def test_unsupported_platform_read_is_fatal(boot_time):
    scraper = CpuScraper(source=StubCpuSource(error=NotImplementedError("no cpu times")), boot_time_source=boot_time)
    scraper.start()
    result = scraper.scrape()
    assert isinstance(result.error, ScrapeError)
    assert len(result.batch) == 0

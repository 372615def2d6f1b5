"""Tests for the per-process scraper."""

import os
from types import SimpleNamespace

import psutil

from hostmetrics.config import FilterConfig, ProcessScraperConfig
from hostmetrics.errors import PartialScrapeError, ScrapeError
from hostmetrics.scraper.base import ScrapeContext
from hostmetrics.scraper.process import (
    PROCESS_METRICS_LEN,
    CommandMetadata,
    ProcessMetadata,
    ProcessScraper,
    get_process_command,
)


class StubHandle:
    def __init__(self, pid, name, cmdline=None, errors=None):
        self.pid = pid
        self._name = name
        self._cmdline = cmdline if cmdline is not None else [f"/usr/bin/{name}", "--flag"]
        self._errors = errors or {}

    def _check(self, call):
        error = self._errors.get(call)
        if error is not None:
            raise error

    def name(self):
        self._check("name")
        return self._name

    def exe(self):
        self._check("exe")
        return f"/usr/bin/{self._name}"

    def cmdline(self):
        self._check("cmdline")
        return self._cmdline

    def username(self):
        self._check("username")
        return "root"

    def cpu_times(self):
        self._check("cpu_times")
        return SimpleNamespace(user=1.5, system=0.5, iowait=0.25)

    def memory_info(self):
        self._check("memory_info")
        return SimpleNamespace(rss=4096, vms=8192)

    def io_counters(self):
        self._check("io_counters")
        return SimpleNamespace(read_bytes=100, write_bytes=200)


class StubProcessSource:
    def __init__(self, handles, pids_error=None):
        self.handles = {h.pid: h for h in handles}
        self.pids_error = pids_error

    def pids(self):
        if self.pids_error is not None:
            raise self.pids_error
        return list(self.handles)

    def process(self, pid):
        return self.handles[pid]


def _scraper(boot_time, handles, config=None, **kwargs):
    scraper = ProcessScraper(config, source=StubProcessSource(handles, **kwargs), boot_time_source=boot_time)
    scraper.start()
    return scraper


def _names(result):
    return [entry.descriptor.executable.name for entry in result.batch.entries if entry.descriptor is not None]


def test_each_process_gets_its_own_resource(boot_time, start_time):
    result = _scraper(boot_time, [StubHandle(1, "init"), StubHandle(42, "nginx")]).scrape()

    assert result.ok
    process_entries = result.batch.entries
    assert [e.resource["process.pid"] for e in process_entries] == ["1", "42"]

    entry = process_entries[1]
    assert isinstance(entry.descriptor, ProcessMetadata)
    assert entry.resource == {
        "process.pid": "42",
        "process.executable.name": "nginx",
        "process.executable.path": "/usr/bin/nginx",
        "process.command": "/usr/bin/nginx",
        "process.command_line": "/usr/bin/nginx --flag",
        "process.owner": "root",
    }
    assert [m.name for m in entry.metrics] == [
        "process.cpu.time",
        "process.memory.physical_usage",
        "process.memory.virtual_usage",
        "process.disk.io",
    ]
    cpu = entry.metrics[0].data.data_points
    assert [(dict(p.attributes), p.value) for p in cpu] == [
        ({"state": "user"}, 1.5),
        ({"state": "system"}, 0.5),
        ({"state": "wait"}, 0.25),
    ]
    assert {p.start_time_unix_nano for p in cpu} == {start_time}
    # identity lives on the resource, never on data points
    for metric in entry.metrics:
        for point in metric.data.data_points:
            assert not any(key.startswith("process.") for key in point.attributes)


def test_include_filter_on_executable_name(boot_time):
    config = ProcessScraperConfig(enabled=True, include=FilterConfig(["nginx", "redis*"], match_type="glob"))
    handles = [StubHandle(1, "init"), StubHandle(2, "nginx"), StubHandle(3, "redis-server")]
    result = _scraper(boot_time, handles, config).scrape()
    assert _names(result) == ["nginx", "redis-server"]


def test_unreadable_name_counts_whole_process(boot_time):
    handles = [StubHandle(1, "init", errors={"exe": psutil.AccessDenied(1)}), StubHandle(2, "sshd")]
    result = _scraper(boot_time, handles).scrape()

    assert isinstance(result.error, PartialScrapeError)
    assert result.error.failed == PROCESS_METRICS_LEN
    assert "pid 1" in str(result.error)
    assert _names(result) == ["sshd"]


def test_muted_name_error(boot_time):
    config = ProcessScraperConfig(enabled=True, mute_process_name_error=True)
    handles = [StubHandle(1, "init", errors={"exe": psutil.AccessDenied(1)}), StubHandle(2, "sshd")]
    result = _scraper(boot_time, handles, config).scrape()
    assert result.ok
    assert _names(result) == ["sshd"]


def test_vanished_process_is_skipped_silently(boot_time):
    handles = [StubHandle(7, "short", errors={"name": psutil.NoSuchProcess(7)}), StubHandle(8, "long")]
    result = _scraper(boot_time, handles).scrape()
    assert result.ok
    assert _names(result) == ["long"]


def test_command_failure_counts_whole_process(boot_time):
    handles = [StubHandle(3, "bash", errors={"cmdline": psutil.AccessDenied(3)})]
    result = _scraper(boot_time, handles).scrape()
    assert result.error.failed == PROCESS_METRICS_LEN
    assert _names(result) == []


def test_username_failure_drops_owner(boot_time):
    handles = [StubHandle(3, "bash", errors={"username": OSError("no uid")})]
    result = _scraper(boot_time, handles).scrape()
    assert result.ok
    assert "process.owner" not in result.batch.entries[0].resource


def test_memory_failure_is_partial(boot_time):
    handles = [StubHandle(5, "java", errors={"memory_info": psutil.AccessDenied(5)})]
    result = _scraper(boot_time, handles).scrape()

    assert result.partial
    assert result.error.failed == 2
    entry = result.batch.entries[0]
    assert [m.name for m in entry.metrics] == ["process.cpu.time", "process.disk.io"]


def test_several_failures_accumulate(boot_time):
    handles = [
        StubHandle(5, "java", errors={"cpu_times": psutil.AccessDenied(5), "io_counters": psutil.AccessDenied(5)}),
        StubHandle(6, "init", errors={"exe": psutil.AccessDenied(6)}),
    ]
    result = _scraper(boot_time, handles).scrape()
    assert result.error.failed == 1 + 1 + PROCESS_METRICS_LEN


def test_pids_failure_is_fatal(boot_time):
    result = _scraper(boot_time, [], pids_error=OSError("/proc unreadable")).scrape()
    assert isinstance(result.error, ScrapeError)
    assert not result.partial
    assert len(result.batch) == 0


def test_cancellation_stops_between_processes(boot_time):
    scraper = _scraper(boot_time, [StubHandle(1, "a"), StubHandle(2, "b")])
    context = ScrapeContext()
    original = scraper._scrape_process

    def scrape_then_cancel(*args):
        original(*args)
        context.cancel()

    scraper._scrape_process = scrape_then_cancel
    result = scraper.scrape(context)
    assert result.partial
    assert result.error.failed == PROCESS_METRICS_LEN
    assert _names(result) == ["a"]


def test_empty_cmdline_gives_empty_command():
    command = get_process_command(StubHandle(2, "kthreadd", cmdline=[]))
    assert command == CommandMetadata(command="", command_line_slice=())


def test_real_self_process():
    me = psutil.Process(os.getpid())
    config = ProcessScraperConfig(enabled=True, include=FilterConfig([me.name()]))
    scraper = ProcessScraper(config)
    scraper.start()
    result = scraper.scrape()

    pids = [entry.resource.get("process.pid") for entry in result.batch.entries]
    assert str(os.getpid()) in pids

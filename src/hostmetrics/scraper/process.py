"""Per-process scraper: CPU time, memory and disk I/O for every process.

Executable and command-line details identify the process; they are exposed
as a :class:`ProcessMetadata` descriptor on the batch's resource entry and
never as data-point attributes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

import psutil
from opentelemetry.sdk.metrics.export import Metric

from ..config import ProcessScraperConfig
from ..errors import ScrapeError, ScrapeErrors
from ..filterset import DeviceFilter
from ..metadata import (
    ATTR_DIRECTION,
    ATTR_STATE,
    DIRECTION_READ,
    DIRECTION_WRITE,
    PROCESS_CPU_TIME,
    PROCESS_DISK_IO,
    PROCESS_MEMORY_PHYSICAL_USAGE,
    PROCESS_MEMORY_VIRTUAL_USAGE,
    STATE_SYSTEM,
    STATE_USER,
    STATE_WAIT,
)
from ..model import MetricsBatch, ResourceEntry
from ..units import now_unix_nano
from .base import BaseScraper, BootTimeSource, ScrapeContext, ScrapeResult

logger = logging.getLogger(__name__)

CPU_METRICS_LEN = 1
MEMORY_METRICS_LEN = 2
DISK_METRICS_LEN = 1
PROCESS_METRICS_LEN = CPU_METRICS_LEN + MEMORY_METRICS_LEN + DISK_METRICS_LEN


class ProcessHandle(Protocol):
    """The subset of :class:`psutil.Process` the scraper relies on."""

    def name(self) -> str: ...

    def exe(self) -> str: ...

    def cmdline(self) -> list[str]: ...

    def username(self) -> str: ...

    def cpu_times(self) -> Any: ...

    def memory_info(self) -> Any: ...

    def io_counters(self) -> Any: ...


class ProcessSource(Protocol):
    def pids(self) -> list[int]: ...

    def process(self, pid: int) -> ProcessHandle: ...


class PsutilProcessSource:
    def pids(self) -> list[int]:
        return psutil.pids()

    def process(self, pid: int) -> ProcessHandle:
        return psutil.Process(pid)


@dataclass(frozen=True)
class ExecutableMetadata:
    name: str
    path: str


@dataclass(frozen=True)
class CommandMetadata:
    command: str
    command_line_slice: tuple[str, ...] = ()


@dataclass(frozen=True)
class ProcessMetadata:
    pid: int
    executable: ExecutableMetadata
    command: CommandMetadata | None = None
    username: str = ""
    handle: Any = field(default=None, compare=False, repr=False)

    def resource_attributes(self) -> dict[str, str]:
        attributes = {
            "process.pid": str(self.pid),
            "process.executable.name": self.executable.name,
            "process.executable.path": self.executable.path,
        }
        if self.command is not None:
            attributes["process.command"] = self.command.command
            attributes["process.command_line"] = " ".join(self.command.command_line_slice)
        if self.username:
            attributes["process.owner"] = self.username
        return attributes


def get_process_executable(handle: ProcessHandle) -> ExecutableMetadata:
    return ExecutableMetadata(name=handle.name(), path=handle.exe())


def get_process_command(handle: ProcessHandle) -> CommandMetadata:
    cmdline = list(handle.cmdline())
    command = cmdline[0] if cmdline else ""
    return CommandMetadata(command=command, command_line_slice=tuple(cmdline))


def build_process_cpu_time_metric(start_time: int, now: int, cpu_times: Any) -> Metric:
    return PROCESS_CPU_TIME.metric(
        PROCESS_CPU_TIME.data_point(start_time, now, value, {ATTR_STATE: state})
        for state, value in (
            (STATE_USER, cpu_times.user),
            (STATE_SYSTEM, cpu_times.system),
            (STATE_WAIT, getattr(cpu_times, "iowait", 0.0)),
        )
    )


def build_process_memory_metrics(now: int, memory_info: Any) -> list[Metric]:
    return [
        PROCESS_MEMORY_PHYSICAL_USAGE.metric([PROCESS_MEMORY_PHYSICAL_USAGE.data_point(0, now, memory_info.rss)]),
        PROCESS_MEMORY_VIRTUAL_USAGE.metric([PROCESS_MEMORY_VIRTUAL_USAGE.data_point(0, now, memory_info.vms)]),
    ]


def build_process_disk_io_metric(start_time: int, now: int, io_counters: Any) -> Metric:
    return PROCESS_DISK_IO.metric(
        [
            PROCESS_DISK_IO.data_point(start_time, now, io_counters.read_bytes, {ATTR_DIRECTION: DIRECTION_READ}),
            PROCESS_DISK_IO.data_point(start_time, now, io_counters.write_bytes, {ATTR_DIRECTION: DIRECTION_WRITE}),
        ]
    )


class ProcessScraper(BaseScraper):
    """Scrapes CPU, memory and disk metrics for every visible process.

    Processes are filtered by executable name with the configured
    include/exclude sets. A process whose metadata cannot be read counts as
    :data:`PROCESS_METRICS_LEN` missing metrics, unless
    ``mute_process_name_error`` is set.
    """

    def __init__(
        self,
        config: ProcessScraperConfig | None = None,
        *,
        source: ProcessSource | None = None,
        boot_time_source: BootTimeSource | None = None,
    ) -> None:
        super().__init__(boot_time_source=boot_time_source)
        self._config = config or ProcessScraperConfig()
        self._filter = DeviceFilter.from_config(self._config.include, self._config.exclude)
        self._source = source or PsutilProcessSource()

    @property
    def name(self) -> str:
        return "process"

    def _scrape(self, context: ScrapeContext) -> ScrapeResult:
        batch = MetricsBatch()
        errors = ScrapeErrors()

        try:
            pids = self._source.pids()
        except (OSError, psutil.Error, RuntimeError) as exc:
            return ScrapeResult(batch, ScrapeError(f"failed to list processes: {exc}"))

        processes = self._get_process_metadata(pids, errors)
        for idx, metadata in enumerate(processes):
            if context.cancelled():
                remaining = len(processes) - idx
                errors.add_partial(remaining * PROCESS_METRICS_LEN, ScrapeError("process scrape cancelled"))
                break
            entry = batch.add_resource(metadata.resource_attributes(), descriptor=metadata)
            self._scrape_process(entry, metadata, errors)

        return ScrapeResult(batch, errors.combine())

    def _get_process_metadata(self, pids: list[int], errors: ScrapeErrors) -> list[ProcessMetadata]:
        processes: list[ProcessMetadata] = []
        for pid in pids:
            try:
                handle = self._source.process(pid)
                executable = get_process_executable(handle)
            except psutil.NoSuchProcess:
                logger.debug("Process %d exited before it could be scraped", pid)
                continue
            except (OSError, psutil.Error, RuntimeError) as exc:
                if not self._config.mute_process_name_error:
                    errors.add_partial(
                        PROCESS_METRICS_LEN, ScrapeError(f"error reading process name for pid {pid}: {exc}")
                    )
                continue

            if not self._filter.keep(executable.name):
                continue

            try:
                command = get_process_command(handle)
            except (OSError, psutil.Error, RuntimeError) as exc:
                errors.add_partial(
                    PROCESS_METRICS_LEN,
                    ScrapeError(f"error reading command for process {executable.name!r} (pid {pid}): {exc}"),
                )
                continue

            try:
                username = handle.username()
            except (OSError, psutil.Error, RuntimeError):
                username = ""

            processes.append(ProcessMetadata(pid, executable, command, username, handle))
        return processes

    def _scrape_process(self, entry: ResourceEntry, metadata: ProcessMetadata, errors: ScrapeErrors) -> None:
        handle = metadata.handle
        now = now_unix_nano()
        label = f"process {metadata.executable.name!r} (pid {metadata.pid})"

        try:
            entry.metrics.append(build_process_cpu_time_metric(self._start_time, now, handle.cpu_times()))
        except (OSError, psutil.Error, RuntimeError) as exc:
            errors.add_partial(CPU_METRICS_LEN, ScrapeError(f"error reading cpu times for {label}: {exc}"))

        try:
            entry.metrics.extend(build_process_memory_metrics(now, handle.memory_info()))
        except (OSError, psutil.Error, RuntimeError) as exc:
            errors.add_partial(MEMORY_METRICS_LEN, ScrapeError(f"error reading memory info for {label}: {exc}"))

        try:
            entry.metrics.append(build_process_disk_io_metric(self._start_time, now, handle.io_counters()))
        except (OSError, psutil.Error, RuntimeError, AttributeError) as exc:
            # io_counters() is not available on every platform
            errors.add_partial(DISK_METRICS_LEN, ScrapeError(f"error reading disk usage for {label}: {exc}"))

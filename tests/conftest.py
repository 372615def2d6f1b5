"""Shared fixtures: deterministic boot time and a scriptable perf-counter backend."""

from __future__ import annotations

import pytest

from hostmetrics.errors import PerfCounterError
from hostmetrics.perfcounters import PerfCounterBackend, PerfCounterObject, PerfCounterResult

BOOT_TIME = 1_600_000_000.0


class FixedBootTime:
    def __init__(self, value: float = BOOT_TIME, error: Exception | None = None) -> None:
        self.value = value
        self.error = error

    def boot_time(self) -> float:
        if self.error is not None:
            raise self.error
        return self.value


class StubPerfCounterBackend(PerfCounterBackend):
    """Returns canned counter objects; failures can be injected per call."""

    def __init__(self, objects: dict[str, tuple[tuple[str, ...], dict[str, dict[str, int]]]]) -> None:
        self.objects = objects
        self.initialized: list[str] = []
        self.init_error: Exception | None = None
        self.scrape_error: Exception | None = None
        self.closed = False

    def initialize(self, category: str) -> None:
        if self.init_error is not None:
            raise self.init_error
        self.initialized.append(category)

    def scrape(self) -> PerfCounterResult:
        if self.scrape_error is not None:
            raise self.scrape_error
        if not self.initialized:
            raise PerfCounterError("not initialized")
        return PerfCounterResult(
            {
                name: PerfCounterObject(name, counters, {k: dict(v) for k, v in instances.items()})
                for name, (counters, instances) in self.objects.items()
                if name in self.initialized
            }
        )

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def boot_time() -> FixedBootTime:
    return FixedBootTime()


@pytest.fixture
def start_time() -> int:
    return int(BOOT_TIME) * 10**9


@pytest.fixture
def make_boot_time():
    return FixedBootTime


@pytest.fixture
def make_backend():
    return StubPerfCounterBackend

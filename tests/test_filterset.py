"""Tests for include/exclude name filtering."""

import pytest

from hostmetrics.config import FilterConfig
from hostmetrics.errors import FilterConfigError
from hostmetrics.filterset import DeviceFilter, create_filter_set
from hostmetrics.perfcounters import TOTAL_INSTANCE, PerfCounterObject


def test_include_and_exclude_precedence():
    device_filter = DeviceFilter.from_config(FilterConfig(["sda"]), FilterConfig(["sdb"]))
    assert device_filter.apply(["sda", "sdb", "sdc"]) == ["sda"]


def test_empty_sets_keep_everything():
    device_filter = DeviceFilter.from_config(FilterConfig([]), None)
    assert device_filter.include is None
    assert device_filter.exclude is None
    assert device_filter.apply(["sda", "sdb"]) == ["sda", "sdb"]


def test_exclude_only():
    device_filter = DeviceFilter.from_config(None, FilterConfig(["loop*"], match_type="glob"))
    assert device_filter.apply(["sda", "loop0", "loop1"]) == ["sda"]


def test_exclude_wins_over_include():
    device_filter = DeviceFilter.from_config(
        FilterConfig(["sd"], match_type="regexp"),
        FilterConfig(["sda"]),
    )
    assert device_filter.apply(["sda", "sdb", "nvme0n1"]) == ["sdb"]


def test_strict_is_case_sensitive_and_literal():
    fs = create_filter_set(["C:"], "strict")
    assert fs.matches("C:")
    assert not fs.matches("c:")
    assert not fs.matches("C:\\")


def test_regexp_is_unanchored():
    fs = create_filter_set(["^nvme", "p1$"], "regexp")
    assert fs.matches("nvme0n1")
    assert fs.matches("sda-p1")
    assert not fs.matches("sda")


def test_glob():
    fs = create_filter_set(["sd?", "dm-*"], "glob")
    assert fs.matches("sdb")
    assert fs.matches("dm-0")
    assert not fs.matches("sdb1")


def test_invalid_regexp_fails_at_construction():
    with pytest.raises(FilterConfigError, match="include"):
        DeviceFilter.from_config(FilterConfig(["sd[a"], match_type="regexp"), None)


def test_unknown_match_type():
    with pytest.raises(FilterConfigError):
        create_filter_set(["sda"], "fuzzy")


class TestPerfCounterObjectFilter:
    def _object(self):
        values = {"Disk Reads/sec": 1}
        return PerfCounterObject(
            "LogicalDisk",
            ["Disk Reads/sec"],
            {"C:": dict(values), "D:": dict(values), "E:": dict(values), TOTAL_INSTANCE: dict(values)},
        )

    def test_include_exclude(self):
        obj = self._object()
        obj.filter(create_filter_set(["C:", "D:"]), create_filter_set(["D:"]), exclude_total=False)
        assert obj.instance_names == ["C:"]

    def test_total_kept_unless_requested(self):
        obj = self._object()
        obj.filter(None, create_filter_set(["E:"]), exclude_total=False)
        assert obj.instance_names == ["C:", "D:", TOTAL_INSTANCE]

        obj.filter(None, None, exclude_total=True)
        assert obj.instance_names == ["C:", "D:"]

"""Configuration loading and validation for hostmetrics."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError

BACKEND_AUTO = "auto"
BACKEND_DIRECT = "direct"
BACKEND_PERFCOUNTER = "perfcounter"
BACKENDS = (BACKEND_AUTO, BACKEND_DIRECT, BACKEND_PERFCOUNTER)


@dataclass
class FilterConfig:
    """A list of names plus how to match them (strict, regexp or glob)."""

    names: list[str] = field(default_factory=list)
    match_type: str = "strict"


@dataclass
class CpuScraperConfig:
    enabled: bool = True
    per_cpu: bool = True


@dataclass
class DiskScraperConfig:
    enabled: bool = True
    backend: str = BACKEND_AUTO
    include: FilterConfig | None = None
    exclude: FilterConfig | None = None


@dataclass
class PagingScraperConfig:
    enabled: bool = True
    backend: str = BACKEND_AUTO


@dataclass
class ProcessScraperConfig:
    """Per-process scraping. Disabled by default, it is the most expensive domain."""

    enabled: bool = False
    include: FilterConfig | None = None
    exclude: FilterConfig | None = None
    mute_process_name_error: bool = False


@dataclass
class LoadScraperConfig:
    enabled: bool = True
    cpu_average: bool = False


@dataclass
class ScrapersConfig:
    cpu: CpuScraperConfig = field(default_factory=CpuScraperConfig)
    disk: DiskScraperConfig = field(default_factory=DiskScraperConfig)
    paging: PagingScraperConfig = field(default_factory=PagingScraperConfig)
    process: ProcessScraperConfig = field(default_factory=ProcessScraperConfig)
    load: LoadScraperConfig = field(default_factory=LoadScraperConfig)


@dataclass
class HostMetricsConfig:
    """Top-level hostmetrics configuration."""

    interval_seconds: float = 10.0
    scrapers: ScrapersConfig = field(default_factory=ScrapersConfig)


def resolve_backend(backend: str) -> str:
    """Map a configured backend to ``direct`` or ``perfcounter``."""
    if backend not in BACKENDS:
        raise ConfigError(f"unknown counter backend {backend!r}, expected one of {BACKENDS}")
    if backend == BACKEND_AUTO:
        return BACKEND_PERFCOUNTER if sys.platform == "win32" else BACKEND_DIRECT
    return backend


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Apply environment variable overrides using HOSTMETRICS_ prefix."""
    env_map = {
        "HOSTMETRICS_INTERVAL": ("interval_seconds",),
        "HOSTMETRICS_CPU_ENABLED": ("scrapers", "cpu", "enabled"),
        "HOSTMETRICS_DISK_ENABLED": ("scrapers", "disk", "enabled"),
        "HOSTMETRICS_DISK_BACKEND": ("scrapers", "disk", "backend"),
        "HOSTMETRICS_PAGING_ENABLED": ("scrapers", "paging", "enabled"),
        "HOSTMETRICS_PAGING_BACKEND": ("scrapers", "paging", "backend"),
        "HOSTMETRICS_PROCESS_ENABLED": ("scrapers", "process", "enabled"),
        "HOSTMETRICS_LOAD_ENABLED": ("scrapers", "load", "enabled"),
    }
    for env_key, path in env_map.items():
        value = os.environ.get(env_key)
        if value is not None:
            obj = data
            for part in path[:-1]:
                obj = obj.setdefault(part, {})
            final_key = path[-1]
            # coerce typed values
            if final_key == "interval_seconds":
                obj[final_key] = float(value)
            elif final_key == "enabled":
                obj[final_key] = _parse_bool(value)
            else:
                obj[final_key] = value
    return data


def _known_fields(cls: type, data: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if k in cls.__dataclass_fields__}


def _filter_config(data: Any) -> FilterConfig | None:
    if data is None:
        return None
    if isinstance(data, list):
        return FilterConfig(names=[str(n) for n in data])
    if not isinstance(data, dict):
        raise ConfigError(f"filter must be a list or mapping, got {type(data).__name__}")
    values = _known_fields(FilterConfig, data)
    names = values.get("names")
    if isinstance(names, str):
        values["names"] = [names]
    elif names is not None and not isinstance(names, list):
        raise ConfigError(f"filter names must be a string or list, got {type(names).__name__}")
    return FilterConfig(**values)


def _scraper_config(cls: type, data: dict[str, Any]) -> Any:
    values = _known_fields(cls, data)
    for key in ("include", "exclude"):
        if key in values:
            values[key] = _filter_config(values[key])
    return cls(**values)


def _dict_to_config(data: dict[str, Any]) -> HostMetricsConfig:
    """Convert a raw dictionary to a HostMetricsConfig dataclass."""
    scrapers_data = data.get("scrapers", {}) or {}

    return HostMetricsConfig(
        interval_seconds=float(data.get("interval_seconds", 10.0)),
        scrapers=ScrapersConfig(
            cpu=_scraper_config(CpuScraperConfig, scrapers_data.get("cpu") or {}),
            disk=_scraper_config(DiskScraperConfig, scrapers_data.get("disk") or {}),
            paging=_scraper_config(PagingScraperConfig, scrapers_data.get("paging") or {}),
            process=_scraper_config(ProcessScraperConfig, scrapers_data.get("process") or {}),
            load=_scraper_config(LoadScraperConfig, scrapers_data.get("load") or {}),
        ),
    )


def load_config(path: str | Path | None = None) -> HostMetricsConfig:
    """Load configuration from a YAML file with environment overrides.

    Looks for ``hostmetrics.yaml`` in the current directory if *path* is None.
    """
    data: dict[str, Any] = {}
    if path is None:
        path = Path("hostmetrics.yaml")
    else:
        path = Path(path)

    if path.exists():
        with open(path, encoding="utf-8") as fh:
            loaded = yaml.safe_load(fh)
            if isinstance(loaded, dict):
                data = loaded

    data = _apply_env_overrides(data)
    return _dict_to_config(data)

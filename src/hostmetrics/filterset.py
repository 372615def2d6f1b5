"""Include/exclude name filters applied to device and process names.

Filters are compiled once when a scraper is constructed. Matching is
case-sensitive and uses the name exactly as the OS reports it.
"""

from __future__ import annotations

import abc
import fnmatch
import re
from collections.abc import Iterable
from dataclasses import dataclass

from .config import FilterConfig
from .errors import FilterConfigError

MATCH_STRICT = "strict"
MATCH_REGEXP = "regexp"
MATCH_GLOB = "glob"


class FilterSet(abc.ABC):
    """A compiled set of name patterns."""

    @abc.abstractmethod
    def matches(self, name: str) -> bool:
        """Return True if *name* matches any pattern in the set."""


class StrictFilterSet(FilterSet):
    def __init__(self, names: Iterable[str]) -> None:
        self._names = frozenset(names)

    def matches(self, name: str) -> bool:
        return name in self._names


class RegexpFilterSet(FilterSet):
    """Unanchored regular expressions; anchor with ``^``/``$`` when needed."""

    def __init__(self, patterns: Iterable[str]) -> None:
        self._regexes = [re.compile(p) for p in patterns]

    def matches(self, name: str) -> bool:
        return any(regex.search(name) for regex in self._regexes)


class GlobFilterSet(FilterSet):
    def __init__(self, patterns: Iterable[str]) -> None:
        self._patterns = tuple(patterns)

    def matches(self, name: str) -> bool:
        return any(fnmatch.fnmatchcase(name, pattern) for pattern in self._patterns)


def create_filter_set(names: Iterable[str], match_type: str = MATCH_STRICT) -> FilterSet:
    """Compile *names* into a :class:`FilterSet`.

    Raises:
        FilterConfigError: unknown *match_type* or an invalid pattern.
    """
    names = list(names)
    if match_type == MATCH_STRICT:
        return StrictFilterSet(names)
    if match_type == MATCH_GLOB:
        return GlobFilterSet(names)
    if match_type == MATCH_REGEXP:
        try:
            return RegexpFilterSet(names)
        except re.error as exc:
            raise FilterConfigError(f"invalid regexp filter: {exc}") from exc
    raise FilterConfigError(f"unrecognized match_type {match_type!r}")


@dataclass(frozen=True)
class DeviceFilter:
    """An include/exclude pair. A missing set means "no restriction"."""

    include: FilterSet | None = None
    exclude: FilterSet | None = None

    @classmethod
    def from_config(
        cls,
        include: FilterConfig | None,
        exclude: FilterConfig | None,
    ) -> DeviceFilter:
        include_fs = None
        exclude_fs = None
        if include is not None and include.names:
            try:
                include_fs = create_filter_set(include.names, include.match_type)
            except FilterConfigError as exc:
                raise FilterConfigError(f"error creating include filters: {exc}") from exc
        if exclude is not None and exclude.names:
            try:
                exclude_fs = create_filter_set(exclude.names, exclude.match_type)
            except FilterConfigError as exc:
                raise FilterConfigError(f"error creating exclude filters: {exc}") from exc
        return cls(include=include_fs, exclude=exclude_fs)

    def keep(self, name: str) -> bool:
        if self.include is not None and not self.include.matches(name):
            return False
        if self.exclude is not None and self.exclude.matches(name):
            return False
        return True

    def apply(self, names: Iterable[str]) -> list[str]:
        return [name for name in names if self.keep(name)]

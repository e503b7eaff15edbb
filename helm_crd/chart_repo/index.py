"""Chart repository index.

A chart repository publishes an `index.yaml` listing every chart it serves,
each with a list of versions and the URLs the packaged chart can be
downloaded from. Entries are sorted newest first so that looking up the
latest version is stable.
"""

from dataclasses import dataclass, field
import functools
import logging
import re
from typing import Any
from urllib.parse import urljoin, urlparse

from mashumaro import DataClassDictMixin, field_options
from mashumaro.config import BaseConfig
import semver

from helm_crd.config import INDEX_FILE
from helm_crd.exceptions import (
    ChartNotFoundError,
    InvalidURIError,
    NoDownloadLocationError,
)

__all__ = [
    "ChartVersion",
    "ChartIndex",
    "check_absolute_uri",
    "find_entry",
    "resolve_location",
    "repo_index_url",
]

_LOGGER = logging.getLogger(__name__)

ANY_VERSION = "*"
_CLAUSE_SPLIT = re.compile(r"[,\s]+")
_OPERATORS = r"(<=|>=|==|!=|~>|<|>|=|\^|~)"
_OPERATOR_SPACE = re.compile(_OPERATORS + r"\s+")
_OPERATOR = re.compile(r"^" + _OPERATORS + r"?(.+)$")
_ALTERNATIVES_SPLIT = re.compile(r"\|\|")
_HYPHEN_RANGE = re.compile(r"(\S+)\s+-\s+(\S+)")
_WILDCARDS = ("x", "X", "*")
_PARTIAL_VERSION = re.compile(
    r"^v?(\d+|[xX*])(?:\.(\d+|[xX*]))?(?:\.(\d+|[xX*]))?"
    r"(?:-([0-9A-Za-z.-]+))?(?:\+[0-9A-Za-z.-]+)?$"
)


def _parse_version(value: str) -> semver.Version | None:
    """Parse a chart version, returning None when it is not valid semver."""
    try:
        return semver.Version.parse(value.lstrip("v"), optional_minor_and_patch=True)
    except (ValueError, TypeError):
        return None


def _compare_versions(a: "ChartVersion", b: "ChartVersion") -> int:
    """Order chart versions by semver, falling back to string order."""
    version_a = _parse_version(a.version)
    version_b = _parse_version(b.version)
    if version_a is None or version_b is None:
        return (a.version > b.version) - (a.version < b.version)
    return version_a.compare(version_b)


@dataclass
class ChartVersion(DataClassDictMixin):
    """A single version of a chart in the repository index."""

    version: str
    """The version of the chart."""

    name: str | None = None
    """The name of the chart."""

    urls: list[str] = field(default_factory=list)
    """Candidate download locations, possibly relative to the index."""

    digest: str | None = None
    """Digest of the chart archive."""

    app_version: str | None = field(
        default=None, metadata=field_options(alias="appVersion")
    )
    """Version of the application packaged by the chart."""

    description: str | None = None

    @classmethod
    def __pre_deserialize__(cls, d: dict[Any, Any]) -> dict[Any, Any]:
        # Unquoted versions such as `1.0` are loaded as floats
        d = dict(d)
        for key in ("version", "appVersion"):
            if d.get(key) is not None:
                d[key] = str(d[key])
        if d.get("urls") is None:
            d.pop("urls", None)
        return d

    class Config(BaseConfig):
        omit_none = True


@dataclass
class ChartIndex(DataClassDictMixin):
    """Parsed repository index."""

    api_version: str | None = field(
        default=None, metadata=field_options(alias="apiVersion")
    )
    """The apiVersion of the index file."""

    entries: dict[str, list[ChartVersion]] = field(default_factory=dict)
    """Chart versions by chart name."""

    generated: str | None = None
    """Time the index was generated."""

    @classmethod
    def __pre_deserialize__(cls, d: dict[Any, Any]) -> dict[Any, Any]:
        d = dict(d)
        if d.get("generated") is not None:
            d["generated"] = str(d["generated"])
        entries = d.get("entries") or {}
        d["entries"] = {name: versions or [] for name, versions in entries.items()}
        return d

    def sort_entries(self) -> None:
        """Sort the versions of every chart, newest first."""
        for versions in self.entries.values():
            versions.sort(key=functools.cmp_to_key(_compare_versions), reverse=True)

    def get(self, name: str, version: str = "") -> ChartVersion | None:
        """Return the entry for a chart matching the version constraint.

        An exact match of the version string always wins. Otherwise the first
        (newest) entry satisfying the constraint is returned. An empty
        constraint selects the newest stable version. Prerelease versions are
        only selected by a constraint naming a prerelease.
        """
        if not (versions := self.entries.get(name)):
            return None
        if version:
            for chart_version in versions:
                if chart_version.version == version:
                    return chart_version
        alternatives = _parse_constraint(version)
        for chart_version in versions:
            if (parsed := _parse_version(chart_version.version)) is None:
                continue
            if any(alternative.matches(parsed) for alternative in alternatives):
                return chart_version
        return None

    class Config(BaseConfig):
        omit_none = True


@dataclass
class _Alternative:
    """Clauses of a constraint that must all hold for a version to match.

    Each term is a tuple of `Version.match` expressions of which at least
    one must hold.
    """

    terms: list[tuple[str, ...]] = field(default_factory=list)

    prerelease: bool = False
    """Set when a clause names a prerelease, which allows prerelease versions."""

    def matches(self, version: semver.Version) -> bool:
        if version.prerelease and not self.prerelease:
            return False
        return all(any(version.match(expr) for expr in term) for term in self.terms)


def _expand_clause(operator: str, match: re.Match[str]) -> list[tuple[str, ...]]:
    """Expand one clause into `Version.match` terms."""
    parts = match.group(1, 2, 3)
    fixed: list[int] = []
    for part in parts:
        if part is None or part in _WILDCARDS:
            break
        fixed.append(int(part))
    if not fixed:
        return []
    wildcard = any(part in _WILDCARDS for part in parts)
    major, minor, patch = (fixed + [0, 0])[:3]
    prerelease = match.group(4) if len(fixed) == 3 else None
    lower = semver.Version(major, minor, patch, prerelease)
    # First version above the range selected by a partial version
    upper = lower.bump_major() if len(fixed) == 1 else lower.bump_minor()

    if operator == "^":
        if major or len(fixed) == 1:
            upper = lower.bump_major()
        elif minor or len(fixed) == 2:
            upper = lower.bump_minor()
        else:
            upper = lower.bump_patch()
        return [(f">={lower}",), (f"<{upper}",)]
    if operator in ("~", "~>"):
        return [(f">={lower}",), (f"<{upper}",)]
    if not wildcard:
        return [(f"{operator}{lower}",)]
    if operator == "==":
        return [(f">={lower}",), (f"<{upper}",)]
    if operator == "!=":
        return [(f"<{lower}", f">={upper}")]
    if operator == ">":
        return [(f">={upper}",)]
    if operator == "<=":
        return [(f"<{upper}",)]
    return [(f"{operator}{lower}",)]


def _parse_constraint(constraint: str) -> list[_Alternative]:
    """Parse a version constraint into alternatives, any of which may match.

    Alternatives are separated by `||`. Within an alternative, clauses are
    separated by commas or spaces. A clause is a comparison (`=`, `!=`, `<`,
    `<=`, `>`, `>=`), a caret (`^1.2`) or tilde (`~1.2.3`) range, or a
    version with `x` or `*` wildcards. A hyphen range `1.2 - 1.4.5` is the
    same as `>=1.2 <=1.4.5`.
    """
    alternatives = []
    for text in _ALTERNATIVES_SPLIT.split(constraint.strip()):
        text = _HYPHEN_RANGE.sub(r">=\1 <=\2", text.strip())
        text = _OPERATOR_SPACE.sub(r"\1", text)
        alternative = _Alternative()
        for part in _CLAUSE_SPLIT.split(text):
            if not part or part == ANY_VERSION:
                continue
            if not (match := _OPERATOR.match(part)):
                continue
            operator, value = match.groups()
            if operator in (None, "="):
                operator = "=="
            if not (version_match := _PARTIAL_VERSION.match(value)):
                raise ChartNotFoundError(f"Invalid version constraint {constraint!r}")
            alternative.terms.extend(_expand_clause(operator, version_match))
            if version_match.group(4):
                alternative.prerelease = True
        alternatives.append(alternative)
    return alternatives


def find_entry(index: ChartIndex, name: str, version: str) -> str:
    """Return the first download location of a chart in the index."""
    err_msg = f"chart {name!r}"
    if version:
        err_msg = f"{err_msg} version {version!r}"
    chart_version = index.get(name, version)
    if chart_version is None:
        raise ChartNotFoundError(f"{err_msg} not found in repository")
    if not chart_version.urls:
        raise NoDownloadLocationError(f"{err_msg} has no downloadable URLs")
    _LOGGER.debug("Found chart %s version %s", name, chart_version.version)
    return chart_version.urls[0]


def _check_uri(value: str) -> str:
    """Validate a URI, returning it with surrounding whitespace removed."""
    value = value.strip()
    if not value:
        raise InvalidURIError("Invalid empty URI")
    if any(ch.isspace() or ord(ch) < 0x20 or ord(ch) == 0x7F for ch in value):
        raise InvalidURIError(f"Invalid URI {value!r}: contains control characters")
    try:
        urlparse(value)
    except ValueError as err:
        raise InvalidURIError(f"Invalid URI {value!r}: {err}") from err
    return value


def check_absolute_uri(value: str) -> str:
    """Validate that the location is an absolute URI with a host."""
    value = _check_uri(value)
    parsed = urlparse(value)
    if not parsed.scheme or not parsed.netloc:
        raise InvalidURIError(f"Invalid URI {value!r}: expected an absolute URI")
    return value


def resolve_location(base: str, candidate: str) -> str:
    """Resolve a download location relative to the repository index URL."""
    base = _check_uri(base)
    candidate = _check_uri(candidate)
    if urlparse(candidate).scheme:
        return candidate
    try:
        return urljoin(base, candidate)
    except ValueError as err:
        raise InvalidURIError(
            f"Unable to resolve {candidate!r} against {base!r}: {err}"
        ) from err


def repo_index_url(repo_url: str, default: str) -> str:
    """Return the URL of the index file of a repository."""
    repo_url = repo_url or default
    return f"{repo_url.strip().removesuffix('/')}/{INDEX_FILE}"

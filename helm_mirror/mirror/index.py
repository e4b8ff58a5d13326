"""Chart repository index loading and search.

This module handles:
- Parsing an ``index.yaml`` document into RepositoryEntry records
- Keeping only the latest version of each chart unless told otherwise
- Searching chart names with a regular expression
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from typing import Any

import yaml

from helm_mirror.errors import IndexLoadError, ValidationError
from helm_mirror.types import RepositoryEntry

logger = logging.getLogger(__name__)

_SEMVER_RE = re.compile(
    r"^v?(\d+)(?:\.(\d+))?(?:\.(\d+))?"
    r"(?:-([0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*)?$"
)


def parse_index(content: bytes | str) -> list[RepositoryEntry]:
    """Parse a repository index document.

    Args:
        content: Raw index file content.

    Returns:
        Entries in index order (chart by chart, version by version).

    Raises:
        IndexLoadError: If the document is not a valid index.
    """
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise IndexLoadError(f"cannot parse index file: {e}") from e

    if not isinstance(data, dict):
        raise IndexLoadError("index file is not a YAML mapping")

    charts = data.get("entries") or {}
    if not isinstance(charts, dict):
        raise IndexLoadError("index file 'entries' is not a mapping")

    entries: list[RepositoryEntry] = []
    for chart_name, versions in charts.items():
        if not isinstance(versions, list):
            raise IndexLoadError(f"entries of chart {chart_name!r} are not a list")
        for item in versions:
            entries.append(_parse_entry(str(chart_name), item))

    logger.debug("Loaded %d chart versions from index", len(entries))
    return entries


def _parse_entry(chart_name: str, item: Any) -> RepositoryEntry:
    if not isinstance(item, dict):
        raise IndexLoadError(f"invalid entry for chart {chart_name!r}")
    if item.get("version") is None:
        raise IndexLoadError(f"entry for chart {chart_name!r} has no version")

    urls = item.get("urls") or []
    if isinstance(urls, str):
        urls = [urls]

    return RepositoryEntry(
        name=str(item.get("name") or chart_name),
        version=str(item["version"]),
        urls=tuple(str(u) for u in urls),
        description=str(item.get("description") or ""),
    )


def version_key(version: str) -> tuple[Any, ...]:
    """Sort key ordering chart versions by SemVer 2 precedence.

    A leading ``v`` and missing minor or patch numbers are accepted, as Helm
    does. Build metadata is ignored. Versions that do not parse are ranked
    below every valid one.
    """
    match = _SEMVER_RE.match(version.strip())
    if match is None:
        return (0,)
    major, minor, patch, prerelease = match.groups()
    release = (int(major), int(minor or 0), int(patch or 0))
    if prerelease is None:
        return (1, release, (1,))
    # Numeric identifiers rank below alphanumeric ones
    identifiers = tuple(
        (0, int(part), "") if part.isdigit() else (1, 0, part)
        for part in prerelease.split(".")
    )
    return (1, release, (0, identifiers))


def latest_versions(entries: Iterable[RepositoryEntry]) -> list[RepositoryEntry]:
    """Keep only the highest version of each chart.

    Args:
        entries: Entries to group by chart name.

    Returns:
        One entry per chart name, in order of first appearance. Ties keep
        the entry listed first in the index.
    """
    latest: dict[str, RepositoryEntry] = {}
    for entry in entries:
        current = latest.get(entry.name)
        if current is None or version_key(entry.version) > version_key(
            current.version
        ):
            latest[entry.name] = entry
    return list(latest.values())


def search_index(
    entries: Iterable[RepositoryEntry],
    pattern: str = "",
    all_versions: bool = False,
) -> list[RepositoryEntry]:
    """Search chart names with a regular expression.

    Args:
        entries: All entries of the index.
        pattern: Regex fragment that must occur somewhere in the name.
        all_versions: Keep every version instead of the latest per chart.

    Returns:
        Matching entries sorted by chart name, newest version first.

    Raises:
        ValidationError: If the pattern is not a valid regular expression.
    """
    try:
        regex = re.compile(f"^.*{pattern}.*")
    except re.error as e:
        raise ValidationError(f"cannot search index for {pattern!r}: {e}") from e

    candidates = list(entries)
    if not all_versions:
        candidates = latest_versions(candidates)

    matches = [e for e in candidates if regex.search(e.name)]
    matches.sort(key=lambda e: version_key(e.version), reverse=True)
    matches.sort(key=lambda e: e.name)
    return matches


__all__ = ["latest_versions", "parse_index", "search_index", "version_key"]

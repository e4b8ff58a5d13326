"""Selection of the index entries that get mirrored."""

from collections.abc import Iterable

from helm_mirror.types import RepositoryEntry, SelectionCriteria


def select_entries(
    entries: Iterable[RepositoryEntry], criteria: SelectionCriteria
) -> list[RepositoryEntry]:
    """Apply exact name and version constraints to searched entries.

    Grouping by version and pattern search are done by the index search;
    this only narrows its results. An empty result is not an error.

    Args:
        entries: Entries returned by the index search.
        criteria: Selection criteria of the mirror run.

    Returns:
        Entries to download, in input order.
    """
    selected = []
    for entry in entries:
        if criteria.exact_name and entry.name != criteria.exact_name:
            continue
        if criteria.exact_version and entry.version != criteria.exact_version:
            continue
        selected.append(entry)
    return selected


__all__ = ["select_entries"]

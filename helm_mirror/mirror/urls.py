"""URL helpers for chart repositories.

Chart entries in an index may reference their archives with absolute URLs
or with paths relative to the repository root.
"""

import httpx

from helm_mirror.errors import InvalidReferenceError

INDEX_FILE_NAME = "index.yaml"

DIR_SEPARATOR = "/"


def resolve_reference(reference: str, base_url: str) -> str:
    """Resolve a chart reference against the repository URL.

    Args:
        reference: URL or relative path from an index entry.
        base_url: Repository root URL.

    Returns:
        The reference unchanged if it carries a scheme, otherwise the base
        URL (trailing separators trimmed) joined to the reference with
        exactly one separator.

    Raises:
        InvalidReferenceError: If the reference is not a parseable URL.
    """
    try:
        parsed = httpx.URL(reference)
    except httpx.InvalidURL as e:
        raise InvalidReferenceError(f"invalid chart URL {reference!r}: {e}") from e

    if parsed.scheme:
        return reference
    return base_url.rstrip(DIR_SEPARATOR) + DIR_SEPARATOR + reference


def index_url(repo_url: str) -> str:
    """Return the URL of the index file of a repository.

    Args:
        repo_url: Repository root URL, with or without a trailing slash.

    Returns:
        URL with ``/index.yaml`` appended to its path, query preserved.
    """
    url = httpx.URL(repo_url)
    path = url.path.rstrip(DIR_SEPARATOR) + DIR_SEPARATOR + INDEX_FILE_NAME
    return str(url.copy_with(path=path))


__all__ = ["INDEX_FILE_NAME", "index_url", "resolve_reference"]

"""Index rewriting and publication.

The index is downloaded under a working name and only moved to
``index.yaml`` once every archive has been handled.
"""

import logging
from pathlib import Path

from helm_mirror.errors import FilesystemError, IndexFinalizationError
from helm_mirror.mirror.fetch import write_file
from helm_mirror.mirror.urls import INDEX_FILE_NAME

logger = logging.getLogger(__name__)

DOWNLOADED_INDEX_NAME = "downloaded-index.yaml"


def rewrite_root_url(content: bytes, repo_url: str, new_root_url: str) -> bytes:
    """Replace every occurrence of the repository URL in index content."""
    return content.replace(repo_url.encode(), new_root_url.encode())


def finalize_index(
    folder: Path,
    repo_url: str,
    new_root_url: str | None = None,
) -> Path:
    """Rewrite the downloaded index if asked and publish it as index.yaml.

    Args:
        folder: Mirror folder holding the downloaded index.
        repo_url: Original repository URL, as given by the user.
        new_root_url: Root URL the mirrored index should point at.

    Returns:
        Path of the published index.

    Raises:
        FilesystemError: If the downloaded index cannot be read.
        IndexFinalizationError: If the index cannot be renamed.
    """
    downloaded_path = folder / DOWNLOADED_INDEX_NAME
    index_path = folder / INDEX_FILE_NAME

    if new_root_url:
        try:
            content = downloaded_path.read_bytes()
        except OSError as e:
            raise FilesystemError(f"cannot read index file: {e}") from e

        rewritten = rewrite_root_url(content, repo_url, new_root_url)
        try:
            write_file(downloaded_path, rewritten)
            logger.info("Rewrote index root URL %s -> %s", repo_url, new_root_url)
        except FilesystemError as e:
            # Publishing goes ahead with the original content.
            logger.warning("Index rewrite not saved: %s", e)

    try:
        downloaded_path.replace(index_path)
    except OSError as e:
        raise IndexFinalizationError(f"cannot rename index file: {e}") from e

    logger.info("Published index %s", index_path)
    return index_path


__all__ = ["DOWNLOADED_INDEX_NAME", "finalize_index", "rewrite_root_url"]

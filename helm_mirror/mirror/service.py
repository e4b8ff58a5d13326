"""Mirror service module.

This module provides the high-level mirror operation:
- Download the repository index into the destination folder
- Search and select the chart versions to mirror
- Download each selected archive, honoring ignore-errors
- Rewrite and publish the index
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx

from helm_mirror.config import get_settings
from helm_mirror.errors import FilesystemError, TransportError
from helm_mirror.mirror.fetch import (
    build_client,
    fetch_bytes,
    write_archive,
    write_file,
)
from helm_mirror.mirror.index import parse_index, search_index
from helm_mirror.mirror.rewrite import DOWNLOADED_INDEX_NAME, finalize_index
from helm_mirror.mirror.selection import select_entries
from helm_mirror.mirror.urls import index_url, resolve_reference
from helm_mirror.types import (
    DownloadOutcome,
    MirrorOptions,
    MirrorResult,
    RepositoryEntry,
)

if TYPE_CHECKING:
    from helm_mirror.config import Settings

logger = logging.getLogger(__name__)

# Permissions of the destination folder when it has to be created
FOLDER_MODE = 0o744


class MirrorService:
    """Mirror a chart repository into a local folder.

    Args:
        options: Immutable options of the run.
        client: Optional HTTP client; one is built from the options'
            credentials (and closed afterwards) when omitted.
        settings: Optional settings; loaded from the environment if omitted.
    """

    def __init__(
        self,
        options: MirrorOptions,
        client: httpx.Client | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.options = options
        self.settings = settings or get_settings()
        self._client = client

    def run(self) -> MirrorResult:
        """Download the index and the selected charts.

        Returns:
            MirrorResult with the published index path and one outcome per
            attempted archive.

        Raises:
            ValidationError: If the search pattern is invalid.
            TransportError: If the index cannot be fetched, or an archive in
                strict mode.
            FilesystemError: If the folder or index cannot be written, or an
                archive in strict mode.
            IndexLoadError: If the index cannot be parsed.
            IndexFinalizationError: If the index cannot be published.
        """
        if self._client is not None:
            return self._run(self._client)
        with build_client(
            self.options.auth, timeout=self.settings.request_timeout
        ) as client:
            return self._run(client)

    def _run(self, client: httpx.Client) -> MirrorResult:
        options = self.options
        folder = options.destination

        try:
            folder.mkdir(mode=FOLDER_MODE, parents=True, exist_ok=True)
        except OSError as e:
            raise FilesystemError(
                f"cannot create destination folder {str(folder)!r}: {e}"
            ) from e

        url = index_url(options.repo_url)
        logger.info("Downloading index %s", url)
        content = fetch_bytes(client, url)
        write_file(folder / DOWNLOADED_INDEX_NAME, content)

        criteria = options.criteria
        found = search_index(
            parse_index(content),
            criteria.name_pattern,
            all_versions=criteria.include_all_versions,
        )
        selected = select_entries(found, criteria)
        logger.info("Selected %d chart version(s) to mirror", len(selected))

        outcomes: list[DownloadOutcome] = []
        for entry in selected:
            for reference in entry.urls:
                outcomes.append(self._mirror_archive(client, entry, reference))

        index_path = finalize_index(folder, options.repo_url, options.new_root_url)
        return MirrorResult(index_path=index_path, outcomes=outcomes)

    def _mirror_archive(
        self, client: httpx.Client, entry: RepositoryEntry, reference: str
    ) -> DownloadOutcome:
        url = resolve_reference(reference, self.options.repo_url)
        logger.debug("Processing chart %s(%s) from %s", entry.name, entry.version, url)

        try:
            content = fetch_bytes(client, url)
            path = write_archive(self.options.destination, entry, content)
        except (TransportError, FilesystemError) as e:
            if not self.options.ignore_errors:
                raise
            logger.warning(
                "processing chart %s(%s) - %s", entry.name, entry.version, e
            )
            return DownloadOutcome(entry=entry, url=url, error=e)

        return DownloadOutcome(entry=entry, url=url, archive_path=path)


def mirror_repository(
    options: MirrorOptions,
    client: httpx.Client | None = None,
    settings: Settings | None = None,
) -> MirrorResult:
    """Mirror a repository; see MirrorService.run."""
    return MirrorService(options, client=client, settings=settings).run()


__all__ = ["FOLDER_MODE", "MirrorService", "mirror_repository"]

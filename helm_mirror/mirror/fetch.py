"""Chart repository fetch module.

This module handles:
- Building an HTTP client from repository credentials
- Fetching the index file and chart archives
- Persisting archives under their canonical names
"""

from __future__ import annotations

import logging
import ssl
from pathlib import Path

import httpx

from helm_mirror.errors import (
    HTTP_ERROR,
    NETWORK_ERROR,
    TIMEOUT_ERROR,
    FilesystemError,
    TransportError,
)
from helm_mirror.types import RepositoryAuth, RepositoryEntry

logger = logging.getLogger(__name__)

# Timeout for index and archive requests (seconds)
REQUEST_TIMEOUT = 300.0

# Permissions of written archives and index files
FILE_MODE = 0o600


def build_client(
    auth: RepositoryAuth | None = None,
    timeout: float = REQUEST_TIMEOUT,
) -> httpx.Client:
    """Create an HTTP client for a chart repository.

    Args:
        auth: Optional credentials and TLS files.
        timeout: Request timeout in seconds.

    Returns:
        Configured httpx.Client. The caller owns and closes it.
    """
    auth = auth or RepositoryAuth()

    verify: ssl.SSLContext | bool = True
    if auth.ca_file or auth.cert_file:
        try:
            verify = ssl.create_default_context(
                cafile=str(auth.ca_file) if auth.ca_file else None
            )
            if auth.cert_file:
                verify.load_cert_chain(
                    str(auth.cert_file),
                    str(auth.key_file) if auth.key_file else None,
                )
        except OSError as e:
            raise FilesystemError(f"cannot load TLS files: {e}") from e

    basic_auth = None
    if auth.username or auth.password:
        basic_auth = httpx.BasicAuth(auth.username or "", auth.password or "")

    return httpx.Client(
        auth=basic_auth,
        verify=verify,
        timeout=timeout,
        follow_redirects=True,
    )


def fetch_bytes(client: httpx.Client, url: str) -> bytes:
    """Fetch a URL and return the response body.

    Args:
        client: HTTPX client instance.
        url: Absolute URL to fetch.

    Returns:
        Response content.

    Raises:
        TransportError: If the request fails.
    """
    logger.debug("Fetching %s", url)

    try:
        response = client.get(url)
        response.raise_for_status()
        return response.content

    except httpx.HTTPStatusError as e:
        raise TransportError(
            f"HTTP error fetching {url}: {e.response.status_code} {e.response.reason_phrase}",
            code=HTTP_ERROR,
        ) from e
    except httpx.TimeoutException as e:
        raise TransportError(
            f"Timeout fetching {url}",
            code=TIMEOUT_ERROR,
        ) from e
    except httpx.RequestError as e:
        raise TransportError(
            f"Network error fetching {url}: {e}",
            code=NETWORK_ERROR,
        ) from e


def write_file(path: Path, content: bytes) -> Path:
    """Write content to a file, replacing it if present.

    Raises:
        FilesystemError: If the file cannot be written.
    """
    try:
        path.write_bytes(content)
        path.chmod(FILE_MODE)
    except OSError as e:
        raise FilesystemError(f"cannot write file {str(path)!r}: {e}") from e
    return path


def write_archive(destination: Path, entry: RepositoryEntry, content: bytes) -> Path:
    """Persist a chart archive as ``<name>-<version>.tgz``.

    Args:
        destination: Mirror folder.
        entry: Entry the archive belongs to.
        content: Archive bytes.

    Returns:
        Path of the written archive.

    Raises:
        FilesystemError: If the archive cannot be written.
    """
    path = write_file(destination / entry.archive_name, content)
    logger.info("Saved %s (%d bytes)", path.name, len(content))
    return path


__all__ = [
    "FILE_MODE",
    "REQUEST_TIMEOUT",
    "build_client",
    "fetch_bytes",
    "write_archive",
    "write_file",
]

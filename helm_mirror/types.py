"""Shared type definitions for helm_mirror.

This module contains the dataclasses and enums shared by the mirror and
images subpackages, plus the immutable option records handed to each
engine's constructor.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

import httpx

from helm_mirror.errors import HelmMirrorError, ValidationError

# Suffix of chart archives, both when mirroring and when walking a folder
ARCHIVE_SUFFIX = ".tgz"

# Default file name for the file-based output sinks
DEFAULT_IMAGES_FILE = "images.out"


class OutputKind(str, Enum):
    """Destination of the extracted image list."""

    STDOUT = "stdout"
    FILE = "file"
    JSON = "json"
    YAML = "yaml"
    SKOPEO = "skopeo"


@dataclass(frozen=True)
class RepositoryEntry:
    """One published version of one chart in a repository index."""

    name: str
    version: str
    urls: tuple[str, ...] = ()
    description: str = ""

    @property
    def archive_name(self) -> str:
        """File name the archive is stored under when mirrored."""
        return f"{self.name}-{self.version}{ARCHIVE_SUFFIX}"


@dataclass(frozen=True)
class SelectionCriteria:
    """Which charts of an index should be mirrored.

    Attributes:
        name_pattern: Regex fragment searched anywhere in chart names.
        exact_name: Only mirror charts with exactly this name.
        exact_version: Only mirror this version (requires exact_name).
        all_versions: Mirror every version instead of only the latest.
    """

    name_pattern: str = ""
    exact_name: str | None = None
    exact_version: str | None = None
    all_versions: bool = False

    def __post_init__(self) -> None:
        """Reject a version without a chart name."""
        if self.exact_version and not self.exact_name:
            raise ValidationError(
                "chart version depends on a chart name, please specify one"
            )

    @classmethod
    def for_chart(
        cls,
        chart_name: str | None = None,
        chart_version: str | None = None,
        all_versions: bool = False,
    ) -> SelectionCriteria:
        """Build criteria from the mirror command's chart options."""
        return cls(
            name_pattern=chart_name or "",
            exact_name=chart_name or None,
            exact_version=chart_version or None,
            all_versions=all_versions,
        )

    @property
    def include_all_versions(self) -> bool:
        """Whether the index loader should keep every version."""
        return self.all_versions or bool(self.exact_version)


@dataclass(frozen=True)
class RepositoryAuth:
    """Credentials and TLS material passed through to the HTTP client."""

    username: str | None = None
    password: str | None = None
    ca_file: Path | None = None
    cert_file: Path | None = None
    key_file: Path | None = None


@dataclass
class DownloadOutcome:
    """Result of one attempted archive download."""

    entry: RepositoryEntry
    url: str
    archive_path: Path | None = None
    error: HelmMirrorError | None = None

    @property
    def succeeded(self) -> bool:
        """Whether the archive was fetched and written."""
        return self.error is None and self.archive_path is not None


@dataclass
class MirrorResult:
    """Result of a mirror run."""

    index_path: Path
    outcomes: list[DownloadOutcome] = field(default_factory=list)

    @property
    def downloaded(self) -> list[DownloadOutcome]:
        """Outcomes whose archive was written."""
        return [o for o in self.outcomes if o.succeeded]

    @property
    def failed(self) -> list[DownloadOutcome]:
        """Outcomes that were skipped because of an error."""
        return [o for o in self.outcomes if not o.succeeded]


@dataclass
class TraversalOutcome:
    """Result of rendering one member of a batch."""

    target: Path
    succeeded: bool
    error: HelmMirrorError | None = None
    image_count: int = 0


@dataclass
class BatchResult:
    """Aggregate result of inspecting one target."""

    target: Path
    images: list[str] = field(default_factory=list)
    outcomes: list[TraversalOutcome] = field(default_factory=list)
    directory_error: HelmMirrorError | None = None

    @property
    def succeeded(self) -> bool:
        """Whether at least one chart of the batch rendered."""
        return any(o.succeeded for o in self.outcomes)

    @property
    def has_errors(self) -> bool:
        """Whether any member failed (recorded but suppressed)."""
        return any(not o.succeeded for o in self.outcomes)


@dataclass(frozen=True)
class OutputSpec:
    """Where and how to write the extracted images."""

    kind: OutputKind = OutputKind.STDOUT
    filename: Path = Path(DEFAULT_IMAGES_FILE)

    @classmethod
    def parse(
        cls, descriptor: str, default_filename: str = DEFAULT_IMAGES_FILE
    ) -> OutputSpec:
        """Parse an output descriptor of the form ``kind`` or ``kind=filename``.

        Args:
            descriptor: Output descriptor from the command line.
            default_filename: File name used when none is given.

        Returns:
            OutputSpec with an absolute filename.

        Raises:
            ValidationError: If the kind is unknown or the filename empty.
        """
        kind_name, sep, filename = descriptor.partition("=")
        try:
            kind = OutputKind(kind_name.strip().lower())
        except ValueError:
            valid = ", ".join(k.value for k in OutputKind)
            raise ValidationError(
                f"unknown output kind {kind_name!r} (valid: {valid})"
            ) from None

        if sep and not filename:
            raise ValidationError(f"missing file name in output {descriptor!r}")

        path = Path(filename or default_filename)
        if not path.is_absolute():
            path = Path.cwd() / path
        return cls(kind=kind, filename=path)


def _check_http_url(url: str, what: str) -> None:
    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL as e:
        raise ValidationError(f"{url!r} is not a valid URL for {what}: {e}") from e
    if "http" not in parsed.scheme:
        raise ValidationError(f"not a valid URL protocol for {what}: {url!r}")


@dataclass(frozen=True)
class MirrorOptions:
    """Immutable configuration of a mirror run."""

    repo_url: str
    destination: Path
    criteria: SelectionCriteria = field(default_factory=SelectionCriteria)
    auth: RepositoryAuth = field(default_factory=RepositoryAuth)
    new_root_url: str | None = None
    ignore_errors: bool = False
    verbose: bool = False

    def __post_init__(self) -> None:
        """Validate URLs and paths before any I/O."""
        _check_http_url(self.repo_url, "index file")
        if not Path(self.destination).is_absolute():
            raise ValidationError(
                "please provide a full path for destination folder: "
                f"{self.destination}"
            )
        if self.new_root_url:
            _check_http_url(self.new_root_url, "new root URL")


@dataclass(frozen=True)
class InspectOptions:
    """Immutable configuration of an inspect-images run."""

    target: Path
    output: OutputSpec = field(default_factory=OutputSpec)
    ignore_errors: bool = False
    verbose: bool = False

    def __post_init__(self) -> None:
        """Require an absolute target path."""
        if not Path(self.target).is_absolute():
            raise ValidationError(
                f"please provide a full path for [folder|tgzfile]: {self.target}"
            )


__all__ = [
    "ARCHIVE_SUFFIX",
    "DEFAULT_IMAGES_FILE",
    "BatchResult",
    "DownloadOutcome",
    "InspectOptions",
    "MirrorOptions",
    "MirrorResult",
    "OutputKind",
    "OutputSpec",
    "RepositoryAuth",
    "RepositoryEntry",
    "SelectionCriteria",
    "TraversalOutcome",
]

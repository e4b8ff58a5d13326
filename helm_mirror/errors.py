"""Error definitions for helm_mirror.

Every exception carries a stable ``code`` so callers can branch on the
failure kind without parsing messages. The CLI turns any of them into a
single diagnostic line and a non-zero exit status.
"""

# Error code constants
VALIDATION_ERROR = "validation"
INVALID_REFERENCE = "invalid_reference"
INDEX_ERROR = "index_error"
HTTP_ERROR = "http_error"
TIMEOUT_ERROR = "timeout"
NETWORK_ERROR = "network_error"
FILESYSTEM_ERROR = "filesystem_error"
INDEX_FINALIZATION_ERROR = "index_finalization"
RENDER_ERROR = "render_error"
FORMAT_ERROR = "format_error"


class HelmMirrorError(Exception):
    """Base class for all helm_mirror errors."""

    default_code = "error"

    def __init__(self, message: str, code: str | None = None) -> None:
        """Initialize HelmMirrorError.

        Args:
            message: Error description.
            code: Error code for structured error handling.
        """
        super().__init__(message)
        self.code = code or self.default_code


class ValidationError(HelmMirrorError):
    """Raised for malformed arguments, before any I/O happens."""

    default_code = VALIDATION_ERROR


class InvalidReferenceError(ValidationError):
    """Raised when a chart reference cannot be parsed as a URL."""

    default_code = INVALID_REFERENCE


class IndexLoadError(HelmMirrorError):
    """Raised when the repository index cannot be parsed."""

    default_code = INDEX_ERROR


class TransportError(HelmMirrorError):
    """Raised when fetching the index or an archive fails."""

    default_code = NETWORK_ERROR


class FilesystemError(HelmMirrorError):
    """Raised when reading, writing or renaming a local file fails."""

    default_code = FILESYSTEM_ERROR


class IndexFinalizationError(FilesystemError):
    """Raised when the index cannot be moved to its published name."""

    default_code = INDEX_FINALIZATION_ERROR


class RenderError(HelmMirrorError):
    """Raised when a chart cannot be loaded or rendered."""

    default_code = RENDER_ERROR


class FormatError(HelmMirrorError):
    """Raised when the image list cannot be serialized or written."""

    default_code = FORMAT_ERROR


__all__ = [
    "FILESYSTEM_ERROR",
    "FORMAT_ERROR",
    "HTTP_ERROR",
    "INDEX_ERROR",
    "INDEX_FINALIZATION_ERROR",
    "INVALID_REFERENCE",
    "NETWORK_ERROR",
    "RENDER_ERROR",
    "TIMEOUT_ERROR",
    "VALIDATION_ERROR",
    "FilesystemError",
    "FormatError",
    "HelmMirrorError",
    "IndexFinalizationError",
    "IndexLoadError",
    "InvalidReferenceError",
    "RenderError",
    "TransportError",
    "ValidationError",
]

"""Output sinks for extracted images.

The sink is picked by OutputKind:
- stdout: newline-terminated images on standard output
- file: the same text written to a file
- json: ``{"names": [...]}`` written to a file
- yaml / skopeo: the same structure as YAML, written to a file
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import TextIO

import yaml

from helm_mirror.errors import FormatError
from helm_mirror.types import OutputKind, OutputSpec

logger = logging.getLogger(__name__)

NAMES_KEY = "names"

# Permissions of written output files
OUTPUT_FILE_MODE = 0o600


def images_to_text(images: list[str]) -> str:
    """Render images as newline-terminated lines."""
    return "".join(f"{image}\n" for image in images)


def images_payload(images: list[str]) -> dict[str, list[str]]:
    """Structured payload shared by the JSON and YAML sinks."""
    return {NAMES_KEY: [image for image in images if image]}


def render_output(images: list[str], kind: OutputKind) -> str:
    """Serialize images for a sink.

    Raises:
        FormatError: If serialization fails.
    """
    try:
        if kind == OutputKind.JSON:
            return json.dumps(images_payload(images))
        if kind in (OutputKind.YAML, OutputKind.SKOPEO):
            return yaml.safe_dump(
                images_payload(images), default_flow_style=False, sort_keys=False
            )
    except (TypeError, ValueError, yaml.YAMLError) as e:
        raise FormatError(f"cannot encode {kind.value}: {e}") from e
    return images_to_text(images)


def _write_file(path: Path, content: str) -> None:
    try:
        path.write_text(content, encoding="utf-8")
        path.chmod(OUTPUT_FILE_MODE)
    except (OSError, UnicodeEncodeError) as e:
        raise FormatError(f"cannot write file {str(path)!r}: {e}") from e


def write_output(
    images: list[str], spec: OutputSpec, stream: TextIO | None = None
) -> None:
    """Emit images through the sink described by spec.

    Args:
        images: Extracted images in order.
        spec: Sink kind and target file.
        stream: Stream for the stdout sink; defaults to sys.stdout.

    Raises:
        FormatError: If the images cannot be serialized or written.
    """
    content = render_output(images, spec.kind)

    if spec.kind == OutputKind.STDOUT:
        out = stream or sys.stdout
        try:
            out.write(content)
            out.flush()
        except (OSError, UnicodeEncodeError) as e:
            raise FormatError(f"cannot write to stdout: {e}") from e
        return

    _write_file(spec.filename, content)
    logger.info("Wrote %d image(s) to %s", len(images), spec.filename)


__all__ = [
    "NAMES_KEY",
    "images_payload",
    "images_to_text",
    "render_output",
    "write_output",
]

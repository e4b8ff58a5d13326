"""Chart loading.

A chart is either a directory holding ``Chart.yaml`` or a gzipped tar
archive whose single top-level directory is such a directory. Loading
reads everything needed for rendering into memory, so no file handle or
temporary directory outlives the call.
"""

from __future__ import annotations

import logging
import tarfile
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from helm_mirror.errors import RenderError
from helm_mirror.types import ARCHIVE_SUFFIX

logger = logging.getLogger(__name__)

CHART_FILE = "Chart.yaml"
VALUES_FILE = "values.yaml"
TEMPLATES_DIR = "templates"
CHARTS_DIR = "charts"


@dataclass
class Chart:
    """A loaded chart.

    Attributes:
        name: Chart name from Chart.yaml.
        version: Chart version from Chart.yaml.
        metadata: Full Chart.yaml content.
        values: Default values from values.yaml.
        templates: Template sources keyed by path relative to the chart root.
        subcharts: Charts bundled under charts/.
        source: Path the chart was loaded from.
    """

    name: str
    version: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)
    values: dict[str, Any] = field(default_factory=dict)
    templates: dict[str, str] = field(default_factory=dict)
    subcharts: list[Chart] = field(default_factory=list)
    source: Path | None = None


def load_chart(path: Path) -> Chart:
    """Load a chart from a directory or an archive.

    Args:
        path: Chart directory or ``.tgz`` archive.

    Returns:
        Loaded Chart.

    Raises:
        RenderError: If the path is not a valid chart.
    """
    if path.is_dir():
        return load_chart_directory(path)
    return load_chart_archive(path)


def load_chart_archive(path: Path) -> Chart:
    """Load a chart from a gzipped tar archive."""
    logger.debug("Loading chart archive %s", path)

    with tempfile.TemporaryDirectory(prefix="helm-mirror-") as tmp:
        dest = Path(tmp)
        try:
            with tarfile.open(path, "r:*") as tar:
                tar.extractall(dest, filter="data")
        except (tarfile.TarError, OSError) as e:
            raise RenderError(f"cannot load chart {str(path)!r}: {e}") from e

        chart_root = _find_chart_root(dest)
        if chart_root is None:
            raise RenderError(f"cannot load chart {str(path)!r}: no {CHART_FILE} found")

        chart = load_chart_directory(chart_root)
        chart.source = path
        return chart


def _find_chart_root(dest: Path) -> Path | None:
    if (dest / CHART_FILE).is_file():
        return dest
    for child in sorted(dest.iterdir()):
        if child.is_dir() and (child / CHART_FILE).is_file():
            return child
    return None


def load_chart_directory(path: Path) -> Chart:
    """Load a chart from an unpacked chart directory."""
    logger.debug("Loading chart directory %s", path)

    chart_file = path / CHART_FILE
    if not chart_file.is_file():
        raise RenderError(f"cannot load chart {str(path)!r}: no {CHART_FILE} found")

    metadata = _load_yaml_mapping(chart_file)
    if not metadata.get("name"):
        raise RenderError(f"cannot load chart {str(path)!r}: chart has no name")

    values_file = path / VALUES_FILE
    values = _load_yaml_mapping(values_file) if values_file.is_file() else {}

    return Chart(
        name=str(metadata["name"]),
        version=str(metadata.get("version") or ""),
        metadata=metadata,
        values=values,
        templates=_load_templates(path),
        subcharts=_load_subcharts(path / CHARTS_DIR),
        source=path,
    )


def _load_yaml_mapping(path: Path) -> dict[str, Any]:
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, UnicodeDecodeError, yaml.YAMLError) as e:
        raise RenderError(f"cannot read {str(path)!r}: {e}") from e
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise RenderError(f"{str(path)!r} is not a YAML mapping")
    return data


def _load_templates(chart_root: Path) -> dict[str, str]:
    templates_dir = chart_root / TEMPLATES_DIR
    templates: dict[str, str] = {}
    if not templates_dir.is_dir():
        return templates

    for template in sorted(templates_dir.rglob("*")):
        if not template.is_file():
            continue
        name = template.relative_to(chart_root).as_posix()
        try:
            templates[name] = template.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise RenderError(f"cannot read template {name!r}: {e}") from e
    return templates


def _load_subcharts(charts_dir: Path) -> list[Chart]:
    if not charts_dir.is_dir():
        return []

    subcharts = []
    for child in sorted(charts_dir.iterdir()):
        if child.is_dir() and (child / CHART_FILE).is_file():
            subcharts.append(load_chart_directory(child))
        elif child.is_file() and child.name.endswith(ARCHIVE_SUFFIX):
            subcharts.append(load_chart_archive(child))
    return subcharts


__all__ = [
    "CHART_FILE",
    "Chart",
    "load_chart",
    "load_chart_archive",
    "load_chart_directory",
]

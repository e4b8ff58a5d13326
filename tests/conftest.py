"""Shared fixtures for building charts on disk."""

import tarfile
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
import yaml

DEPLOYMENT_TEMPLATE = """apiVersion: apps/v1
kind: Deployment
metadata:
  name: {{ .Release.Name }}-{{ .Chart.Name }}
spec:
  template:
    spec:
      containers:
        - name: {{ .Chart.Name }}
          image: "{{ .Values.image.repository }}:{{ .Values.image.tag }}"
"""


def write_chart(
    root: Path,
    name: str = "demo",
    version: str = "0.1.0",
    values: dict[str, Any] | None = None,
    templates: dict[str, str] | None = None,
) -> Path:
    """Write an unpacked chart under root and return its directory."""
    chart_dir = root / name
    (chart_dir / "templates").mkdir(parents=True)
    (chart_dir / "Chart.yaml").write_text(
        yaml.safe_dump(
            {"apiVersion": "v1", "name": name, "version": version, "appVersion": "1.0"}
        )
    )
    if values is None:
        values = {"image": {"repository": f"example/{name}", "tag": version}}
    (chart_dir / "values.yaml").write_text(yaml.safe_dump(values))
    if templates is None:
        templates = {"deployment.yaml": DEPLOYMENT_TEMPLATE}
    for template_name, source in templates.items():
        path = chart_dir / "templates" / template_name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(source)
    return chart_dir


def pack_chart(chart_dir: Path, archive: Path) -> Path:
    """Pack a chart directory into a gzipped tarball."""
    archive.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(archive, "w:gz") as tar:
        tar.add(chart_dir, arcname=chart_dir.name)
    return archive


@pytest.fixture
def chart_factory(tmp_path: Path) -> Callable[..., Path]:
    """Create unpacked charts inside a scratch folder."""
    src = tmp_path / "src"

    def factory(name: str = "demo", **kwargs: Any) -> Path:
        return write_chart(src, name=name, **kwargs)

    return factory


@pytest.fixture
def archive_factory(tmp_path: Path) -> Callable[..., Path]:
    """Create packed charts at a given path."""
    src = tmp_path / "packing"

    def factory(archive: Path, name: str = "demo", **kwargs: Any) -> Path:
        chart_dir = write_chart(src / archive.stem, name=name, **kwargs)
        return pack_chart(chart_dir, archive)

    return factory


@pytest.fixture
def chart_writer() -> Callable[..., Path]:
    """Write an unpacked chart under an arbitrary root."""
    return write_chart


@pytest.fixture
def chart_packer() -> Callable[[Path, Path], Path]:
    """Pack an arbitrary directory into an archive."""
    return pack_chart

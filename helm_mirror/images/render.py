"""Chart renderers.

A renderer turns one chart (directory or archive) into the list of text
documents its templates produce. Two implementations are provided:

- HelmRenderer: runs ``helm template`` and splits its output (default)
- TemplateRenderer: loads the chart and evaluates its templates in-process
"""

from __future__ import annotations

import logging
import re
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

from helm_mirror.errors import RenderError
from helm_mirror.images.chart import Chart, load_chart
from helm_mirror.images.template import TemplateEngine
from helm_mirror.images.values import merge_values, normalize_values

if TYPE_CHECKING:
    from helm_mirror.config import Settings

logger = logging.getLogger(__name__)

DEFAULT_RELEASE_NAME = "release-name"
DEFAULT_NAMESPACE = "default"
DEFAULT_KUBE_VERSION = {"Version": "v1.20.0", "Major": "1", "Minor": "20"}

NOTES_FILE = "NOTES.txt"

_DOCUMENT_SEPARATOR_RE = re.compile(r"^---[^\n]*$", re.MULTILINE)


@dataclass
class _TemplateEntry:
    name: str
    source: str
    context: dict[str, Any]
    base_path: str


class ChartRenderer(Protocol):
    """Anything that can render a chart path into text documents."""

    def render(self, path: Path) -> list[str]:
        """Render the chart at path.

        Raises:
            RenderError: If the chart cannot be loaded or rendered.
        """
        ...


def _chart_fields(metadata: dict[str, Any]) -> dict[str, Any]:
    # Chart.yaml keys are exposed capitalized: appVersion -> .Chart.AppVersion
    return {key[:1].upper() + key[1:]: value for key, value in metadata.items()}


def build_render_context(
    chart: Chart,
    values: dict[str, Any],
    release_name: str = DEFAULT_RELEASE_NAME,
    namespace: str = DEFAULT_NAMESPACE,
) -> dict[str, Any]:
    """Build the root context templates are evaluated against.

    Args:
        chart: Chart being rendered.
        values: Normalized values of the chart.
        release_name: Value of .Release.Name.
        namespace: Value of .Release.Namespace.

    Returns:
        Mapping with Values, Chart, Release and Capabilities.
    """
    return {
        "Values": values,
        "Chart": _chart_fields(chart.metadata),
        "Release": {
            "Name": release_name,
            "Namespace": namespace,
            "Service": "Helm",
            "IsInstall": True,
            "IsUpgrade": False,
            "Revision": 1,
        },
        "Capabilities": {
            "KubeVersion": dict(DEFAULT_KUBE_VERSION),
            "APIVersions": [],
        },
    }


def subchart_overrides(
    parent_values: dict[str, Any], subchart: Chart
) -> dict[str, Any]:
    """Values a parent chart passes down to one of its subcharts."""
    scoped = parent_values.get(subchart.name)
    overrides = dict(scoped) if isinstance(scoped, dict) else {}
    parent_global = parent_values.get("global")
    if isinstance(parent_global, dict):
        own_global = overrides.get("global")
        overrides["global"] = merge_values(
            own_global if isinstance(own_global, dict) else {}, parent_global
        )
    return overrides


class TemplateRenderer:
    """Render charts in-process with the built-in template engine.

    Every template of the chart tree, partials included, is parsed before
    any is executed, so named templates defined anywhere can be included.

    Args:
        strict: Fail on missing required values instead of rendering them
            empty.
        release_name: Value of .Release.Name.
        namespace: Value of .Release.Namespace.
    """

    def __init__(
        self,
        strict: bool = False,
        release_name: str = DEFAULT_RELEASE_NAME,
        namespace: str = DEFAULT_NAMESPACE,
    ) -> None:
        self.strict = strict
        self.release_name = release_name
        self.namespace = namespace

    def render(self, path: Path) -> list[str]:
        """Load and render a chart with its default values."""
        chart = load_chart(path)
        return self.render_chart(chart)

    def render_chart(
        self, chart: Chart, overrides: dict[str, Any] | None = None
    ) -> list[str]:
        """Render a loaded chart and its subcharts.

        Args:
            chart: Loaded chart.
            overrides: Values merged over the chart's defaults.

        Returns:
            One document per template, partials (``_*``) and NOTES.txt
            excluded, in template path order, followed by the subcharts'
            documents.

        Raises:
            RenderError: On template syntax or execution errors.
        """
        entries: list[_TemplateEntry] = []
        self._collect(chart, overrides or {}, "", entries)

        engine = TemplateEngine(strict=self.strict)
        # Deepest paths first so parent definitions override subchart ones
        parsed = {
            entry.name: engine.parse(entry.source, entry.name)
            for entry in sorted(
                entries, key=lambda e: (e.name.count("/"), e.name), reverse=True
            )
        }

        documents = []
        for entry in entries:
            filename = Path(entry.name).name
            if filename.startswith("_") or filename == NOTES_FILE:
                continue
            context = dict(
                entry.context,
                Template={"Name": entry.name, "BasePath": entry.base_path},
            )
            documents.append(engine.execute(parsed[entry.name], context, entry.name))
        return documents

    def _collect(
        self,
        chart: Chart,
        overrides: dict[str, Any],
        prefix: str,
        entries: list[_TemplateEntry],
    ) -> None:
        values = normalize_values(merge_values(chart.values, overrides))
        context = build_render_context(
            chart, values, release_name=self.release_name, namespace=self.namespace
        )
        base = f"{prefix}{chart.name}"
        for name, source in chart.templates.items():
            entries.append(
                _TemplateEntry(
                    name=f"{base}/{name}",
                    source=source,
                    context=context,
                    base_path=f"{base}/templates",
                )
            )
        for subchart in chart.subcharts:
            self._collect(
                subchart,
                subchart_overrides(values, subchart),
                f"{base}/charts/",
                entries,
            )


class HelmRenderer:
    """Render charts by running ``helm template``.

    Args:
        binary: Helm executable.
        timeout: Timeout in seconds for one render.
    """

    def __init__(self, binary: str = "helm", timeout: int = 120) -> None:
        self.binary = binary
        self.timeout = timeout

    def command(self, path: Path) -> list[str]:
        """Compose the helm command for a chart."""
        return [self.binary, "template", str(path)]

    def render(self, path: Path) -> list[str]:
        """Render a chart and split the output into documents."""
        cmd = self.command(path)
        logger.debug("Running %s", " ".join(cmd))

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            raise RenderError(
                f"helm template timed out after {self.timeout}s for {str(path)!r}"
            ) from e
        except OSError as e:
            raise RenderError(
                f"cannot run {self.binary}: {e} "
                "(set HELM_MIRROR_RENDERER=builtin to render without helm)"
            ) from e

        if result.returncode != 0:
            raise RenderError(
                f"cannot render chart {str(path)!r}: {result.stderr.strip()}"
            )

        return [
            doc for doc in _DOCUMENT_SEPARATOR_RE.split(result.stdout) if doc.strip()
        ]


def get_renderer(settings: Settings, strict: bool = False) -> ChartRenderer:
    """Create the renderer selected in the settings.

    Args:
        settings: Application settings.
        strict: Whether missing required values fail the render.

    Returns:
        A ChartRenderer implementation.
    """
    if settings.renderer == "helm":
        return HelmRenderer(
            binary=settings.helm_binary, timeout=settings.render_timeout
        )
    return TemplateRenderer(
        strict=strict,
        release_name=settings.release_name,
        namespace=settings.namespace,
    )


__all__ = [
    "ChartRenderer",
    "HelmRenderer",
    "TemplateRenderer",
    "build_render_context",
    "get_renderer",
    "subchart_overrides",
]

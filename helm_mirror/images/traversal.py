"""Image inspection over a chart, a chart directory or a folder of archives.

The inspector follows these steps:
1. Stat the target.
2. A file is rendered as a single chart; its failure is final.
3. A directory is first rendered as a chart itself. If that fails, every
   ``.tgz`` file below it is rendered independently.
4. The batch succeeds when at least one chart rendered.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from pathlib import Path
from typing import TYPE_CHECKING

from helm_mirror.config import get_settings
from helm_mirror.errors import FilesystemError, RenderError
from helm_mirror.images.extract import extract_images
from helm_mirror.images.output import write_output
from helm_mirror.images.render import ChartRenderer, get_renderer
from helm_mirror.types import (
    ARCHIVE_SUFFIX,
    BatchResult,
    InspectOptions,
    TraversalOutcome,
)

if TYPE_CHECKING:
    from helm_mirror.config import Settings

logger = logging.getLogger(__name__)


def iter_archives(root: Path) -> Iterator[Path]:
    """Yield chart archives below root, depth-first in lexical order.

    The sequence is lazy; call again to start over.

    Raises:
        FilesystemError: If a directory cannot be listed.
    """
    try:
        with os.scandir(root) as it:
            entries = sorted(it, key=lambda e: e.name)
    except OSError as e:
        raise FilesystemError(f"cannot walk path {str(root)!r}: {e}") from e

    for entry in entries:
        if entry.is_dir(follow_symlinks=False):
            yield from iter_archives(Path(entry.path))
        elif entry.is_file() and entry.name.endswith(ARCHIVE_SUFFIX):
            yield Path(entry.path)


class ImageInspector:
    """Extract the images of every chart found at a target.

    Args:
        options: Immutable options of the run.
        renderer: Optional renderer; chosen from the settings if omitted.
        settings: Optional settings; loaded from the environment if omitted.
    """

    def __init__(
        self,
        options: InspectOptions,
        renderer: ChartRenderer | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.options = options
        self.settings = settings or get_settings()
        self.renderer = renderer or get_renderer(
            self.settings, strict=not options.ignore_errors
        )

    def inspect(self) -> BatchResult:
        """Render the target and collect its images.

        Returns:
            BatchResult with the images in extraction order and one outcome
            per rendered chart.

        Raises:
            FilesystemError: If the target does not exist or cannot be walked.
            RenderError: If the target yields no renderable chart, or on the
                first failing archive when ignore-errors is off.
        """
        target = self.options.target
        result = BatchResult(target=target)

        if not target.exists():
            raise FilesystemError(f"cannot stat target {str(target)!r}")

        if not target.is_dir():
            self._render(target, result)
            return result

        try:
            self._render(target, result)
            return result
        except RenderError as e:
            # Expected when the directory is a collection of archives
            logger.debug("%s is not a chart itself: %s", target, e)
            directory_error = e
            result.directory_error = e

        found = False
        for archive in iter_archives(target):
            found = True
            try:
                self._render(archive, result)
            except RenderError as e:
                result.outcomes.append(
                    TraversalOutcome(target=archive, succeeded=False, error=e)
                )
                if not self.options.ignore_errors:
                    logger.error("cannot load chart: %s", e)
                    raise
                logger.warning("skipping chart %s: %s", archive, e)

        if not found:
            raise directory_error
        if not result.succeeded:
            raise RenderError(
                f"no chart under {str(target)!r} could be rendered"
            ) from directory_error
        return result

    def _render(self, path: Path, result: BatchResult) -> None:
        logger.debug("processing target: %s", path)
        documents = self.renderer.render(path)
        images = extract_images(documents)
        result.images.extend(images)
        result.outcomes.append(
            TraversalOutcome(target=path, succeeded=True, image_count=len(images))
        )

    def run(self) -> BatchResult:
        """Inspect the target and write the images to the configured sink.

        Raises:
            FormatError: If the output cannot be written, plus everything
                inspect() raises.
        """
        result = self.inspect()
        write_output(result.images, self.options.output)
        return result


def inspect_images(
    options: InspectOptions,
    renderer: ChartRenderer | None = None,
    settings: Settings | None = None,
) -> BatchResult:
    """Inspect a target and write its images; see ImageInspector.run."""
    return ImageInspector(options, renderer=renderer, settings=settings).run()


__all__ = ["ImageInspector", "inspect_images", "iter_archives"]

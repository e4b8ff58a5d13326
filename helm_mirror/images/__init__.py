"""Chart image inspection module.

This module handles:
- Loading charts from directories and archives
- Rendering chart templates with normalized values
- Extracting image references from rendered documents
- Walking folders of chart archives
- Writing the image list to one of the output sinks
"""

from helm_mirror.images.extract import extract_images, sanitize_image_line
from helm_mirror.images.output import write_output
from helm_mirror.images.render import HelmRenderer, TemplateRenderer, get_renderer
from helm_mirror.images.traversal import ImageInspector, inspect_images, iter_archives

__all__ = [
    "HelmRenderer",
    "ImageInspector",
    "TemplateRenderer",
    "extract_images",
    "get_renderer",
    "inspect_images",
    "iter_archives",
    "sanitize_image_line",
    "write_output",
]

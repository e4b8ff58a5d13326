"""Image reference extraction from rendered chart documents."""

from collections.abc import Iterable

IMAGE_MARKER = "image:"

IMAGE_KEY_PREFIX = "image: "


def sanitize_image_line(line: str) -> str:
    """Reduce a rendered ``image:`` line to the bare image reference.

    ``  - image: "nginx:1.19"`` becomes ``nginx:1.19``.
    """
    line = line.replace('"', "", 2)
    line = line.strip()
    line = line.removeprefix("-")
    line = line.strip()
    line = line.removeprefix(IMAGE_KEY_PREFIX)
    return line.strip()


def extract_images(documents: Iterable[str]) -> list[str]:
    """Collect image references from rendered documents.

    Every line containing the marker anywhere, comments included, yields
    one entry. Order of appearance is kept and repeats are not removed.
    """
    images = []
    for document in documents:
        # Only \n ends a line; form feeds and other breaks stay inside it
        for line in document.split("\n"):
            line = line.removesuffix("\r")
            if IMAGE_MARKER in line:
                images.append(sanitize_image_line(line))
    return images


__all__ = ["IMAGE_MARKER", "extract_images", "sanitize_image_line"]

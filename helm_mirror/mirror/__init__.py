"""Chart repository mirroring module.

This module handles:
- Loading and searching a repository index
- Selecting chart versions by name and version
- Downloading chart archives into a local folder
- Rewriting the index for a new serving root
"""

from helm_mirror.mirror.index import parse_index, search_index
from helm_mirror.mirror.rewrite import finalize_index
from helm_mirror.mirror.selection import select_entries
from helm_mirror.mirror.service import MirrorService, mirror_repository
from helm_mirror.mirror.urls import index_url, resolve_reference

__all__ = [
    "MirrorService",
    "finalize_index",
    "index_url",
    "mirror_repository",
    "parse_index",
    "resolve_reference",
    "search_index",
    "select_entries",
]

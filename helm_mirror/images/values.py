"""Chart value trees.

Values are what ``values.yaml`` parses to: nested mappings whose leaves are
scalars, lists or null. Templates must never see a null leaf, so every
``None`` is replaced with an empty string before rendering.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, TypeAlias

ValueTree: TypeAlias = dict[str, Any]


def normalize_value(value: Any) -> Any:
    """Return a copy of a value with every null replaced by ``""``."""
    if value is None:
        return ""
    if isinstance(value, Mapping):
        return {str(k): normalize_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [normalize_value(v) for v in value]
    return value


def normalize_values(tree: Mapping[str, Any] | None) -> ValueTree:
    """Normalize a whole value tree.

    Args:
        tree: Parsed values, possibly None for an empty values file.

    Returns:
        A new tree; the input is left untouched.
    """
    if tree is None:
        return {}
    return normalize_value(tree)


def merge_values(
    defaults: Mapping[str, Any], overrides: Mapping[str, Any]
) -> ValueTree:
    """Deep-merge two value trees, overrides winning on conflicts."""
    merged: ValueTree = dict(defaults)
    for key, value in overrides.items():
        base = merged.get(key)
        if isinstance(base, Mapping) and isinstance(value, Mapping):
            merged[key] = merge_values(base, value)
        else:
            merged[key] = value
    return merged


__all__ = [
    "ValueTree",
    "merge_values",
    "normalize_value",
    "normalize_values",
]

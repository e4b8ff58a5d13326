"""Helm Mirror - mirror Helm chart repositories and inspect chart images.

This package downloads a chart repository index and its archives into a
local folder, and extracts container image references from rendered charts.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]

"""Allow running the CLI with ``python -m helm_mirror``."""

from helm_mirror.cli import app

app()

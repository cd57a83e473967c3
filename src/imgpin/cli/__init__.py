"""Command-line interface for imgpin.

Entry point: ``imgpin`` → :func:`imgpin.cli.main.main`.
"""

from __future__ import annotations

from imgpin.cli.main import cli, main

__all__: list[str] = ["cli", "main"]

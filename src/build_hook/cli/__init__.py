"""build-hook command-line interface."""

from __future__ import annotations

from build_hook.cli.main import cli, main

__all__ = ["cli", "main"]

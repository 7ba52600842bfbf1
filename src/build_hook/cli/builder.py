"""``build-hook builder``: remote buildx builder management.

Example:
    $ build-hook builder init --config config.yaml
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import click

from build_hook.cli.utils import (
    ExitCode,
    config_option,
    error_exit,
    info,
    load_config_or_exit,
    load_settings,
    setup_logging,
    success,
)
from build_hook.config import build_image_builder
from build_hook.errors import EngineUnreachableError


@click.group(name="builder", help="Remote buildx builder commands.")
def builder_group() -> None:
    """Remote builder command group."""


@builder_group.command(
    name="init",
    help="""\b
Select the configured buildx builder, creating and bootstrapping it
(kubernetes or remote driver) if it does not exist yet.
""",
    context_settings={"help_option_names": ["-h", "--help"]},
)
@config_option
def init_command(config_path: Path | None) -> None:
    """Initialize the remote builder."""
    settings = load_settings(config_path)
    setup_logging(settings)
    config = load_config_or_exit(settings.config_path)
    builder = build_image_builder(config.app)

    info(f"Initializing builder {builder.name} ({config.app.builder.driver})...")
    try:
        asyncio.run(builder.initialize())
    except EngineUnreachableError as e:
        error_exit(str(e), exit_code=ExitCode.NETWORK_ERROR)
    success(f"Builder {builder.name} ready")


__all__ = ["builder_group", "init_command"]

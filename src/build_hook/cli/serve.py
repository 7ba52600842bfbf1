"""``build-hook serve``: run the HTTP service.

Example:
    $ BEARER_TOKENS=s3cret build-hook serve --config config.yaml --port 5000
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import click
import structlog
import uvicorn

from build_hook.api import create_app
from build_hook.cli.utils import (
    ExitCode,
    config_option,
    error_exit,
    info,
    load_config_or_exit,
    load_settings,
    report_config_errors,
    setup_logging,
)
from build_hook.config import build_image_builder, build_orchestrator
from build_hook.errors import ConfigInvalidError, EngineUnreachableError

logger = structlog.get_logger(__name__)


@click.command(
    name="serve",
    help="""\b
Serve the trigger API.

Validates the project file, selects (or creates) the remote buildx
builder, then listens for POST /{slug} triggers.

Environment Variables:
  BEARER_TOKENS       Comma-separated accepted tokens (required)
  GITHUB_TOKEN        Token for private HTTPS repositories
  BUILD_HOOK_CONFIG   Project file (default: config.yaml)
""",
    context_settings={"help_option_names": ["-h", "--help"]},
)
@config_option
@click.option("--host", type=str, default=None, help="Listen host (default: 0.0.0.0).")
@click.option("--port", type=int, default=None, help="Listen port (default: 5000).")
@click.option(
    "--init-builder/--no-init-builder",
    default=True,
    help="Select (or create) the remote builder before serving.",
)
def serve_command(
    config_path: Path | None,
    host: str | None,
    port: int | None,
    init_builder: bool,
) -> None:
    """Start the HTTP service."""
    settings = load_settings(config_path, host=host, port=port)
    setup_logging(settings)

    tokens = settings.tokens()
    if not tokens:
        error_exit("BEARER_TOKENS is empty", exit_code=ExitCode.VALIDATION_ERROR)

    config = load_config_or_exit(settings.config_path)
    try:
        orchestrator = build_orchestrator(config, settings)
    except ConfigInvalidError as e:
        report_config_errors(e, settings.config_path)

    if init_builder:
        try:
            asyncio.run(build_image_builder(config.app).initialize())
        except EngineUnreachableError as e:
            error_exit(str(e), exit_code=ExitCode.NETWORK_ERROR)

    app = create_app(orchestrator, tokens)
    info(f"Listening on {settings.host}:{settings.port}")
    logger.info(
        "serving",
        host=settings.host,
        port=settings.port,
        projects=orchestrator.registry.slugs,
    )
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


__all__ = ["serve_command"]

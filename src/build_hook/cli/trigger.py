"""``build-hook trigger``: run one BuildRun in-process.

Useful from CI or a shell when the HTTP service is not involved. The run
takes the same per-project slot as the service would, but slots are local to
this process.

Example:
    $ build-hook trigger web --config config.yaml > result.json
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import click

from build_hook.cli.utils import (
    ExitCode,
    config_option,
    error_exit,
    info,
    load_config_or_exit,
    load_settings,
    report_config_errors,
    setup_logging,
    success,
)
from build_hook.config import build_image_builder, build_orchestrator
from build_hook.errors import BuildHookError, ConfigInvalidError
from build_hook.schemas.run import BuildRunResult, RunStatus


@click.command(
    name="trigger",
    help="""\b
Fetch, build, push and roll out one project, then print the run result
as JSON on stdout.

Exit status is 0 when the run succeeded and 1 otherwise.
""",
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.argument("slug")
@config_option
@click.option(
    "--init-builder/--no-init-builder",
    default=False,
    help="Select (or create) the remote buildx builder before building.",
)
def trigger_command(slug: str, config_path: Path | None, init_builder: bool) -> None:
    """Run the pipeline for SLUG."""
    settings = load_settings(config_path)
    setup_logging(settings)
    config = load_config_or_exit(settings.config_path)
    try:
        orchestrator = build_orchestrator(config, settings)
    except ConfigInvalidError as e:
        report_config_errors(e, settings.config_path)

    async def _run() -> BuildRunResult:
        if init_builder:
            await build_image_builder(config.app).initialize()
        try:
            return await orchestrator.trigger(slug)
        finally:
            await orchestrator.wait_background()

    info(f"Triggering {slug}...")
    try:
        result = asyncio.run(_run())
    except BuildHookError as e:
        error_exit(str(e), exit_code=ExitCode.for_error(e))

    success(result.model_dump_json(indent=2))
    if result.status is not RunStatus.SUCCEEDED:
        info(f"Run {result.run_id} finished with status {result.status.value}")
        sys.exit(ExitCode.GENERAL_ERROR)


__all__ = ["trigger_command"]

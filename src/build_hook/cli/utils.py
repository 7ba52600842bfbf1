"""CLI utility functions and error handling.

Shared helpers for the build-hook CLI:
- Exit code constants (aligned with ``BuildHookError.exit_code``)
- Output helpers for consistent stderr/stdout usage
- Settings and config loading that exits cleanly on invalid input

Example:
    from build_hook.cli.utils import error_exit, ExitCode

    if not tokens:
        error_exit("BEARER_TOKENS is empty", exit_code=ExitCode.VALIDATION_ERROR)
"""

from __future__ import annotations

import sys
from enum import IntEnum
from pathlib import Path
from typing import TYPE_CHECKING

import click

from build_hook.config import HookSettings, get_settings, load_config
from build_hook.errors import BuildHookError, ConfigInvalidError
from build_hook.telemetry.logging import configure_logging

if TYPE_CHECKING:
    from typing import NoReturn

    from build_hook.schemas.config import HookConfig


config_option = click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Project file (default: $BUILD_HOOK_CONFIG or config.yaml).",
)
"""Shared --config option; None defers to the environment."""


class ExitCode(IntEnum):
    """Exit codes for CLI commands."""

    SUCCESS = 0
    """Command completed successfully."""

    GENERAL_ERROR = 1
    """General error, or a run that did not fully succeed."""

    BUILD_IN_PROGRESS = 2
    """A build for the project is already running."""

    UNKNOWN_PROJECT = 3
    """No project with the given slug."""

    VALIDATION_ERROR = 5
    """Configuration validation failed."""

    NETWORK_ERROR = 8
    """Code host, build engine or cluster unreachable."""

    @classmethod
    def for_error(cls, e: BuildHookError) -> ExitCode:
        """Exit code for a build-hook error."""
        try:
            return cls(e.exit_code)
        except ValueError:
            return cls.GENERAL_ERROR


def _format(prefix: str, message: str, context: dict[str, str | int | bool | None]) -> str:
    if context:
        context_str = ", ".join(f"{k}={v}" for k, v in context.items() if v is not None)
        return f"{prefix}{message} ({context_str})"
    return f"{prefix}{message}"


def error(message: str, **context: str | int | bool | None) -> None:
    """Print an error message to stderr.

    Example:
        error("Config not found", path="/etc/build-hook/config.yaml")
        # Output: Error: Config not found (path=/etc/build-hook/config.yaml)
    """
    click.echo(_format("Error: ", message, context), err=True)


def error_exit(
    message: str,
    exit_code: ExitCode = ExitCode.GENERAL_ERROR,
    **context: str | int | bool | None,
) -> NoReturn:
    """Print an error message to stderr and exit with a code.

    Raises:
        SystemExit: Always exits with the specified code.
    """
    error(message, **context)
    sys.exit(exit_code)


def warn(message: str, **context: str | int | bool | None) -> None:
    """Print a warning message to stderr."""
    click.echo(_format("Warning: ", message, context), err=True)


def success(message: str) -> None:
    """Print a success message to stdout."""
    click.echo(message)


def info(message: str) -> None:
    """Print an informational message to stderr.

    Progress output that should not be captured by stdout redirection.
    """
    click.echo(message, err=True)


def load_settings(config_path: Path | None = None, **overrides: object) -> HookSettings:
    """Load HookSettings, exiting with VALIDATION_ERROR if the environment is invalid."""
    from pydantic import ValidationError

    try:
        return get_settings(config_path=config_path, **overrides)
    except ValidationError as e:
        error_exit(f"Invalid environment settings: {e}", exit_code=ExitCode.VALIDATION_ERROR)


def setup_logging(settings: HookSettings, json_output: bool | None = None) -> None:
    """Configure structlog from settings, exiting on an unknown log level."""
    try:
        configure_logging(
            settings.log_level,
            settings.log_json if json_output is None else json_output,
        )
    except ValueError as e:
        error_exit(str(e), exit_code=ExitCode.VALIDATION_ERROR)


def load_config_or_exit(config_path: Path) -> HookConfig:
    """Load the project file, printing every problem and exiting on failure."""
    try:
        return load_config(config_path)
    except ConfigInvalidError as e:
        report_config_errors(e, config_path)


def report_config_errors(e: ConfigInvalidError, config_path: Path) -> NoReturn:
    """Print each validation message and exit with VALIDATION_ERROR."""
    error("Invalid configuration", path=str(config_path))
    for message in e.errors:
        click.echo(f"  - {message}", err=True)
    sys.exit(ExitCode.VALIDATION_ERROR)


__all__ = [
    "ExitCode",
    "config_option",
    "error",
    "error_exit",
    "info",
    "load_config_or_exit",
    "load_settings",
    "report_config_errors",
    "setup_logging",
    "success",
    "warn",
]

"""Async runner for external commands (git, docker buildx).

Commands run through ``asyncio.create_subprocess_exec`` (never a shell) so a
long build suspends only the task that started it. Output is captured,
decoded leniently, and the process is killed if it exceeds its timeout.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

import structlog

from build_hook.errors import CommandTimeoutError

logger = structlog.get_logger(__name__)

OUTPUT_TAIL_LINES = 40
"""Lines of output kept in failure outcomes."""


@dataclass(frozen=True)
class CommandResult:
    """Captured result of one command."""

    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        """stdout and stderr combined."""
        if self.stdout and self.stderr:
            return f"{self.stdout.rstrip()}\n{self.stderr}"
        return self.stdout or self.stderr

    def tail(self, lines: int = OUTPUT_TAIL_LINES) -> str:
        """Return the last ``lines`` lines of combined output."""
        return output_tail(self.output, lines)


def output_tail(text: str, lines: int = OUTPUT_TAIL_LINES) -> str:
    """Return the last ``lines`` non-empty-trailing lines of text."""
    return "\n".join(text.rstrip().splitlines()[-lines:])


def describe(args: Sequence[str]) -> str:
    """Short command label for logs, e.g. ``git fetch``."""
    return " ".join(args[:2])


async def run_command(
    args: Sequence[str],
    *,
    timeout: float,
    cwd: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> CommandResult:
    """Run a command to completion and capture its output.

    Args:
        args: Program and arguments.
        timeout: Seconds before the process is killed.
        cwd: Working directory.
        env: Extra environment variables layered over the current environment.

    Returns:
        CommandResult with exit status and decoded output. A non-zero exit
        status is not an error at this level.

    Raises:
        CommandTimeoutError: If the command does not finish in time.
        FileNotFoundError: If the program is not installed.
    """
    merged_env = {**os.environ, **env} if env else None
    label = describe(args)
    logger.debug("command_started", command=label, cwd=str(cwd) if cwd else None)

    proc = await asyncio.create_subprocess_exec(
        *args,
        cwd=str(cwd) if cwd else None,
        env=merged_env,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        out, err = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        logger.warning("command_timeout", command=label, timeout_seconds=timeout)
        raise CommandTimeoutError(label, timeout) from None

    result = CommandResult(
        args=tuple(args),
        returncode=proc.returncode if proc.returncode is not None else -1,
        stdout=out.decode(errors="replace"),
        stderr=err.decode(errors="replace"),
    )
    if not result.ok and result.stderr:
        logger.debug("command_stderr", command=label, stderr=result.tail())
    logger.debug("command_finished", command=label, returncode=result.returncode)
    return result


__all__ = ["OUTPUT_TAIL_LINES", "CommandResult", "describe", "output_tail", "run_command"]

"""Unit test fixtures for build-hook.

Unit tests:
- Run without external services (no git remote, no buildkit, no cluster)
- Use fakes for the orchestrator collaborators and mocks for the process
  runner and the Kubernetes API
- Execute quickly

For shared fixtures across all test tiers, see ../conftest.py.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest

from build_hook.process import CommandResult
from build_hook.registry import ProjectRegistry
from build_hook.schemas.project import Project

if TYPE_CHECKING:
    from collections.abc import Callable


@pytest.fixture
def project(project_data: dict[str, Any]) -> Project:
    """Validated two-image project ``web``."""
    return Project.model_validate(project_data)


@pytest.fixture
def registry(project: Project) -> ProjectRegistry:
    """Registry holding the ``web`` project."""
    return ProjectRegistry([project])


@pytest.fixture
def command_result() -> Callable[..., CommandResult]:
    """Factory for CommandResult values.

    Usage:
        result = command_result(returncode=1, stderr="fatal: ...")
    """

    def _create(
        returncode: int = 0,
        stdout: str = "",
        stderr: str = "",
        args: tuple[str, ...] = ("git",),
    ) -> CommandResult:
        return CommandResult(args=args, returncode=returncode, stdout=stdout, stderr=stderr)

    return _create

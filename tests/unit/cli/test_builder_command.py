"""Unit tests for ``build-hook builder init``."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

from click.testing import CliRunner

from build_hook.cli import cli
from build_hook.errors import EngineUnreachableError


def _builder(**initialize: object) -> MagicMock:
    builder = MagicMock()
    builder.name = "builder"
    builder.initialize = AsyncMock(**initialize)
    return builder


class TestBuilderInit:
    def test_ready(self, runner: CliRunner, config_file: Path) -> None:
        builder = _builder()

        with patch("build_hook.cli.builder.build_image_builder", return_value=builder):
            result = runner.invoke(cli, ["builder", "init", "-c", str(config_file)])

        assert result.exit_code == 0, result.output
        assert "Builder builder ready" in result.output
        builder.initialize.assert_awaited_once()

    def test_unreachable(self, runner: CliRunner, config_file: Path) -> None:
        builder = _builder(side_effect=EngineUnreachableError("builder", "no route to host"))

        with patch("build_hook.cli.builder.build_image_builder", return_value=builder):
            result = runner.invoke(cli, ["builder", "init", "-c", str(config_file)])

        assert result.exit_code == 8
        assert "no route to host" in result.output

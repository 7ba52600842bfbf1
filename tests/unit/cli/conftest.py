"""CLI test fixtures.

CLI commands configure structlog globally and bind it to the current
stderr; under CliRunner that stream is closed after each invocation, so
logging configuration is stubbed out here.
"""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
import structlog
import yaml
from click.testing import CliRunner


@pytest.fixture(autouse=True)
def quiet_logging() -> Iterator[MagicMock]:
    """Replace configure_logging and discard log output."""
    structlog.configure(logger_factory=structlog.ReturnLoggerFactory())
    with patch("build_hook.cli.utils.configure_logging") as configure:
        yield configure
    structlog.reset_defaults()


@pytest.fixture(autouse=True)
def cli_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> pytest.MonkeyPatch:
    """Isolated environment with one accepted bearer token."""
    for name in ("BUILD_HOOK_CONFIG", "GITHUB_TOKEN", "BUILD_HOOK_LOG_LEVEL", "BUILD_HOOK_PORT"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("BEARER_TOKENS", "s3cret")
    monkeypatch.chdir(tmp_path)
    return monkeypatch


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def config_file(tmp_path: Path, config_data: dict[str, Any]) -> Path:
    """Valid project file with the ``web`` project."""
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(config_data))
    return path


@pytest.fixture
def invalid_config_file(tmp_path: Path, config_data: dict[str, Any]) -> Path:
    """Project file whose only project restarts an unsupported kind."""
    config_data["projects"][0]["deployments"]["resources"] = ["pod/web"]
    config_data["projects"][0]["code"]["url"] = "http://github.com/acme/web.git"
    path = tmp_path / "invalid.yaml"
    path.write_text(yaml.safe_dump(config_data))
    return path

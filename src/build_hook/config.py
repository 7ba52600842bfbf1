"""Configuration loading for build-hook.

Two sources:
- ``HookSettings``: process settings from environment variables (and an
  optional ``.env`` file) via pydantic-settings.
- The YAML project file: parsed into ``HookConfig``; its ``projects`` list is
  validated by the ProjectRegistry.

Every problem in the project file surfaces as ConfigInvalidError, so startup
either succeeds with a fully valid configuration or fails.

Example:
    >>> settings = get_settings()
    >>> config = load_config(settings.config_path)
    >>> orchestrator = build_orchestrator(config, settings)
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import Field, SecretStr, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from build_hook.builder import BuildxImageBuilder
from build_hook.errors import ConfigInvalidError
from build_hook.notifications import WebhookNotifier
from build_hook.orchestrator import BuildOrchestrator
from build_hook.registry import ProjectRegistry
from build_hook.rollout import KubernetesRolloutTrigger
from build_hook.schemas.config import AppConfig, HookConfig
from build_hook.source import GitSourceFetcher

logger = structlog.get_logger(__name__)


class HookSettings(BaseSettings):
    """Process settings.

    Environment Variables:
        BUILD_HOOK_CONFIG: Project file path (default ``config.yaml``)
        BEARER_TOKENS: Comma-separated tokens accepted by the HTTP layer
        GITHUB_TOKEN: Optional token for private HTTPS repositories
        BUILD_HOOK_HOST / BUILD_HOOK_PORT: Listen address
        BUILD_HOOK_LOG_LEVEL / BUILD_HOOK_LOG_JSON: Logging
        BUILD_HOOK_KUBECONFIG / BUILD_HOOK_KUBE_CONTEXT: Cluster access
            outside the cluster (in-cluster config otherwise)
    """

    model_config = SettingsConfigDict(
        env_prefix="BUILD_HOOK_",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    config_path: Path = Field(
        default=Path("config.yaml"),
        validation_alias="BUILD_HOOK_CONFIG",
        description="YAML project file",
    )
    bearer_tokens: SecretStr = Field(
        default=SecretStr(""),
        validation_alias="BEARER_TOKENS",
        description="Comma-separated bearer tokens (from BEARER_TOKENS)",
    )
    github_token: SecretStr | None = Field(
        default=None,
        validation_alias="GITHUB_TOKEN",
        description="HTTPS token for git (from GITHUB_TOKEN)",
    )
    host: str = Field(default="0.0.0.0", description="Listen host")
    port: int = Field(default=5000, ge=1, le=65535, description="Listen port")
    log_level: str = Field(default="INFO", description="Minimum log level")
    log_json: bool = Field(default=True, description="JSON log lines")
    kubeconfig: Path | None = Field(default=None, description="kubeconfig file")
    kube_context: str | None = Field(default=None, description="kubeconfig context")

    def tokens(self) -> list[str]:
        """Accepted bearer tokens, with empty entries dropped."""
        raw = self.bearer_tokens.get_secret_value()
        return [token.strip() for token in raw.split(",") if token.strip()]


def get_settings(**overrides: Any) -> HookSettings:
    """Load settings from the environment.

    Args:
        **overrides: Values taking precedence over the environment (CLI flags).
    """
    return HookSettings(**{k: v for k, v in overrides.items() if v is not None})


def load_yaml_config(config_path: Path) -> dict[str, Any]:
    """Load the project file.

    Args:
        config_path: Path to the YAML file.

    Returns:
        Parsed mapping.

    Raises:
        ConfigInvalidError: If the file is missing, unreadable, not YAML, or
            not a mapping at the top level.
    """
    try:
        with config_path.open() as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        raise ConfigInvalidError([f"config file not found: {config_path}"]) from None
    except OSError as e:
        raise ConfigInvalidError([f"cannot read {config_path}: {e}"]) from e
    except yaml.YAMLError as e:
        raise ConfigInvalidError([f"{config_path} is not valid YAML: {e}"]) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigInvalidError(
            [f"{config_path}: expected a mapping at the top level, got {type(data).__name__}"]
        )
    return data


def parse_config(data: dict[str, Any]) -> HookConfig:
    """Validate a parsed project file.

    Raises:
        ConfigInvalidError: With every pydantic error message.
    """
    try:
        return HookConfig.model_validate(data)
    except ValidationError as e:
        errors = [
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in e.errors()
        ]
        raise ConfigInvalidError(errors) from e


def load_config(config_path: Path) -> HookConfig:
    """Load and validate the ``app`` section of a project file.

    Projects are validated separately by ``load_registry``.
    """
    config = parse_config(load_yaml_config(config_path))
    logger.info("config_loaded", path=str(config_path), projects=len(config.projects))
    return config


def load_registry(config: HookConfig) -> ProjectRegistry:
    """Validate the config's projects into a registry."""
    return ProjectRegistry.from_configs(config.projects)


def build_image_builder(app: AppConfig) -> BuildxImageBuilder:
    """Image Builder for the configured remote builder."""
    return BuildxImageBuilder(
        app.builder,
        timeout=app.timeouts.build_seconds,
        cache=app.cache,
    )


def build_orchestrator(
    config: HookConfig,
    settings: HookSettings,
    registry: ProjectRegistry | None = None,
) -> BuildOrchestrator:
    """Wire the orchestrator and its collaborators from configuration.

    Args:
        config: Validated project file.
        settings: Process settings (git token, cluster access).
        registry: Already-validated registry; built from ``config`` if omitted.

    Raises:
        ConfigInvalidError: If any project is invalid.
    """
    app = config.app
    token = settings.github_token.get_secret_value() if settings.github_token else None
    notifier = WebhookNotifier(app.notifications)
    return BuildOrchestrator(
        registry=registry if registry is not None else load_registry(config),
        fetcher=GitSourceFetcher(timeout=app.timeouts.fetch_seconds, token=token),
        builder=build_image_builder(app),
        rollout=KubernetesRolloutTrigger(
            timeout=app.timeouts.rollout_seconds,
            kubeconfig=settings.kubeconfig,
            context=settings.kube_context,
        ),
        image_registry=app.registry,
        checkout_root=app.checkout_root,
        on_finished=notifier.notify_all if notifier.configs else None,
    )


__all__ = [
    "HookSettings",
    "build_image_builder",
    "build_orchestrator",
    "get_settings",
    "load_config",
    "load_registry",
    "load_yaml_config",
    "parse_config",
]

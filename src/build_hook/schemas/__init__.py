"""Pydantic schemas for build-hook.

Project definitions, service configuration and BuildRun results.

Example:
    >>> import yaml
    >>> from build_hook.schemas import HookConfig
    >>> with open("config.yaml") as f:
    ...     data = yaml.safe_load(f)
    >>> config = HookConfig.model_validate(data)
"""

from __future__ import annotations

from build_hook.schemas.config import (
    AppConfig,
    BuilderConfig,
    HookConfig,
    NotificationConfig,
    TimeoutConfig,
)
from build_hook.schemas.project import (
    DeploymentSpec,
    ImageSpec,
    Project,
    SourceSpec,
    split_resource,
)
from build_hook.schemas.run import (
    BuildRunResult,
    ImageOutcome,
    Outcome,
    ResourceOutcome,
    RolloutOutcome,
    RolloutStatus,
    RunState,
    RunStatus,
)

__all__ = [
    "AppConfig",
    "BuildRunResult",
    "BuilderConfig",
    "DeploymentSpec",
    "HookConfig",
    "ImageOutcome",
    "ImageSpec",
    "NotificationConfig",
    "Outcome",
    "Project",
    "ResourceOutcome",
    "RolloutOutcome",
    "RolloutStatus",
    "RunState",
    "RunStatus",
    "SourceSpec",
    "TimeoutConfig",
    "split_resource",
]

"""Service configuration schemas.

Pydantic v2 models for the ``app`` section of the project file: image
registry, remote builder, stage timeouts and completion webhooks. The
``projects`` section is carried raw and validated by the ProjectRegistry.

Example:
    >>> config = HookConfig.model_validate({
    ...     "app": {"registry": "registry.example.com"},
    ...     "projects": [],
    ... })
    >>> config.app.timeouts.build_seconds
    1800.0
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing_extensions import Self

RunEvent = Literal["succeeded", "partial_failure", "failed", "aborted"]
"""Run statuses a notification can subscribe to."""


class BuilderConfig(BaseModel):
    """Remote buildx builder settings.

    Builds always go to a network-addressed builder: either buildkit pods
    managed by the kubernetes driver, or an existing buildkitd reached
    through the remote driver.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(default="builder", min_length=1, description="buildx builder name")
    driver: Literal["kubernetes", "remote"] = Field(
        default="kubernetes",
        description="buildx driver for the remote builder",
    )
    namespace: str = Field(
        default="build",
        min_length=1,
        description="Namespace for buildkit pods (kubernetes driver)",
    )
    endpoint: str | None = Field(
        default=None,
        description="buildkitd address, e.g. tcp://buildkitd:1234 (remote driver)",
    )

    @model_validator(mode="after")
    def validate_endpoint(self) -> Self:
        """Require an endpoint for the remote driver."""
        if self.driver == "remote" and not self.endpoint:
            msg = "builder.endpoint is required when builder.driver is 'remote'"
            raise ValueError(msg)
        return self


class TimeoutConfig(BaseModel):
    """Time budget for each external stage, in seconds.

    A timeout counts as that stage's failure kind.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    fetch_seconds: float = Field(default=300.0, gt=0, description="git clone/fetch")
    build_seconds: float = Field(default=1800.0, gt=0, description="one image build and push")
    rollout_seconds: float = Field(default=30.0, gt=0, description="one resource restart")


class NotificationConfig(BaseModel):
    """Webhook receiving finished BuildRun results.

    Examples:
        >>> cfg = NotificationConfig(url="https://hooks.example.com/build")
        >>> cfg.events
        ('succeeded', 'partial_failure', 'failed', 'aborted')
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    url: str = Field(..., description="Webhook URL")
    events: tuple[RunEvent, ...] = Field(
        default=("succeeded", "partial_failure", "failed", "aborted"),
        description="Run statuses that trigger a notification",
    )
    headers: dict[str, str] = Field(default_factory=dict, description="Extra HTTP headers")
    timeout_seconds: float = Field(default=10.0, gt=0, le=300)
    retry_count: int = Field(default=2, ge=0, le=10)

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Require an http(s) URL."""
        if not v.startswith(("https://", "http://")):
            msg = "notification url must be an http(s) URL"
            raise ValueError(msg)
        return v


class AppConfig(BaseModel):
    """Service-wide settings from the ``app`` section."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    registry: str = Field(..., description="Registry host[:port][/prefix], no scheme")
    cache: bool = Field(default=False, description="Allow build cache reuse")
    checkout_root: Path = Field(
        default=Path("/tmp/build-hook"),
        description="Directory holding one checkout per slug",
    )
    builder: BuilderConfig = Field(default_factory=BuilderConfig)
    timeouts: TimeoutConfig = Field(default_factory=TimeoutConfig)
    notifications: tuple[NotificationConfig, ...] = Field(default=())

    @field_validator("registry")
    @classmethod
    def validate_registry(cls, v: str) -> str:
        """Require a bare registry host usable in an image reference."""
        v = v.strip().rstrip("/")
        if not v:
            msg = "app.registry must not be empty"
            raise ValueError(msg)
        if "://" in v:
            msg = "app.registry must be a registry host without a URL scheme"
            raise ValueError(msg)
        if any(c.isspace() for c in v):
            msg = "app.registry must not contain whitespace"
            raise ValueError(msg)
        return v


class HookConfig(BaseModel):
    """Parsed project file.

    ``projects`` stays as raw mappings; the ProjectRegistry turns them into
    validated Project values.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    app: AppConfig
    projects: list[dict[str, Any]] = Field(default_factory=list)


__all__ = [
    "AppConfig",
    "BuilderConfig",
    "HookConfig",
    "NotificationConfig",
    "RunEvent",
    "TimeoutConfig",
]

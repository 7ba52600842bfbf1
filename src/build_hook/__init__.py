"""build-hook: webhook-triggered build-and-deploy orchestrator.

On an authenticated trigger naming a configured project, build-hook fetches
the project's branch, builds and pushes each of its images with a remote
buildx builder, then restarts the project's Kubernetes workloads.

Example:
    >>> from build_hook.config import build_orchestrator, get_settings, load_config
    >>> settings = get_settings()
    >>> orchestrator = build_orchestrator(load_config(settings.config_path), settings)
    >>> result = await orchestrator.trigger("web")
"""

from __future__ import annotations

__version__ = "0.1.0"

from build_hook.errors import (
    AlreadyBuildingError,
    BuildHookError,
    ConfigInvalidError,
    UnknownProjectError,
)
from build_hook.orchestrator import BuildOrchestrator
from build_hook.registry import ProjectRegistry
from build_hook.schemas.run import BuildRunResult, RunStatus

__all__ = [
    "AlreadyBuildingError",
    "BuildHookError",
    "BuildOrchestrator",
    "BuildRunResult",
    "ConfigInvalidError",
    "ProjectRegistry",
    "RunStatus",
    "UnknownProjectError",
    "__version__",
]

"""Exception hierarchy for build-hook.

All exceptions inherit from BuildHookError, so callers can catch every
build-hook failure with a single except clause. Each class carries a stable
``reason`` code (recorded in run outcomes and HTTP responses) and an
``exit_code`` used by the CLI.

Exception Hierarchy:
    BuildHookError (base)
    ├── ConfigInvalidError          # Config file failed validation (startup only)
    ├── UnknownProjectError         # No project with the requested slug
    ├── AlreadyBuildingError        # Slug's build slot is held by another run
    ├── CommandTimeoutError         # External command exceeded its time budget
    ├── FetchError                  # Source acquisition failed
    │   ├── SourceUnreachableError
    │   ├── BranchNotFoundError
    │   └── CheckoutCorruptError
    ├── BuildError                  # Image build or push failed
    │   ├── DockerfileMissingError
    │   ├── EngineUnreachableError
    │   ├── ImageBuildFailedError
    │   └── ImagePushFailedError
    └── RolloutError                # Cluster restart failed
        ├── ClusterUnreachableError
        └── PartialRolloutError

Exit Codes:
    1 - General error (BuildHookError)
    2 - Build slot busy (AlreadyBuildingError)
    3 - Unknown project (UnknownProjectError)
    5 - Invalid configuration (ConfigInvalidError)
    8 - Network/remote failure (fetch, build engine, cluster)

Example:
    >>> from build_hook.errors import UnknownProjectError
    >>> raise UnknownProjectError("does-not-exist")
    Traceback (most recent call last):
        ...
    UnknownProjectError: No configuration found for project `does-not-exist`
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from build_hook.schemas.run import ResourceOutcome


class BuildHookError(Exception):
    """Base exception for all build-hook errors.

    Attributes:
        reason: Stable snake_case code identifying the failure kind.
        exit_code: CLI exit code for this error type (default: 1).
    """

    reason: str = "error"
    exit_code: int = 1


class ConfigInvalidError(BuildHookError):
    """Raised when the project configuration fails validation.

    Fatal at startup: the service never starts with a partially valid
    project list.

    Attributes:
        errors: Every validation message collected during the load.
    """

    reason = "config_invalid"
    exit_code = 5

    def __init__(self, errors: list[str]) -> None:
        """Initialize ConfigInvalidError.

        Args:
            errors: Human-readable validation messages.
        """
        self.errors = list(errors)
        joined = "; ".join(self.errors) if self.errors else "unknown error"
        super().__init__(f"Invalid configuration: {joined}")


class UnknownProjectError(BuildHookError):
    """Raised when a trigger names a slug that is not configured."""

    reason = "unknown_project"
    exit_code = 3

    def __init__(self, slug: str) -> None:
        self.slug = slug
        super().__init__(f"No configuration found for project `{slug}`")


class AlreadyBuildingError(BuildHookError):
    """Raised when the slug's build slot is already held.

    Triggers are never queued: a second trigger while a run is in
    progress fails immediately with this error.
    """

    reason = "already_building"
    exit_code = 2

    def __init__(self, slug: str) -> None:
        self.slug = slug
        super().__init__(f"Build already in progress for project `{slug}`")


class CommandTimeoutError(BuildHookError):
    """Raised when an external command exceeds its timeout.

    Components translate this into their own failure kind; it never
    reaches a run outcome directly.
    """

    reason = "timeout"
    exit_code = 8

    def __init__(self, command: str, timeout: float) -> None:
        self.command = command
        self.timeout = timeout
        super().__init__(f"`{command}` timed out after {timeout:g}s")


# =============================================================================
# Source acquisition
# =============================================================================


class FetchError(BuildHookError):
    """Base class for source acquisition failures.

    A fetch failure aborts the run before any image is built.
    """

    reason = "fetch_failed"
    exit_code = 8


class SourceUnreachableError(FetchError):
    """Raised when the code host cannot be contacted."""

    reason = "unreachable"

    def __init__(self, url: str, detail: str = "") -> None:
        self.url = url
        self.detail = detail
        msg = f"Could not reach repository {url}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class BranchNotFoundError(FetchError):
    """Raised when the configured branch does not exist upstream."""

    reason = "branch_not_found"

    def __init__(self, url: str, branch: str) -> None:
        self.url = url
        self.branch = branch
        super().__init__(f"Branch `{branch}` not found in {url}")


class CheckoutCorruptError(FetchError):
    """Raised when an existing checkout cannot be repaired and a fresh clone also fails."""

    reason = "corrupt"

    def __init__(self, path: str, detail: str = "") -> None:
        self.path = path
        self.detail = detail
        msg = f"Checkout at {path} is corrupt and could not be re-cloned"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


# =============================================================================
# Image builds
# =============================================================================


class BuildError(BuildHookError):
    """Base class for per-image build failures.

    Build failures are isolated to one image: sibling images are still
    attempted.
    """

    reason = "build_error"
    exit_code = 8


class DockerfileMissingError(BuildError):
    """Raised when the image's Dockerfile is absent from the checkout."""

    reason = "dockerfile_missing"

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Dockerfile not found at {path}")


class EngineUnreachableError(BuildError):
    """Raised when the remote build engine cannot be reached or times out."""

    reason = "engine_unreachable"

    def __init__(self, builder: str, detail: str = "") -> None:
        self.builder = builder
        self.detail = detail
        msg = f"Build engine `{builder}` unreachable"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class ImageBuildFailedError(BuildError):
    """Raised when the build itself fails (bad Dockerfile, failing step).

    Attributes:
        reference: Fully-qualified image reference being built.
        exit_status: Exit status of the build command.
        output_tail: Last lines of the captured build output.
    """

    reason = "build_failed"

    def __init__(self, reference: str, exit_status: int | None, output_tail: str) -> None:
        self.reference = reference
        self.exit_status = exit_status
        self.output_tail = output_tail
        super().__init__(f"Build failed for {reference} with exit code: {exit_status}")


class ImagePushFailedError(BuildError):
    """Raised when the image built but could not be pushed to the registry."""

    reason = "push_failed"

    def __init__(self, reference: str, output_tail: str) -> None:
        self.reference = reference
        self.output_tail = output_tail
        super().__init__(f"Push failed for {reference}")


# =============================================================================
# Rollout
# =============================================================================


class RolloutError(BuildHookError):
    """Base class for rollout restart failures."""

    reason = "rollout_error"
    exit_code = 8


class ClusterUnreachableError(RolloutError):
    """Raised when the cluster control plane cannot be contacted at all.

    Attributes:
        detail: Last connectivity error.
        outcomes: Per-resource outcomes, one per configured resource, when
            the restart was attempted.
    """

    reason = "cluster_unreachable"

    def __init__(self, detail: str = "", outcomes: list[ResourceOutcome] | None = None) -> None:
        self.detail = detail
        self.outcomes = list(outcomes or [])
        msg = "Kubernetes control plane unreachable"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class PartialRolloutError(RolloutError):
    """Raised when at least one resource restart failed.

    Every configured resource is still attempted; ``outcomes`` holds the
    result for each of them, in configured order.

    Attributes:
        failed: Resource ids (``kind/name``) whose restart failed.
        outcomes: Per-resource outcomes for every attempted resource.
    """

    reason = "partial_failure"

    def __init__(self, failed: list[str], outcomes: list[ResourceOutcome]) -> None:
        self.failed = list(failed)
        self.outcomes = list(outcomes)
        super().__init__(f"Rollout restart failed for: {', '.join(self.failed)}")


__all__ = [
    "AlreadyBuildingError",
    "BranchNotFoundError",
    "BuildError",
    "BuildHookError",
    "CheckoutCorruptError",
    "ClusterUnreachableError",
    "CommandTimeoutError",
    "ConfigInvalidError",
    "DockerfileMissingError",
    "EngineUnreachableError",
    "FetchError",
    "ImageBuildFailedError",
    "ImagePushFailedError",
    "PartialRolloutError",
    "RolloutError",
    "SourceUnreachableError",
    "UnknownProjectError",
]

"""BuildRun result schemas.

A BuildRun is one end-to-end execution of the pipeline for one trigger. Its
result is never persisted; it is returned to the caller (and optionally posted
to notification webhooks) with enough detail to tell whether the source, an
image build, or the cluster is to blame.

Key Components:
    RunState: Orchestrator state machine states
    RunStatus: Overall verdict of a finished run
    Outcome: Success, or failure with a reason code
    ImageOutcome / ResourceOutcome: Per-image and per-resource outcomes
    RolloutOutcome: Rollout stage result (skipped when every image failed)
    BuildRunResult: Complete run result

Example:
    >>> Outcome.failed("build_failed", "exit code 1").ok
    False
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field

# =============================================================================
# Enums
# =============================================================================


class RunState(str, Enum):
    """Orchestrator state machine states.

    ``IDLE -> LOCKING -> FETCHING -> BUILDING -> ROLLING_OUT -> DONE``, with
    ``ABORTED`` reachable from any state on an unrecoverable error.
    """

    IDLE = "idle"
    LOCKING = "locking"
    FETCHING = "fetching"
    BUILDING = "building"
    ROLLING_OUT = "rolling_out"
    DONE = "done"
    ABORTED = "aborted"


class RunStatus(str, Enum):
    """Overall verdict of a finished run.

    Attributes:
        SUCCEEDED: Every image built and every resource restarted.
        PARTIAL_FAILURE: At least one image succeeded, something else failed.
        FAILED: Every image failed; rollout was skipped.
        ABORTED: The run stopped before building (fetch failure or crash).
    """

    SUCCEEDED = "succeeded"
    PARTIAL_FAILURE = "partial_failure"
    FAILED = "failed"
    ABORTED = "aborted"


class RolloutStatus(str, Enum):
    """Result of the rollout stage."""

    COMPLETED = "completed"
    NOOP = "noop"
    PARTIAL_FAILURE = "partial_failure"
    CLUSTER_UNREACHABLE = "cluster_unreachable"
    SKIPPED = "skipped"


# =============================================================================
# Outcomes
# =============================================================================


class Outcome(BaseModel):
    """Success, or failure with a stable reason code and detail text."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    status: Literal["success", "failed"]
    reason: str | None = Field(default=None, description="Failure kind, e.g. build_failed")
    detail: str | None = Field(default=None, description="Human-readable failure detail")

    @property
    def ok(self) -> bool:
        """Whether this outcome is a success."""
        return self.status == "success"

    @classmethod
    def success(cls) -> Outcome:
        return cls(status="success")

    @classmethod
    def failed(cls, reason: str, detail: str | None = None) -> Outcome:
        return cls(status="failed", reason=reason, detail=detail)


class ImageOutcome(BaseModel):
    """Outcome of building and pushing one image."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    repository: str
    reference: str = Field(..., description="Fully-qualified image reference")
    outcome: Outcome


class ResourceOutcome(BaseModel):
    """Outcome of restarting one ``kind/name`` resource."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    resource: str
    outcome: Outcome


class RolloutOutcome(BaseModel):
    """Result of the rollout stage.

    ``resources`` lists every configured resource that was attempted, in
    configured order. It is empty when rollout was skipped, was a no-op, or
    the cluster could not be contacted.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    status: RolloutStatus
    namespace: str
    resources: tuple[ResourceOutcome, ...] = ()
    detail: str | None = None

    @property
    def ok(self) -> bool:
        return self.status in (RolloutStatus.COMPLETED, RolloutStatus.NOOP)

    @property
    def attempted(self) -> bool:
        """Whether the rollout stage ran at all."""
        return self.status != RolloutStatus.SKIPPED


class BuildRunResult(BaseModel):
    """Complete result of one BuildRun.

    Attributes:
        run_id: Identifier of this run (also bound to its log lines).
        project_slug: Project the run belongs to.
        started_at: When the run acquired its slot.
        finished_at: When the run released its slot.
        state: Terminal state machine state (DONE or ABORTED).
        fetch: Source fetch outcome.
        images: One entry per configured image, in declaration order, or empty
            when the run aborted before building.
        rollout: Rollout stage result, None when the run aborted.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    run_id: str
    project_slug: str
    started_at: datetime
    finished_at: datetime
    state: RunState
    fetch: Outcome
    images: tuple[ImageOutcome, ...] = ()
    rollout: RolloutOutcome | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def status(self) -> RunStatus:
        """Overall verdict derived from the stage outcomes."""
        if self.state == RunState.ABORTED or not self.fetch.ok:
            return RunStatus.ABORTED
        if not any(image.outcome.ok for image in self.images):
            return RunStatus.FAILED
        if all(image.outcome.ok for image in self.images) and (
            self.rollout is None or self.rollout.ok
        ):
            return RunStatus.SUCCEEDED
        return RunStatus.PARTIAL_FAILURE

    @property
    def per_image_outcomes(self) -> dict[str, Outcome]:
        """Image outcomes keyed by fully-qualified reference."""
        return {image.reference: image.outcome for image in self.images}

    @property
    def duration_seconds(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()


__all__ = [
    "BuildRunResult",
    "ImageOutcome",
    "Outcome",
    "ResourceOutcome",
    "RolloutOutcome",
    "RolloutStatus",
    "RunState",
    "RunStatus",
]

"""Build Orchestrator.

Drives one BuildRun per trigger through an explicit state machine::

    IDLE -> LOCKING -> FETCHING -> BUILDING(i) for each image -> ROLLING_OUT -> DONE
                 \\____________________________________________________/
                                   ABORTED (unrecoverable error)

Rules:
- A run takes its project's build slot without waiting; a busy slot fails the
  trigger with AlreadyBuildingError. The slot is released on every exit path.
- The source is fetched once per run. A fetch failure aborts the run before
  any image is attempted.
- Images are built one at a time, in declaration order. A failing image does
  not stop the others; every image gets an outcome.
- Rollout runs only if at least one image succeeded, and then restarts every
  configured resource.
- Nothing is retried. Retrying is the caller's decision (trigger again).

Collaborators (fetcher, builder, rollout trigger) are injected, so tests can
substitute fakes for git, buildx and the cluster.

Example:
    >>> orchestrator = BuildOrchestrator(
    ...     registry=registry,
    ...     fetcher=GitSourceFetcher(),
    ...     builder=BuildxImageBuilder(BuilderConfig()),
    ...     rollout=KubernetesRolloutTrigger(),
    ...     image_registry="registry.example.com",
    ...     checkout_root=Path("/tmp/build-hook"),
    ... )
    >>> result = await orchestrator.trigger("web")
    >>> result.status
    <RunStatus.SUCCEEDED: 'succeeded'>
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from pathlib import Path

import structlog

from build_hook.builder import ImageBuilder
from build_hook.errors import (
    BuildError,
    ClusterUnreachableError,
    FetchError,
    PartialRolloutError,
)
from build_hook.locks import BuildSlots
from build_hook.registry import ProjectRegistry
from build_hook.rollout import RolloutTrigger
from build_hook.schemas.project import ImageSpec, Project
from build_hook.schemas.run import (
    BuildRunResult,
    ImageOutcome,
    Outcome,
    RolloutOutcome,
    RolloutStatus,
    RunState,
)
from build_hook.source import SourceFetcher
from build_hook.telemetry.tracer_factory import get_tracer

logger = structlog.get_logger(__name__)

ResultHook = Callable[[BuildRunResult], Awaitable[object]]
"""Called with every finished run (e.g. webhook notifications)."""


def _now() -> datetime:
    return datetime.now(timezone.utc)


class _Run:
    """Mutable state of one BuildRun while it executes."""

    def __init__(self, project: Project) -> None:
        self.project = project
        self.run_id = uuid.uuid4().hex[:12]
        self.started_at = _now()
        self.state = RunState.IDLE
        self.fetch = Outcome.failed("not_started")
        self.images: list[ImageOutcome] = []
        self.rollout: RolloutOutcome | None = None
        self.log = logger.bind(slug=project.slug, run_id=self.run_id)

    def transition(self, state: RunState, **context: object) -> None:
        self.log.info("run_state_changed", previous=self.state.value, state=state.value, **context)
        self.state = state

    def result(self) -> BuildRunResult:
        return BuildRunResult(
            run_id=self.run_id,
            project_slug=self.project.slug,
            started_at=self.started_at,
            finished_at=_now(),
            state=self.state,
            fetch=self.fetch,
            images=tuple(self.images),
            rollout=self.rollout,
        )


class BuildOrchestrator:
    """Sequences fetch, per-image builds and rollout for one project at a time.

    Args:
        registry: Validated projects.
        fetcher: Source Fetcher.
        builder: Image Builder.
        rollout: Rollout Trigger.
        image_registry: Registry host images are pushed to.
        checkout_root: Directory holding one checkout per slug.
        slots: Per-slug build slots (a fresh arena by default).
        on_finished: Optional hook called with every finished result. It runs
            as a tracked task after the result is returned; ``wait_background``
            waits for it. Hook failures are logged and never change the result.
    """

    def __init__(
        self,
        registry: ProjectRegistry,
        fetcher: SourceFetcher,
        builder: ImageBuilder,
        rollout: RolloutTrigger,
        image_registry: str,
        checkout_root: Path,
        slots: BuildSlots | None = None,
        on_finished: ResultHook | None = None,
    ) -> None:
        self._registry = registry
        self._fetcher = fetcher
        self._builder = builder
        self._rollout = rollout
        self._image_registry = image_registry
        self._checkout_root = checkout_root
        self._slots = slots or BuildSlots()
        self._on_finished = on_finished
        self._background: set[asyncio.Task[BuildRunResult]] = set()
        self._hooks: set[asyncio.Task[None]] = set()
        self._tracer = get_tracer(__name__)

    @property
    def registry(self) -> ProjectRegistry:
        return self._registry

    def is_building(self, slug: str) -> bool:
        """Whether a run currently holds the slug's slot."""
        return self._slots.is_held(slug)

    def checkout_path(self, project: Project) -> Path:
        """On-disk checkout owned by the project's slot holder."""
        return self._checkout_root / project.slug

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def trigger(self, slug: str) -> BuildRunResult:
        """Run the full pipeline for a project and return its result.

        Args:
            slug: Project slug.

        Returns:
            BuildRunResult with per-image and per-resource outcomes.

        Raises:
            UnknownProjectError: No such project (nothing is locked).
            AlreadyBuildingError: A run for this project is in progress.
        """
        project = self._registry.resolve(slug)
        self._slots.try_acquire(project.slug)
        return await self._run_holding_slot(project)

    def start(self, slug: str) -> asyncio.Task[BuildRunResult]:
        """Start a run in the background.

        The slot is taken before this returns, so a busy project still fails
        immediately. Must be called from a running event loop.

        Raises:
            UnknownProjectError: No such project.
            AlreadyBuildingError: A run for this project is in progress.
        """
        project = self._registry.resolve(slug)
        self._slots.try_acquire(project.slug)
        try:
            task = asyncio.get_running_loop().create_task(
                self._run_holding_slot(project), name=f"build-hook:{project.slug}"
            )
        except BaseException:
            self._slots.release(project.slug)
            raise
        self._background.add(task)
        task.add_done_callback(self._background_done)
        logger.info("build_started_in_background", slug=project.slug)
        return task

    def _background_done(self, task: asyncio.Task[BuildRunResult]) -> None:
        self._background.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "background_build_crashed",
                task=task.get_name(),
                error=str(task.exception()),
            )

    async def wait_background(self) -> None:
        """Wait for background runs and pending finished-run hooks (used at shutdown)."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        if self._hooks:
            await asyncio.gather(*self._hooks, return_exceptions=True)

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    async def _run_holding_slot(self, project: Project) -> BuildRunResult:
        try:
            run = _Run(project)
            run.transition(RunState.LOCKING)
            with self._tracer.start_as_current_span("build_hook.trigger") as span:
                span.set_attribute("build_hook.slug", project.slug)
                span.set_attribute("build_hook.run_id", run.run_id)
                try:
                    await self._execute(run)
                except Exception:
                    run.transition(RunState.ABORTED)
                    run.log.exception("run_crashed")
                    raise
                result = run.result()
                span.set_attribute("build_hook.status", result.status.value)
        finally:
            self._slots.release(project.slug)

        run.log.info(
            "run_finished",
            status=result.status.value,
            state=result.state.value,
            duration_seconds=round(result.duration_seconds, 3),
        )
        self._schedule_hook(result)
        return result

    async def _execute(self, run: _Run) -> None:
        project = run.project

        run.transition(
            RunState.FETCHING,
            url=project.source.repository_url,
            branch=project.source.branch,
        )
        source_path = await self._fetch(run)
        if source_path is None:
            run.transition(RunState.ABORTED, reason=run.fetch.reason)
            return

        for index, image in enumerate(project.images):
            run.transition(RunState.BUILDING, index=index, total=len(project.images))
            run.images.append(await self._build(run, image, source_path))

        if not any(image.outcome.ok for image in run.images):
            run.rollout = RolloutOutcome(
                status=RolloutStatus.SKIPPED,
                namespace=project.deployment.namespace,
                detail="every image failed; rollout not attempted",
            )
            run.log.warning("rollout_skipped", images=len(run.images))
            run.transition(RunState.DONE)
            return

        run.transition(RunState.ROLLING_OUT, resources=len(project.deployment.resources))
        run.rollout = await self._restart(run)
        run.transition(RunState.DONE)

    async def _fetch(self, run: _Run) -> Path | None:
        project = run.project
        with self._tracer.start_as_current_span("build_hook.fetch") as span:
            span.set_attribute("build_hook.repository_url", project.source.repository_url)
            span.set_attribute("build_hook.branch", project.source.branch)
            try:
                path = await self._fetcher.fetch(project.source, self.checkout_path(project))
            except FetchError as e:
                run.fetch = Outcome.failed(e.reason, str(e))
                run.log.error("fetch_failed", reason=e.reason, error=str(e))
                return None
        run.fetch = Outcome.success()
        return path

    async def _build(self, run: _Run, image: ImageSpec, source_path: Path) -> ImageOutcome:
        reference = image.reference(self._image_registry)
        with self._tracer.start_as_current_span("build_hook.build") as span:
            span.set_attribute("build_hook.image", reference)
            try:
                await self._builder.build(image, source_path, self._image_registry)
            except BuildError as e:
                detail = str(e)
                tail = getattr(e, "output_tail", "")
                if tail:
                    detail = f"{detail}\n{tail}"
                run.log.error("image_failed", reference=reference, reason=e.reason)
                outcome = Outcome.failed(e.reason, detail)
            else:
                run.log.info("image_succeeded", reference=reference)
                outcome = Outcome.success()
        return ImageOutcome(repository=image.repository, reference=reference, outcome=outcome)

    async def _restart(self, run: _Run) -> RolloutOutcome:
        deployment = run.project.deployment
        if not deployment.resources:
            return RolloutOutcome(status=RolloutStatus.NOOP, namespace=deployment.namespace)

        with self._tracer.start_as_current_span("build_hook.rollout") as span:
            span.set_attribute("build_hook.namespace", deployment.namespace)
            try:
                outcomes = await self._rollout.restart(deployment)
            except ClusterUnreachableError as e:
                run.log.error("rollout_cluster_unreachable", error=str(e))
                return RolloutOutcome(
                    status=RolloutStatus.CLUSTER_UNREACHABLE,
                    namespace=deployment.namespace,
                    resources=tuple(e.outcomes),
                    detail=str(e),
                )
            except PartialRolloutError as e:
                run.log.error("rollout_partial_failure", failed=e.failed)
                return RolloutOutcome(
                    status=RolloutStatus.PARTIAL_FAILURE,
                    namespace=deployment.namespace,
                    resources=tuple(e.outcomes),
                    detail=str(e),
                )
        return RolloutOutcome(
            status=RolloutStatus.COMPLETED,
            namespace=deployment.namespace,
            resources=tuple(outcomes),
        )

    def _schedule_hook(self, result: BuildRunResult) -> None:
        # Runs after the result is returned to the caller
        if self._on_finished is None:
            return
        task = asyncio.get_running_loop().create_task(
            self._notify(self._on_finished, result),
            name=f"build-hook:notify:{result.project_slug}",
        )
        self._hooks.add(task)
        task.add_done_callback(self._hooks.discard)

    async def _notify(self, hook: ResultHook, result: BuildRunResult) -> None:
        try:
            await hook(result)
        except Exception as e:
            logger.warning("run_hook_failed", slug=result.project_slug, error=str(e))


__all__ = ["BuildOrchestrator", "ResultHook"]

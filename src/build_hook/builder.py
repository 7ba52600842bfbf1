"""Image Builder.

Builds and pushes one image with ``docker buildx`` against a remote builder
(buildkit pods created by the kubernetes driver, or an existing buildkitd
reached through the remote driver). Builds never run in-process or on a local
daemon socket, so several orchestrator instances can share one build backend.

No retries happen here: a failed build is reported at once.

Failure kinds:
    DockerfileMissingError: Dockerfile absent from the checkout.
    EngineUnreachableError: Builder missing, unreachable, or build timed out.
    ImageBuildFailedError: A build step failed.
    ImagePushFailedError: The image built but the registry push failed.

Example:
    >>> builder = BuildxImageBuilder(BuilderConfig(name="builder"), timeout=1800)
    >>> await builder.initialize()
    >>> await builder.build(image, Path("/tmp/build-hook/web"), "registry.example.com")
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol

import structlog

from build_hook.errors import (
    BuildError,
    CommandTimeoutError,
    DockerfileMissingError,
    EngineUnreachableError,
    ImageBuildFailedError,
    ImagePushFailedError,
)
from build_hook.process import CommandResult, run_command
from build_hook.schemas.config import BuilderConfig
from build_hook.schemas.project import ImageSpec

logger = structlog.get_logger(__name__)

PUSH_FAILURE_MARKERS = (
    "failed to push",
    "error pushing",
    "push access denied",
    "unexpected status from put request",
)
ENGINE_FAILURE_MARKERS = (
    "no builder",
    "failed to initialize builder",
    "failed to find driver",
    "error during connect",
    "cannot connect to",
    "failed to dial",
    "connection refused",
    "is the docker daemon running",
)
BUILDER_SETUP_TIMEOUT = 300.0


class ImageBuilder(Protocol):
    """Interface the orchestrator uses to build and push images."""

    async def build(self, image: ImageSpec, source_path: Path, registry: str) -> None: ...


def classify_build_failure(reference: str, builder: str, result: CommandResult) -> BuildError:
    """Map a failed ``buildx build`` to its failure kind.

    Push failures are checked first (buildkit reports them as
    ``failed to solve: failed to push``), then engine connectivity, and
    anything else is a failing build step.
    """
    text = result.output.lower()
    tail = result.tail()
    if any(marker in text for marker in PUSH_FAILURE_MARKERS):
        return ImagePushFailedError(reference, tail)
    if "failed to solve" not in text and any(m in text for m in ENGINE_FAILURE_MARKERS):
        return EngineUnreachableError(builder, result.tail(3))
    return ImageBuildFailedError(reference, result.returncode, tail)


class BuildxImageBuilder:
    """Build and push images through a named buildx builder.

    Args:
        config: Remote builder settings.
        timeout: Seconds allowed for one build and push.
        cache: When False, every build runs with ``--no-cache``.
        docker: docker CLI executable.
    """

    def __init__(
        self,
        config: BuilderConfig,
        timeout: float = 1800.0,
        cache: bool = False,
        docker: str = "docker",
    ) -> None:
        self._config = config
        self._timeout = timeout
        self._cache = cache
        self._docker = docker

    @property
    def name(self) -> str:
        return self._config.name

    async def _buildx(self, *args: str, timeout: float) -> CommandResult:
        try:
            return await run_command([self._docker, "buildx", *args], timeout=timeout)
        except CommandTimeoutError as e:
            raise EngineUnreachableError(self.name, str(e)) from e
        except FileNotFoundError as e:
            raise EngineUnreachableError(
                self.name, f"docker executable `{self._docker}` not found"
            ) from e
        except OSError as e:
            raise EngineUnreachableError(self.name, f"cannot run `{self._docker}`: {e}") from e

    async def _checked(self, *args: str) -> CommandResult:
        result = await self._buildx(*args, timeout=BUILDER_SETUP_TIMEOUT)
        if not result.ok:
            raise EngineUnreachableError(self.name, result.tail(3))
        return result

    def create_args(self) -> list[str]:
        """Arguments for ``docker buildx create`` for the configured driver."""
        args = ["create", "--name", self.name, "--driver", self._config.driver]
        if self._config.driver == "kubernetes":
            args += ["--driver-opt", f"namespace={self._config.namespace}"]
        args.append("--use")
        if self._config.driver == "remote" and self._config.endpoint:
            args.append(self._config.endpoint)
        return args

    async def builder_exists(self) -> bool:
        """Whether a buildx builder with the configured name is registered."""
        result = await self._checked("ls")
        for line in result.stdout.splitlines()[1:]:
            fields = line.split()
            if fields and fields[0].rstrip("*") == self.name:
                return True
        return False

    async def initialize(self) -> None:
        """Select the remote builder, creating and bootstrapping it if absent.

        Raises:
            EngineUnreachableError: If the builder cannot be listed, created
                or bootstrapped.
        """
        logger.info(
            "builder_initializing",
            builder=self.name,
            driver=self._config.driver,
            namespace=self._config.namespace,
        )
        if await self.builder_exists():
            logger.info("builder_exists", builder=self.name)
            await self._checked("use", self.name)
        else:
            logger.info("builder_creating", builder=self.name)
            await self._checked(*self.create_args())
            await self._checked("inspect", "--bootstrap", self.name)
        logger.info("builder_ready", builder=self.name)

    def build_args(self, reference: str, dockerfile: Path, context: Path) -> list[str]:
        """Arguments for ``docker buildx build`` pushing ``reference``."""
        args = [
            "build",
            "--builder",
            self.name,
            "--push",
            "--progress",
            "plain",
            "-t",
            reference,
            "--file",
            str(dockerfile),
        ]
        if not self._cache:
            args.append("--no-cache")
        args.append(str(context))
        return args

    async def build(self, image: ImageSpec, source_path: Path, registry: str) -> None:
        """Build ``image`` from ``source_path`` and push it to ``registry``.

        The build context is the directory holding the Dockerfile.

        Args:
            image: Image to build.
            source_path: Checkout root.
            registry: Registry host the reference is qualified with.

        Raises:
            DockerfileMissingError: Dockerfile absent or outside the checkout.
            EngineUnreachableError: Remote builder unreachable or timed out.
            ImageBuildFailedError: Build step failed.
            ImagePushFailedError: Push to the registry failed.
        """
        reference = image.reference(registry)
        root = source_path.resolve()
        dockerfile = (root / image.dockerfile_path).resolve()
        if not dockerfile.is_relative_to(root) or not dockerfile.is_file():
            raise DockerfileMissingError(str(source_path / image.dockerfile_path))

        log = logger.bind(reference=reference, builder=self.name)
        log.info("image_build_started", dockerfile=image.dockerfile_path)
        result = await self._buildx(
            *self.build_args(reference, dockerfile, dockerfile.parent),
            timeout=self._timeout,
        )
        if result.ok:
            log.debug("image_build_output", output=result.tail())
            log.info("image_pushed")
            return

        error = classify_build_failure(reference, self.name, result)
        log.warning(
            "image_build_failed",
            reason=error.reason,
            returncode=result.returncode,
            output_tail=result.tail(),
        )
        raise error


__all__ = ["BuildxImageBuilder", "ImageBuilder", "classify_build_failure"]

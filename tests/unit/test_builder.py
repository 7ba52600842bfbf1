"""Unit tests for the buildx Image Builder."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from build_hook.builder import BuildxImageBuilder, classify_build_failure
from build_hook.errors import (
    CommandTimeoutError,
    DockerfileMissingError,
    EngineUnreachableError,
    ImageBuildFailedError,
    ImagePushFailedError,
)
from build_hook.process import CommandResult
from build_hook.schemas.config import BuilderConfig
from build_hook.schemas.project import ImageSpec

REGISTRY = "registry.example.com"
REFERENCE = "registry.example.com/acme/api:latest"


@pytest.fixture
def image() -> ImageSpec:
    return ImageSpec(repository="acme/api", dockerfile_path="api/Dockerfile", tag="latest")


@pytest.fixture
def checkout(tmp_path: Path) -> Path:
    (tmp_path / "api").mkdir()
    (tmp_path / "api" / "Dockerfile").write_text("FROM scratch\n")
    return tmp_path


class TestBuildArgs:
    """Tests for the buildx command lines."""

    def test_build_args_without_cache(self, tmp_path: Path) -> None:
        builder = BuildxImageBuilder(BuilderConfig())
        args = builder.build_args(REFERENCE, tmp_path / "Dockerfile", tmp_path)
        assert args == [
            "build",
            "--builder",
            "builder",
            "--push",
            "--progress",
            "plain",
            "-t",
            REFERENCE,
            "--file",
            str(tmp_path / "Dockerfile"),
            "--no-cache",
            str(tmp_path),
        ]

    def test_build_args_with_cache(self, tmp_path: Path) -> None:
        builder = BuildxImageBuilder(BuilderConfig(), cache=True)
        assert "--no-cache" not in builder.build_args(REFERENCE, tmp_path / "Dockerfile", tmp_path)

    def test_create_args_kubernetes(self) -> None:
        builder = BuildxImageBuilder(BuilderConfig(name="ci", namespace="buildkit"))
        assert builder.create_args() == [
            "create",
            "--name",
            "ci",
            "--driver",
            "kubernetes",
            "--driver-opt",
            "namespace=buildkit",
            "--use",
        ]

    def test_create_args_remote(self) -> None:
        config = BuilderConfig(driver="remote", endpoint="tcp://buildkitd:1234")
        assert BuildxImageBuilder(config).create_args() == [
            "create",
            "--name",
            "builder",
            "--driver",
            "remote",
            "--use",
            "tcp://buildkitd:1234",
        ]


class TestBuild:
    """Tests for build()."""

    @pytest.mark.asyncio
    async def test_success_uses_dockerfile_directory_as_context(
        self,
        image: ImageSpec,
        checkout: Path,
        command_result: Callable[..., CommandResult],
    ) -> None:
        run = AsyncMock(return_value=command_result(stdout="pushed"))
        builder = BuildxImageBuilder(BuilderConfig(), timeout=60)

        with patch("build_hook.builder.run_command", new=run):
            await builder.build(image, checkout, REGISTRY)

        args = run.call_args.args[0]
        dockerfile = (checkout / "api" / "Dockerfile").resolve()
        assert args[:3] == ["docker", "buildx", "build"]
        assert args[args.index("-t") + 1] == REFERENCE
        assert args[args.index("--file") + 1] == str(dockerfile)
        assert args[-1] == str(dockerfile.parent)
        assert run.call_args.kwargs["timeout"] == 60

    @pytest.mark.asyncio
    async def test_missing_dockerfile(self, image: ImageSpec, tmp_path: Path) -> None:
        run = AsyncMock()
        builder = BuildxImageBuilder(BuilderConfig())

        with patch("build_hook.builder.run_command", new=run), pytest.raises(
            DockerfileMissingError, match="api/Dockerfile"
        ):
            await builder.build(image, tmp_path, REGISTRY)
        run.assert_not_called()

    @pytest.mark.asyncio
    async def test_symlink_escaping_checkout(self, tmp_path: Path) -> None:
        outside = tmp_path / "outside"
        outside.mkdir()
        (outside / "Dockerfile").write_text("FROM scratch\n")
        root = tmp_path / "checkout"
        root.mkdir()
        (root / "Dockerfile").symlink_to(outside / "Dockerfile")
        image = ImageSpec(repository="acme/web", dockerfile_path="Dockerfile", tag="latest")

        with pytest.raises(DockerfileMissingError):
            await BuildxImageBuilder(BuilderConfig()).build(image, root, REGISTRY)

    @pytest.mark.asyncio
    async def test_failing_step(
        self,
        image: ImageSpec,
        checkout: Path,
        command_result: Callable[..., CommandResult],
    ) -> None:
        output = "#5 [2/3] RUN make\n#5 ERROR: process did not complete successfully\n"
        run = AsyncMock(return_value=command_result(returncode=1, stderr=output))

        with patch("build_hook.builder.run_command", new=run), pytest.raises(
            ImageBuildFailedError
        ) as exc_info:
            await BuildxImageBuilder(BuilderConfig()).build(image, checkout, REGISTRY)

        assert exc_info.value.exit_status == 1
        assert "RUN make" in exc_info.value.output_tail

    @pytest.mark.asyncio
    async def test_timeout_is_engine_unreachable(self, image: ImageSpec, checkout: Path) -> None:
        run = AsyncMock(side_effect=CommandTimeoutError("docker buildx", 1800))

        with patch("build_hook.builder.run_command", new=run), pytest.raises(
            EngineUnreachableError, match="timed out"
        ):
            await BuildxImageBuilder(BuilderConfig()).build(image, checkout, REGISTRY)

    @pytest.mark.asyncio
    async def test_missing_docker(self, image: ImageSpec, checkout: Path) -> None:
        run = AsyncMock(side_effect=FileNotFoundError("docker"))

        with patch("build_hook.builder.run_command", new=run), pytest.raises(
            EngineUnreachableError, match="docker executable"
        ):
            await BuildxImageBuilder(BuilderConfig()).build(image, checkout, REGISTRY)


class TestClassifyBuildFailure:
    """Tests for mapping buildx output to failure kinds."""

    @pytest.mark.parametrize(
        ("stderr", "error"),
        [
            (
                "ERROR: failed to solve: failed to push registry.example.com/acme/api:latest: "
                "unexpected status: 401 Unauthorized",
                ImagePushFailedError,
            ),
            ("ERROR: no builder \"builder\" found", EngineUnreachableError),
            ("ERROR: failed to dial gRPC: connection refused", EngineUnreachableError),
            (
                "ERROR: failed to solve: process \"/bin/sh -c make\" did not complete successfully",
                ImageBuildFailedError,
            ),
            ("something else entirely", ImageBuildFailedError),
        ],
    )
    def test_classification(
        self,
        stderr: str,
        error: type[Exception],
        command_result: Callable[..., CommandResult],
    ) -> None:
        result = command_result(returncode=1, stderr=stderr)
        assert isinstance(classify_build_failure(REFERENCE, "builder", result), error)


class TestInitialize:
    """Tests for remote builder selection and creation."""

    @pytest.mark.asyncio
    async def test_existing_builder_selected(
        self, command_result: Callable[..., CommandResult]
    ) -> None:
        listing = (
            "NAME/NODE        DRIVER/ENDPOINT  STATUS   BUILDKIT\n"
            "builder*         kubernetes\n"
            " \\_ builder0     kubernetes:///builder  running  v0.16.0\n"
            "default          docker\n"
        )
        run = AsyncMock(return_value=command_result(stdout=listing))

        with patch("build_hook.builder.run_command", new=run):
            await BuildxImageBuilder(BuilderConfig()).initialize()

        commands = [c.args[0][2] for c in run.call_args_list]
        assert commands == ["ls", "use"]
        assert run.call_args_list[1].args[0] == ["docker", "buildx", "use", "builder"]

    @pytest.mark.asyncio
    async def test_missing_builder_created_and_bootstrapped(
        self, command_result: Callable[..., CommandResult]
    ) -> None:
        listing = "NAME/NODE  DRIVER/ENDPOINT  STATUS\ndefault    docker\n"
        run = AsyncMock(return_value=command_result(stdout=listing))

        with patch("build_hook.builder.run_command", new=run):
            await BuildxImageBuilder(BuilderConfig()).initialize()

        commands = [c.args[0][2] for c in run.call_args_list]
        assert commands == ["ls", "create", "inspect"]
        assert run.call_args_list[2].args[0] == [
            "docker",
            "buildx",
            "inspect",
            "--bootstrap",
            "builder",
        ]

    @pytest.mark.asyncio
    async def test_create_failure(self, command_result: Callable[..., CommandResult]) -> None:
        run = AsyncMock(
            side_effect=[
                command_result(stdout="NAME/NODE\n"),
                command_result(returncode=1, stderr="ERROR: namespaces \"build\" not found"),
            ]
        )

        with patch("build_hook.builder.run_command", new=run), pytest.raises(
            EngineUnreachableError, match="not found"
        ):
            await BuildxImageBuilder(BuilderConfig()).initialize()


class TestUnrunnableDocker:
    """Tests for a docker CLI that exists but cannot be executed."""

    @pytest.mark.asyncio
    async def test_permission_denied_is_engine_unreachable(
        self, image: ImageSpec, checkout: Path, tmp_path: Path
    ) -> None:
        docker = tmp_path / "docker"
        docker.write_text("#!/bin/sh\n")
        docker.chmod(0o644)

        with pytest.raises(EngineUnreachableError, match="cannot run"):
            await BuildxImageBuilder(BuilderConfig(), docker=str(docker)).build(
                image, checkout, REGISTRY
            )

    @pytest.mark.asyncio
    async def test_other_os_errors_are_engine_unreachable(
        self, image: ImageSpec, checkout: Path
    ) -> None:
        run = AsyncMock(side_effect=OSError(24, "Too many open files"))

        with patch("build_hook.builder.run_command", new=run), pytest.raises(
            EngineUnreachableError, match="Too many open files"
        ):
            await BuildxImageBuilder(BuilderConfig()).build(image, checkout, REGISTRY)

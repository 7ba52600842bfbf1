"""Source Fetcher.

Obtains a working copy of a project's branch with the git CLI. The per-slug
checkout directory is a disposable cache: an existing checkout of the same
repository is fetched and hard-reset to the branch tip (local divergence is
discarded), anything else is replaced by a fresh shallow clone.

The checkout directory is only touched by the run holding the slug's build
slot, so the fetcher carries no locking of its own.

Failure kinds:
    SourceUnreachableError: The code host could not be contacted (or timed out).
    BranchNotFoundError: The branch does not exist upstream.
    CheckoutCorruptError: An existing checkout could not be repaired and a
        fresh clone also failed.

Example:
    >>> fetcher = GitSourceFetcher(timeout=300)
    >>> path = await fetcher.fetch(project.source, Path("/tmp/build-hook/web"))
"""

from __future__ import annotations

import base64
import shutil
from enum import Enum
from pathlib import Path
from typing import Protocol

import structlog

from build_hook.errors import (
    BranchNotFoundError,
    CheckoutCorruptError,
    CommandTimeoutError,
    FetchError,
    SourceUnreachableError,
)
from build_hook.process import CommandResult, run_command
from build_hook.schemas.project import SourceSpec

logger = structlog.get_logger(__name__)

BRANCH_NOT_FOUND_MARKERS = (
    "couldn't find remote ref",
    "not found in upstream",
)
UNREACHABLE_MARKERS = (
    "could not resolve host",
    "unable to access",
    "failed to connect",
    "connection refused",
    "connection timed out",
    "operation timed out",
    "network is unreachable",
    "could not read from remote repository",
    "repository not found",
    "authentication failed",
    "could not read username",
)


class SourceFetcher(Protocol):
    """Interface the orchestrator uses to obtain source trees."""

    async def fetch(self, source: SourceSpec, workdir: Path) -> Path: ...


class _CheckoutState(str, Enum):
    ABSENT = "absent"
    MATCHING = "matching"
    FOREIGN = "foreign"
    BROKEN = "broken"


class _RepairFailed(Exception):
    """Existing checkout could not be brought to the branch tip."""


def _normalize_url(url: str) -> str:
    return url.strip().rstrip("/").removesuffix(".git")


def _classify(result: CommandResult, source: SourceSpec) -> FetchError | None:
    """Map a failed git command to a fetch failure kind, if recognisable."""
    text = result.stderr.lower()
    if any(marker in text for marker in BRANCH_NOT_FOUND_MARKERS):
        return BranchNotFoundError(source.repository_url, source.branch)
    if any(marker in text for marker in UNREACHABLE_MARKERS):
        return SourceUnreachableError(source.repository_url, result.tail(3))
    return None


class GitSourceFetcher:
    """Fetch project sources with the git CLI.

    Args:
        timeout: Seconds allowed for each git command.
        token: Optional HTTPS token for private repositories. It is handed to
            git through environment-provided config, never written into the
            checkout or the remote URL.
        git: git executable.
    """

    def __init__(self, timeout: float = 300.0, token: str | None = None, git: str = "git") -> None:
        self._timeout = timeout
        self._git_bin = git
        self._env = {"GIT_TERMINAL_PROMPT": "0"}
        if token:
            basic = base64.b64encode(f"x-access-token:{token}".encode()).decode()
            self._env.update(
                {
                    "GIT_CONFIG_COUNT": "1",
                    "GIT_CONFIG_KEY_0": "http.extraHeader",
                    "GIT_CONFIG_VALUE_0": f"Authorization: Basic {basic}",
                }
            )

    async def _git(self, *args: str, source: SourceSpec, cwd: Path | None = None) -> CommandResult:
        try:
            return await run_command(
                [self._git_bin, *args], timeout=self._timeout, cwd=cwd, env=self._env
            )
        except CommandTimeoutError as e:
            raise SourceUnreachableError(source.repository_url, str(e)) from e
        except FileNotFoundError as e:
            raise SourceUnreachableError(
                source.repository_url, f"git executable `{self._git_bin}` not found"
            ) from e
        except OSError as e:
            raise SourceUnreachableError(
                source.repository_url, f"cannot run `{self._git_bin}`: {e}"
            ) from e

    async def fetch(self, source: SourceSpec, workdir: Path) -> Path:
        """Bring ``workdir`` to the tip of ``source.branch``.

        Fetching twice with no upstream change leaves the same tree.

        Args:
            source: Repository and branch.
            workdir: Checkout directory owned by the calling run.

        Returns:
            Path of the checkout (``workdir``).

        Raises:
            SourceUnreachableError: Code host unreachable or timed out.
            BranchNotFoundError: Branch missing upstream.
            CheckoutCorruptError: Repair and re-clone both failed, or the
                checkout directory cannot be managed.
        """
        try:
            return await self._sync(source, workdir)
        except OSError as e:
            raise CheckoutCorruptError(str(workdir), f"checkout not writable: {e}") from e

    async def _sync(self, source: SourceSpec, workdir: Path) -> Path:
        state = await self._inspect(source, workdir)
        log = logger.bind(url=source.repository_url, branch=source.branch, path=str(workdir))

        if state is _CheckoutState.MATCHING:
            try:
                await self._update(source, workdir)
                log.info("source_updated")
                return workdir
            except _RepairFailed as e:
                log.warning("checkout_repair_failed", error=str(e))
                return await self._reclone(source, workdir, str(e))

        if state is _CheckoutState.BROKEN:
            log.warning("checkout_broken")
            return await self._reclone(source, workdir, "not a readable git checkout")

        if state is _CheckoutState.FOREIGN:
            log.info("checkout_replaced", reason="different remote")
        self._discard(workdir)
        await self._clone(source, workdir)
        log.info("source_cloned")
        return workdir

    async def _inspect(self, source: SourceSpec, workdir: Path) -> _CheckoutState:
        if not workdir.exists():
            return _CheckoutState.ABSENT
        if not (workdir / ".git").exists():
            return _CheckoutState.FOREIGN
        result = await self._git("remote", "get-url", "origin", source=source, cwd=workdir)
        if not result.ok:
            return _CheckoutState.BROKEN
        if _normalize_url(result.stdout) != _normalize_url(source.repository_url):
            return _CheckoutState.FOREIGN
        return _CheckoutState.MATCHING

    async def _update(self, source: SourceSpec, workdir: Path) -> None:
        fetched = await self._git(
            "fetch",
            "--depth",
            "1",
            "--no-tags",
            "origin",
            source.branch,
            source=source,
            cwd=workdir,
        )
        if not fetched.ok:
            classified = _classify(fetched, source)
            if classified is not None:
                raise classified
            raise _RepairFailed(fetched.tail(3))

        for args in (("reset", "--hard", "FETCH_HEAD"), ("clean", "-ffdx")):
            result = await self._git(*args, source=source, cwd=workdir)
            if not result.ok:
                raise _RepairFailed(result.tail(3))

    async def _clone(self, source: SourceSpec, workdir: Path) -> None:
        workdir.parent.mkdir(parents=True, exist_ok=True)
        result = await self._git(
            "clone",
            "--depth",
            "1",
            "--single-branch",
            "--no-tags",
            "--branch",
            source.branch,
            source.repository_url,
            str(workdir),
            source=source,
        )
        if result.ok:
            return
        self._discard(workdir)
        classified = _classify(result, source)
        if classified is not None:
            raise classified
        raise SourceUnreachableError(source.repository_url, result.tail(3))

    async def _reclone(self, source: SourceSpec, workdir: Path, cause: str) -> Path:
        self._discard(workdir)
        try:
            await self._clone(source, workdir)
        except FetchError as e:
            raise CheckoutCorruptError(str(workdir), f"{cause}; re-clone failed: {e}") from e
        logger.info("source_recloned", url=source.repository_url, path=str(workdir))
        return workdir

    @staticmethod
    def _discard(workdir: Path) -> None:
        if workdir.is_dir() and not workdir.is_symlink():
            shutil.rmtree(workdir)
        elif workdir.exists() or workdir.is_symlink():
            workdir.unlink()


__all__ = ["GitSourceFetcher", "SourceFetcher"]

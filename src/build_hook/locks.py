"""Per-project build slots.

One exclusive lock per slug, created lazily on first use and kept for the
life of the process. Acquisition never waits: if the slot is held the caller
gets AlreadyBuildingError immediately.

Slots are plain ``threading.Lock`` objects; ``acquire(blocking=False)`` never
suspends the event loop.

Example:
    >>> slots = BuildSlots()
    >>> with slots.hold("web"):
    ...     slots.is_held("web")
    True
    >>> slots.is_held("web")
    False
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager

import structlog

from build_hook.errors import AlreadyBuildingError

logger = structlog.get_logger(__name__)


class BuildSlots:
    """Arena of per-slug try-locks."""

    def __init__(self) -> None:
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, slug: str) -> threading.Lock:
        # Fast path without the guard; dict reads are atomic
        lock = self._locks.get(slug)
        if lock is not None:
            return lock
        with self._guard:
            return self._locks.setdefault(slug, threading.Lock())

    def try_acquire(self, slug: str) -> None:
        """Take the slot for a slug without waiting.

        Args:
            slug: Project slug.

        Raises:
            AlreadyBuildingError: If the slot is already held.
        """
        if not self._lock_for(slug).acquire(blocking=False):
            logger.warning("build_slot_busy", slug=slug)
            raise AlreadyBuildingError(slug)
        logger.debug("build_slot_acquired", slug=slug)

    def release(self, slug: str) -> None:
        """Release a slot taken with try_acquire.

        Raises:
            RuntimeError: If the slot is not held.
        """
        self._lock_for(slug).release()
        logger.debug("build_slot_released", slug=slug)

    @contextmanager
    def hold(self, slug: str) -> Iterator[None]:
        """Hold the slot for the duration of the block.

        The slot is released on every exit path, including exceptions.

        Raises:
            AlreadyBuildingError: If the slot is already held.
        """
        self.try_acquire(slug)
        try:
            yield
        finally:
            self.release(slug)

    def is_held(self, slug: str) -> bool:
        lock = self._locks.get(slug)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)


__all__ = ["BuildSlots"]

"""Project Registry.

Holds the validated, immutable set of configured projects keyed by slug.
Construction is the single validation gate: raw project mappings from the
config file become trusted Project values here, and any violation fails the
whole load. After construction the registry is read-only and safe for
concurrent readers.

Example:
    >>> registry = ProjectRegistry.from_configs(config.projects)
    >>> project = registry.resolve("web")
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from types import MappingProxyType
from typing import Any

import structlog
from pydantic import ValidationError

from build_hook.errors import ConfigInvalidError, UnknownProjectError
from build_hook.schemas.project import Project

logger = structlog.get_logger(__name__)


def _format_validation_error(index: int, raw: Mapping[str, Any], exc: ValidationError) -> list[str]:
    label = raw.get("slug") or raw.get("name") or f"#{index}"
    messages = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err["loc"])
        messages.append(f"projects[{label}].{loc}: {err['msg']}")
    return messages


class ProjectRegistry:
    """Immutable slug -> Project mapping.

    Attributes:
        slugs: Configured slugs in declaration order.
    """

    def __init__(self, projects: Iterable[Project]) -> None:
        """Build a registry from already-parsed projects.

        Args:
            projects: Parsed Project values.

        Raises:
            ConfigInvalidError: If two projects share a slug.
        """
        by_slug: dict[str, Project] = {}
        duplicates: list[str] = []
        for project in projects:
            if project.slug in by_slug:
                duplicates.append(project.slug)
                continue
            by_slug[project.slug] = project
        if duplicates:
            raise ConfigInvalidError(
                [f"duplicate project slug `{slug}`" for slug in dict.fromkeys(duplicates)]
            )
        self._projects: Mapping[str, Project] = MappingProxyType(by_slug)

    @classmethod
    def from_configs(cls, raw_projects: Iterable[Mapping[str, Any]]) -> ProjectRegistry:
        """Parse and validate raw project mappings.

        Every project is checked before failing, so one load reports all
        problems at once.

        Args:
            raw_projects: Project mappings as read from the config file.

        Returns:
            A registry holding every project.

        Raises:
            ConfigInvalidError: If any project is invalid or slugs collide.
        """
        parsed: list[Project] = []
        errors: list[str] = []
        for index, raw in enumerate(raw_projects):
            if not isinstance(raw, Mapping):
                errors.append(f"projects[#{index}]: expected a mapping, got {type(raw).__name__}")
                continue
            try:
                parsed.append(Project.model_validate(dict(raw)))
            except ValidationError as e:
                errors.extend(_format_validation_error(index, raw, e))

        if errors:
            raise ConfigInvalidError(errors)

        registry = cls(parsed)
        logger.info("project_registry_loaded", projects=len(registry), slugs=registry.slugs)
        return registry

    def resolve(self, slug: str) -> Project:
        """Return the project for a slug.

        Raises:
            UnknownProjectError: If no project has this slug.
        """
        try:
            return self._projects[slug]
        except KeyError:
            raise UnknownProjectError(slug) from None

    def __contains__(self, slug: object) -> bool:
        return slug in self._projects

    def __iter__(self) -> Iterator[Project]:
        return iter(self._projects.values())

    def __len__(self) -> int:
        return len(self._projects)

    @property
    def slugs(self) -> list[str]:
        return list(self._projects)


__all__ = ["ProjectRegistry"]

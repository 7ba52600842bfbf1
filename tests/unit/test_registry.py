"""Unit tests for the Project Registry."""

from __future__ import annotations

import copy
from typing import Any

import pytest

from build_hook.errors import ConfigInvalidError, UnknownProjectError
from build_hook.registry import ProjectRegistry
from build_hook.schemas.project import Project


class TestFromConfigs:
    """Tests for loading raw project mappings."""

    def test_loads_projects_in_order(self, project_data: dict[str, Any]) -> None:
        other = copy.deepcopy(project_data)
        other["slug"] = "other"

        registry = ProjectRegistry.from_configs([project_data, other])

        assert registry.slugs == ["web", "other"]
        assert len(registry) == 2
        assert "web" in registry
        assert "missing" not in registry
        assert [p.slug for p in registry] == ["web", "other"]

    def test_empty(self) -> None:
        assert len(ProjectRegistry.from_configs([])) == 0

    def test_collects_every_error(self, project_data: dict[str, Any]) -> None:
        """One load reports problems from every project."""
        bad_location = copy.deepcopy(project_data)
        bad_location["image"][0]["location"] = "../Dockerfile"
        bad_url = copy.deepcopy(project_data)
        bad_url["slug"] = "second"
        bad_url["code"]["url"] = "http://insecure.example.com/x.git"

        with pytest.raises(ConfigInvalidError) as exc_info:
            ProjectRegistry.from_configs([bad_location, bad_url])

        errors = exc_info.value.errors
        assert len(errors) == 2
        assert errors[0].startswith("projects[web].")
        assert "parent paths" in errors[0]
        assert errors[1].startswith("projects[second].")
        assert "HTTPS" in errors[1]

    def test_non_mapping_entry(self) -> None:
        with pytest.raises(ConfigInvalidError, match="expected a mapping, got str"):
            ProjectRegistry.from_configs(["web"])  # type: ignore[list-item]

    def test_duplicate_slug(self, project_data: dict[str, Any]) -> None:
        with pytest.raises(ConfigInvalidError, match="duplicate project slug `web`"):
            ProjectRegistry.from_configs([project_data, copy.deepcopy(project_data)])


class TestResolve:
    """Tests for slug lookup."""

    def test_resolve(self, registry: ProjectRegistry, project: Project) -> None:
        assert registry.resolve("web") is project

    def test_unknown(self, registry: ProjectRegistry) -> None:
        with pytest.raises(UnknownProjectError) as exc_info:
            registry.resolve("does-not-exist")
        assert exc_info.value.slug == "does-not-exist"

    def test_read_only(self, registry: ProjectRegistry) -> None:
        with pytest.raises(TypeError):
            registry._projects["evil"] = None  # type: ignore[index]

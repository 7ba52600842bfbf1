"""Shared pytest fixtures for build-hook tests.

Fixtures used across test tiers (unit, integration). For unit-specific
fixtures, see unit/conftest.py.

NOTE: Do NOT add __init__.py to test directories - pytest uses importlib mode
which can cause namespace collisions with __init__.py files.
"""

from __future__ import annotations

from typing import Any

import pytest


@pytest.fixture
def project_data() -> dict[str, Any]:
    """Raw project mapping as it appears in the YAML file (historical keys)."""
    return {
        "name": "Web",
        "slug": "web",
        "code": {"url": "https://github.com/acme/web.git", "branch": "main"},
        "image": [
            {"repository": "acme/web", "location": "Dockerfile", "tag": "latest"},
            {"repository": "acme/api", "location": "api/Dockerfile", "tag": "latest"},
        ],
        "deployments": {
            "namespace": "web",
            "resources": ["deployment/web", "deployment/api"],
        },
    }


@pytest.fixture
def config_data(project_data: dict[str, Any]) -> dict[str, Any]:
    """Raw project file with one project."""
    return {
        "app": {"registry": "registry.example.com", "cache": False},
        "projects": [project_data],
    }

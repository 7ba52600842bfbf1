"""Project definition schemas.

Pydantic v2 models for a configured project: where its source lives, which
images to build from it, and which cluster workloads to restart afterwards.
All models are frozen; a Project is immutable once loaded.

The YAML file uses the historical keys ``code``, ``image``, ``location`` and
``deployments``; these map onto the model fields through aliases, and the
field names themselves are accepted too.

Key Components:
    SourceSpec: Repository URL and branch
    ImageSpec: Registry-relative repository, Dockerfile location, tag
    DeploymentSpec: Namespace and ``kind/name`` resources to restart
    Project: One configured project, keyed by slug

Example:
    >>> project = Project.model_validate({
    ...     "name": "Web",
    ...     "slug": "web",
    ...     "code": {"url": "https://github.com/acme/web.git", "branch": "main"},
    ...     "image": [{"repository": "acme/web", "location": "Dockerfile", "tag": "latest"}],
    ...     "deployments": {"namespace": "web", "resources": ["deployment/web"]},
    ... })
    >>> project.images[0].reference("registry.example.com")
    'registry.example.com/acme/web:latest'
"""

from __future__ import annotations

import re
from pathlib import PurePosixPath
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator

SLUG_PATTERN = re.compile(r"^[a-z0-9][a-z0-9._-]*$")
"""Slugs name both a URL path segment and a checkout directory."""

RESOURCE_KINDS: dict[str, str] = {
    "deployment": "deployment",
    "deployments": "deployment",
    "deploy": "deployment",
    "statefulset": "statefulset",
    "statefulsets": "statefulset",
    "sts": "statefulset",
    "daemonset": "daemonset",
    "daemonsets": "daemonset",
    "ds": "daemonset",
}
"""Accepted resource kinds (kubectl spellings) mapped to canonical names."""


def _require_text(value: str, field: str) -> str:
    if not value.strip():
        msg = f"{field} must not be empty"
        raise ValueError(msg)
    return value.strip()


def split_resource(resource: str) -> tuple[str, str]:
    """Split a ``kind/name`` resource id into canonical kind and name.

    Args:
        resource: Resource id such as ``deployment/web`` or ``sts/db``.

    Returns:
        Tuple of (canonical kind, name).

    Raises:
        ValueError: If the id is malformed or the kind is unsupported.
    """
    kind, sep, name = resource.partition("/")
    if not sep or not kind or not name or "/" in name:
        msg = f"resource `{resource}` must have the form kind/name"
        raise ValueError(msg)
    canonical = RESOURCE_KINDS.get(kind.lower())
    if canonical is None:
        supported = ", ".join(sorted(set(RESOURCE_KINDS.values())))
        msg = f"resource kind `{kind}` is not supported (expected one of: {supported})"
        raise ValueError(msg)
    return canonical, name


class SourceSpec(BaseModel):
    """Where and which revision to fetch.

    No credentials are embedded; repositories are public or pre-authorized.

    Attributes:
        repository_url: HTTPS clone URL.
        branch: Branch whose tip is built.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    repository_url: str = Field(
        ...,
        alias="url",
        description="HTTPS clone URL of the repository",
    )
    branch: str = Field(
        ...,
        description="Branch to build",
    )

    @field_validator("repository_url")
    @classmethod
    def validate_https_url(cls, v: str) -> str:
        """Require an HTTPS URL with a host and no embedded credentials."""
        parsed = urlparse(v.strip())
        if parsed.scheme != "https":
            msg = "code.url must use HTTPS"
            raise ValueError(msg)
        if not parsed.hostname:
            msg = "code.url must have a host"
            raise ValueError(msg)
        if parsed.username or parsed.password:
            msg = "code.url must not embed credentials"
            raise ValueError(msg)
        return v.strip()

    @field_validator("branch")
    @classmethod
    def validate_branch(cls, v: str) -> str:
        """Require a non-empty branch name."""
        return _require_text(v, "code.branch")


class ImageSpec(BaseModel):
    """One image to build from the project's checkout.

    Attributes:
        repository: Registry-relative repository path (e.g. ``acme/web``).
        dockerfile_path: Dockerfile location relative to the checkout root.
        tag: Tag to push.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    repository: str = Field(..., description="Registry-relative repository path")
    dockerfile_path: str = Field(
        ...,
        alias="location",
        description="Dockerfile path relative to the checkout root",
    )
    tag: str = Field(..., description="Image tag")

    @field_validator("repository")
    @classmethod
    def validate_repository(cls, v: str) -> str:
        """Require a non-empty repository without a tag or digest suffix."""
        v = _require_text(v, "image.repository")
        if ":" in v or "@" in v:
            msg = "image.repository must not contain a tag or digest"
            raise ValueError(msg)
        return v

    @field_validator("tag")
    @classmethod
    def validate_tag(cls, v: str) -> str:
        """Require a non-empty tag."""
        return _require_text(v, "image.tag")

    @field_validator("dockerfile_path")
    @classmethod
    def validate_dockerfile_path(cls, v: str) -> str:
        """Require a relative path that cannot escape the checkout root."""
        v = _require_text(v, "image.location")
        path = PurePosixPath(v.replace("\\", "/"))
        if path.is_absolute():
            msg = "image.location must be a relative path"
            raise ValueError(msg)
        if ".." in path.parts:
            msg = "image.location must not contain parent paths"
            raise ValueError(msg)
        return v

    def reference(self, registry: str) -> str:
        """Return the fully-qualified destination reference.

        Args:
            registry: Registry host (and optional prefix), without scheme.

        Returns:
            ``{registry}/{repository}:{tag}``.
        """
        return f"{registry.rstrip('/')}/{self.repository}:{self.tag}"


class DeploymentSpec(BaseModel):
    """Workloads restarted after a build.

    An empty resource list means the project manages its own redeployment.

    Attributes:
        namespace: Kubernetes namespace of every resource.
        resources: Ordered ``kind/name`` ids.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    namespace: str = Field(..., description="Kubernetes namespace")
    resources: tuple[str, ...] = Field(
        default=(),
        description="Resources to restart, in order, as kind/name",
    )

    @field_validator("namespace")
    @classmethod
    def validate_namespace(cls, v: str) -> str:
        """Require a non-empty namespace."""
        return _require_text(v, "deployments.namespace")

    @field_validator("resources")
    @classmethod
    def validate_resources(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        """Require every resource to be a supported ``kind/name`` id."""
        cleaned = tuple(r.strip() for r in v)
        for resource in cleaned:
            split_resource(resource)
        return cleaned


class Project(BaseModel):
    """A configured project.

    Identity is the slug, which is unique across the registry.

    Attributes:
        display_name: Human-readable name.
        slug: Unique identifier used in routes and checkout paths.
        source: Repository and branch.
        images: Images to build, in declaration order (non-empty).
        deployment: Resources to restart.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    display_name: str = Field(..., alias="name", description="Display name")
    slug: str = Field(..., description="Unique project identifier")
    source: SourceSpec = Field(..., alias="code")
    images: tuple[ImageSpec, ...] = Field(..., alias="image", min_length=1)
    deployment: DeploymentSpec = Field(..., alias="deployments")

    @field_validator("display_name")
    @classmethod
    def validate_display_name(cls, v: str) -> str:
        """Require a non-empty name."""
        return _require_text(v, "name")

    @field_validator("slug")
    @classmethod
    def validate_slug(cls, v: str) -> str:
        """Require a path-safe slug."""
        v = _require_text(v, "slug")
        if not SLUG_PATTERN.match(v):
            msg = (
                f"slug `{v}` must contain only lowercase letters, digits, "
                "'.', '_' or '-', and start with a letter or digit"
            )
            raise ValueError(msg)
        return v


__all__ = [
    "RESOURCE_KINDS",
    "DeploymentSpec",
    "ImageSpec",
    "Project",
    "SourceSpec",
    "split_resource",
]

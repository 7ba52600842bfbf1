"""``build-hook validate``: check a project file without starting anything.

Example:
    $ build-hook validate --config config.yaml
    web (Web)
      source:  https://github.com/acme/web.git @ main
      image:   registry.example.com/acme/web:latest <- Dockerfile
      restart: web/deployment/web
    Configuration valid: 1 project(s)
"""

from __future__ import annotations

from pathlib import Path

import click

from build_hook.cli.utils import (
    config_option,
    load_config_or_exit,
    load_settings,
    report_config_errors,
    setup_logging,
    success,
)
from build_hook.config import load_registry
from build_hook.errors import ConfigInvalidError
from build_hook.registry import ProjectRegistry


def describe_registry(registry: ProjectRegistry, image_registry: str) -> list[str]:
    """Human-readable summary lines, one block per project."""
    lines: list[str] = []
    for project in registry:
        lines.append(f"{project.slug} ({project.display_name})")
        lines.append(f"  source:  {project.source.repository_url} @ {project.source.branch}")
        for image in project.images:
            lines.append(f"  image:   {image.reference(image_registry)} <- {image.dockerfile_path}")
        namespace = project.deployment.namespace
        if project.deployment.resources:
            for resource in project.deployment.resources:
                lines.append(f"  restart: {namespace}/{resource}")
        else:
            lines.append(f"  restart: none ({namespace})")
    return lines


@click.command(
    name="validate",
    help="Validate the project file and print a summary of each project.",
    context_settings={"help_option_names": ["-h", "--help"]},
)
@config_option
def validate_command(config_path: Path | None) -> None:
    """Exit 0 when valid, 5 with every problem listed otherwise."""
    settings = load_settings(config_path)
    setup_logging(settings, json_output=False)
    config = load_config_or_exit(settings.config_path)
    try:
        registry = load_registry(config)
    except ConfigInvalidError as e:
        report_config_errors(e, settings.config_path)

    for line in describe_registry(registry, config.app.registry):
        success(line)
    success(f"Configuration valid: {len(registry)} project(s)")


__all__ = ["describe_registry", "validate_command"]

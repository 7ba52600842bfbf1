"""Main entry point for the build-hook CLI.

Commands:
    build-hook serve: Run the trigger API
    build-hook validate: Validate the project file
    build-hook trigger: Run one BuildRun in-process
    build-hook builder init: Select or create the remote buildx builder

Example:
    $ build-hook --help
    $ build-hook validate --config config.yaml
"""

from __future__ import annotations

import sys

import click

from build_hook import __version__
from build_hook.cli.builder import builder_group
from build_hook.cli.serve import serve_command
from build_hook.cli.trigger import trigger_command
from build_hook.cli.validate import validate_command


@click.group(
    name="build-hook",
    help="build-hook - webhook-triggered build and rollout for configured projects.",
    epilog="Use 'build-hook <command> --help' for command-specific help.",
    context_settings={
        "help_option_names": ["-h", "--help"],
    },
)
@click.version_option(
    version=__version__,
    prog_name="build-hook",
    message="%(prog)s %(version)s",
)
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Root command group for the build-hook CLI."""
    ctx.ensure_object(dict)


cli.add_command(serve_command)
cli.add_command(validate_command)
cli.add_command(trigger_command)
cli.add_command(builder_group)


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the build-hook CLI.

    Args:
        argv: Command-line arguments (uses sys.argv if None).
    """
    try:
        cli(args=argv, standalone_mode=False)
    except click.ClickException as e:
        e.show()
        sys.exit(e.exit_code)
    except click.Abort:
        click.echo("Aborted!", err=True)
        sys.exit(1)
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()

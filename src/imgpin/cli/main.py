"""Main entry point for the imgpin CLI.

Commands:
    imgpin resolve: Resolve one reference to its pinned form
    imgpin pin: Rewrite files so every image reference is pinned

Example:
    $ imgpin --help
    $ imgpin resolve nginx:1.25
    $ imgpin --log-level DEBUG pin Dockerfile --dry-run
"""

from __future__ import annotations

import sys
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version

import click

from imgpin import __version__
from imgpin.cli.pin import pin_command
from imgpin.cli.resolve import resolve_command
from imgpin.telemetry.logging import LOG_LEVELS, configure_logging


def _get_version() -> str:
    """Get the imgpin package version.

    Returns:
        Version string from package metadata, or the source tree version.
    """
    try:
        return get_version("imgpin")
    except PackageNotFoundError:
        return __version__


@click.group(
    name="imgpin",
    help="imgpin - Pin container image references to digests.",
    epilog="Use 'imgpin <command> --help' for command-specific help.",
    context_settings={
        "help_option_names": ["-h", "--help"],
    },
)
@click.version_option(
    version=_get_version(),
    prog_name="imgpin",
    message="%(prog)s %(version)s",
)
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Minimum level of log records written to stderr.",
)
@click.option("--log-json", is_flag=True, default=False, help="Write logs as JSON lines.")
@click.pass_context
def cli(ctx: click.Context, log_level: str, log_json: bool) -> None:
    """Root command group for the imgpin CLI."""
    ctx.ensure_object(dict)
    configure_logging(log_level=log_level, json_output=log_json)


cli.add_command(resolve_command)
cli.add_command(pin_command)


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the imgpin CLI.

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


if __name__ == "__main__":
    main()

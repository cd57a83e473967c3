"""``imgpin resolve`` command.

Resolves a single reference and prints its pinned form.

Example:
    $ imgpin resolve nginx:1.25
    docker.io/library/nginx@sha256:...

    $ imgpin resolve 'FROM --platform=linux/arm64 python:3.12' --json-output
    {"name": "docker.io/library/python", "digest": "sha256:...", ...}
"""

from __future__ import annotations

from pathlib import Path

import click
import requests

from imgpin.cli.utils import ExitCode, error_exit, exit_code_for, get_resolver, info, load_config, success
from imgpin.oci.context import ResolveContext
from imgpin.oci.errors import OCIError, ReferenceSkippedError


@click.command(
    name="resolve",
    help="""\b
Resolve an image reference to its current digest.

REFERENCE is a bare reference (nginx:1.25) or a matched line
(FROM nginx:1.25, image: nginx:1.25).

Examples:
    $ imgpin resolve nginx:1.25
    $ imgpin resolve ghcr.io/acme/app:v1 --platform linux/arm64
""",
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.argument("reference")
@click.option("--platform", "-p", type=str, default=None, help="Platform constraint in os/arch form.")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False, dir_okay=False, path_type=Path),
    default=None,
    help="Configuration file (defaults to .imgpin.yaml if present).",
)
@click.option("--timeout", type=float, default=None, help="Give up after this many seconds.")
@click.option("--json-output", is_flag=True, default=False, help="Print the result as JSON.")
@click.pass_context
def resolve_command(
    ctx: click.Context,
    reference: str,
    platform: str | None,
    config_path: Path | None,
    timeout: float | None,
    json_output: bool,
) -> None:
    """Resolve one image reference.

    Args:
        ctx: Click context.
        reference: Reference or matched line to resolve.
        platform: Optional os/arch constraint.
        config_path: Optional configuration file.
        timeout: Optional deadline in seconds.
        json_output: Emit JSON instead of the pinned reference.
    """
    config = load_config(config_path, platform=platform)
    resolver = get_resolver(ctx, config)

    try:
        entity = resolver.resolve(reference, config, ResolveContext(timeout=timeout))
    except ReferenceSkippedError as e:
        info(f"Skipped {e.reference}: {e.reason}")
        return
    except OCIError as e:
        error_exit(str(e), exit_code=exit_code_for(e))
    except requests.RequestException as e:
        error_exit(f"Registry unreachable: {e}", exit_code=ExitCode.NETWORK_ERROR)

    if json_output:
        success(entity.model_dump_json())
    else:
        success(entity.render())


__all__ = ["resolve_command"]

"""``imgpin pin`` command.

Rewrites Dockerfiles and YAML manifests in place so every image reference
is pinned to its current digest.

Example:
    $ imgpin pin Dockerfile docker-compose.yaml
    Dockerfile: FROM python:3.12-slim -> FROM docker.io/library/python@sha256:...
    Pinned 1 reference(s) in 1 file(s)

    $ imgpin pin k8s/*.yaml --dry-run --platform linux/amd64
"""

from __future__ import annotations

import sys
from pathlib import Path

import click

from imgpin.cli.utils import ExitCode, error, exit_code_for, get_resolver, info, load_config, success, warn
from imgpin.image.batch import pin_file
from imgpin.oci.context import ResolveContext
from imgpin.schemas.config import MAX_WORKERS_LIMIT


@click.command(
    name="pin",
    help="""\b
Pin image references in files to their current digests.

Rewrites FROM lines and image: fields in place. Skipped references
(FROM scratch, build stages, references already pinned) are left as
they are. Exits non-zero if any reference failed to resolve.

Examples:
    $ imgpin pin Dockerfile
    $ imgpin pin deploy/*.yaml --dry-run
""",
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.argument(
    "paths",
    nargs=-1,
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option("--platform", "-p", type=str, default=None, help="Platform constraint in os/arch form.")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False, dir_okay=False, path_type=Path),
    default=None,
    help="Configuration file (defaults to .imgpin.yaml if present).",
)
@click.option(
    "--max-workers",
    type=click.IntRange(1, MAX_WORKERS_LIMIT),
    default=None,
    help="Parallel registry lookups.",
)
@click.option("--timeout", type=float, default=None, help="Give up after this many seconds.")
@click.option("--dry-run", is_flag=True, default=False, help="Report changes without writing files.")
@click.pass_context
def pin_command(
    ctx: click.Context,
    paths: tuple[Path, ...],
    platform: str | None,
    config_path: Path | None,
    max_workers: int | None,
    timeout: float | None,
    dry_run: bool,
) -> None:
    """Pin image references in files.

    Args:
        ctx: Click context.
        paths: Files to rewrite.
        platform: Optional os/arch constraint.
        config_path: Optional configuration file.
        max_workers: Optional worker pool size.
        timeout: Optional deadline in seconds for the whole run.
        dry_run: Report without writing.
    """
    config = load_config(config_path, platform=platform, max_workers=max_workers)
    resolver = get_resolver(ctx, config)
    context = ResolveContext(timeout=timeout)

    pinned = 0
    exit_code = ExitCode.SUCCESS
    for path in paths:
        result = pin_file(path, resolver, config=config, context=context, dry_run=dry_run)

        for item in result.resolved:
            pinned += 1
            success(f"{path}: {item.matched_text} -> {item.replacement}")
        for item in result.skipped:
            info(f"{path}: skipped {item.matched_text} ({item.reason})")
        for item in result.failed:
            error(f"{path}: {item.matched_text}: {item.error}")
            if exit_code == ExitCode.SUCCESS:
                exit_code = exit_code_for(item.error) if item.error else ExitCode.GENERAL_ERROR

    verb = "Would pin" if dry_run else "Pinned"
    info(f"{verb} {pinned} reference(s) in {len(paths)} file(s)")
    if exit_code != ExitCode.SUCCESS:
        warn("Some references could not be resolved")
        sys.exit(exit_code)


__all__ = ["pin_command"]

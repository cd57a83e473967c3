"""CLI utility functions and error handling.

This module provides shared utilities for the imgpin CLI, including:
- Exit code constants and exception → exit code mapping
- Output helpers for consistent stderr/stdout usage
- Configuration loading with command-line overrides

Example:
    from imgpin.cli.utils import error_exit, ExitCode

    if not path.exists():
        error_exit("File not found", exit_code=ExitCode.FILE_NOT_FOUND, path=str(path))
"""

from __future__ import annotations

import sys
from enum import IntEnum
from pathlib import Path
from typing import TYPE_CHECKING, Any

import click
import requests

from imgpin.image.resolver import ImageResolver
from imgpin.oci.errors import OCIError
from imgpin.schemas.config import ResolverConfig

if TYPE_CHECKING:
    from typing import NoReturn

DEFAULT_CONFIG_FILE = ".imgpin.yaml"
"""Configuration file picked up from the working directory when present."""


class ExitCode(IntEnum):
    """Standard exit codes for CLI commands.

    Codes 0-5 match the ``exit_code`` of the corresponding OCIError.
    """

    SUCCESS = 0
    """Command completed successfully (or the reference was skipped)."""

    GENERAL_ERROR = 1
    """General error (catch-all for failures)."""

    USAGE_ERROR = 2
    """Invalid reference, platform or arguments."""

    AUTHENTICATION_ERROR = 3
    """Registry credentials missing or rejected."""

    REGISTRY_ERROR = 4
    """Registry answered with an error status."""

    CANCELLED = 5
    """Resolution cancelled or timed out."""

    NETWORK_ERROR = 6
    """Registry unreachable."""

    FILE_NOT_FOUND = 7
    """Required file not found."""


def exit_code_for(exc: BaseException) -> ExitCode:
    """Map an exception to the exit code reported for it.

    Args:
        exc: Exception raised while resolving.

    Returns:
        Matching ExitCode.
    """
    if isinstance(exc, OCIError):
        return ExitCode(exc.exit_code)
    if isinstance(exc, requests.RequestException):
        return ExitCode.NETWORK_ERROR
    return ExitCode.GENERAL_ERROR


def error(message: str, **context: str | int | bool | None) -> None:
    """Print an error message to stderr.

    Args:
        message: Error message to display.
        **context: Optional context key-value pairs to include.

    Example:
        error("Registry unreachable", registry="ghcr.io")
        # Output: Error: Registry unreachable (registry=ghcr.io)
    """
    click.echo(f"Error: {_with_context(message, context)}", err=True)


def error_exit(
    message: str,
    exit_code: ExitCode = ExitCode.GENERAL_ERROR,
    **context: str | int | bool | None,
) -> NoReturn:
    """Print an error message to stderr and exit with a code.

    Args:
        message: Error message to display.
        exit_code: Exit code to use (default: GENERAL_ERROR).
        **context: Optional context key-value pairs to include.

    Raises:
        SystemExit: Always exits with the specified code.
    """
    error(message, **context)
    sys.exit(exit_code)


def warn(message: str, **context: str | int | bool | None) -> None:
    """Print a warning message to stderr."""
    click.echo(f"Warning: {_with_context(message, context)}", err=True)


# Alias for warn
warning = warn


def success(message: str) -> None:
    """Print a result line to stdout."""
    click.echo(message)


def info(message: str) -> None:
    """Print an informational message to stderr.

    Used for progress updates and status information that should
    not be captured by stdout redirection.
    """
    click.echo(message, err=True)


def _with_context(message: str, context: dict[str, Any]) -> str:
    if not context:
        return message
    context_str = ", ".join(f"{k}={v}" for k, v in context.items() if v is not None)
    return f"{message} ({context_str})"


def load_config(config_path: Path | None, **overrides: Any) -> ResolverConfig:
    """Load resolver configuration and apply command-line overrides.

    Without an explicit path, ``.imgpin.yaml`` in the working directory is
    used when it exists.

    Args:
        config_path: Path given with ``--config``, or None.
        **overrides: Option values; None means "not given".

    Returns:
        Validated ResolverConfig.

    Raises:
        SystemExit: If the file is missing or invalid (via error_exit).
    """
    if config_path is None and Path(DEFAULT_CONFIG_FILE).is_file():
        config_path = Path(DEFAULT_CONFIG_FILE)

    try:
        config = ResolverConfig.from_file(config_path) if config_path else ResolverConfig()
        return config.with_overrides(**overrides)
    except OCIError as e:
        error_exit(str(e), exit_code=ExitCode.USAGE_ERROR)
    except ValueError as e:
        error_exit(f"Invalid option: {e}", exit_code=ExitCode.USAGE_ERROR)


def build_resolver(config: ResolverConfig) -> ImageResolver:
    """Create the resolver used by CLI commands."""
    return ImageResolver.from_config(config)


def get_resolver(ctx: click.Context, config: ResolverConfig) -> ImageResolver:
    """Return a resolver from the context's ``resolver_factory`` or the default."""
    factory = (ctx.obj or {}).get("resolver_factory", build_resolver)
    return factory(config)


__all__ = [
    "DEFAULT_CONFIG_FILE",
    "ExitCode",
    "build_resolver",
    "error",
    "error_exit",
    "exit_code_for",
    "get_resolver",
    "info",
    "load_config",
    "success",
    "warn",
    "warning",
]

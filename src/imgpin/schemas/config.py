"""Resolver configuration schema.

ResolverConfig is the match-agnostic option bundle passed to every resolve
call. It can be built directly, or loaded from the ``resolver:`` section of
a YAML file such as ``.imgpin.yaml``:

    resolver:
      platform: linux/amd64
      exclude: [scratch, busybox]
      insecure_registries: [registry.internal:5000]
      max_workers: 8

The platform string is deliberately kept raw here; it is validated when a
reference is resolved so that a bad value fails with InvalidPlatformError
before any registry call instead of at load time.
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from imgpin.oci.errors import OCIError


def _package_version() -> str:
    """Return the installed imgpin version, or a placeholder."""
    try:
        return get_version("imgpin")
    except PackageNotFoundError:
        return "0.0.0"


DEFAULT_USER_AGENT = f"imgpin/{_package_version()}"
"""Client identity sent to registries."""

SCRATCH_IMAGE = "scratch"
"""Empty base image; always skipped, whatever the exclusion list says."""

DEFAULT_EXCLUDES: tuple[str, ...] = (SCRATCH_IMAGE,)
"""Base images excluded when no list is configured."""

DEFAULT_MAX_WORKERS = 10
"""Default size of the driver's worker pool."""

MAX_WORKERS_LIMIT = 20
"""Upper bound on worker threads to avoid hammering registries."""

CONFIG_SECTION = "resolver"
"""Top-level YAML key holding the resolver configuration."""


class ResolverConfig(BaseModel):
    """Options shared by every resolution in a run.

    Examples:
        >>> config = ResolverConfig(platform="linux/arm64")
        >>> config.cache
        True
        >>> config.exclude
        ('scratch',)
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    platform: str | None = Field(
        default=None,
        description="Platform constraint in os/arch form (e.g., linux/amd64)",
    )
    user_agent: str = Field(
        default=DEFAULT_USER_AGENT,
        min_length=1,
        description="User-Agent header sent to registries",
    )
    exclude: tuple[str, ...] = Field(
        default=DEFAULT_EXCLUDES,
        description="Dockerfile base images that are never resolved (scratch always is)",
    )
    cache: bool = Field(
        default=True,
        description="Memoize digests for the lifetime of the resolver",
    )
    max_workers: int = Field(
        default=DEFAULT_MAX_WORKERS,
        ge=1,
        le=MAX_WORKERS_LIMIT,
        description="Worker threads used by the batch driver",
    )
    insecure_registries: tuple[str, ...] = Field(
        default=(),
        description="Registry hosts reached over plain HTTP",
    )

    def with_overrides(self, **overrides: Any) -> ResolverConfig:
        """Return a copy with non-None overrides applied.

        Args:
            **overrides: Field values to replace; None values are ignored.

        Returns:
            New ResolverConfig.
        """
        values = {k: v for k, v in overrides.items() if v is not None}
        if not values:
            return self
        return self.model_validate({**self.model_dump(), **values})

    @classmethod
    def from_file(cls, path: str | Path) -> ResolverConfig:
        """Load configuration from the ``resolver`` section of a YAML file.

        A file without the section yields the defaults.

        Args:
            path: Path to the YAML file.

        Returns:
            Validated ResolverConfig.

        Raises:
            OCIError: If the file is missing, unreadable or invalid.
        """
        config_path = Path(path)
        if not config_path.exists():
            raise OCIError(f"Configuration file not found: {config_path}")

        try:
            with config_path.open() as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise OCIError(f"Failed to parse configuration YAML: {e}") from e

        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise OCIError(f"Configuration must be a mapping: {config_path}")

        section = data.get(CONFIG_SECTION) or {}
        try:
            return cls.model_validate(section)
        except ValidationError as e:
            raise OCIError(f"Invalid resolver configuration in {config_path}: {e}") from e


__all__ = [
    "CONFIG_SECTION",
    "DEFAULT_EXCLUDES",
    "DEFAULT_MAX_WORKERS",
    "DEFAULT_USER_AGENT",
    "MAX_WORKERS_LIMIT",
    "SCRATCH_IMAGE",
    "ResolverConfig",
]

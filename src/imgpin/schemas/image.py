"""Image reference schemas.

Pydantic v2 models describing parsed image references, platform
constraints, registry descriptors and the rewrite entity handed back to the
line-replacement driver.

Key Components:
    ImageReference: Parsed registry/repository plus tag or digest
    Platform: OS/architecture pair selecting one manifest of an index
    Descriptor: Manifest descriptor returned by the registry transport
    EntityRef: Structured rewrite for one matched reference
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

# =============================================================================
# Constants
# =============================================================================

DEFAULT_REGISTRY = "docker.io"
"""Registry assumed when a reference names none."""

DEFAULT_TAG = "latest"
"""Tag assumed when a reference carries neither tag nor digest."""

DOCKER_HUB_ALIASES: frozenset[str] = frozenset(
    {"docker.io", "index.docker.io", "registry-1.docker.io", "registry.hub.docker.com"}
)
"""Host names that all refer to Docker Hub."""

OFFICIAL_NAMESPACE = "library"
"""Docker Hub namespace of official single-segment images."""

REFERENCE_TYPE = "container"
"""Entity type tag distinguishing container images from other reference kinds."""


class ReferenceKind(str, Enum):
    """Whether a reference points at a mutable tag or an immutable digest."""

    TAG = "tag"
    DIGEST = "digest"


# =============================================================================
# Reference Schemas
# =============================================================================


class ImageReference(BaseModel):
    """Parsed container image reference.

    ``registry_repo`` keeps the name exactly as written; the derived
    properties give the canonical form used to talk to the registry.

    Examples:
        >>> ref = ImageReference(registry_repo="nginx", identifier="1.21", kind=ReferenceKind.TAG)
        >>> ref.name
        'docker.io/library/nginx'
        >>> str(ref)
        'nginx:1.21'
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    registry_repo: str = Field(
        ...,
        min_length=1,
        description="Image name as written, without tag or digest",
    )
    identifier: str = Field(
        default=DEFAULT_TAG,
        min_length=1,
        description="Tag or digest following ':' or '@'",
    )
    kind: ReferenceKind = Field(
        default=ReferenceKind.TAG,
        description="Tag (mutable) or digest (pinned) reference",
    )

    @property
    def is_digest(self) -> bool:
        """Return True if the reference is already pinned to a digest."""
        return self.kind == ReferenceKind.DIGEST

    @property
    def registry(self) -> str:
        """Return the canonical registry host."""
        first, sep, _rest = self.registry_repo.partition("/")
        if sep and _is_registry_host(first):
            return DEFAULT_REGISTRY if first in DOCKER_HUB_ALIASES else first
        return DEFAULT_REGISTRY

    @property
    def repository(self) -> str:
        """Return the repository path within the registry."""
        first, sep, rest = self.registry_repo.partition("/")
        path = rest if sep and _is_registry_host(first) else self.registry_repo
        if self.registry == DEFAULT_REGISTRY and "/" not in path:
            return f"{OFFICIAL_NAMESPACE}/{path}"
        return path

    @property
    def name(self) -> str:
        """Return the canonical ``registry/repository`` name."""
        return f"{self.registry}/{self.repository}"

    @property
    def separator(self) -> str:
        """Return the separator between name and identifier."""
        return "@" if self.is_digest else ":"

    def __str__(self) -> str:
        return f"{self.registry_repo}{self.separator}{self.identifier}"


def _is_registry_host(segment: str) -> bool:
    """Check whether the first path segment names a registry host."""
    return "." in segment or ":" in segment or segment == "localhost"


class Platform(BaseModel):
    """OS/architecture pair used to pick one manifest from an index.

    Examples:
        >>> Platform(os="linux", architecture="arm64")
        Platform(os='linux', architecture='arm64')
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    os: str = Field(..., min_length=1, description="Operating system (e.g., linux)")
    architecture: str = Field(..., min_length=1, description="CPU architecture (e.g., amd64)")

    def matches(self, candidate: dict[str, str] | None) -> bool:
        """Check whether an index entry's ``platform`` object matches.

        Args:
            candidate: The ``platform`` mapping of a manifest list entry.

        Returns:
            True if OS and architecture are equal.
        """
        if not candidate:
            return False
        return candidate.get("os") == self.os and candidate.get("architecture") == self.architecture

    def __str__(self) -> str:
        return f"{self.os}/{self.architecture}"


class Descriptor(BaseModel):
    """Manifest descriptor returned by a registry lookup."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    media_type: str = Field(default="", description="Manifest media type")
    digest: str = Field(..., pattern=r"^[a-z0-9]+(?:[.+_-][a-z0-9]+)*:[a-zA-Z0-9=_-]+$")
    size: int = Field(default=0, ge=0, description="Manifest size in bytes")
    platform: Platform | None = Field(default=None, description="Platform of a child manifest")


# =============================================================================
# Rewrite Entity
# =============================================================================


class EntityRef(BaseModel):
    """Structured rewrite for a matched image reference.

    The driver rebuilds the replacement text with :meth:`render`.

    Examples:
        >>> ref = EntityRef(
        ...     name="docker.io/library/nginx",
        ...     digest="sha256:abc",
        ...     original_identifier="1.21",
        ...     prefix="FROM ",
        ... )
        >>> ref.render()
        'FROM docker.io/library/nginx@sha256:abc'
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(..., min_length=1, description="Canonical registry/repository name")
    digest: str = Field(default="", description="Resolved content digest")
    original_identifier: str = Field(
        default="",
        description="Tag or digest as written in the source text",
    )
    prefix: str = Field(default="", description="Literal text preceding the reference")
    suffix: str = Field(default="", description="Literal text following the reference")
    type: str = Field(default=REFERENCE_TYPE, description="Entity type tag")

    def render(self) -> str:
        """Return the replacement text for the matched fragment."""
        return f"{self.prefix}{self.name}@{self.digest}{self.suffix}"


__all__ = [
    "DEFAULT_REGISTRY",
    "DEFAULT_TAG",
    "DOCKER_HUB_ALIASES",
    "Descriptor",
    "EntityRef",
    "ImageReference",
    "OFFICIAL_NAMESPACE",
    "Platform",
    "REFERENCE_TYPE",
    "ReferenceKind",
]

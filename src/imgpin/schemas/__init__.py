"""Schema definitions for imgpin.

Image Models:
    ImageReference: Parsed registry/repository plus tag or digest
    Platform: OS/architecture selector for multi-platform images
    Descriptor: Manifest descriptor returned by the registry
    EntityRef: Rewrite entity consumed by the line-replacement driver

Configuration:
    ResolverConfig: Options shared by every resolution in a run
"""

from __future__ import annotations

from imgpin.schemas.config import ResolverConfig
from imgpin.schemas.image import (
    REFERENCE_TYPE,
    Descriptor,
    EntityRef,
    ImageReference,
    Platform,
    ReferenceKind,
)

__all__: list[str] = [
    "Descriptor",
    "EntityRef",
    "ImageReference",
    "Platform",
    "REFERENCE_TYPE",
    "ReferenceKind",
    "ResolverConfig",
]

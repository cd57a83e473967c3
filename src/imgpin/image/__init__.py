"""Image reference resolution and document rewriting.

Key Components:
- ImageResolver: Resolves one matched ``FROM`` / ``image:`` fragment
- BatchResolver: Resolves many matches on a worker pool
- pin_text / pin_file: Rewrite every reference in a document

Example:
    >>> from imgpin.image import ImageResolver, pin_file
    >>> result = pin_file(Path("Dockerfile"), ImageResolver())
    >>> len(result.resolved)
    2
"""

from __future__ import annotations

from imgpin.image.batch import (
    BatchResolver,
    PinResult,
    ResolveResult,
    ResolveStatus,
    pin_file,
    pin_text,
)
from imgpin.image.resolver import IMAGE_REFERENCE_PATTERN, ImageResolver

__all__: list[str] = [
    "BatchResolver",
    "IMAGE_REFERENCE_PATTERN",
    "ImageResolver",
    "PinResult",
    "ResolveResult",
    "ResolveStatus",
    "pin_file",
    "pin_text",
]

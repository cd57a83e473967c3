"""Image reference and platform parsing.

Parses the loosely structured text found after ``FROM`` or ``image:`` into
an ImageReference, following the distribution reference grammar:

    reference  := name [ ":" tag ] [ "@" digest ]
    name       := [ domain "/" ] path-component [ "/" path-component ]*
    tag        := [\\w][\\w.-]{0,127}
    digest     := algorithm ":" encoded

A ``:`` only separates a tag when it follows the last ``/``, so registry
ports (``localhost:5000/app``) are not mistaken for tags.

Example:
    >>> from imgpin.oci.reference import parse_reference
    >>> ref = parse_reference("ghcr.io/acme/app:v1.2")
    >>> (ref.registry, ref.repository, ref.identifier)
    ('ghcr.io', 'acme/app', 'v1.2')
"""

from __future__ import annotations

import re

from imgpin.oci.errors import InvalidPlatformError, InvalidReferenceError
from imgpin.schemas.image import DEFAULT_TAG, ImageReference, Platform, ReferenceKind

DOMAIN_COMPONENT_PATTERN = r"(?:[a-zA-Z0-9]|[a-zA-Z0-9][a-zA-Z0-9-]*[a-zA-Z0-9])"
DOMAIN_PATTERN = re.compile(
    rf"^(?:{DOMAIN_COMPONENT_PATTERN}(?:\.{DOMAIN_COMPONENT_PATTERN})*|\[[0-9a-fA-F:]+\])(?::[0-9]+)?$"
)
PATH_COMPONENT_PATTERN = re.compile(r"^[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*$")
TAG_PATTERN = re.compile(r"^[\w][\w.-]{0,127}$")
DIGEST_PATTERN = re.compile(r"^[a-z0-9]+(?:[.+_-][a-z0-9]+)*:[a-zA-Z0-9=_-]+$")

MAX_NAME_LENGTH = 255
"""Maximum length of the name part of a reference."""


def parse_reference(text: str) -> ImageReference:
    """Parse reference text into an ImageReference.

    Args:
        text: Reference such as ``nginx``, ``nginx:1.21`` or
            ``registry.example.com:5000/team/app@sha256:...``.

    Returns:
        The parsed reference. Without tag or digest the identifier is
        ``latest``. For ``name:tag@digest`` the digest wins.

    Raises:
        InvalidReferenceError: If the text does not follow the grammar.
    """
    reference = text.strip()
    if not reference:
        raise InvalidReferenceError(text, "reference is empty")

    if "@" in reference:
        fragments = reference.split("@")
        if len(fragments) != 2:
            raise InvalidReferenceError(text, "more than one '@' separator")
        name, digest = fragments
        if not DIGEST_PATTERN.match(digest):
            raise InvalidReferenceError(text, f"invalid digest '{digest}'")
        name, _tag = _split_tag(name)
        _validate_name(text, name)
        return ImageReference(registry_repo=name, identifier=digest, kind=ReferenceKind.DIGEST)

    name, tag = _split_tag(reference)
    if tag is not None and not TAG_PATTERN.match(tag):
        raise InvalidReferenceError(text, f"invalid tag '{tag}'")
    _validate_name(text, name)
    return ImageReference(
        registry_repo=name,
        identifier=tag if tag is not None else DEFAULT_TAG,
        kind=ReferenceKind.TAG,
    )


def _split_tag(name: str) -> tuple[str, str | None]:
    """Split a trailing ``:tag`` off a name, ignoring registry ports."""
    colon = name.rfind(":")
    if colon == -1 or colon < name.rfind("/"):
        return name, None
    return name[:colon], name[colon + 1 :]


def _validate_name(text: str, name: str) -> None:
    """Validate the registry/repository part of a reference.

    Raises:
        InvalidReferenceError: If any component is malformed.
    """
    if not name:
        raise InvalidReferenceError(text, "repository is empty")
    if len(name) > MAX_NAME_LENGTH:
        raise InvalidReferenceError(text, f"repository longer than {MAX_NAME_LENGTH} characters")

    components = name.split("/")
    first = components[0]
    if len(components) > 1 and ("." in first or ":" in first or first == "localhost"):
        if not DOMAIN_PATTERN.match(first):
            raise InvalidReferenceError(text, f"invalid registry '{first}'")
        components = components[1:]

    for component in components:
        if not PATH_COMPONENT_PATTERN.match(component):
            raise InvalidReferenceError(text, f"invalid repository component '{component}'")


def parse_platform(platform: str) -> Platform:
    """Parse an ``os/arch`` platform constraint.

    Args:
        platform: Platform string such as ``linux/amd64``.

    Returns:
        The decoded Platform.

    Raises:
        InvalidPlatformError: Unless the string holds exactly one ``/``
            with non-empty parts on both sides.
    """
    parts = platform.split("/")
    if len(parts) != 2 or not parts[0] or not parts[1]:
        raise InvalidPlatformError(platform)
    return Platform(os=parts[0], architecture=parts[1])


def cache_key(reference: str, platform: Platform | None = None) -> str:
    """Build the digest cache key for a reference.

    The same tag can point at different manifests per platform, so the
    platform is part of the key when one is set.

    Args:
        reference: Reference text exactly as parsed.
        platform: Optional platform constraint.

    Returns:
        Cache key string.
    """
    if platform is None:
        return reference
    return f"{reference}#{platform}"


__all__ = [
    "DIGEST_PATTERN",
    "MAX_NAME_LENGTH",
    "TAG_PATTERN",
    "cache_key",
    "parse_platform",
    "parse_reference",
]

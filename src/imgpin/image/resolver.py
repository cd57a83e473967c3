"""Resolution of matched image references to digests.

ImageResolver takes one fragment matched by IMAGE_REFERENCE_PATTERN, such
as ``FROM nginx:1.25`` or ``image: "ghcr.io/acme/app:v1"``, and returns the
EntityRef that pins it to the digest the registry currently serves.

Pipeline:
    1. Strip the ``FROM`` / ``image:`` prefix and surrounding quotes
    2. Skip excluded base images (``scratch``) and variable expansions
    3. Parse the reference and the ``os/arch`` platform constraint
    4. Look the digest up in the cache, or ask the registry and store it
    5. Skip references already pinned to that digest
    6. Reattach prefix and quotes to the result

A skip is reported by raising ReferenceSkippedError; callers must check for
it before treating an OCIError as a failure. Registry and network errors
propagate unchanged.

Example:
    >>> from imgpin.image.resolver import ImageResolver
    >>> from imgpin.schemas.config import ResolverConfig
    >>> resolver = ImageResolver()
    >>> entity = resolver.resolve("FROM python:3.12-slim", ResolverConfig(platform="linux/amd64"))
    >>> entity.render()
    'FROM docker.io/library/python@sha256:...'

See Also:
    - imgpin.image.batch: Whole-file rewriting on a worker pool
    - imgpin.oci.transport: Registry manifest lookup
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any, NamedTuple

import structlog

from imgpin.oci.auth import Keychain, default_keychain
from imgpin.oci.cache import DigestCache, RefCacher
from imgpin.oci.context import ResolveContext
from imgpin.oci.errors import InvalidReferenceError, ReferenceSkippedError
from imgpin.oci.metrics import ResolverMetrics, get_resolver_metrics
from imgpin.oci.reference import cache_key, parse_platform, parse_reference
from imgpin.oci.transport import RegistryTransport, Transport
from imgpin.schemas.config import SCRATCH_IMAGE, ResolverConfig
from imgpin.schemas.image import DEFAULT_TAG, EntityRef

if TYPE_CHECKING:
    from imgpin.schemas.image import ImageReference, Platform

logger = structlog.get_logger(__name__)

IMAGE_REFERENCE_PATTERN = r"""\bimage[ \t]*:[ \t]*["']?[^\s"']+["']?|\bFROM\s+(?:--platform=\S+\s+)?[^\s]+"""
"""Matches ``image: ref`` (YAML, Compose) and ``FROM ref`` (Dockerfile)."""

FROM_PREFIX = "FROM "
IMAGE_PREFIX = "image: "

_FROM_PATTERN = re.compile(r"^FROM\s+(?:--platform=(?P<platform>\S+)\s+)?")
_IMAGE_PATTERN = re.compile(r"""^image[ \t]*:[ \t]*["']?""")
_UNRESOLVABLE_MARKERS = ("$", "{")


class _Fragment(NamedTuple):
    """A matched fragment split around its reference."""

    prefix: str
    reference: str
    suffix: str
    dockerfile: bool
    platform: str | None


def _split_fragment(matched_text: str) -> _Fragment:
    """Separate the prefix, quotes and ``--platform`` flag from the reference."""
    match = _FROM_PATTERN.match(matched_text)
    if match:
        return _Fragment(
            prefix=match.group(0),
            reference=matched_text[match.end() :],
            suffix="",
            dockerfile=True,
            platform=match.group("platform"),
        )

    match = _IMAGE_PATTERN.match(matched_text)
    if match:
        reference = matched_text[match.end() :]
        suffix = ""
        if reference[-1:] in ("'", '"'):
            suffix = reference[-1]
            reference = reference[:-1]
        return _Fragment(match.group(0), reference, suffix, dockerfile=False, platform=None)

    return _Fragment("", matched_text.strip(), "", dockerfile=False, platform=None)


def should_exclude(reference: str, config: ResolverConfig) -> bool:
    """Check whether a Dockerfile base image is excluded from resolution.

    Args:
        reference: Reference text after ``FROM``.
        config: Resolver configuration holding the exclusion list.

    Returns:
        True if the reference is ``scratch`` or names an excluded image.
    """
    return reference == SCRATCH_IMAGE or reference in config.exclude


class ImageResolver:
    """Resolves matched image references to digest-pinned EntityRefs.

    The resolver holds no per-call state; one instance may serve many worker
    threads. The cache is the only shared mutable state.

    Example:
        >>> resolver = ImageResolver(cache=DigestCache(), keychain=AnonymousKeychain())
        >>> entity = resolver.resolve('image: "redis:7"')
        >>> entity.prefix
        'image: "'
    """

    def __init__(
        self,
        *,
        regex: str = IMAGE_REFERENCE_PATTERN,
        cache: RefCacher | None = None,
        transport: Transport | None = None,
        keychain: Keychain | None = None,
        metrics: ResolverMetrics | None = None,
    ) -> None:
        """Initialize ImageResolver.

        Args:
            regex: Pattern the driver uses to find references.
            cache: Digest cache. A new DigestCache is created when omitted;
                use set_cache(None) to always query the registry.
            transport: Registry transport. Defaults to RegistryTransport.
            keychain: Credential source. Defaults to the Docker config keychain.
            metrics: Metrics collector. Defaults to the module singleton.
        """
        self._metrics = metrics or get_resolver_metrics()
        self._regex = regex
        self._cache: RefCacher | None = cache if cache is not None else DigestCache(metrics=self._metrics)
        self._transport: Transport = transport or RegistryTransport(metrics=self._metrics)
        self._keychain = keychain or default_keychain()

    @classmethod
    def from_config(cls, config: ResolverConfig, **kwargs: Any) -> ImageResolver:
        """Create a resolver whose default transport honours config.

        Args:
            config: Resolver configuration (insecure registries).
            **kwargs: Passed through to the constructor.

        Returns:
            Configured ImageResolver.
        """
        if "transport" not in kwargs:
            kwargs["transport"] = RegistryTransport(
                insecure_registries=config.insecure_registries,
                metrics=kwargs.get("metrics"),
            )
        return cls(**kwargs)

    @property
    def regex(self) -> str:
        """Return the pattern matching image references."""
        return self._regex

    def set_regex(self, regex: str) -> None:
        """Replace the pattern matching image references."""
        self._regex = regex

    @property
    def cache(self) -> RefCacher | None:
        """Return the digest cache, or None when caching is off."""
        return self._cache

    def set_cache(self, cache: RefCacher | None) -> None:
        """Replace the digest cache; None disables caching."""
        self._cache = cache

    def resolve(
        self,
        matched_text: str,
        config: ResolverConfig | None = None,
        context: ResolveContext | None = None,
    ) -> EntityRef:
        """Resolve a matched fragment to a digest-pinned EntityRef.

        Args:
            matched_text: Text matched by the resolver's regex.
            config: Options for this run. Defaults to ResolverConfig().
            context: Cancellation and deadline. Defaults to no limit.

        Returns:
            EntityRef whose render() replaces matched_text.

        Raises:
            ReferenceSkippedError: If the reference is excluded, cannot be
                resolved statically, or is already pinned to the current digest.
            InvalidReferenceError: If the reference is malformed.
            InvalidPlatformError: If the platform is not ``os/arch``.
            ResolutionCancelledError: If the context is cancelled or expires.
            RegistryResponseError: If the registry rejects the lookup.
        """
        config = config or ResolverConfig()
        context = context or ResolveContext.background()
        log = logger.bind(matched_text=matched_text)

        skipped: ReferenceSkippedError | None = None
        with self._metrics.create_span(ResolverMetrics.SPAN_RESOLVE, {"imgpin.matched_text": matched_text}) as span:
            try:
                entity = self._resolve(matched_text, config, context, log)
            except ReferenceSkippedError as e:
                span.set_attribute("imgpin.outcome", "skipped")
                skipped = e
            except Exception as e:
                self._metrics.record_resolution("failed")
                log.warning("image_resolve_failed", error=str(e), error_type=type(e).__name__)
                raise
            else:
                span.set_attribute("imgpin.outcome", "resolved")
                span.set_attribute("imgpin.digest", entity.digest)

        if skipped is not None:
            self._metrics.record_resolution("skipped")
            log.info("image_resolve_skipped", reason=skipped.reason)
            raise skipped

        self._metrics.record_resolution("resolved")
        log.info("image_resolve_completed", name=entity.name, digest=entity.digest)
        return entity

    def _resolve(
        self,
        matched_text: str,
        config: ResolverConfig,
        context: ResolveContext,
        log: Any,
    ) -> EntityRef:
        fragment = _split_fragment(matched_text)
        text = fragment.reference

        if fragment.dockerfile and should_exclude(text, config):
            raise ReferenceSkippedError(text, "excluded base image")
        if any(marker in text for marker in _UNRESOLVABLE_MARKERS):
            raise ReferenceSkippedError(text, "variable expansion cannot be resolved")

        reference = parse_reference(text)

        platform_text = config.platform
        if platform_text is None and fragment.platform and "$" not in fragment.platform:
            platform_text = fragment.platform
        platform = parse_platform(platform_text) if platform_text else None

        log.debug("image_resolve_started", reference=str(reference), platform=str(platform) if platform else None)
        digest = self.get_image_digest_from_ref(
            reference,
            cache_key(text, platform),
            platform=platform,
            config=config,
            context=context,
        )

        if digest == reference.identifier:
            raise ReferenceSkippedError(text, "already pinned to the current digest")

        return EntityRef(
            name=reference.name,
            digest=digest,
            original_identifier=reference.identifier,
            prefix=fragment.prefix,
            suffix=fragment.suffix,
        )

    def get_image_digest_from_ref(
        self,
        reference: ImageReference,
        key: str,
        *,
        platform: Platform | None,
        config: ResolverConfig,
        context: ResolveContext,
    ) -> str:
        """Return the digest for a reference from the cache or the registry.

        Args:
            reference: Parsed reference.
            key: Cache key for the reference.
            platform: Platform selecting a child manifest, if any.
            config: Resolver configuration (user agent, cache toggle).
            context: Cancellation and deadline for the registry call.

        Returns:
            The digest, e.g. ``sha256:...``.
        """
        cache = self._cache if config.cache else None
        if cache is not None:
            cached = cache.load(key)
            if cached is not None:
                return cached

        descriptor = context.run(
            self._transport.get_descriptor,
            reference,
            platform=platform,
            user_agent=config.user_agent,
            keychain=self._keychain,
            timeout=context.remaining(),
        )

        if cache is not None:
            cache.store(key, descriptor.digest)
        return descriptor.digest

    def convert_to_entity_ref(self, reference: str) -> EntityRef:
        """Split a known reference string into an EntityRef without a lookup.

        Args:
            reference: Reference such as ``nginx:1.25`` or
                ``image: nginx@sha256:...``.

        Returns:
            EntityRef with the name as written and the tag or digest as
            original_identifier. Digest references also fill ``digest``.

        Raises:
            InvalidReferenceError: If splitting does not give exactly two parts.
        """
        text = reference.removeprefix(IMAGE_PREFIX).removeprefix(FROM_PREFIX)

        separator = "@" if "@" in text else ":" if ":" in text else ""
        if separator:
            fragments = text.split(separator)
            if len(fragments) != 2:
                raise InvalidReferenceError(reference, f"expected one '{separator}' separator")
        else:
            fragments = [text, DEFAULT_TAG]

        name, identifier = fragments
        if not name or not identifier:
            raise InvalidReferenceError(reference, "name and identifier must be non-empty")

        return EntityRef(
            name=name,
            digest=identifier if separator == "@" else "",
            original_identifier=identifier,
        )


__all__ = [
    "FROM_PREFIX",
    "IMAGE_PREFIX",
    "IMAGE_REFERENCE_PATTERN",
    "ImageResolver",
    "should_exclude",
]

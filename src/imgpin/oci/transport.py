"""Registry transport: manifest descriptor lookup through ORAS.

RegistryTransport issues one ``GET /v2/<repository>/manifests/<identifier>``
per lookup and returns the Descriptor of the manifest the reference points
at. Only the manifest is read; no blobs are fetched.

The request goes through an ``OrasClient`` using the ``token`` auth backend,
which answers ``401`` challenges with the registry token protocol. Keychain
credentials, when the keychain has any for the registry, are handed to
``OrasClient.login`` before the request. The raw response is kept so the
``Docker-Content-Digest`` header can be read.

Multi-platform images (OCI image index, Docker manifest list) resolve to the
child manifest matching the requested platform; without a platform the
index digest itself is returned.

Errors:
    - ``401`` after the token exchange → AuthenticationError
    - Other non-success status → RegistryResponseError (``retryable`` for 429/5xx)
    - No child manifest for the platform → PlatformNotFoundError
    - Network failures → ``requests`` exceptions, unwrapped

Example:
    >>> from imgpin.oci.auth import AnonymousKeychain
    >>> from imgpin.oci.reference import parse_reference
    >>> from imgpin.oci.transport import RegistryTransport
    >>> transport = RegistryTransport()
    >>> desc = transport.get_descriptor(
    ...     parse_reference("nginx:1.25"),
    ...     platform=None,
    ...     user_agent="imgpin/0.1.0",
    ...     keychain=AnonymousKeychain(),
    ...     timeout=None,
    ... )
    >>> desc.digest
    'sha256:...'

See Also:
    - imgpin.oci.auth: Keychain implementations
    - imgpin.oci.metrics: Registry request metrics and spans
"""

from __future__ import annotations

import hashlib
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import requests
import structlog
from oras.client import OrasClient

from imgpin.oci.errors import (
    AuthenticationError,
    PlatformNotFoundError,
    RegistryResponseError,
)
from imgpin.oci.metrics import ResolverMetrics, get_resolver_metrics
from imgpin.schemas.image import DEFAULT_REGISTRY, Descriptor, ImageReference, Platform

if TYPE_CHECKING:
    from imgpin.oci.auth import Keychain

logger = structlog.get_logger(__name__)

# =============================================================================
# Media Types
# =============================================================================

MEDIA_TYPE_DOCKER_MANIFEST = "application/vnd.docker.distribution.manifest.v2+json"
MEDIA_TYPE_DOCKER_MANIFEST_LIST = "application/vnd.docker.distribution.manifest.list.v2+json"
MEDIA_TYPE_OCI_MANIFEST = "application/vnd.oci.image.manifest.v1+json"
MEDIA_TYPE_OCI_INDEX = "application/vnd.oci.image.index.v1+json"

INDEX_MEDIA_TYPES: frozenset[str] = frozenset({MEDIA_TYPE_DOCKER_MANIFEST_LIST, MEDIA_TYPE_OCI_INDEX})
"""Media types of multi-platform manifests."""

ACCEPT_HEADER = ",".join(
    [
        MEDIA_TYPE_DOCKER_MANIFEST,
        MEDIA_TYPE_DOCKER_MANIFEST_LIST,
        MEDIA_TYPE_OCI_MANIFEST,
        MEDIA_TYPE_OCI_INDEX,
    ]
)
"""Accept header for manifest requests."""

DOCKER_HUB_API_HOST = "registry-1.docker.io"
"""Host serving the registry API for docker.io references."""

PLAIN_HTTP_HOSTS: frozenset[str] = frozenset({"localhost", "127.0.0.1", "::1", "[::1]"})
"""Hosts reached over plain HTTP without configuration."""

ORAS_AUTH_BACKEND = "token"
"""ORAS auth backend answering Bearer challenges."""


# =============================================================================
# Transport Protocol
# =============================================================================


@runtime_checkable
class Transport(Protocol):
    """Structural interface the resolver needs from a registry transport."""

    def get_descriptor(
        self,
        reference: ImageReference,
        *,
        platform: Platform | None,
        user_agent: str,
        keychain: Keychain,
        timeout: float | None,
    ) -> Descriptor:
        """Return the descriptor the reference currently points at."""
        ...


def strip_port(registry: str) -> str:
    """Return the host part of a registry, without a trailing ``:port``.

    Example:
        >>> strip_port("[::1]:5000")
        '[::1]'
    """
    if registry.startswith("["):
        end = registry.find("]")
        return registry[: end + 1] if end != -1 else registry
    if registry.count(":") == 1:
        return registry.rsplit(":", 1)[0]
    return registry


# =============================================================================
# Registry Transport
# =============================================================================


class RegistryTransport:
    """Manifest lookups against OCI distribution registries.

    A new ORAS client is created per lookup, so one transport may be shared
    by many worker threads.

    Example:
        >>> transport = RegistryTransport(insecure_registries=("registry.internal:5000",))
        >>> transport.base_url("docker.io")
        'https://registry-1.docker.io'
    """

    def __init__(
        self,
        *,
        insecure_registries: tuple[str, ...] = (),
        metrics: ResolverMetrics | None = None,
    ) -> None:
        """Initialize RegistryTransport.

        Args:
            insecure_registries: Registry hosts reached over plain HTTP.
            metrics: Metrics collector. Defaults to the module singleton.
        """
        self._insecure_registries = frozenset(insecure_registries)
        self._metrics = metrics or get_resolver_metrics()

    @staticmethod
    def api_host(registry: str) -> str:
        """Return the host serving the registry API for a canonical registry."""
        return DOCKER_HUB_API_HOST if registry == DEFAULT_REGISTRY else registry

    def base_url(self, registry: str) -> str:
        """Return the API base URL for a canonical registry host."""
        scheme = "http" if self.is_plain_http(registry) else "https"
        return f"{scheme}://{self.api_host(registry)}"

    def is_plain_http(self, registry: str) -> bool:
        """Check whether a registry is reached over plain HTTP."""
        if registry in self._insecure_registries:
            return True
        host = strip_port(registry)
        return host in PLAIN_HTTP_HOSTS or host.endswith(".local")

    def _create_oras_client(self, registry: str, keychain: Keychain) -> OrasClient:
        """Create an ORAS client, logged in when the keychain has credentials.

        Args:
            registry: Canonical registry host.
            keychain: Credential source.

        Returns:
            OrasClient for the registry.

        Raises:
            AuthenticationError: If the keychain or the login fails.
        """
        host = self.api_host(registry)
        insecure = self.is_plain_http(registry)
        oras_client = OrasClient(hostname=host, insecure=insecure, auth_backend=ORAS_AUTH_BACKEND)

        credentials = keychain.resolve(registry)

        # ORAS prompts interactively if username/password are empty
        if credentials.username and credentials.password:
            try:
                oras_client.login(
                    hostname=host,
                    username=credentials.username,
                    password=credentials.password,
                )
            except Exception as e:
                raise AuthenticationError(registry, f"Failed to authenticate with registry: {e}") from e

        return oras_client

    def get_descriptor(
        self,
        reference: ImageReference,
        *,
        platform: Platform | None = None,
        user_agent: str,
        keychain: Keychain,
        timeout: float | None = None,
    ) -> Descriptor:
        """Look up the manifest descriptor for a reference.

        Args:
            reference: Parsed image reference.
            platform: Platform selecting a child of a multi-platform index.
            user_agent: User-Agent header value.
            keychain: Credential source for challenged requests.
            timeout: Remaining deadline in seconds, recorded on the span.
                Requests carry no timeout of their own; the caller's
                ResolveContext abandons the lookup when the deadline passes.

        Returns:
            Descriptor of the manifest (or the platform's child manifest).

        Raises:
            AuthenticationError: If credentials are missing or rejected.
            RegistryResponseError: If the registry answers with an error status.
            PlatformNotFoundError: If the index lists no manifest for platform.
            requests.RequestException: On network failures.
        """
        registry = reference.registry
        url = f"{self.base_url(registry)}/v2/{reference.repository}/manifests/{reference.identifier}"
        log = logger.bind(registry=registry, reference=str(reference))

        span_attributes: dict[str, Any] = {
            "imgpin.registry": registry,
            "imgpin.repository": reference.repository,
            "imgpin.identifier": reference.identifier,
        }
        if platform is not None:
            span_attributes["imgpin.platform"] = str(platform)
        if timeout is not None:
            span_attributes["imgpin.timeout_seconds"] = timeout

        with (
            self._metrics.create_span(ResolverMetrics.SPAN_GET_DESCRIPTOR, span_attributes) as span,
            self._metrics.registry_timer(registry),
        ):
            oras_client = self._create_oras_client(registry, keychain)

            log.debug("registry_request_started", url=url)
            try:
                response = oras_client.remote.do_request(
                    url,
                    "GET",
                    headers={"Accept": ACCEPT_HEADER, "User-Agent": user_agent},
                )
            except requests.RequestException as e:
                log.warning("registry_request_failed", error=str(e))
                raise

            if response.status_code == 401:
                log.warning("registry_request_unauthorized")
                raise AuthenticationError(registry, f"registry denied access to {reference.repository}")

            if response.status_code != 200:
                detail = _error_detail(response)
                log.warning("registry_request_failed", status_code=response.status_code, detail=detail)
                raise RegistryResponseError(registry, str(reference), response.status_code, detail)

            descriptor = self._descriptor_from_response(response)
            if platform is not None and descriptor.media_type in INDEX_MEDIA_TYPES:
                descriptor = _select_platform(response, registry, str(reference), platform)

            span.set_attribute("imgpin.digest", descriptor.digest)
            log.debug("registry_request_completed", digest=descriptor.digest, media_type=descriptor.media_type)
            return descriptor

    @staticmethod
    def _descriptor_from_response(response: requests.Response) -> Descriptor:
        """Build the top-level descriptor of a manifest response."""
        content = response.content
        media_type = response.headers.get("Content-Type", "").split(";", 1)[0].strip()
        if not media_type or media_type == "application/json":
            media_type = _json_field(response, "mediaType") or media_type

        digest = response.headers.get("Docker-Content-Digest")
        if not digest:
            digest = f"sha256:{hashlib.sha256(content).hexdigest()}"

        return Descriptor(media_type=media_type, digest=digest, size=len(content))


def _select_platform(
    response: requests.Response,
    registry: str,
    reference: str,
    platform: Platform,
) -> Descriptor:
    """Pick the child manifest of an index matching platform.

    Raises:
        PlatformNotFoundError: If no entry matches.
    """
    manifests = _json_field(response, "manifests") or []
    available: list[str] = []
    for entry in manifests:
        entry_platform = entry.get("platform") or {}
        if platform.matches(entry_platform):
            return Descriptor(
                media_type=entry.get("mediaType", ""),
                digest=entry["digest"],
                size=entry.get("size", 0),
                platform=platform,
            )
        if entry_platform.get("os") and entry_platform.get("architecture"):
            available.append(f"{entry_platform['os']}/{entry_platform['architecture']}")

    raise PlatformNotFoundError(registry, reference, str(platform), available)


def _json_field(response: requests.Response, name: str) -> Any:
    """Return a top-level field of a JSON object body, or None."""
    try:
        payload = response.json()
    except ValueError:
        return None
    return payload.get(name) if isinstance(payload, dict) else None


def _error_detail(response: requests.Response) -> str:
    """Extract the first registry error message from a response body."""
    errors = _json_field(response, "errors") or []
    if errors and isinstance(errors[0], dict):
        return str(errors[0].get("message") or errors[0].get("code") or "")
    return response.reason or ""


__all__ = [
    "ACCEPT_HEADER",
    "DOCKER_HUB_API_HOST",
    "INDEX_MEDIA_TYPES",
    "ORAS_AUTH_BACKEND",
    "RegistryTransport",
    "Transport",
    "strip_port",
]

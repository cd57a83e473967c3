"""Registry access for imgpin.

This package holds everything the resolver needs to turn a parsed image
reference into a digest: reference parsing, the in-memory digest cache, the
registry transport, credential keychains, cancellation contexts, metrics
and the exception hierarchy.

Key Components:
- RegistryTransport: Manifest descriptor lookup over the distribution API
- DigestCache: Thread-safe reference → digest memo
- Keychain: Per-registry credential lookup (Docker config, static, anonymous)
- ResolveContext: Cancellation flag and deadline for registry calls
- ResolverMetrics: OpenTelemetry counters, histograms and spans

Example:
    >>> from imgpin.oci import DigestCache, RegistryTransport, parse_reference
    >>> from imgpin.oci import default_keychain
    >>>
    >>> ref = parse_reference("ghcr.io/acme/app:v1")
    >>> transport = RegistryTransport()
    >>> desc = transport.get_descriptor(
    ...     ref, user_agent="imgpin", keychain=default_keychain(), timeout=30.0
    ... )
    >>> cache = DigestCache()
    >>> cache.store(str(ref), desc.digest)

See Also:
    - imgpin.image: Matched-text resolution and file rewriting
"""

from __future__ import annotations

# Credentials
from imgpin.oci.auth import (
    AnonymousKeychain,
    Credentials,
    DockerConfigKeychain,
    Keychain,
    StaticKeychain,
    default_keychain,
)

# Digest cache
from imgpin.oci.cache import DigestCache, RefCacher

# Cancellation
from imgpin.oci.context import ResolveContext

# Errors
from imgpin.oci.errors import (
    AuthenticationError,
    InvalidInputError,
    InvalidPlatformError,
    InvalidReferenceError,
    OCIError,
    PlatformNotFoundError,
    ReferenceSkippedError,
    RegistryResponseError,
    ResolutionCancelledError,
)

# Observability
from imgpin.oci.metrics import ResolverMetrics, get_resolver_metrics, set_resolver_metrics

# Parsing
from imgpin.oci.reference import cache_key, parse_platform, parse_reference

# Transport
from imgpin.oci.transport import RegistryTransport, Transport

__all__: list[str] = [
    # Credentials
    "AnonymousKeychain",
    "Credentials",
    "DockerConfigKeychain",
    "Keychain",
    "StaticKeychain",
    "default_keychain",
    # Digest cache
    "DigestCache",
    "RefCacher",
    # Cancellation
    "ResolveContext",
    # Errors
    "AuthenticationError",
    "InvalidInputError",
    "InvalidPlatformError",
    "InvalidReferenceError",
    "OCIError",
    "PlatformNotFoundError",
    "ReferenceSkippedError",
    "RegistryResponseError",
    "ResolutionCancelledError",
    # Observability
    "ResolverMetrics",
    "get_resolver_metrics",
    "set_resolver_metrics",
    # Parsing
    "cache_key",
    "parse_platform",
    "parse_reference",
    # Transport
    "RegistryTransport",
    "Transport",
]

"""Exception hierarchy for image reference resolution.

All exceptions raised by imgpin itself inherit from OCIError. Errors raised
by the HTTP layer (``requests.RequestException`` and friends) are never wrapped so
callers can tell transient network failures from permanent ones.

Exception Hierarchy:
    OCIError (base)
    ├── ReferenceSkippedError      # Nothing to rewrite (excluded or already pinned)
    ├── InvalidInputError          # Fixable user input problem
    │   ├── InvalidReferenceError  # Malformed image reference text
    │   └── InvalidPlatformError   # Platform constraint not in os/arch form
    ├── AuthenticationError        # Credential lookup or token exchange failed
    ├── RegistryResponseError      # Registry answered with a non-success status
    │   └── PlatformNotFoundError  # Index has no manifest for the platform
    └── ResolutionCancelledError   # Context cancelled or deadline exceeded

Exit Codes:
    0 - Skipped (ReferenceSkippedError)
    1 - General error (OCIError)
    2 - Invalid input (InvalidReferenceError, InvalidPlatformError)
    3 - Authentication error (AuthenticationError)
    4 - Registry error (RegistryResponseError, PlatformNotFoundError)
    5 - Cancelled (ResolutionCancelledError)

Example:
    >>> from imgpin.oci.errors import InvalidReferenceError
    >>> raise InvalidReferenceError("a:b:c", "repository contains ':'")
    Traceback (most recent call last):
        ...
    InvalidReferenceError: Invalid image reference 'a:b:c': repository contains ':'
"""

from __future__ import annotations


class OCIError(Exception):
    """Base exception for all imgpin errors.

    Attributes:
        exit_code: CLI exit code for this error type (default: 1).
    """

    exit_code: int = 1

    pass


class ReferenceSkippedError(OCIError):
    """Raised when a reference needs no rewrite.

    This is not a failure. It signals that the match must be left untouched,
    either because the image is excluded by policy (``FROM scratch``) or
    because it is already pinned to the current digest. Drivers must check for
    it before treating any OCIError as fatal.

    Attributes:
        reference: The reference text that was skipped.
        reason: Why the reference was skipped.
        exit_code: CLI exit code (0).

    Example:
        >>> raise ReferenceSkippedError("scratch", "excluded base image")
        Traceback (most recent call last):
            ...
        ReferenceSkippedError: Skipped scratch: excluded base image
    """

    exit_code: int = 0

    def __init__(self, reference: str, reason: str) -> None:
        """Initialize ReferenceSkippedError.

        Args:
            reference: The reference text that was skipped.
            reason: Why the reference was skipped.
        """
        self.reference = reference
        self.reason = reason
        super().__init__(f"Skipped {reference}: {reason}")


class InvalidInputError(OCIError):
    """Base class for errors caused by fixable user input."""

    exit_code: int = 2


class InvalidReferenceError(InvalidInputError):
    """Raised when an image reference cannot be parsed.

    Attributes:
        reference: The malformed reference text.
        reason: Description of what is wrong with it.
        exit_code: CLI exit code (2).
    """

    def __init__(self, reference: str, reason: str) -> None:
        """Initialize InvalidReferenceError.

        Args:
            reference: The malformed reference text.
            reason: Description of what is wrong with it.
        """
        self.reference = reference
        self.reason = reason
        super().__init__(f"Invalid image reference '{reference}': {reason}")


class InvalidPlatformError(InvalidInputError):
    """Raised when a platform constraint is not of the form ``os/arch``.

    Attributes:
        platform: The rejected platform string.
        exit_code: CLI exit code (2).
    """

    def __init__(self, platform: str) -> None:
        self.platform = platform
        super().__init__(f"Invalid platform '{platform}': platform must be in the format os/arch")


class AuthenticationError(OCIError):
    """Raised when credentials cannot be loaded or a token exchange fails.

    Attributes:
        registry: The registry host where authentication failed.
        reason: Description of why authentication failed.
        exit_code: CLI exit code (3).
    """

    exit_code: int = 3

    def __init__(self, registry: str, reason: str) -> None:
        """Initialize AuthenticationError.

        Args:
            registry: The registry host where authentication failed.
            reason: Description of why authentication failed.
        """
        self.registry = registry
        self.reason = reason
        super().__init__(f"Authentication failed for {registry}: {reason}")


class RegistryResponseError(OCIError):
    """Raised by the registry transport on a non-success HTTP status.

    The resolver propagates this error unchanged. ``retryable`` lets the
    caller decide whether the whole line is worth another attempt.

    Attributes:
        registry: The registry host that answered.
        reference: The reference being resolved.
        status_code: HTTP status code returned by the registry.
        detail: Short error description (registry error body when available).
        exit_code: CLI exit code (4).

    Example:
        >>> err = RegistryResponseError("ghcr.io", "ghcr.io/acme/app:v1", 503, "unavailable")
        >>> err.retryable
        True
    """

    exit_code: int = 4

    def __init__(self, registry: str, reference: str, status_code: int, detail: str = "") -> None:
        """Initialize RegistryResponseError.

        Args:
            registry: The registry host that answered.
            reference: The reference being resolved.
            status_code: HTTP status code returned by the registry.
            detail: Short error description.
        """
        self.registry = registry
        self.reference = reference
        self.status_code = status_code
        self.detail = detail

        msg = f"Registry {registry} returned {status_code} for {reference}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)

    @property
    def retryable(self) -> bool:
        """Whether the failure is transient (rate limited or server side)."""
        return self.status_code == 429 or self.status_code >= 500

    @property
    def not_found(self) -> bool:
        """Whether the registry reported the manifest as unknown."""
        return self.status_code == 404


class PlatformNotFoundError(RegistryResponseError):
    """Raised when a multi-platform index has no manifest for the platform.

    Attributes:
        platform: The requested ``os/arch`` platform.
        available: Platforms listed in the index.
    """

    def __init__(
        self,
        registry: str,
        reference: str,
        platform: str,
        available: list[str] | None = None,
    ) -> None:
        self.platform = platform
        self.available = available or []

        detail = f"no manifest for platform {platform}"
        if self.available:
            preview = ", ".join(self.available[:5])
            if len(self.available) > 5:
                preview += f" (and {len(self.available) - 5} more)"
            detail += f". Available platforms: {preview}"
        super().__init__(registry, reference, 404, detail)

    @property
    def retryable(self) -> bool:
        """Never retryable: the index content decides the outcome."""
        return False


class ResolutionCancelledError(OCIError):
    """Raised when the resolve context is cancelled or its deadline passes.

    Attributes:
        reason: Either "cancelled" or "deadline exceeded".
        exit_code: CLI exit code (5).
    """

    exit_code: int = 5

    def __init__(self, reason: str = "cancelled") -> None:
        self.reason = reason
        super().__init__(f"Resolution aborted: {reason}")


__all__ = [
    "AuthenticationError",
    "InvalidInputError",
    "InvalidPlatformError",
    "InvalidReferenceError",
    "OCIError",
    "PlatformNotFoundError",
    "ReferenceSkippedError",
    "RegistryResponseError",
    "ResolutionCancelledError",
]

"""Shared test fixtures for imgpin.

All tests run without network access: registry lookups go through a fake
transport or through a mocked ORAS client.

Key Fixtures:
- sample_digest / other_digest: Valid sha256 digests
- fake_transport: Recording transport returning configurable digests
- make_transport: Factory for fake transports with custom behaviour
- resolver: ImageResolver wired to fake_transport and a fresh DigestCache
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Generator
from typing import Any

import pytest
import structlog

from imgpin.image.resolver import ImageResolver
from imgpin.oci.auth import AnonymousKeychain, Keychain
from imgpin.oci.cache import DigestCache
from imgpin.oci.metrics import ResolverMetrics, set_resolver_metrics
from imgpin.schemas.image import Descriptor, ImageReference, Platform

SAMPLE_DIGEST = "sha256:e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
OTHER_DIGEST = "sha256:2cf24dba5fb0a30e26e83b2ac5b9e29e1b161e5c1fa7425e73043362938b9824"


class FakeTransport:
    """Transport double recording every get_descriptor call."""

    def __init__(
        self,
        digests: dict[str, str] | None = None,
        default: str = SAMPLE_DIGEST,
        error: Exception | None = None,
        delay: float = 0.0,
    ) -> None:
        self.digests = digests or {}
        self.default = default
        self.error = error
        self.delay = delay
        self.calls: list[dict[str, Any]] = []
        self._lock = threading.Lock()

    @property
    def call_count(self) -> int:
        with self._lock:
            return len(self.calls)

    def get_descriptor(
        self,
        reference: ImageReference,
        *,
        platform: Platform | None,
        user_agent: str,
        keychain: Keychain,
        timeout: float | None,
    ) -> Descriptor:
        with self._lock:
            self.calls.append(
                {
                    "reference": reference,
                    "platform": platform,
                    "user_agent": user_agent,
                    "keychain": keychain,
                    "timeout": timeout,
                }
            )
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return Descriptor(digest=self.digests.get(str(reference), self.default))


@pytest.fixture(autouse=True)
def _isolated_metrics() -> Generator[None, None, None]:
    """Reset the module-level metrics singleton around each test."""
    set_resolver_metrics(None)
    yield
    set_resolver_metrics(None)


@pytest.fixture(autouse=True)
def _reset_logging() -> Generator[None, None, None]:
    """Undo structlog configuration applied by CLI invocations."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def sample_digest() -> str:
    """Return a valid SHA256 digest for testing."""
    return SAMPLE_DIGEST


@pytest.fixture
def other_digest() -> str:
    """Return a second, different SHA256 digest."""
    return OTHER_DIGEST


@pytest.fixture
def make_transport() -> Callable[..., FakeTransport]:
    """Return a factory for FakeTransport instances.

    Usage:
        def test_x(make_transport):
            transport = make_transport(error=RegistryResponseError(...))
    """
    return FakeTransport


@pytest.fixture
def fake_transport() -> FakeTransport:
    """Return a FakeTransport answering SAMPLE_DIGEST for everything."""
    return FakeTransport()


@pytest.fixture
def metrics() -> ResolverMetrics:
    """Return a dedicated metrics collector (no-op without an SDK)."""
    return ResolverMetrics()


@pytest.fixture
def cache(metrics: ResolverMetrics) -> DigestCache:
    """Return an empty digest cache."""
    return DigestCache(metrics=metrics)


@pytest.fixture
def resolver(fake_transport: FakeTransport, cache: DigestCache, metrics: ResolverMetrics) -> ImageResolver:
    """Return an ImageResolver that never touches the network."""
    return ImageResolver(
        cache=cache,
        transport=fake_transport,
        keychain=AnonymousKeychain(),
        metrics=metrics,
    )

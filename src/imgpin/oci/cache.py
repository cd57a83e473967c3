"""In-memory digest cache for image references.

Maps a reference key (see :func:`imgpin.oci.reference.cache_key`) to the
digest resolved for it, so a run that meets the same image on many lines
asks the registry only once.

Cache Policies:
    - Populated lazily on the first remote resolution of a key
    - No TTL, no size bound, no eviction within a run
    - Not persisted: a new process starts empty
    - Last writer wins on concurrent stores of the same key

Thread Safety: all access goes through a ``threading.Lock``; resolution may
run on many worker threads at once.

Example:
    >>> from imgpin.oci.cache import DigestCache
    >>> cache = DigestCache()
    >>> cache.load("nginx:1.21") is None
    True
    >>> cache.store("nginx:1.21", "sha256:abc")
    >>> cache.load("nginx:1.21")
    'sha256:abc'
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Protocol, runtime_checkable

import structlog

if TYPE_CHECKING:
    from imgpin.oci.metrics import ResolverMetrics

logger = structlog.get_logger(__name__)


@runtime_checkable
class RefCacher(Protocol):
    """Structural interface the resolver needs from a digest cache."""

    def load(self, key: str) -> str | None:
        """Return the cached digest for key, or None on a miss."""
        ...

    def store(self, key: str, digest: str) -> None:
        """Remember the digest resolved for key."""
        ...


class DigestCache:
    """Thread-safe reference → digest map.

    Attributes:
        hits: Number of successful lookups.
        misses: Number of lookups that found nothing.
    """

    def __init__(self, *, metrics: ResolverMetrics | None = None) -> None:
        """Initialize an empty cache.

        Args:
            metrics: Optional metrics collector for hit/miss counters.
        """
        self._entries: dict[str, str] = {}
        self._lock = threading.Lock()
        self._metrics = metrics
        self.hits = 0
        self.misses = 0

    def load(self, key: str) -> str | None:
        """Look up the digest stored for key.

        Args:
            key: Reference key.

        Returns:
            The digest, or None if the key was never stored.
        """
        with self._lock:
            digest = self._entries.get(key)
            if digest is None:
                self.misses += 1
            else:
                self.hits += 1

        operation = "miss" if digest is None else "hit"
        if self._metrics is not None:
            self._metrics.record_cache_operation(operation)
        logger.debug(f"digest_cache_{operation}", key=key)
        return digest

    def store(self, key: str, digest: str) -> None:
        """Store the digest resolved for key, replacing any previous value.

        Args:
            key: Reference key.
            digest: Resolved digest (``sha256:...``).
        """
        with self._lock:
            self._entries[key] = digest

        if self._metrics is not None:
            self._metrics.record_cache_operation("store")
        logger.debug("digest_cache_store", key=key, digest=digest)

    def clear(self) -> None:
        """Drop every entry."""
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0

    def snapshot(self) -> dict[str, str]:
        """Return a copy of the current entries."""
        with self._lock:
            return dict(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


__all__ = [
    "DigestCache",
    "RefCacher",
]

"""OpenTelemetry metrics for image reference resolution.

Metrics Emitted:
    Counters:
        - imgpin_resolutions_total: Resolutions by outcome (resolved/skipped/failed)
        - imgpin_cache_operations_total: Digest cache operations (hit/miss/store)
        - imgpin_registry_requests_total: Registry lookups by registry and status

    Histograms:
        - imgpin_registry_request_duration_seconds: Registry lookup latency

Trace Spans:
    - imgpin.image.resolve: One matched reference through the full pipeline
    - imgpin.oci.get_descriptor: One registry manifest lookup

Only the OpenTelemetry API is used; without an SDK configured by the host
application every instrument is a no-op.

Example:
    >>> from imgpin.oci.metrics import get_resolver_metrics
    >>> metrics = get_resolver_metrics()
    >>> metrics.record_resolution("resolved")
    >>> with metrics.registry_timer("ghcr.io"):
    ...     descriptor = transport.get_descriptor(ref)
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import structlog
from opentelemetry import metrics, trace
from opentelemetry.trace import Status, StatusCode

if TYPE_CHECKING:
    from collections.abc import Generator

    from opentelemetry.metrics import Counter, Histogram
    from opentelemetry.trace import Span, Tracer


logger = structlog.get_logger(__name__)


class ResolverMetrics:
    """OpenTelemetry metrics collector for resolution.

    Instruments are created lazily on first use. Thread-safe via the
    OpenTelemetry SDK.

    Label Conventions:
        - outcome: resolved, skipped, failed
        - operation: hit, miss, store
        - registry: Registry hostname (e.g., ghcr.io)
        - status: success, failure
    """

    RESOLUTIONS_TOTAL = "imgpin_resolutions_total"
    CACHE_OPERATIONS_TOTAL = "imgpin_cache_operations_total"
    REGISTRY_REQUESTS_TOTAL = "imgpin_registry_requests_total"
    REGISTRY_REQUEST_DURATION_SECONDS = "imgpin_registry_request_duration_seconds"

    SPAN_RESOLVE = "imgpin.image.resolve"
    SPAN_GET_DESCRIPTOR = "imgpin.oci.get_descriptor"

    def __init__(
        self,
        meter_name: str = "imgpin",
        meter_version: str = "1.0.0",
        tracer_name: str = "imgpin",
    ) -> None:
        """Initialize the collector.

        Args:
            meter_name: Name for the OpenTelemetry meter.
            meter_version: Version for the meter.
            tracer_name: Name for the OpenTelemetry tracer.
        """
        self._meter = metrics.get_meter(meter_name, meter_version)
        self._tracer: Tracer = trace.get_tracer(tracer_name)

        self._resolutions_counter: Counter | None = None
        self._cache_operations_counter: Counter | None = None
        self._registry_requests_counter: Counter | None = None
        self._registry_duration_histogram: Histogram | None = None

    @property
    def resolutions_counter(self) -> Counter:
        """Get or create the resolutions counter."""
        if self._resolutions_counter is None:
            self._resolutions_counter = self._meter.create_counter(
                self.RESOLUTIONS_TOTAL,
                unit="1",
                description="Total number of image reference resolutions by outcome",
            )
        return self._resolutions_counter

    @property
    def cache_operations_counter(self) -> Counter:
        """Get or create the cache operations counter."""
        if self._cache_operations_counter is None:
            self._cache_operations_counter = self._meter.create_counter(
                self.CACHE_OPERATIONS_TOTAL,
                unit="1",
                description="Total number of digest cache operations by type",
            )
        return self._cache_operations_counter

    @property
    def registry_requests_counter(self) -> Counter:
        """Get or create the registry requests counter."""
        if self._registry_requests_counter is None:
            self._registry_requests_counter = self._meter.create_counter(
                self.REGISTRY_REQUESTS_TOTAL,
                unit="1",
                description="Total number of registry manifest lookups by registry and status",
            )
        return self._registry_requests_counter

    @property
    def registry_duration_histogram(self) -> Histogram:
        """Get or create the registry request duration histogram."""
        if self._registry_duration_histogram is None:
            self._registry_duration_histogram = self._meter.create_histogram(
                self.REGISTRY_REQUEST_DURATION_SECONDS,
                unit="s",
                description="Duration of registry manifest lookups in seconds",
            )
        return self._registry_duration_histogram

    def record_resolution(self, outcome: str) -> None:
        """Record the outcome of one resolve call.

        Args:
            outcome: resolved, skipped or failed.
        """
        self.resolutions_counter.add(1, attributes={"outcome": outcome})

    def record_cache_operation(self, operation: str) -> None:
        """Record a digest cache operation.

        Args:
            operation: hit, miss or store.
        """
        self.cache_operations_counter.add(1, attributes={"operation": operation})

    def record_registry_request(
        self,
        registry: str,
        duration_seconds: float,
        *,
        success: bool,
    ) -> None:
        """Record one registry lookup.

        Args:
            registry: Registry hostname.
            duration_seconds: Wall time of the lookup.
            success: Whether the lookup returned a descriptor.
        """
        attributes: dict[str, Any] = {
            "registry": registry,
            "status": "success" if success else "failure",
        }
        self.registry_requests_counter.add(1, attributes=attributes)
        self.registry_duration_histogram.record(duration_seconds, attributes={"registry": registry})

        logger.debug(
            "registry_request_recorded",
            registry=registry,
            success=success,
            duration_ms=int(duration_seconds * 1000),
        )

    @contextmanager
    def registry_timer(self, registry: str) -> Generator[None, None, None]:
        """Time a registry lookup and record its status automatically.

        Args:
            registry: Registry hostname.

        Yields:
            None
        """
        start_time = time.monotonic()
        success = False
        try:
            yield
            success = True
        finally:
            self.record_registry_request(registry, time.monotonic() - start_time, success=success)

    @contextmanager
    def create_span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> Generator[Span, None, None]:
        """Create a trace span, recording any exception on it.

        Args:
            name: Span name (use SPAN_* constants).
            attributes: Optional span attributes.

        Yields:
            The created span for additional attribute setting.
        """
        with self._tracer.start_as_current_span(name) as span:
            if attributes:
                for key, value in attributes.items():
                    span.set_attribute(key, value)
            try:
                yield span
            except Exception as e:
                span.set_status(Status(StatusCode.ERROR, str(e)))
                span.record_exception(e)
                raise


# Module-level singleton for convenience
_default_metrics: ResolverMetrics | None = None


def get_resolver_metrics() -> ResolverMetrics:
    """Get the default metrics instance.

    Returns:
        The default ResolverMetrics singleton.
    """
    global _default_metrics
    if _default_metrics is None:
        _default_metrics = ResolverMetrics()
    return _default_metrics


def set_resolver_metrics(metrics_instance: ResolverMetrics | None) -> None:
    """Set the default metrics instance (for testing).

    Args:
        metrics_instance: ResolverMetrics instance or None to reset.
    """
    global _default_metrics
    _default_metrics = metrics_instance


__all__ = [
    "ResolverMetrics",
    "get_resolver_metrics",
    "set_resolver_metrics",
]

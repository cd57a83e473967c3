"""Telemetry helpers for imgpin.

- configure_logging: structlog setup for the CLI
- add_trace_context: structlog processor adding OpenTelemetry trace/span IDs

Metrics and spans for resolution live in :mod:`imgpin.oci.metrics`.
"""

from __future__ import annotations

from imgpin.telemetry.logging import add_trace_context, configure_logging

__all__: list[str] = [
    "add_trace_context",
    "configure_logging",
]

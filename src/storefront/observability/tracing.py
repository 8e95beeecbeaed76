"""
OpenTelemetry availability detection for storefront.

OpenTelemetry is an optional dependency (``pip install storefront-core[telemetry]``).
This module is the single place that probes for it.
"""

from __future__ import annotations

# Optional OpenTelemetry import - single source of truth
try:
    from opentelemetry import trace

    OTEL_AVAILABLE = True
except ImportError:
    OTEL_AVAILABLE = False
    trace = None  # type: ignore[assignment]


def should_trace(enable_tracing: bool) -> bool:
    """
    Determine if tracing should be active.

    Combines the component's enable_tracing setting with global OTEL availability.
    """
    return enable_tracing and OTEL_AVAILABLE


__all__ = ["OTEL_AVAILABLE", "should_trace", "trace"]

"""
OpenTelemetry detection.

OpenTelemetry ships in the ``telemetry`` extra. Nothing else in the package
imports it; tracers are obtained through ``create_tracer()``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from opentelemetry.trace import Tracer

try:
    from opentelemetry import trace

    OTEL_AVAILABLE = True
except ImportError:
    OTEL_AVAILABLE = False
    trace = None  # type: ignore[assignment]


def get_tracer(name: str) -> Tracer | None:
    """Return the OpenTelemetry tracer for ``name``, or None without the extra."""
    if not OTEL_AVAILABLE or trace is None:
        return None
    return trace.get_tracer(name)


def should_trace(enable_tracing: bool) -> bool:
    """True when tracing was requested and OpenTelemetry is installed."""
    return OTEL_AVAILABLE and enable_tracing


__all__ = [
    "OTEL_AVAILABLE",
    "get_tracer",
    "should_trace",
]

"""
Shared pytest fixtures for observability integration tests.

A global SDK TracerProvider is installed once per session; each test gets
its own InMemorySpanExporter attached to it. Tests are skipped when the
telemetry extra is not installed.
"""

from __future__ import annotations

from collections.abc import Callable, Generator
from typing import Any

import pytest

_test_provider: Any = None


@pytest.fixture(scope="session")
def setup_test_tracing() -> Generator[Any, None, None]:
    """Install an SDK TracerProvider unless one is already configured."""
    global _test_provider

    pytest.importorskip("opentelemetry.sdk.trace")
    from opentelemetry import trace
    from opentelemetry.sdk.trace import TracerProvider

    current_provider = trace.get_tracer_provider()
    if isinstance(current_provider, TracerProvider):
        _test_provider = current_provider
    else:
        _test_provider = TracerProvider()
        trace.set_tracer_provider(_test_provider)

    yield _test_provider


@pytest.fixture
def trace_exporter(setup_test_tracing: Any) -> Generator[Any, None, None]:
    """
    In-memory exporter receiving every span finished during the test.

    Processors cannot be detached from a provider, so the exporter is
    cleared afterwards instead.
    """
    from opentelemetry.sdk.trace.export import SimpleSpanProcessor
    from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

    exporter = InMemorySpanExporter()
    setup_test_tracing.add_span_processor(SimpleSpanProcessor(exporter))

    yield exporter

    exporter.clear()


@pytest.fixture
def find_span(trace_exporter: Any) -> Callable[[str], Any | None]:
    """Return the first finished span with exactly the given name."""

    def _find_span(name: str) -> Any | None:
        return next((s for s in trace_exporter.get_finished_spans() if s.name == name), None)

    return _find_span

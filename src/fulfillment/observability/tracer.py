"""
Tracer protocol and implementations for composition-based tracing.

Stores, the fulfillment engine and the statistics aggregator receive a
tracer as a dependency instead of talking to OpenTelemetry directly.

Example:
    >>> from fulfillment.observability import create_tracer, NullTracer
    >>>
    >>> tracer = create_tracer(__name__, enable_tracing=True)
    >>>
    >>> class MyStore:
    ...     def __init__(self, tracer: Tracer | None = None):
    ...         self._tracer = tracer or NullTracer()
    ...
    ...     async def find(self, item_id: str) -> None:
    ...         with self._tracer.span("my_store.find", {"item.id": item_id}):
    ...             await self._do_find(item_id)
"""

from __future__ import annotations

import contextlib
from collections.abc import Generator
from contextlib import AbstractContextManager
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from opentelemetry.trace import Span

from fulfillment.observability.tracing import get_tracer, should_trace


@runtime_checkable
class Tracer(Protocol):
    """
    Protocol for tracers that can create tracing spans.

    Implementations:
    - NullTracer: No-op tracer for when tracing is disabled
    - OpenTelemetryTracer: Wrapper around OpenTelemetry tracer
    - MockTracer: Records spans for assertions in tests
    """

    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[Span | None]:
        """
        Create a tracing span context manager.

        Args:
            name: Span name (e.g., "fulfillment.engine.fulfill")
            attributes: Span attributes (optional)

        Returns:
            Context manager that yields Span or None
        """
        ...

    @property
    def enabled(self) -> bool:
        """True if tracing is active and will create real spans."""
        ...


class NullTracer:
    """Tracer used when tracing is off or OpenTelemetry is missing. Spans yield None."""

    @contextlib.contextmanager
    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> Generator[None, None, None]:
        yield None

    @property
    def enabled(self) -> bool:
        return False


class OpenTelemetryTracer:
    """
    Tracer backed by the global OpenTelemetry tracer provider.

    Args:
        tracer_name: Instrumentation scope, usually the calling module's __name__

    Raises:
        ImportError: If OpenTelemetry is not installed
    """

    def __init__(self, tracer_name: str) -> None:
        tracer = get_tracer(tracer_name)
        if tracer is None:
            raise ImportError(
                "OpenTelemetry is not installed. Install the telemetry extra: "
                "pip install fulfillment-engine[telemetry]"
            )
        self._tracer = tracer

    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> AbstractContextManager[Span | None]:
        return self._tracer.start_as_current_span(
            name,
            attributes=attributes or {},
        )

    @property
    def enabled(self) -> bool:
        return True


class MockTracer:
    """
    Records (name, attributes) for every span opened, for test assertions.

    Example:
        >>> tracer = MockTracer()
        >>> engine = OrderFulfillmentEngine(store, tracer=tracer)
        >>> await engine.fulfill("user-1", [(book.id, 1)])
        >>> "fulfillment.engine.fulfill" in tracer.span_names
        True
    """

    def __init__(self) -> None:
        self.spans: list[tuple[str, dict[str, Any] | None]] = []

    @contextlib.contextmanager
    def span(
        self,
        name: str,
        attributes: dict[str, Any] | None = None,
    ) -> Generator[None, None, None]:
        self.spans.append((name, attributes))
        yield None

    @property
    def enabled(self) -> bool:
        return True

    @property
    def span_names(self) -> list[str]:
        return [name for name, _ in self.spans]

    def clear(self) -> None:
        self.spans.clear()


def create_tracer(
    name: str,
    enable_tracing: bool = True,
) -> Tracer:
    """
    Return an OpenTelemetryTracer when tracing is wanted and installed.

    Falls back to NullTracer, so callers never need to check availability.
    """
    if should_trace(enable_tracing):
        return OpenTelemetryTracer(name)
    return NullTracer()


__all__ = [
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "create_tracer",
]

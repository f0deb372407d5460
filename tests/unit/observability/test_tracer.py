"""
Unit tests for tracer protocol and implementations.

Tests for:
- Tracer Protocol (runtime_checkable)
- NullTracer class
- OpenTelemetryTracer class
- MockTracer class
- create_tracer() factory function
- Span emission by the stores
"""

from __future__ import annotations

import pytest

from fulfillment.observability import (
    ATTR_DB_SYSTEM,
    ATTR_PAGE,
    OTEL_AVAILABLE,
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    Tracer,
    create_tracer,
    get_tracer,
    should_trace,
)
from fulfillment.stores.in_memory import InMemoryFulfillmentStore


class TestTracerProtocol:
    """Tests for Tracer protocol."""

    def test_null_tracer_implements_protocol(self):
        assert isinstance(NullTracer(), Tracer)

    def test_mock_tracer_implements_protocol(self):
        assert isinstance(MockTracer(), Tracer)

    @pytest.mark.skipif(not OTEL_AVAILABLE, reason="OTEL not installed")
    def test_otel_tracer_implements_protocol(self):
        assert isinstance(OpenTelemetryTracer(__name__), Tracer)


class TestNullTracer:
    def test_span_yields_none(self):
        with NullTracer().span("operation", {"key": "value"}) as span:
            assert span is None

    def test_enabled_is_false(self):
        assert NullTracer().enabled is False

    def test_exceptions_propagate(self):
        with pytest.raises(ValueError), NullTracer().span("operation"):
            raise ValueError("boom")


class TestMockTracer:
    def test_records_spans(self):
        tracer = MockTracer()

        with tracer.span("outer", {"a": 1}), tracer.span("inner"):
            pass

        assert tracer.spans == [("outer", {"a": 1}), ("inner", None)]
        assert tracer.span_names == ["outer", "inner"]
        assert tracer.enabled is True

    def test_clear(self):
        tracer = MockTracer()
        with tracer.span("operation"):
            pass

        tracer.clear()

        assert tracer.spans == []


class TestCreateTracer:
    def test_returns_null_when_disabled(self):
        assert isinstance(create_tracer(__name__, enable_tracing=False), NullTracer)

    def test_returns_null_when_otel_not_available(self, monkeypatch):
        monkeypatch.setattr("fulfillment.observability.tracing.OTEL_AVAILABLE", False)

        assert should_trace(True) is False
        assert get_tracer(__name__) is None
        assert isinstance(create_tracer(__name__, enable_tracing=True), NullTracer)

    def test_otel_tracer_requires_otel(self, monkeypatch):
        monkeypatch.setattr("fulfillment.observability.tracing.OTEL_AVAILABLE", False)

        with pytest.raises(ImportError, match="telemetry"):
            OpenTelemetryTracer(__name__)

    @pytest.mark.skipif(not OTEL_AVAILABLE, reason="OTEL not installed")
    def test_returns_otel_when_enabled_and_available(self):
        tracer = create_tracer(__name__, enable_tracing=True)

        assert isinstance(tracer, OpenTelemetryTracer)
        assert tracer.enabled is True
        with tracer.span("operation", {"key": "value"}) as span:
            assert span is not None


class TestStoreSpans:
    async def test_in_memory_store_emits_spans(self):
        tracer = MockTracer()
        store = InMemoryFulfillmentStore(tracer=tracer)

        async with store.transaction():
            pass
        await store.list_orders(2, 10)

        assert tracer.span_names == [
            "fulfillment.store.memory.transaction",
            "fulfillment.store.memory.list_orders",
        ]
        assert tracer.spans[0][1] == {ATTR_DB_SYSTEM: "memory"}
        assert tracer.spans[1][1][ATTR_PAGE] == 2

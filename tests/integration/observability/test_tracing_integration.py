"""
Tracing integration tests with the OpenTelemetry SDK.

Verifies that the engine and stores emit real spans, with the documented
attributes, when the telemetry extra is installed.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from fulfillment.engine import OrderFulfillmentEngine
from fulfillment.exceptions import InsufficientStockError
from fulfillment.observability import (
    ATTR_BUYER_ID,
    ATTR_DB_SYSTEM,
    ATTR_ERROR_TYPE,
    ATTR_ITEM_ID,
    ATTR_LINE_COUNT,
    ATTR_ORDER_ID,
    ATTR_QUANTITY,
)
from fulfillment.stores.in_memory import InMemoryFulfillmentStore

pytestmark = [pytest.mark.integration]


@pytest.fixture
async def traced_store(trace_exporter):
    store = InMemoryFulfillmentStore()
    fiction = await store.add_genre("Fiction")
    book = await store.add_item("Dune", Decimal("10.00"), 5, fiction.id)
    return store, book


class TestEngineSpans:
    async def test_successful_fulfillment_span(self, traced_store, find_span):
        store, book = traced_store
        engine = OrderFulfillmentEngine(store)

        order = await engine.fulfill("buyer-1", [(book.id, 3)])

        span = find_span("fulfillment.engine.fulfill")
        assert span is not None
        assert span.attributes[ATTR_BUYER_ID] == "buyer-1"
        assert span.attributes[ATTR_LINE_COUNT] == 1
        assert span.attributes[ATTR_DB_SYSTEM] == "memory"
        assert span.attributes[ATTR_ORDER_ID] == str(order.id)

    async def test_attempt_and_store_spans_nest_under_fulfill(self, traced_store, find_span):
        store, book = traced_store
        engine = OrderFulfillmentEngine(store)

        await engine.fulfill("buyer-1", [(book.id, 1)])

        fulfill = find_span("fulfillment.engine.fulfill")
        attempt = find_span("fulfillment.engine.attempt")
        transaction = find_span("fulfillment.store.memory.transaction")
        assert attempt.parent.span_id == fulfill.context.span_id
        assert transaction.parent.span_id == attempt.context.span_id

    async def test_insufficient_stock_span_names_item_and_quantity(
        self, traced_store, find_span
    ):
        store, book = traced_store
        engine = OrderFulfillmentEngine(store)

        with pytest.raises(InsufficientStockError):
            await engine.fulfill("buyer-1", [(book.id, 7)])

        span = find_span("fulfillment.engine.fulfill")
        assert span is not None
        assert span.attributes[ATTR_ERROR_TYPE] == "InsufficientStockError"
        assert span.attributes[ATTR_ITEM_ID] == str(book.id)
        assert span.attributes[ATTR_QUANTITY] == 7
        assert ATTR_ORDER_ID not in span.attributes
        assert span.status.status_code.name == "ERROR"

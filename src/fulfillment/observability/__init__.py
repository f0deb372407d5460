"""
Observability utilities for fulfillment.

Tracing and standard attribute definitions used by the engine, the
statistics aggregator and every storage backend.

Note:
    OpenTelemetry is an optional dependency. All utilities in this module
    gracefully handle the case where OpenTelemetry is not installed.
"""

from fulfillment.observability.attributes import (
    ATTR_ATTEMPT,
    ATTR_BUYER_ID,
    ATTR_DB_NAME,
    ATTR_DB_OPERATION,
    ATTR_DB_SYSTEM,
    ATTR_ERROR_TYPE,
    ATTR_ITEM_COUNT,
    ATTR_ITEM_ID,
    ATTR_LINE_COUNT,
    ATTR_MAX_RETRIES,
    ATTR_ORDER_ID,
    ATTR_PAGE,
    ATTR_PAGE_SIZE,
    ATTR_QUANTITY,
)
from fulfillment.observability.tracer import (
    MockTracer,
    NullTracer,
    OpenTelemetryTracer,
    Tracer,
    create_tracer,
)
from fulfillment.observability.tracing import (
    OTEL_AVAILABLE,
    get_tracer,
    should_trace,
)

__all__ = [
    # Tracing utilities
    "OTEL_AVAILABLE",
    "get_tracer",
    "should_trace",
    # Tracer (composition-based API)
    "Tracer",
    "NullTracer",
    "OpenTelemetryTracer",
    "MockTracer",
    "create_tracer",
    # Attributes - Order
    "ATTR_ORDER_ID",
    "ATTR_BUYER_ID",
    "ATTR_LINE_COUNT",
    # Attributes - Catalog
    "ATTR_ITEM_ID",
    "ATTR_ITEM_COUNT",
    "ATTR_QUANTITY",
    # Attributes - Retry
    "ATTR_ATTEMPT",
    "ATTR_MAX_RETRIES",
    "ATTR_ERROR_TYPE",
    # Attributes - Listing
    "ATTR_PAGE",
    "ATTR_PAGE_SIZE",
    # Attributes - Database
    "ATTR_DB_SYSTEM",
    "ATTR_DB_NAME",
    "ATTR_DB_OPERATION",
]

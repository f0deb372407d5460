"""
Standard span attributes for fulfillment.

Attribute constants shared by every component so spans from the engine,
the statistics aggregator and the storage backends line up. Database
attributes follow OpenTelemetry semantic conventions.
"""

# =============================================================================
# Order Attributes
# =============================================================================

ATTR_ORDER_ID = "fulfillment.order.id"
"""Unique identifier of the order (UUID string)."""

ATTR_BUYER_ID = "fulfillment.buyer.id"
"""Reference to the purchasing user (string)."""

ATTR_LINE_COUNT = "fulfillment.order.line_count"
"""Number of requested lines in a fulfillment call (integer)."""

# =============================================================================
# Catalog Attributes
# =============================================================================

ATTR_ITEM_ID = "fulfillment.catalog_item.id"
"""Unique identifier of a catalog item (UUID string)."""

ATTR_ITEM_COUNT = "fulfillment.catalog_item.count"
"""Number of distinct catalog items touched by an operation (integer)."""

ATTR_QUANTITY = "fulfillment.quantity"
"""Requested or decremented quantity (integer)."""

# =============================================================================
# Retry Attributes
# =============================================================================

ATTR_ATTEMPT = "fulfillment.attempt"
"""1-based attempt number of a retried operation (integer)."""

ATTR_MAX_RETRIES = "fulfillment.max_retries"
"""Configured retry bound (integer)."""

ATTR_ERROR_TYPE = "error.type"
"""Exception class name of a failure (string)."""

# =============================================================================
# Listing Attributes
# =============================================================================

ATTR_PAGE = "fulfillment.page"
"""1-based page number (integer)."""

ATTR_PAGE_SIZE = "fulfillment.page_size"
"""Requested page size after clamping (integer)."""

# =============================================================================
# Database Attributes (OpenTelemetry semantic conventions)
# =============================================================================

ATTR_DB_SYSTEM = "db.system"
"""Database system identifier ("sqlite", "postgresql", "memory")."""

ATTR_DB_NAME = "db.name"
"""Database name or path."""

ATTR_DB_OPERATION = "db.operation"
"""Database operation (SELECT, INSERT, UPDATE)."""

__all__ = [
    "ATTR_ORDER_ID",
    "ATTR_BUYER_ID",
    "ATTR_LINE_COUNT",
    "ATTR_ITEM_ID",
    "ATTR_ITEM_COUNT",
    "ATTR_QUANTITY",
    "ATTR_ATTEMPT",
    "ATTR_MAX_RETRIES",
    "ATTR_ERROR_TYPE",
    "ATTR_PAGE",
    "ATTR_PAGE_SIZE",
    "ATTR_DB_SYSTEM",
    "ATTR_DB_NAME",
    "ATTR_DB_OPERATION",
]

"""Fulfillment store implementations."""

from fulfillment.stores.in_memory import InMemoryFulfillmentStore
from fulfillment.stores.interface import (
    CatalogStore,
    FulfillmentStore,
    OrderRepository,
    StoreTransaction,
)
from fulfillment.stores.postgresql import PostgreSQLFulfillmentStore
from fulfillment.stores.sqlite import SQLiteFulfillmentStore

__all__ = [
    # Abstract base classes
    "StoreTransaction",
    "CatalogStore",
    "OrderRepository",
    "FulfillmentStore",
    # Concrete implementations
    "InMemoryFulfillmentStore",
    "SQLiteFulfillmentStore",
    "PostgreSQLFulfillmentStore",
]

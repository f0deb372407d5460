"""
fulfillment - Atomic order fulfillment for catalog/inventory stores.

This library provides:
- An order fulfillment engine that validates, prices and records purchases
  in one all-or-nothing store transaction, retrying transient conflicts
- Sales statistics (order count, average order value, genre popularity)
- Store backends for PostgreSQL, SQLite and in-memory use
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("fulfillment-engine")
except PackageNotFoundError:
    # Package not installed (running from source without install)
    __version__ = "0.0.0.dev0"

from fulfillment.config import FulfillmentConfig
from fulfillment.engine import OrderFulfillmentEngine
from fulfillment.exceptions import (
    CatalogItemNotFoundError,
    ConflictError,
    FulfillmentError,
    FulfillmentTimeoutError,
    GenreNotFoundError,
    InsufficientStockError,
    InvalidRequestError,
    ItemNotFoundError,
    StorageUnavailableError,
)
from fulfillment.models import (
    CatalogItem,
    FulfillmentRequest,
    Genre,
    GenrePopularity,
    Order,
    OrderItem,
    OrderPage,
    PurchaseLine,
    SalesStatistics,
)
from fulfillment.retry import RetryConfig
from fulfillment.service import OrderService
from fulfillment.statistics import StatisticsAggregator
from fulfillment.stores import (
    CatalogStore,
    FulfillmentStore,
    InMemoryFulfillmentStore,
    OrderRepository,
    PostgreSQLFulfillmentStore,
    SQLiteFulfillmentStore,
    StoreTransaction,
)

__all__ = [
    "__version__",
    # Core
    "OrderFulfillmentEngine",
    "StatisticsAggregator",
    "OrderService",
    # Configuration
    "FulfillmentConfig",
    "RetryConfig",
    # Models
    "Genre",
    "CatalogItem",
    "Order",
    "OrderItem",
    "OrderPage",
    "PurchaseLine",
    "FulfillmentRequest",
    "GenrePopularity",
    "SalesStatistics",
    # Stores
    "StoreTransaction",
    "CatalogStore",
    "OrderRepository",
    "FulfillmentStore",
    "InMemoryFulfillmentStore",
    "SQLiteFulfillmentStore",
    "PostgreSQLFulfillmentStore",
    # Exceptions
    "FulfillmentError",
    "InvalidRequestError",
    "ItemNotFoundError",
    "InsufficientStockError",
    "ConflictError",
    "FulfillmentTimeoutError",
    "StorageUnavailableError",
    "CatalogItemNotFoundError",
    "GenreNotFoundError",
]

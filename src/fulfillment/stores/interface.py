"""
Storage contracts consumed by the fulfillment core.

The core never talks to a database directly. It consumes three contracts:

- StoreTransaction: the all-or-nothing unit in which a fulfillment reads
  catalog items, creates the order and decrements stock
- CatalogStore: catalog lookup plus the minimal catalog management needed
  to seed and maintain items (soft delete, restock, repricing, genre moves)
- OrderRepository: order point lookup, paginated listing and the two
  aggregation reads used by sales statistics

FulfillmentStore ties them together and is what backends implement.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Collection, Sequence
from contextlib import AbstractAsyncContextManager
from decimal import Decimal
from typing import Any
from uuid import UUID

from fulfillment.models import CatalogItem, Genre, GenrePopularity, Order


class StoreTransaction(ABC):
    """
    Operations available inside a store transaction.

    Every effect performed through a transaction becomes visible together
    when the transaction context exits cleanly, or not at all when it exits
    with an exception.

    Implementations must make the stock read in ``find_items_by_ids`` and the
    subsequent ``decrement_stock`` atomic with respect to other transactions
    touching the same catalog items.
    """

    @abstractmethod
    async def find_items_by_ids(self, ids: Collection[UUID]) -> list[CatalogItem]:
        """
        Fetch the current state of the given catalog items in one read.

        Soft-deleted items are excluded. Missing ids are silently skipped;
        callers compare the result size against the requested id set.
        """
        pass

    @abstractmethod
    async def decrement_stock(self, item_id: UUID, amount: int) -> bool:
        """
        Conditionally decrement stock by ``amount``.

        Returns:
            True if the decrement was applied, False if the item no longer
            has ``amount`` units (zero rows affected), which the caller must
            treat as a conflict.
        """
        pass

    @abstractmethod
    async def create_order_with_items(
        self,
        buyer_id: str,
        lines: Sequence[tuple[CatalogItem, int]],
    ) -> Order:
        """
        Create an order and its items, capturing each item's current price.

        The order row is written before its item rows.

        Args:
            buyer_id: Reference to the purchasing user
            lines: (catalog item as read in this transaction, quantity) pairs

        Returns:
            The materialised order
        """
        pass


class CatalogStore(ABC):
    """Catalog lookup and the minimal management operations."""

    @abstractmethod
    async def find_by_ids(self, ids: Collection[UUID]) -> list[CatalogItem]:
        """Fetch catalog items by id, excluding soft-deleted ones."""
        pass

    @abstractmethod
    async def get_item(self, item_id: UUID) -> CatalogItem | None:
        """Fetch a single catalog item, including soft-deleted ones."""
        pass

    @abstractmethod
    async def add_genre(self, name: str) -> Genre:
        pass

    @abstractmethod
    async def add_item(
        self,
        title: str,
        price: Decimal,
        stock_quantity: int,
        genre_id: UUID,
    ) -> CatalogItem:
        """
        Add a catalog item.

        Raises:
            GenreNotFoundError: If the genre does not exist
        """
        pass

    @abstractmethod
    async def soft_delete_item(self, item_id: UUID) -> CatalogItem:
        """
        Mark an item deleted without removing it.

        Raises:
            CatalogItemNotFoundError: If the item does not exist
        """
        pass

    @abstractmethod
    async def set_stock(self, item_id: UUID, stock_quantity: int) -> CatalogItem:
        pass

    @abstractmethod
    async def set_price(self, item_id: UUID, price: Decimal) -> CatalogItem:
        pass

    @abstractmethod
    async def reassign_genre(self, item_id: UUID, genre_id: UUID) -> CatalogItem:
        pass


class OrderRepository(ABC):
    """Read side of the order history."""

    @abstractmethod
    async def find_by_id(self, order_id: UUID) -> Order | None:
        pass

    @abstractmethod
    async def list_orders(self, page: int, page_size: int) -> tuple[list[Order], int]:
        """
        List orders newest first.

        Args:
            page: 1-based page number
            page_size: Orders per page

        Returns:
            (orders on the page, total number of orders)
        """
        pass

    @abstractmethod
    async def count_orders(self) -> int:
        pass

    @abstractmethod
    def sum_subtotals_grouped_by_order(self) -> AsyncIterator[tuple[UUID, Decimal]]:
        """Stream (order id, sum of its item subtotals) for every order."""
        pass

    @abstractmethod
    async def count_purchase_events_by_genre(self) -> list[GenrePopularity]:
        """
        Count order items per genre of the referenced catalog item.

        Attribution uses each catalog item's genre at query time. Genres
        without any order items are not returned.
        """
        pass


class FulfillmentStore(CatalogStore, OrderRepository):
    """
    A storage backend usable by the fulfillment engine.

    Backends are async context managers; entering opens resources,
    exiting closes them.
    """

    backend_name: str = "unknown"

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[StoreTransaction]:
        """
        Open an all-or-nothing store transaction.

        Raises (on entry or while inside):
            FulfillmentTimeoutError: If locks could not be acquired in time
            ConflictError: If a concurrent writer invalidated the transaction
            StorageUnavailableError: On infrastructure failure
        """
        pass

    async def initialize(self) -> None:
        """Create the schema if needed. Idempotent."""
        return None

    async def close(self) -> None:
        return None

    async def __aenter__(self) -> FulfillmentStore:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: type[BaseException] | None, exc_val: Any, exc_tb: Any) -> None:
        await self.close()


__all__ = [
    "StoreTransaction",
    "CatalogStore",
    "OrderRepository",
    "FulfillmentStore",
]

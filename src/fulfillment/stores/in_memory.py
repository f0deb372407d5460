"""
In-memory fulfillment store implementation.

Useful for testing and development. Not suitable for production as all
state is lost when the process terminates, and its locking only covers a
single process.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from collections.abc import AsyncIterator, Collection, Sequence
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from fulfillment.config import FulfillmentConfig
from fulfillment.exceptions import (
    CatalogItemNotFoundError,
    FulfillmentTimeoutError,
    GenreNotFoundError,
    InvalidRequestError,
)
from fulfillment.models import CatalogItem, Genre, GenrePopularity, Order
from fulfillment.observability import (
    ATTR_DB_OPERATION,
    ATTR_DB_SYSTEM,
    ATTR_ITEM_COUNT,
    ATTR_ORDER_ID,
    ATTR_PAGE,
    ATTR_PAGE_SIZE,
    Tracer,
    create_tracer,
)
from fulfillment.stores._orders import build_order, check_price, page_offset
from fulfillment.stores.interface import FulfillmentStore, StoreTransaction

logger = logging.getLogger(__name__)


class _InMemoryTransaction(StoreTransaction):
    """
    Transaction over an InMemoryFulfillmentStore.

    Writes are staged and only applied to the store by ``_commit()``, which
    the owning store calls after the transaction body finished cleanly.
    The store lock is held for the transaction's whole lifetime.
    """

    def __init__(self, store: InMemoryFulfillmentStore) -> None:
        self._store = store
        self._stock: dict[UUID, int] = {}
        self._orders: list[Order] = []

    def _current_stock(self, item: CatalogItem) -> int:
        return self._stock.get(item.id, item.stock_quantity)

    async def find_items_by_ids(self, ids: Collection[UUID]) -> list[CatalogItem]:
        found = []
        for item_id in ids:
            item = self._store._items.get(item_id)
            if item is None or item.is_deleted:
                continue
            if item_id in self._stock:
                item = item.model_copy(update={"stock_quantity": self._stock[item_id]})
            found.append(item)
        return found

    async def decrement_stock(self, item_id: UUID, amount: int) -> bool:
        item = self._store._items.get(item_id)
        if item is None or item.is_deleted:
            return False
        current = self._current_stock(item)
        if current < amount:
            return False
        self._stock[item_id] = current - amount
        return True

    async def create_order_with_items(
        self,
        buyer_id: str,
        lines: Sequence[tuple[CatalogItem, int]],
    ) -> Order:
        order = build_order(uuid4(), buyer_id, datetime.now(UTC), lines)
        self._orders.append(order)
        return order

    def _commit(self) -> None:
        items = self._store._items
        for item_id, quantity in self._stock.items():
            items[item_id] = items[item_id].model_copy(update={"stock_quantity": quantity})
        for order in self._orders:
            self._store._orders[order.id] = order


class InMemoryFulfillmentStore(FulfillmentStore):
    """
    In-memory implementation of the fulfillment store.

    Thread-safety:
        A single asyncio.Lock serialises transactions and catalog writes.
        Safe for concurrent async operations within one process. Reads do
        not take the lock.

    Example:
        >>> store = InMemoryFulfillmentStore()
        >>> fiction = await store.add_genre("Fiction")
        >>> book = await store.add_item("Dune", Decimal("10.00"), 5, fiction.id)
        >>> async with store.transaction() as tx:
        ...     items = await tx.find_items_by_ids([book.id])
    """

    backend_name = "memory"

    def __init__(
        self,
        *,
        lock_timeout: float = 5.0,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize an empty in-memory store.

        Args:
            lock_timeout: Seconds to wait for the store lock before failing
                with FulfillmentTimeoutError
            tracer: Optional custom Tracer instance
            enable_tracing: If True and OpenTelemetry is available, emit traces
        """
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._lock_timeout = lock_timeout

        self._genres: dict[UUID, Genre] = {}
        self._items: dict[UUID, CatalogItem] = {}
        self._orders: dict[UUID, Order] = {}
        self._lock: asyncio.Lock = asyncio.Lock()

    @classmethod
    def from_config(
        cls,
        config: FulfillmentConfig,
        *,
        enable_tracing: bool = True,
    ) -> InMemoryFulfillmentStore:
        """Create a store whose lock wait follows ``config.lock_timeout``."""
        return cls(lock_timeout=config.lock_timeout, enable_tracing=enable_tracing)

    async def _acquire(self) -> None:
        try:
            await asyncio.wait_for(self._lock.acquire(), timeout=self._lock_timeout)
        except TimeoutError as e:
            raise FulfillmentTimeoutError(
                self._lock_timeout, "Timed out waiting for the in-memory store lock"
            ) from e

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[StoreTransaction]:
        with self._tracer.span(
            "fulfillment.store.memory.transaction",
            {ATTR_DB_SYSTEM: self.backend_name},
        ):
            await self._acquire()
            try:
                tx = _InMemoryTransaction(self)
                yield tx
                tx._commit()
            finally:
                self._lock.release()

    # -------------------------------------------------------------------------
    # Catalog
    # -------------------------------------------------------------------------

    async def find_by_ids(self, ids: Collection[UUID]) -> list[CatalogItem]:
        return [
            item
            for item_id in ids
            if (item := self._items.get(item_id)) is not None and not item.is_deleted
        ]

    async def get_item(self, item_id: UUID) -> CatalogItem | None:
        return self._items.get(item_id)

    async def add_genre(self, name: str) -> Genre:
        genre = Genre(name=name)
        self._genres[genre.id] = genre
        return genre

    async def add_item(
        self,
        title: str,
        price: Decimal,
        stock_quantity: int,
        genre_id: UUID,
    ) -> CatalogItem:
        price = check_price(price)
        if genre_id not in self._genres:
            raise GenreNotFoundError(genre_id)
        item = CatalogItem(
            title=title,
            price=price,
            stock_quantity=stock_quantity,
            genre_id=genre_id,
        )
        await self._acquire()
        try:
            self._items[item.id] = item
        finally:
            self._lock.release()
        return item

    async def _update_item(self, item_id: UUID, **changes: object) -> CatalogItem:
        await self._acquire()
        try:
            item = self._items.get(item_id)
            if item is None:
                raise CatalogItemNotFoundError(item_id)
            # Validate through the model so stock and price bounds still hold
            updated = CatalogItem.model_validate({**item.model_dump(), **changes})
            self._items[item_id] = updated
            return updated
        finally:
            self._lock.release()

    async def soft_delete_item(self, item_id: UUID) -> CatalogItem:
        return await self._update_item(item_id, is_deleted=True)

    async def set_stock(self, item_id: UUID, stock_quantity: int) -> CatalogItem:
        if stock_quantity < 0:
            raise InvalidRequestError(f"stock_quantity must be >= 0, got {stock_quantity}")
        return await self._update_item(item_id, stock_quantity=stock_quantity)

    async def set_price(self, item_id: UUID, price: Decimal) -> CatalogItem:
        price = check_price(price)
        return await self._update_item(item_id, price=price)

    async def reassign_genre(self, item_id: UUID, genre_id: UUID) -> CatalogItem:
        if genre_id not in self._genres:
            raise GenreNotFoundError(genre_id)
        return await self._update_item(item_id, genre_id=genre_id)

    # -------------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------------

    async def find_by_id(self, order_id: UUID) -> Order | None:
        with self._tracer.span(
            "fulfillment.store.memory.find_by_id",
            {ATTR_ORDER_ID: str(order_id), ATTR_DB_SYSTEM: self.backend_name},
        ):
            return self._orders.get(order_id)

    async def list_orders(self, page: int, page_size: int) -> tuple[list[Order], int]:
        with self._tracer.span(
            "fulfillment.store.memory.list_orders",
            {ATTR_PAGE: page, ATTR_PAGE_SIZE: page_size, ATTR_DB_SYSTEM: self.backend_name},
        ):
            ordered = sorted(
                self._orders.values(),
                key=lambda o: (o.created_at, str(o.id)),
                reverse=True,
            )
            offset = page_offset(page, page_size)
            return ordered[offset : offset + page_size], len(ordered)

    async def count_orders(self) -> int:
        return len(self._orders)

    async def sum_subtotals_grouped_by_order(self) -> AsyncIterator[tuple[UUID, Decimal]]:
        # Snapshot so concurrent commits don't change the dict mid-iteration
        for order in list(self._orders.values()):
            yield order.id, order.total_amount

    async def count_purchase_events_by_genre(self) -> list[GenrePopularity]:
        with self._tracer.span(
            "fulfillment.store.memory.count_purchase_events_by_genre",
            {ATTR_DB_OPERATION: "aggregate", ATTR_DB_SYSTEM: self.backend_name},
        ) as span:
            counts: Counter[UUID] = Counter()
            for order in list(self._orders.values()):
                for line in order.items:
                    item = self._items.get(line.catalog_item_id)
                    if item is not None:
                        counts[item.genre_id] += 1
            if span is not None:
                span.set_attribute(ATTR_ITEM_COUNT, len(counts))
            return [
                GenrePopularity(
                    genre_id=genre_id,
                    name=self._genres[genre_id].name,
                    purchase_count=count,
                )
                for genre_id, count in counts.items()
            ]

    def __repr__(self) -> str:
        return (
            f"InMemoryFulfillmentStore(items={len(self._items)}, orders={len(self._orders)})"
        )


__all__ = ["InMemoryFulfillmentStore"]

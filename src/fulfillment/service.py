"""
Order service: the operations exposed to transport adapters.

Plain data in, pydantic models or typed FulfillmentError subclasses out.
Authentication, HTTP status mapping and request parsing belong to the
adapter, not here.

Example:
    >>> async with SQLiteFulfillmentStore("shop.db") as store:
    ...     service = OrderService(store, FulfillmentConfig.from_env())
    ...     order = await service.fulfill("user-1", [(book_id, 2)])
    ...     page = await service.list_orders(page=1)
    ...     stats = await service.compute_statistics()
"""

from __future__ import annotations

import logging
from uuid import UUID

from fulfillment.config import FulfillmentConfig
from fulfillment.engine import OrderFulfillmentEngine, RequestedItems
from fulfillment.exceptions import InvalidRequestError
from fulfillment.models import Order, OrderPage, SalesStatistics
from fulfillment.observability import Tracer, create_tracer
from fulfillment.statistics import StatisticsAggregator
from fulfillment.stores.interface import FulfillmentStore

logger = logging.getLogger(__name__)


def parse_order_id(order_id: UUID | str) -> UUID:
    """Parse an order id, raising InvalidRequestError when it is not a UUID."""
    if isinstance(order_id, UUID):
        return order_id
    try:
        return UUID(str(order_id))
    except ValueError as e:
        raise InvalidRequestError(f"Invalid order id: {order_id!r}") from e


class OrderService:
    """Facade over the fulfillment engine, order reads and statistics."""

    def __init__(
        self,
        store: FulfillmentStore,
        config: FulfillmentConfig | None = None,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._store = store
        self._config = config or FulfillmentConfig()
        tracer = tracer or create_tracer(__name__, enable_tracing)
        self._engine = OrderFulfillmentEngine(store, self._config, tracer=tracer)
        self._statistics = StatisticsAggregator(store, tracer=tracer)

    @property
    def store(self) -> FulfillmentStore:
        return self._store

    async def fulfill(self, buyer_id: str, requested_items: RequestedItems) -> Order:
        """Create an order. See OrderFulfillmentEngine.fulfill for errors."""
        return await self._engine.fulfill(buyer_id, requested_items)

    async def get_order(self, order_id: UUID | str) -> Order | None:
        """
        Fetch one order with its items and total.

        Returns:
            The order, or None if no order has this id

        Raises:
            InvalidRequestError: If order_id is not a UUID
        """
        return await self._store.find_by_id(parse_order_id(order_id))

    async def list_orders(self, page: int = 1, page_size: int | None = None) -> OrderPage:
        """
        List orders newest first.

        ``page_size`` defaults to ``config.default_page_size`` and is
        clamped to ``config.max_page_size``.

        Raises:
            InvalidRequestError: If page or page_size is below 1
        """
        if page < 1:
            raise InvalidRequestError(f"page must be >= 1, got {page}")
        if page_size is not None and page_size < 1:
            raise InvalidRequestError(f"page_size must be >= 1, got {page_size}")
        size = self._config.clamp_page_size(page_size)

        orders, total = await self._store.list_orders(page, size)
        return OrderPage(items=orders, page=page, page_size=size, total=total)

    async def compute_statistics(self) -> SalesStatistics:
        return await self._statistics.compute_statistics()


__all__ = ["OrderService", "parse_order_id"]

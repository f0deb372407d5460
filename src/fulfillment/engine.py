"""
Order fulfillment engine.

Turns a purchase request into a durable order, or fails it with no partial
effects. Each attempt runs inside one store transaction:

1. Fetch the distinct requested catalog items (soft-deleted excluded)
2. Reject unknown or deleted ids with ItemNotFoundError
3. Check every item against its total requested quantity
4. Create the order and its items at the current prices
5. Conditionally decrement stock in ascending id order

A decrement that finds less stock than was read raises ConflictError inside
the transaction, rolling everything back. Conflicts are retried as a whole
with exponential backoff, up to ``config.retry.max_retries`` times.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Iterator
from typing import Any

from pydantic import ValidationError

from fulfillment.config import FulfillmentConfig
from fulfillment.exceptions import (
    ConflictError,
    FulfillmentTimeoutError,
    InsufficientStockError,
    InvalidRequestError,
    ItemNotFoundError,
)
from fulfillment.models import FulfillmentRequest, Order
from fulfillment.observability import (
    ATTR_ATTEMPT,
    ATTR_BUYER_ID,
    ATTR_DB_SYSTEM,
    ATTR_ERROR_TYPE,
    ATTR_ITEM_COUNT,
    ATTR_ITEM_ID,
    ATTR_LINE_COUNT,
    ATTR_MAX_RETRIES,
    ATTR_ORDER_ID,
    ATTR_QUANTITY,
    Tracer,
    create_tracer,
)
from fulfillment.retry import RetryError, retry_async
from fulfillment.stores.interface import FulfillmentStore, StoreTransaction

logger = logging.getLogger(__name__)

RequestedItems = Iterable[Any]


class OrderFulfillmentEngine:
    """
    Atomically validates, prices and records purchases.

    The engine holds no locks of its own; atomicity with respect to other
    fulfillments (in this process or any other) comes from the store
    transaction.

    Example:
        >>> engine = OrderFulfillmentEngine(store)
        >>> order = await engine.fulfill("user-1", [(book.id, 3)])
        >>> order.total_amount
        Decimal('30.00')
    """

    def __init__(
        self,
        store: FulfillmentStore,
        config: FulfillmentConfig | None = None,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the engine.

        Args:
            store: Storage backend providing the transaction boundary
            config: Timeouts and retry bounds (defaults if None)
            tracer: Optional custom Tracer instance
            enable_tracing: If True and OpenTelemetry is available, emit traces
        """
        self._store = store
        self._config = config or FulfillmentConfig()
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    @property
    def config(self) -> FulfillmentConfig:
        return self._config

    @staticmethod
    def validate_request(buyer_id: str, requested_items: RequestedItems) -> FulfillmentRequest:
        """
        Validate raw input into a FulfillmentRequest.

        Accepts ``(catalog_item_id, quantity)`` pairs, mappings or
        ``PurchaseLine`` instances. Ids may be UUIDs or UUID strings.

        Raises:
            InvalidRequestError: If the buyer is empty, there are no lines,
                an id is not a UUID or a quantity is not a positive integer
        """
        if isinstance(requested_items, Iterator):
            requested_items = list(requested_items)
        try:
            return FulfillmentRequest(buyer_id=buyer_id, items=requested_items)
        except ValidationError as e:
            raise InvalidRequestError(
                f"Invalid fulfillment request: {e.error_count()} validation error(s)",
                errors=e.errors(include_url=False),
            ) from e

    async def fulfill(self, buyer_id: str, requested_items: RequestedItems) -> Order:
        """
        Fulfill a purchase request.

        Args:
            buyer_id: Reference to the purchasing user
            requested_items: (catalog_item_id, quantity) lines; duplicate ids
                are allowed and checked against their combined quantity

        Returns:
            The committed order with its items and computed total

        Raises:
            InvalidRequestError: Malformed input (before any storage access)
            ItemNotFoundError: An id is unknown or soft-deleted
            InsufficientStockError: An item cannot cover its requested quantity
            ConflictError: Concurrent updates kept invalidating the attempt
            FulfillmentTimeoutError: An attempt exceeded its time bound
            StorageUnavailableError: The backend failed; never retried
        """
        request = self.validate_request(buyer_id, requested_items)

        with self._tracer.span(
            "fulfillment.engine.fulfill",
            {
                ATTR_BUYER_ID: request.buyer_id,
                ATTR_LINE_COUNT: len(request.items),
                ATTR_ITEM_COUNT: len(request.distinct_item_ids),
                ATTR_MAX_RETRIES: self._config.retry.max_retries,
                ATTR_DB_SYSTEM: self._store.backend_name,
            },
        ) as span:
            try:
                order = await retry_async(
                    lambda attempt: self._attempt(request, attempt),
                    config=self._config.retry,
                    operation_name="fulfill",
                )
            except RetryError as e:
                last_error = e.last_error
                item_id = getattr(last_error, "item_id", None)
                logger.error(
                    "Giving up on order for buyer %s after %d conflicting attempts",
                    request.buyer_id,
                    e.attempts,
                    extra={"buyer_id": request.buyer_id, **e.stats.to_dict()},
                )
                if span is not None:
                    span.set_attribute(ATTR_ERROR_TYPE, ConflictError.__name__)
                    if item_id is not None:
                        span.set_attribute(ATTR_ITEM_ID, str(item_id))
                raise ConflictError(item_id=item_id, attempts=e.attempts) from last_error
            except Exception as e:
                if span is not None:
                    span.set_attribute(ATTR_ERROR_TYPE, type(e).__name__)
                    if isinstance(e, InsufficientStockError):
                        span.set_attribute(ATTR_ITEM_ID, str(e.item_id))
                        span.set_attribute(ATTR_QUANTITY, e.requested)
                raise

            if span is not None:
                span.set_attribute(ATTR_ORDER_ID, str(order.id))

        logger.info(
            "Fulfilled order %s for buyer %s: %d line(s), total %s",
            order.id,
            order.buyer_id,
            len(order.items),
            order.total_amount,
            extra={"order_id": str(order.id), "buyer_id": order.buyer_id},
        )
        return order

    async def _attempt(self, request: FulfillmentRequest, attempt: int) -> Order:
        timeout = self._config.attempt_timeout
        with self._tracer.span("fulfillment.engine.attempt", {ATTR_ATTEMPT: attempt}):
            try:
                async with asyncio.timeout(timeout):
                    async with self._store.transaction() as tx:
                        return await self._fulfill_in_transaction(tx, request)
            except TimeoutError as e:
                logger.warning(
                    "Fulfillment attempt %d timed out after %ss",
                    attempt,
                    timeout,
                    extra={"buyer_id": request.buyer_id, "attempt": attempt},
                )
                raise FulfillmentTimeoutError(timeout) from e

    async def _fulfill_in_transaction(
        self,
        tx: StoreTransaction,
        request: FulfillmentRequest,
    ) -> Order:
        requested_ids = request.distinct_item_ids
        items = {item.id: item for item in await tx.find_items_by_ids(requested_ids)}

        missing = requested_ids - items.keys()
        if missing:
            raise ItemNotFoundError(missing)

        quantities = request.quantities_by_item()
        for item_id, requested in quantities.items():
            item = items[item_id]
            if requested > item.stock_quantity:
                raise InsufficientStockError(
                    item_id=item.id,
                    title=item.title,
                    requested=requested,
                    available=item.stock_quantity,
                )

        order = await tx.create_order_with_items(
            request.buyer_id,
            [(items[line.catalog_item_id], line.quantity) for line in request.items],
        )

        # Fixed order keeps lock acquisition consistent across transactions
        for item_id in sorted(quantities):
            if not await tx.decrement_stock(item_id, quantities[item_id]):
                raise ConflictError(item_id=item_id)

        return order


__all__ = ["OrderFulfillmentEngine"]

"""Helpers shared by the store backends: order assembly and catalog write checks."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Sequence
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from fulfillment.exceptions import InvalidRequestError
from fulfillment.models import MONEY_QUANTUM, CatalogItem, Order, OrderItem


def build_order(
    order_id: UUID,
    buyer_id: str,
    created_at: datetime,
    lines: Sequence[tuple[CatalogItem, int]],
) -> Order:
    """Capture the given lines into a new order, prices as currently read."""
    return Order(
        id=order_id,
        buyer_id=buyer_id,
        created_at=created_at,
        items=[OrderItem.capture(order_id, item, quantity) for item, quantity in lines],
    )


def assemble_orders(
    headers: Iterable[tuple[UUID, str, datetime]],
    items: Iterable[OrderItem],
) -> list[Order]:
    """
    Join order header rows with their item rows.

    Header order is preserved; items keep their relative order.
    """
    by_order: dict[UUID, list[OrderItem]] = defaultdict(list)
    for item in items:
        by_order[item.order_id].append(item)
    return [
        Order(id=order_id, buyer_id=buyer_id, created_at=created_at, items=by_order[order_id])
        for order_id, buyer_id, created_at in headers
    ]


def check_price(price: Decimal | int) -> Decimal:
    """
    Validate a catalog price before it is written.

    Raises:
        InvalidRequestError: If the price is not finite, is negative or has
            more than two decimal places
    """
    price = Decimal(price)
    if not price.is_finite() or price < 0:
        raise InvalidRequestError(f"price must be a non-negative amount, got {price}")
    if price.normalize().as_tuple().exponent < MONEY_QUANTUM.as_tuple().exponent:  # type: ignore[operator]
        raise InvalidRequestError(f"price must have at most two decimal places, got {price}")
    return price.quantize(MONEY_QUANTUM)


def page_offset(page: int, page_size: int) -> int:
    return (page - 1) * page_size

"""
Domain models for catalog items, orders and sales statistics.

Orders and order items are immutable records: once fulfillment commits,
nothing about them changes. Money is always ``Decimal``; an order's total
is derived from its items on every read and is never stored on its own.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator

MONEY_QUANTUM = Decimal("0.01")


def quantize_money(value: Decimal) -> Decimal:
    """Round a monetary amount to cents (half-up)."""
    return value.quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


# =============================================================================
# Catalog
# =============================================================================


class Genre(BaseModel):
    """A catalog genre. Popularity is attributed through the items it holds."""

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1)


class CatalogItem(BaseModel):
    """
    A purchasable item with price and stock count.

    Attributes:
        id: Catalog item identity
        title: Display title, used in error messages
        price: Current unit price (>= 0, at most two decimal places)
        stock_quantity: Units on hand, never negative
        genre_id: Genre reference used for popularity attribution
        is_deleted: Soft-delete marker; deleted items cannot be purchased
    """

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    title: str = Field(..., min_length=1)
    price: Decimal = Field(..., ge=0, decimal_places=2)
    stock_quantity: int = Field(..., ge=0)
    genre_id: UUID
    is_deleted: bool = False


# =============================================================================
# Orders
# =============================================================================


class OrderItem(BaseModel):
    """
    One line within an order, with price and quantity frozen at purchase time.

    ``subtotal`` is captured when the order is created and must equal
    ``unit_price * quantity``; a record that violates this does not load.
    """

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    order_id: UUID
    catalog_item_id: UUID
    quantity: int = Field(..., gt=0)
    unit_price: Decimal = Field(..., ge=0, decimal_places=2)
    subtotal: Decimal

    @model_validator(mode="after")
    def _check_subtotal(self) -> OrderItem:
        if self.subtotal != self.unit_price * self.quantity:
            raise ValueError(
                f"subtotal {self.subtotal} != unit_price {self.unit_price} * quantity {self.quantity}"
            )
        return self

    @classmethod
    def capture(cls, order_id: UUID, item: CatalogItem, quantity: int) -> OrderItem:
        """Snapshot the catalog item's current price into a new order line."""
        return cls(
            order_id=order_id,
            catalog_item_id=item.id,
            quantity=quantity,
            unit_price=item.price,
            subtotal=item.price * quantity,
        )


class Order(BaseModel):
    """
    The durable record of one purchase transaction.

    Example:
        >>> order = await engine.fulfill("user-1", [(item_id, 3)])
        >>> order.total_amount == sum(i.subtotal for i in order.items)
        True
    """

    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    buyer_id: str = Field(..., min_length=1)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    items: list[OrderItem] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_ownership(self) -> Order:
        for item in self.items:
            if item.order_id != self.id:
                raise ValueError(f"order item {item.id} belongs to order {item.order_id}")
        return self

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_amount(self) -> Decimal:
        """Sum of the item subtotals."""
        return sum((item.subtotal for item in self.items), Decimal("0"))


class OrderPage(BaseModel):
    """One page of orders, newest first."""

    model_config = ConfigDict(frozen=True)

    items: list[Order]
    page: int = Field(..., ge=1)
    page_size: int = Field(..., ge=1)
    total: int = Field(..., ge=0)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.page_size)


# =============================================================================
# Requests
# =============================================================================


class PurchaseLine(BaseModel):
    """A requested (catalog item, quantity) pair."""

    model_config = ConfigDict(frozen=True)

    catalog_item_id: UUID
    quantity: int = Field(..., gt=0)


class FulfillmentRequest(BaseModel):
    """
    Validated input to ``OrderFulfillmentEngine.fulfill``.

    ``items`` accepts ``PurchaseLine`` instances, mappings, or
    ``(catalog_item_id, quantity)`` pairs.
    """

    model_config = ConfigDict(frozen=True)

    buyer_id: str = Field(..., min_length=1)
    items: list[PurchaseLine] = Field(..., min_length=1)

    @field_validator("items", mode="before")
    @classmethod
    def _coerce_pairs(cls, value: Any) -> Any:
        if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
            return value
        coerced = []
        for line in value:
            if isinstance(line, (tuple, list)) and len(line) == 2:
                coerced.append({"catalog_item_id": line[0], "quantity": line[1]})
            else:
                coerced.append(line)
        return coerced

    @property
    def distinct_item_ids(self) -> set[UUID]:
        return {line.catalog_item_id for line in self.items}

    def quantities_by_item(self) -> dict[UUID, int]:
        """Total requested quantity per catalog item (duplicate lines summed)."""
        totals: dict[UUID, int] = {}
        for line in self.items:
            totals[line.catalog_item_id] = totals.get(line.catalog_item_id, 0) + line.quantity
        return totals


# =============================================================================
# Statistics
# =============================================================================


class GenrePopularity(BaseModel):
    """Purchase-event count for one genre."""

    model_config = ConfigDict(frozen=True)

    genre_id: UUID
    name: str
    purchase_count: int = Field(..., ge=0)


class SalesStatistics(BaseModel):
    """Derived sales metrics over the full order history."""

    model_config = ConfigDict(frozen=True)

    total_orders: int = Field(..., ge=0)
    average_order_value: Decimal
    most_popular_genre: GenrePopularity | None = None
    least_popular_genre: GenrePopularity | None = None


__all__ = [
    "MONEY_QUANTUM",
    "quantize_money",
    "Genre",
    "CatalogItem",
    "OrderItem",
    "Order",
    "OrderPage",
    "PurchaseLine",
    "FulfillmentRequest",
    "GenrePopularity",
    "SalesStatistics",
]

"""
Unit tests for OrderService.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from fulfillment.config import FulfillmentConfig
from fulfillment.exceptions import InvalidRequestError, ItemNotFoundError
from fulfillment.service import OrderService, parse_order_id


class TestParseOrderId:
    def test_accepts_uuid_and_string(self):
        order_id = uuid4()
        assert parse_order_id(order_id) is order_id
        assert parse_order_id(str(order_id)) == order_id

    def test_rejects_garbage(self):
        with pytest.raises(InvalidRequestError, match="Invalid order id"):
            parse_order_id("order-42")


class TestOrderService:
    async def test_fulfill_then_get_order(self, service, book):
        order = await service.fulfill("buyer-1", [(book.id, 2)])

        fetched = await service.get_order(str(order.id))

        assert fetched == order
        assert fetched.total_amount == Decimal("20.00")

    async def test_get_unknown_order_returns_none(self, service):
        assert await service.get_order(uuid4()) is None

    async def test_fulfill_errors_pass_through(self, service):
        with pytest.raises(ItemNotFoundError):
            await service.fulfill("buyer-1", [(uuid4(), 1)])

    async def test_list_orders_defaults(self, service, book):
        for n in range(3):
            await service.fulfill(f"buyer-{n}", [(book.id, 1)])

        page = await service.list_orders()

        assert page.page == 1
        assert page.page_size == 10
        assert page.total == 3
        assert page.total_pages == 1
        assert len(page.items) == 3

    async def test_list_orders_clamps_page_size(self, memory_store):
        service = OrderService(
            memory_store,
            FulfillmentConfig(default_page_size=5, max_page_size=20),
            enable_tracing=False,
        )

        page = await service.list_orders(page=1, page_size=500)

        assert page.page_size == 20
        assert page.items == []
        assert page.total_pages == 0

    @pytest.mark.parametrize(("page", "page_size"), [(0, 10), (-1, 10), (1, 0), (1, -5)])
    async def test_list_orders_rejects_bad_paging(self, service, page, page_size):
        with pytest.raises(InvalidRequestError):
            await service.list_orders(page=page, page_size=page_size)

    async def test_statistics(self, service, book):
        await service.fulfill("buyer-1", [(book.id, 1)])

        stats = await service.compute_statistics()

        assert stats.total_orders == 1
        assert stats.average_order_value == Decimal("10.00")
        assert stats.most_popular_genre.genre_id == book.genre_id

    def test_exposes_store(self, service, memory_store):
        assert service.store is memory_store

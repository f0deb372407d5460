"""
PostgreSQL fulfillment store implementation.

Production store using PostgreSQL with async support via SQLAlchemy and
asyncpg.

Concurrency:
    A fulfillment transaction locks the requested catalog rows with
    ``SELECT ... FOR UPDATE`` in ascending id order, so two orders touching
    overlapping items always queue on the same first row and cannot
    deadlock each other. ``SET LOCAL lock_timeout`` bounds the wait. Stock
    decrements are conditional (``WHERE stock_quantity >= :amount``) and the
    schema carries ``CHECK (stock_quantity >= 0)``.

Safe across processes and hosts sharing the database.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Collection, Iterator, Sequence
from contextlib import asynccontextmanager, contextmanager
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import bindparam, text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fulfillment.config import FulfillmentConfig
from fulfillment.exceptions import (
    CatalogItemNotFoundError,
    ConflictError,
    FulfillmentTimeoutError,
    GenreNotFoundError,
    InvalidRequestError,
    StorageUnavailableError,
)
from fulfillment.migrations import get_schema_statements
from fulfillment.models import CatalogItem, Genre, GenrePopularity, Order, OrderItem
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
from fulfillment.stores._orders import (
    assemble_orders,
    build_order,
    check_price,
    page_offset,
)
from fulfillment.stores.interface import FulfillmentStore, StoreTransaction

logger = logging.getLogger(__name__)

_ITEM_COLUMNS = "id, title, price, stock_quantity, genre_id, is_deleted"
_ORDER_ITEM_COLUMNS = "id, order_id, catalog_item_id, quantity, unit_price, subtotal"

# SQLSTATE codes
_LOCK_NOT_AVAILABLE = "55P03"
_QUERY_CANCELED = "57014"
_SERIALIZATION_FAILURE = "40001"
_DEADLOCK_DETECTED = "40P01"
_CHECK_VIOLATION = "23514"

_CONFLICT_STATES = frozenset({_SERIALIZATION_FAILURE, _DEADLOCK_DETECTED, _CHECK_VIOLATION})
_TIMEOUT_STATES = frozenset({_LOCK_NOT_AVAILABLE, _QUERY_CANCELED})


def _as_uuid(value: Any) -> UUID:
    # asyncpg returns its own UUID subclass
    return value if type(value) is UUID else UUID(str(value))


def _row_to_item(row: Any) -> CatalogItem:
    return CatalogItem(
        id=_as_uuid(row.id),
        title=row.title,
        price=row.price,
        stock_quantity=row.stock_quantity,
        genre_id=_as_uuid(row.genre_id),
        is_deleted=row.is_deleted,
    )


def _row_to_order_item(row: Any) -> OrderItem:
    return OrderItem(
        id=_as_uuid(row.id),
        order_id=_as_uuid(row.order_id),
        catalog_item_id=_as_uuid(row.catalog_item_id),
        quantity=row.quantity,
        unit_price=row.unit_price,
        subtotal=row.subtotal,
    )


def _sqlstate(error: DBAPIError) -> str | None:
    orig = error.orig
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


class _PostgreSQLTransaction(StoreTransaction):
    """Store transaction bound to one session inside ``session.begin()``."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def find_items_by_ids(self, ids: Collection[UUID]) -> list[CatalogItem]:
        if not ids:
            return []
        query = text(
            f"""
            SELECT {_ITEM_COLUMNS}
            FROM catalog_items
            WHERE id IN :ids AND is_deleted = FALSE
            ORDER BY id
            FOR UPDATE
            """  # nosec B608 - fixed column list
        ).bindparams(bindparam("ids", expanding=True))
        result = await self._session.execute(query, {"ids": list(ids)})
        return [_row_to_item(row) for row in result]

    async def decrement_stock(self, item_id: UUID, amount: int) -> bool:
        result = await self._session.execute(
            text(
                """
                UPDATE catalog_items
                SET stock_quantity = stock_quantity - :amount
                WHERE id = :id AND is_deleted = FALSE AND stock_quantity >= :amount
                """
            ),
            {"id": item_id, "amount": amount},
        )
        return result.rowcount == 1  # type: ignore[attr-defined]

    async def create_order_with_items(
        self,
        buyer_id: str,
        lines: Sequence[tuple[CatalogItem, int]],
    ) -> Order:
        order = build_order(uuid4(), buyer_id, datetime.now(UTC), lines)
        await self._session.execute(
            text(
                "INSERT INTO orders (id, buyer_id, created_at) "
                "VALUES (:id, :buyer_id, :created_at)"
            ),
            {"id": order.id, "buyer_id": order.buyer_id, "created_at": order.created_at},
        )
        await self._session.execute(
            text(
                """
                INSERT INTO order_items (
                    id, order_id, catalog_item_id, position, quantity, unit_price, subtotal
                )
                VALUES (
                    :id, :order_id, :catalog_item_id, :position, :quantity, :unit_price, :subtotal
                )
                """
            ),
            [
                {
                    "id": item.id,
                    "order_id": order.id,
                    "catalog_item_id": item.catalog_item_id,
                    "position": position,
                    "quantity": item.quantity,
                    "unit_price": item.unit_price,
                    "subtotal": item.subtotal,
                }
                for position, item in enumerate(order.items)
            ],
        )
        return order


class PostgreSQLFulfillmentStore(FulfillmentStore):
    """
    PostgreSQL implementation of the fulfillment store.

    Attributes:
        _session_factory: SQLAlchemy async session factory
        _lock_timeout: Seconds a transaction waits for row locks
        _tracer: OpenTelemetry tracer (if available)

    Example:
        >>> from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
        >>>
        >>> engine = create_async_engine("postgresql+asyncpg://...")
        >>> session_factory = async_sessionmaker(engine, expire_on_commit=False)
        >>> store = PostgreSQLFulfillmentStore(session_factory)
        >>> await store.initialize()
    """

    backend_name = "postgresql"

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        lock_timeout: float = 5.0,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the PostgreSQL store.

        Args:
            session_factory: SQLAlchemy async session factory for database access
            lock_timeout: Seconds to wait for row locks before failing with
                FulfillmentTimeoutError (default: 5.0)
            tracer: Optional custom Tracer instance. If not provided, one is
                   created based on enable_tracing setting.
            enable_tracing: If True and OpenTelemetry is available, emit traces.
                          Ignored if tracer is explicitly provided.
        """
        if lock_timeout <= 0:
            raise ValueError(f"lock_timeout must be positive, got {lock_timeout}.")
        self._session_factory = session_factory
        self._lock_timeout = lock_timeout

        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    @classmethod
    def from_config(
        cls,
        session_factory: async_sessionmaker[AsyncSession],
        config: FulfillmentConfig,
        *,
        enable_tracing: bool = True,
    ) -> PostgreSQLFulfillmentStore:
        """Create a store whose row lock wait follows ``config.lock_timeout``."""
        return cls(session_factory, lock_timeout=config.lock_timeout, enable_tracing=enable_tracing)

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        """Get the session factory."""
        return self._session_factory

    @contextmanager
    def _translate_errors(self, operation: str) -> Iterator[None]:
        """Map driver errors onto the fulfillment error taxonomy."""
        try:
            yield
        except DBAPIError as e:
            state = _sqlstate(e)
            if state in _TIMEOUT_STATES:
                logger.debug("Lock wait exceeded during %s (sqlstate=%s)", operation, state)
                raise FulfillmentTimeoutError(
                    self._lock_timeout,
                    f"Timed out waiting for row locks during {operation}",
                ) from e
            if state in _CONFLICT_STATES:
                logger.debug("Conflict during %s (sqlstate=%s)", operation, state)
                raise ConflictError(message=f"Concurrent update during {operation}") from e
            logger.error(
                "PostgreSQL failure during %s: %s",
                operation,
                e,
                extra={"operation": operation, "sqlstate": state},
            )
            raise StorageUnavailableError(self.backend_name, str(e.orig or e)) from e
        except PoolTimeoutError as e:
            raise FulfillmentTimeoutError(
                self._lock_timeout, f"Timed out waiting for a connection during {operation}"
            ) from e
        except OSError as e:
            logger.error("PostgreSQL connection failure during %s: %s", operation, e)
            raise StorageUnavailableError(self.backend_name, str(e)) from e

    async def initialize(self) -> None:
        """Create the schema if it doesn't exist. Idempotent."""
        with self._translate_errors("initialize"):
            async with self._session_factory() as session, session.begin():
                for statement in get_schema_statements("postgresql"):
                    await session.execute(text(statement))
        logger.info("Initialized PostgreSQL fulfillment schema")

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[StoreTransaction]:
        with self._tracer.span(
            "fulfillment.store.postgresql.transaction",
            {ATTR_DB_SYSTEM: self.backend_name},
        ):
            with self._translate_errors("transaction"):
                async with self._session_factory() as session, session.begin():
                    await session.execute(
                        text(f"SET LOCAL lock_timeout = '{int(self._lock_timeout * 1000)}ms'")
                    )
                    yield _PostgreSQLTransaction(session)

    # -------------------------------------------------------------------------
    # Catalog
    # -------------------------------------------------------------------------

    async def find_by_ids(self, ids: Collection[UUID]) -> list[CatalogItem]:
        if not ids:
            return []
        query = text(
            f"""
            SELECT {_ITEM_COLUMNS}
            FROM catalog_items
            WHERE id IN :ids AND is_deleted = FALSE
            """  # nosec B608 - fixed column list
        ).bindparams(bindparam("ids", expanding=True))
        with self._translate_errors("find_by_ids"):
            async with self._session_factory() as session:
                result = await session.execute(query, {"ids": list(ids)})
                return [_row_to_item(row) for row in result]

    async def get_item(self, item_id: UUID) -> CatalogItem | None:
        with self._translate_errors("get_item"):
            async with self._session_factory() as session:
                result = await session.execute(
                    text(f"SELECT {_ITEM_COLUMNS} FROM catalog_items WHERE id = :id"),  # nosec B608
                    {"id": item_id},
                )
                row = result.first()
                return _row_to_item(row) if row is not None else None

    async def add_genre(self, name: str) -> Genre:
        genre = Genre(name=name)
        with self._translate_errors("add_genre"):
            async with self._session_factory() as session, session.begin():
                await session.execute(
                    text("INSERT INTO genres (id, name) VALUES (:id, :name)"),
                    {"id": genre.id, "name": genre.name},
                )
        return genre

    async def _require_genre(self, session: AsyncSession, genre_id: UUID) -> None:
        result = await session.execute(
            text("SELECT 1 FROM genres WHERE id = :id"), {"id": genre_id}
        )
        if result.first() is None:
            raise GenreNotFoundError(genre_id)

    async def add_item(
        self,
        title: str,
        price: Decimal,
        stock_quantity: int,
        genre_id: UUID,
    ) -> CatalogItem:
        price = check_price(price)
        item = CatalogItem(
            title=title,
            price=price,
            stock_quantity=stock_quantity,
            genre_id=genre_id,
        )
        with self._translate_errors("add_item"):
            async with self._session_factory() as session, session.begin():
                await self._require_genre(session, genre_id)
                await session.execute(
                    text(
                        f"""
                        INSERT INTO catalog_items ({_ITEM_COLUMNS})
                        VALUES (:id, :title, :price, :stock_quantity, :genre_id, :is_deleted)
                        """  # nosec B608 - fixed column list
                    ),
                    item.model_dump(),
                )
        return item

    async def _update_item(
        self,
        item_id: UUID,
        column: str,
        value: Any,
        session: AsyncSession | None = None,
    ) -> CatalogItem:
        query = text(
            f"""
            UPDATE catalog_items SET {column} = :value
            WHERE id = :id
            RETURNING {_ITEM_COLUMNS}
            """  # nosec B608 - fixed columns
        )
        if session is not None:
            result = await session.execute(query, {"id": item_id, "value": value})
            row = result.first()
        else:
            with self._translate_errors("update_item"):
                async with self._session_factory() as own, own.begin():
                    result = await own.execute(query, {"id": item_id, "value": value})
                    row = result.first()
        if row is None:
            raise CatalogItemNotFoundError(item_id)
        return _row_to_item(row)

    async def soft_delete_item(self, item_id: UUID) -> CatalogItem:
        return await self._update_item(item_id, "is_deleted", True)

    async def set_stock(self, item_id: UUID, stock_quantity: int) -> CatalogItem:
        if stock_quantity < 0:
            raise InvalidRequestError(f"stock_quantity must be >= 0, got {stock_quantity}")
        return await self._update_item(item_id, "stock_quantity", stock_quantity)

    async def set_price(self, item_id: UUID, price: Decimal) -> CatalogItem:
        price = check_price(price)
        return await self._update_item(item_id, "price", price)

    async def reassign_genre(self, item_id: UUID, genre_id: UUID) -> CatalogItem:
        with self._translate_errors("reassign_genre"):
            async with self._session_factory() as session, session.begin():
                await self._require_genre(session, genre_id)
                return await self._update_item(item_id, "genre_id", genre_id, session)

    # -------------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------------

    async def _load_orders(self, session: AsyncSession, header_rows: Sequence[Any]) -> list[Order]:
        if not header_rows:
            return []
        query = text(
            f"""
            SELECT {_ORDER_ITEM_COLUMNS}
            FROM order_items
            WHERE order_id IN :ids
            ORDER BY order_id, position
            """  # nosec B608 - fixed column list
        ).bindparams(bindparam("ids", expanding=True))
        result = await session.execute(query, {"ids": [row.id for row in header_rows]})
        items = [_row_to_order_item(row) for row in result]
        headers = [(_as_uuid(row.id), row.buyer_id, row.created_at) for row in header_rows]
        return assemble_orders(headers, items)

    async def find_by_id(self, order_id: UUID) -> Order | None:
        with self._tracer.span(
            "fulfillment.store.postgresql.find_by_id",
            {
                ATTR_ORDER_ID: str(order_id),
                ATTR_DB_SYSTEM: self.backend_name,
                ATTR_DB_OPERATION: "SELECT",
            },
        ):
            with self._translate_errors("find_by_id"):
                async with self._session_factory() as session:
                    result = await session.execute(
                        text("SELECT id, buyer_id, created_at FROM orders WHERE id = :id"),
                        {"id": order_id},
                    )
                    row = result.first()
                    if row is None:
                        return None
                    orders = await self._load_orders(session, [row])
                    return orders[0]

    async def list_orders(self, page: int, page_size: int) -> tuple[list[Order], int]:
        with self._tracer.span(
            "fulfillment.store.postgresql.list_orders",
            {ATTR_PAGE: page, ATTR_PAGE_SIZE: page_size, ATTR_DB_SYSTEM: self.backend_name},
        ):
            with self._translate_errors("list_orders"):
                async with self._session_factory() as session:
                    total = (await session.execute(text("SELECT COUNT(*) FROM orders"))).scalar_one()
                    result = await session.execute(
                        text(
                            """
                            SELECT id, buyer_id, created_at
                            FROM orders
                            ORDER BY created_at DESC, id DESC
                            LIMIT :limit OFFSET :offset
                            """
                        ),
                        {"limit": page_size, "offset": page_offset(page, page_size)},
                    )
                    header_rows = result.all()
                    return await self._load_orders(session, header_rows), total

    async def count_orders(self) -> int:
        with self._translate_errors("count_orders"):
            async with self._session_factory() as session:
                result = await session.execute(text("SELECT COUNT(*) FROM orders"))
                return result.scalar_one()

    async def sum_subtotals_grouped_by_order(self) -> AsyncIterator[tuple[UUID, Decimal]]:
        with self._translate_errors("sum_subtotals_grouped_by_order"):
            async with self._session_factory() as session:
                result = await session.stream(
                    text(
                        """
                        SELECT order_id, SUM(subtotal) AS total
                        FROM order_items
                        GROUP BY order_id
                        ORDER BY order_id
                        """
                    )
                )
                async for row in result:
                    yield _as_uuid(row.order_id), row.total

    async def count_purchase_events_by_genre(self) -> list[GenrePopularity]:
        with self._tracer.span(
            "fulfillment.store.postgresql.count_purchase_events_by_genre",
            {ATTR_DB_SYSTEM: self.backend_name, ATTR_DB_OPERATION: "SELECT"},
        ) as span:
            with self._translate_errors("count_purchase_events_by_genre"):
                async with self._session_factory() as session:
                    result = await session.execute(
                        text(
                            """
                            SELECT g.id AS genre_id, g.name AS name, COUNT(oi.id) AS purchase_count
                            FROM order_items oi
                            JOIN catalog_items c ON c.id = oi.catalog_item_id
                            JOIN genres g ON g.id = c.genre_id
                            GROUP BY g.id, g.name
                            """
                        )
                    )
                    rows = result.all()
            if span is not None:
                span.set_attribute(ATTR_ITEM_COUNT, len(rows))
            return [
                GenrePopularity(
                    genre_id=_as_uuid(row.genre_id),
                    name=row.name,
                    purchase_count=row.purchase_count,
                )
                for row in rows
            ]

    def __repr__(self) -> str:
        return f"PostgreSQLFulfillmentStore(lock_timeout={self._lock_timeout})"


__all__ = ["PostgreSQLFulfillmentStore"]

"""
SQLite fulfillment store implementation.

Lightweight store using SQLite with async support via aiosqlite.

Concurrency:
    Each store transaction opens its own connection and starts with
    ``BEGIN IMMEDIATE``, which takes SQLite's write lock before the stock
    read. Concurrent fulfillments (in this or any other process using the
    same database file) therefore run their check-and-decrement one at a
    time. Stock decrements are additionally conditional
    (``WHERE stock_quantity >= ?``) and the schema carries a
    ``CHECK (stock_quantity >= 0)`` constraint.

SQLite-specific adaptations:
- UUIDs stored as TEXT (36 characters, hyphenated format)
- Timestamps stored as TEXT in fixed-width ISO 8601 format (UTC)
- Money stored as TEXT so Decimal values round-trip exactly; sums are
  computed in Python
- Requires a database file; ``:memory:`` databases are per-connection
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Collection, Iterator, Sequence
from contextlib import asynccontextmanager, contextmanager
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any
from uuid import UUID, uuid4

import aiosqlite

from fulfillment.config import FulfillmentConfig
from fulfillment.exceptions import (
    CatalogItemNotFoundError,
    ConflictError,
    FulfillmentTimeoutError,
    GenreNotFoundError,
    InvalidRequestError,
    StorageUnavailableError,
)
from fulfillment.migrations import get_schema
from fulfillment.models import CatalogItem, Genre, GenrePopularity, Order, OrderItem
from fulfillment.observability import (
    ATTR_DB_NAME,
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


def _format_ts(value: datetime) -> str:
    # Fixed width keeps lexical order equal to chronological order
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%S.%f+00:00")


def _parse_ts(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _placeholders(count: int) -> str:
    return ", ".join("?" for _ in range(count))


def _row_to_item(row: aiosqlite.Row) -> CatalogItem:
    return CatalogItem(
        id=UUID(row["id"]),
        title=row["title"],
        price=Decimal(row["price"]),
        stock_quantity=row["stock_quantity"],
        genre_id=UUID(row["genre_id"]),
        is_deleted=bool(row["is_deleted"]),
    )


def _row_to_order_item(row: aiosqlite.Row) -> OrderItem:
    return OrderItem(
        id=UUID(row["id"]),
        order_id=UUID(row["order_id"]),
        catalog_item_id=UUID(row["catalog_item_id"]),
        quantity=row["quantity"],
        unit_price=Decimal(row["unit_price"]),
        subtotal=Decimal(row["subtotal"]),
    )


def _is_locked(error: aiosqlite.OperationalError) -> bool:
    message = str(error).lower()
    return "locked" in message or "busy" in message


class _SQLiteTransaction(StoreTransaction):
    """Store transaction bound to one connection inside BEGIN IMMEDIATE."""

    def __init__(self, connection: aiosqlite.Connection) -> None:
        self._conn = connection

    async def find_items_by_ids(self, ids: Collection[UUID]) -> list[CatalogItem]:
        if not ids:
            return []
        cursor = await self._conn.execute(
            f"""
            SELECT {_ITEM_COLUMNS}
            FROM catalog_items
            WHERE id IN ({_placeholders(len(ids))}) AND is_deleted = 0
            """,  # nosec B608 - placeholders only
            [str(i) for i in ids],
        )
        rows = await cursor.fetchall()
        return [_row_to_item(row) for row in rows]

    async def decrement_stock(self, item_id: UUID, amount: int) -> bool:
        cursor = await self._conn.execute(
            """
            UPDATE catalog_items
            SET stock_quantity = stock_quantity - ?
            WHERE id = ? AND is_deleted = 0 AND stock_quantity >= ?
            """,
            (amount, str(item_id), amount),
        )
        return cursor.rowcount == 1

    async def create_order_with_items(
        self,
        buyer_id: str,
        lines: Sequence[tuple[CatalogItem, int]],
    ) -> Order:
        order = build_order(uuid4(), buyer_id, datetime.now(UTC), lines)
        await self._conn.execute(
            "INSERT INTO orders (id, buyer_id, created_at) VALUES (?, ?, ?)",
            (str(order.id), order.buyer_id, _format_ts(order.created_at)),
        )
        await self._conn.executemany(
            """
            INSERT INTO order_items (
                id, order_id, catalog_item_id, position, quantity, unit_price, subtotal
            )
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    str(item.id),
                    str(order.id),
                    str(item.catalog_item_id),
                    position,
                    item.quantity,
                    str(item.unit_price),
                    str(item.subtotal),
                )
                for position, item in enumerate(order.items)
            ],
        )
        return order


class SQLiteFulfillmentStore(FulfillmentStore):
    """
    SQLite implementation of the fulfillment store.

    Attributes:
        _database: Path to the SQLite database file
        _wal_mode: Whether WAL mode is enabled (readers never block the writer)
        _busy_timeout: Milliseconds to wait for the write lock

    Example:
        >>> async with SQLiteFulfillmentStore("shop.db") as store:
        ...     fiction = await store.add_genre("Fiction")
        ...     book = await store.add_item("Dune", Decimal("10.00"), 5, fiction.id)
    """

    backend_name = "sqlite"

    def __init__(
        self,
        database: str | Path,
        *,
        wal_mode: bool = True,
        busy_timeout: int = 5000,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the SQLite store.

        Args:
            database: Path to the SQLite database file
            wal_mode: If True, enable WAL mode for better concurrency (default: True)
            busy_timeout: Timeout in milliseconds when the database is locked (default: 5000)
            tracer: Optional custom Tracer instance
            enable_tracing: If True and OpenTelemetry is available, emit traces

        Raises:
            ValueError: If ``database`` is ``:memory:``
        """
        if str(database) == ":memory:":
            raise ValueError(
                "SQLiteFulfillmentStore needs a database file; every transaction "
                "opens its own connection and :memory: databases are per-connection."
            )
        self._database = str(database)
        self._wal_mode = wal_mode
        self._busy_timeout = busy_timeout

        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    @classmethod
    def from_config(
        cls,
        database: str | Path,
        config: FulfillmentConfig,
        *,
        wal_mode: bool = True,
        enable_tracing: bool = True,
    ) -> SQLiteFulfillmentStore:
        """Create a store whose busy timeout follows ``config.lock_timeout``."""
        return cls(
            database,
            wal_mode=wal_mode,
            busy_timeout=config.lock_timeout_ms,
            enable_tracing=enable_tracing,
        )

    def _span_attributes(self, **extra: Any) -> dict[str, Any]:
        return {ATTR_DB_SYSTEM: self.backend_name, ATTR_DB_NAME: self._database, **extra}

    @contextmanager
    def _translate_errors(self, operation: str) -> Iterator[None]:
        """Map driver errors onto the fulfillment error taxonomy."""
        try:
            yield
        except aiosqlite.OperationalError as e:
            if _is_locked(e):
                logger.debug("SQLite lock wait exceeded during %s: %s", operation, e)
                raise FulfillmentTimeoutError(
                    self._busy_timeout / 1000,
                    f"SQLite database locked during {operation}",
                ) from e
            logger.error("SQLite failure during %s: %s", operation, e)
            raise StorageUnavailableError(self.backend_name, str(e)) from e
        except aiosqlite.IntegrityError as e:
            if "stock_quantity" in str(e):
                raise ConflictError(message=f"Stock constraint violated during {operation}") from e
            logger.error("SQLite integrity failure during %s: %s", operation, e)
            raise StorageUnavailableError(self.backend_name, str(e)) from e
        except aiosqlite.DatabaseError as e:
            logger.error("SQLite failure during %s: %s", operation, e)
            raise StorageUnavailableError(self.backend_name, str(e)) from e

    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[aiosqlite.Connection]:
        """Open a connection in autocommit mode; transactions are explicit."""
        try:
            conn = await aiosqlite.connect(self._database, isolation_level=None)
        except (aiosqlite.Error, OSError) as e:
            raise StorageUnavailableError(self.backend_name, str(e)) from e
        try:
            await conn.execute("PRAGMA foreign_keys = ON")
            await conn.execute(f"PRAGMA busy_timeout = {int(self._busy_timeout)}")
            conn.row_factory = aiosqlite.Row
            yield conn
        finally:
            await conn.close()

    @asynccontextmanager
    async def _write(self, operation: str) -> AsyncIterator[aiosqlite.Connection]:
        """Connection inside BEGIN IMMEDIATE; commits on success, rolls back otherwise."""
        with self._translate_errors(operation):
            async with self._connect() as conn:
                await conn.execute("BEGIN IMMEDIATE")
                try:
                    yield conn
                except BaseException:
                    await conn.execute("ROLLBACK")
                    raise
                await conn.execute("COMMIT")

    async def initialize(self) -> None:
        """
        Create the schema if it doesn't exist. Idempotent.
        """
        with self._translate_errors("initialize"):
            async with self._connect() as conn:
                if self._wal_mode:
                    await conn.execute("PRAGMA journal_mode = WAL")
                await conn.executescript(get_schema("sqlite"))
        logger.info("Initialized SQLite fulfillment schema: %s", self._database)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[StoreTransaction]:
        with self._tracer.span(
            "fulfillment.store.sqlite.transaction",
            self._span_attributes(),
        ):
            async with self._write("transaction") as conn:
                yield _SQLiteTransaction(conn)

    # -------------------------------------------------------------------------
    # Catalog
    # -------------------------------------------------------------------------

    async def find_by_ids(self, ids: Collection[UUID]) -> list[CatalogItem]:
        if not ids:
            return []
        with self._translate_errors("find_by_ids"):
            async with self._connect() as conn:
                cursor = await conn.execute(
                    f"""
                    SELECT {_ITEM_COLUMNS}
                    FROM catalog_items
                    WHERE id IN ({_placeholders(len(ids))}) AND is_deleted = 0
                    """,  # nosec B608 - placeholders only
                    [str(i) for i in ids],
                )
                return [_row_to_item(row) for row in await cursor.fetchall()]

    async def get_item(self, item_id: UUID) -> CatalogItem | None:
        with self._translate_errors("get_item"):
            async with self._connect() as conn:
                cursor = await conn.execute(
                    f"SELECT {_ITEM_COLUMNS} FROM catalog_items WHERE id = ?",  # nosec B608
                    (str(item_id),),
                )
                row = await cursor.fetchone()
                return _row_to_item(row) if row is not None else None

    async def add_genre(self, name: str) -> Genre:
        genre = Genre(name=name)
        async with self._write("add_genre") as conn:
            await conn.execute(
                "INSERT INTO genres (id, name) VALUES (?, ?)",
                (str(genre.id), genre.name),
            )
        return genre

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
        async with self._write("add_item") as conn:
            await self._require_genre(conn, genre_id)
            await conn.execute(
                f"INSERT INTO catalog_items ({_ITEM_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?)",  # nosec B608
                (
                    str(item.id),
                    item.title,
                    str(item.price),
                    item.stock_quantity,
                    str(item.genre_id),
                    int(item.is_deleted),
                ),
            )
        return item

    async def _apply_update(
        self,
        conn: aiosqlite.Connection,
        item_id: UUID,
        assignment: str,
        value: Any,
    ) -> CatalogItem:
        cursor = await conn.execute(
            f"UPDATE catalog_items SET {assignment} = ? WHERE id = ?",  # nosec B608 - fixed columns
            (value, str(item_id)),
        )
        if cursor.rowcount == 0:
            raise CatalogItemNotFoundError(item_id)
        cursor = await conn.execute(
            f"SELECT {_ITEM_COLUMNS} FROM catalog_items WHERE id = ?",  # nosec B608
            (str(item_id),),
        )
        row = await cursor.fetchone()
        assert row is not None
        return _row_to_item(row)

    async def _update_item(self, item_id: UUID, assignment: str, value: Any) -> CatalogItem:
        async with self._write("update_item") as conn:
            return await self._apply_update(conn, item_id, assignment, value)

    async def _require_genre(self, conn: aiosqlite.Connection, genre_id: UUID) -> None:
        cursor = await conn.execute("SELECT 1 FROM genres WHERE id = ?", (str(genre_id),))
        if await cursor.fetchone() is None:
            raise GenreNotFoundError(genre_id)

    async def soft_delete_item(self, item_id: UUID) -> CatalogItem:
        return await self._update_item(item_id, "is_deleted", 1)

    async def set_stock(self, item_id: UUID, stock_quantity: int) -> CatalogItem:
        if stock_quantity < 0:
            raise InvalidRequestError(f"stock_quantity must be >= 0, got {stock_quantity}")
        return await self._update_item(item_id, "stock_quantity", stock_quantity)

    async def set_price(self, item_id: UUID, price: Decimal) -> CatalogItem:
        price = check_price(price)
        return await self._update_item(item_id, "price", str(price))

    async def reassign_genre(self, item_id: UUID, genre_id: UUID) -> CatalogItem:
        async with self._write("reassign_genre") as conn:
            await self._require_genre(conn, genre_id)
            return await self._apply_update(conn, item_id, "genre_id", str(genre_id))

    # -------------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------------

    async def _load_orders(
        self,
        conn: aiosqlite.Connection,
        header_rows: Sequence[aiosqlite.Row],
    ) -> list[Order]:
        if not header_rows:
            return []
        ids = [row["id"] for row in header_rows]
        cursor = await conn.execute(
            f"""
            SELECT {_ORDER_ITEM_COLUMNS}
            FROM order_items
            WHERE order_id IN ({_placeholders(len(ids))})
            ORDER BY order_id, position
            """,  # nosec B608 - placeholders only
            ids,
        )
        items = [_row_to_order_item(row) for row in await cursor.fetchall()]
        headers = [
            (UUID(row["id"]), row["buyer_id"], _parse_ts(row["created_at"])) for row in header_rows
        ]
        return assemble_orders(headers, items)

    async def find_by_id(self, order_id: UUID) -> Order | None:
        with self._tracer.span(
            "fulfillment.store.sqlite.find_by_id",
            self._span_attributes(**{ATTR_ORDER_ID: str(order_id), ATTR_DB_OPERATION: "SELECT"}),
        ):
            with self._translate_errors("find_by_id"):
                async with self._connect() as conn:
                    cursor = await conn.execute(
                        "SELECT id, buyer_id, created_at FROM orders WHERE id = ?",
                        (str(order_id),),
                    )
                    row = await cursor.fetchone()
                    if row is None:
                        return None
                    orders = await self._load_orders(conn, [row])
                    return orders[0]

    async def list_orders(self, page: int, page_size: int) -> tuple[list[Order], int]:
        with self._tracer.span(
            "fulfillment.store.sqlite.list_orders",
            self._span_attributes(**{ATTR_PAGE: page, ATTR_PAGE_SIZE: page_size}),
        ):
            with self._translate_errors("list_orders"):
                async with self._connect() as conn:
                    cursor = await conn.execute("SELECT COUNT(*) FROM orders")
                    row = await cursor.fetchone()
                    total = row[0] if row else 0
                    cursor = await conn.execute(
                        """
                        SELECT id, buyer_id, created_at
                        FROM orders
                        ORDER BY created_at DESC, id DESC
                        LIMIT ? OFFSET ?
                        """,
                        (page_size, page_offset(page, page_size)),
                    )
                    header_rows = list(await cursor.fetchall())
                    return await self._load_orders(conn, header_rows), total

    async def count_orders(self) -> int:
        with self._translate_errors("count_orders"):
            async with self._connect() as conn:
                cursor = await conn.execute("SELECT COUNT(*) FROM orders")
                row = await cursor.fetchone()
                return row[0] if row else 0

    async def sum_subtotals_grouped_by_order(self) -> AsyncIterator[tuple[UUID, Decimal]]:
        with self._translate_errors("sum_subtotals_grouped_by_order"):
            async with self._connect() as conn:
                async with conn.execute(
                    "SELECT order_id, subtotal FROM order_items ORDER BY order_id"
                ) as cursor:
                    current: str | None = None
                    total = Decimal("0")
                    async for row in cursor:
                        if row["order_id"] != current:
                            if current is not None:
                                yield UUID(current), total
                            current = row["order_id"]
                            total = Decimal("0")
                        total += Decimal(row["subtotal"])
                    if current is not None:
                        yield UUID(current), total

    async def count_purchase_events_by_genre(self) -> list[GenrePopularity]:
        with self._tracer.span(
            "fulfillment.store.sqlite.count_purchase_events_by_genre",
            self._span_attributes(**{ATTR_DB_OPERATION: "SELECT"}),
        ) as span:
            with self._translate_errors("count_purchase_events_by_genre"):
                async with self._connect() as conn:
                    cursor = await conn.execute(
                        """
                        SELECT g.id AS genre_id, g.name AS name, COUNT(oi.id) AS purchase_count
                        FROM order_items oi
                        JOIN catalog_items c ON c.id = oi.catalog_item_id
                        JOIN genres g ON g.id = c.genre_id
                        GROUP BY g.id, g.name
                        """
                    )
                    rows = await cursor.fetchall()
            if span is not None:
                span.set_attribute(ATTR_ITEM_COUNT, len(rows))
            return [
                GenrePopularity(
                    genre_id=UUID(row["genre_id"]),
                    name=row["name"],
                    purchase_count=row["purchase_count"],
                )
                for row in rows
            ]

    @property
    def database(self) -> str:
        return self._database

    def __repr__(self) -> str:
        return f"SQLiteFulfillmentStore(database={self._database!r}, wal_mode={self._wal_mode})"


__all__ = ["SQLiteFulfillmentStore"]

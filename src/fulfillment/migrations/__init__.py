"""
Database schema support for the fulfillment stores.

This module provides the SQL DDL for the tables used by the SQL backends.

Tables:
    - genres: Catalog genres
    - catalog_items: Purchasable items with price and stock
    - orders: One row per fulfilled purchase
    - order_items: Order lines with price and subtotal captured at purchase

Supported backends:
    - postgresql (default)
    - sqlite

Usage:
    from fulfillment.migrations import get_schema, get_schema_statements

    # Whole script (SQLite executescript)
    sql = get_schema("sqlite")

    # One statement at a time (asyncpg cannot run multi-statement strings)
    async with engine.begin() as conn:
        for statement in get_schema_statements("postgresql"):
            await conn.execute(text(statement))
"""

from pathlib import Path
from typing import Literal

# Supported database backends
BackendName = Literal["postgresql", "sqlite"]

_SCHEMAS_DIR = Path(__file__).parent / "schemas"


def get_schema(backend: BackendName = "postgresql") -> str:
    """
    Get the full schema script for a backend.

    Args:
        backend: The database backend (postgresql, sqlite)

    Returns:
        The SQL script as a single string

    Raises:
        ValueError: If the backend is not supported
    """
    path = _SCHEMAS_DIR / f"{backend}.sql"
    if not path.is_file():
        raise ValueError(f"Unsupported backend: {backend!r}. Use 'postgresql' or 'sqlite'.")
    return path.read_text(encoding="utf-8")


def _strip_comments(chunk: str) -> str:
    lines = [line for line in chunk.splitlines() if not line.strip().startswith("--")]
    return "\n".join(lines).strip()


def get_schema_statements(backend: BackendName = "postgresql") -> list[str]:
    """
    Get the schema as individual statements.

    Returns:
        Non-empty SQL statements without trailing semicolons or comments
    """
    statements = (_strip_comments(chunk) for chunk in get_schema(backend).split(";"))
    return [statement for statement in statements if statement]


__all__ = [
    "BackendName",
    "get_schema",
    "get_schema_statements",
]

"""
Shared pytest fixtures for integration tests.

This module provides PostgreSQL test infrastructure using testcontainers
for automatic container management.

If testcontainers or Docker is not available, tests are automatically skipped.
"""

from __future__ import annotations

import subprocess
from collections.abc import AsyncGenerator, Generator
from typing import TYPE_CHECKING, Any

import pytest

from fulfillment.migrations import get_schema_statements

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker


# ============================================================================
# Testcontainers Detection
# ============================================================================

TESTCONTAINERS_AVAILABLE = False

try:
    from testcontainers.postgres import PostgresContainer

    TESTCONTAINERS_AVAILABLE = True
except ImportError:
    PostgresContainer = None  # type: ignore[assignment, misc]


def is_docker_available() -> bool:
    """Check if Docker is available for running containers."""
    try:
        result = subprocess.run(
            ["docker", "info"],
            capture_output=True,
            timeout=5,
        )
        return result.returncode == 0
    except (subprocess.TimeoutExpired, OSError):
        return False


DOCKER_AVAILABLE = is_docker_available()


# ============================================================================
# PostgreSQL Fixtures
# ============================================================================


@pytest.fixture(scope="session")
def postgres_container() -> Generator[Any, None, None]:
    """
    Provide PostgreSQL container for integration tests.

    Container is shared across all tests in the session for efficiency.
    """
    if not TESTCONTAINERS_AVAILABLE or not DOCKER_AVAILABLE:
        pytest.skip("PostgreSQL testcontainer not available")

    container = PostgresContainer("postgres:16")
    container.start()

    yield container

    container.stop()


@pytest.fixture(scope="session")
def postgres_connection_url(postgres_container: Any) -> str:
    """Get PostgreSQL connection URL from container."""
    # testcontainers returns psycopg2 URL, convert to asyncpg
    url = postgres_container.get_connection_url()
    return url.replace("postgresql://", "postgresql+asyncpg://").replace("psycopg2", "asyncpg")


@pytest.fixture
async def postgres_engine(postgres_connection_url: str) -> AsyncGenerator[AsyncEngine, None]:
    """
    Provide SQLAlchemy async engine with the fulfillment schema in place.

    Function scoped so the engine's pool lives on the test's event loop.
    """
    from sqlalchemy import text
    from sqlalchemy.ext.asyncio import create_async_engine

    engine = create_async_engine(
        postgres_connection_url,
        echo=False,
        pool_size=5,
        max_overflow=15,
    )

    async with engine.begin() as conn:
        for statement in get_schema_statements("postgresql"):
            await conn.execute(text(statement))
        await conn.execute(text("TRUNCATE TABLE order_items, orders, catalog_items, genres CASCADE"))

    yield engine

    await engine.dispose()


@pytest.fixture
def postgres_session_factory(postgres_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Provide SQLAlchemy async session factory."""
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    return async_sessionmaker(
        postgres_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

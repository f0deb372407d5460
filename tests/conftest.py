"""
Shared pytest fixtures for the fulfillment library tests.

This module provides:
- Store fixtures (memory_store, sqlite_store)
- Catalog fixtures (fiction, book)
- Engine and service fixtures wired to the in-memory store
- A MockTracer for span assertions
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from decimal import Decimal
from pathlib import Path

import pytest

from fulfillment.config import FulfillmentConfig
from fulfillment.engine import OrderFulfillmentEngine
from fulfillment.models import CatalogItem, Genre
from fulfillment.observability import MockTracer
from fulfillment.retry import RetryConfig
from fulfillment.service import OrderService
from fulfillment.stores.in_memory import InMemoryFulfillmentStore
from fulfillment.stores.sqlite import SQLiteFulfillmentStore

# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def fast_config() -> FulfillmentConfig:
    """Config with near-zero backoff so retry tests stay quick."""
    return FulfillmentConfig(
        retry=RetryConfig(max_retries=3, initial_delay=0.001, max_delay=0.002),
        attempt_timeout=2.0,
    )


@pytest.fixture
def mock_tracer() -> MockTracer:
    return MockTracer()


# ============================================================================
# Store Fixtures
# ============================================================================


@pytest.fixture
def memory_store() -> InMemoryFulfillmentStore:
    """Provide a fresh, empty in-memory store."""
    return InMemoryFulfillmentStore(enable_tracing=False)


@pytest.fixture
def sqlite_path(tmp_path: Path) -> Path:
    return tmp_path / "fulfillment.db"


@pytest.fixture
async def sqlite_store(sqlite_path: Path) -> AsyncGenerator[SQLiteFulfillmentStore, None]:
    """Provide an initialized SQLite store backed by a temporary file."""
    async with SQLiteFulfillmentStore(sqlite_path, enable_tracing=False) as store:
        yield store


# ============================================================================
# Catalog Fixtures
# ============================================================================


@pytest.fixture
async def fiction(memory_store: InMemoryFulfillmentStore) -> Genre:
    return await memory_store.add_genre("Fiction")


@pytest.fixture
async def book(memory_store: InMemoryFulfillmentStore, fiction: Genre) -> CatalogItem:
    """A 10.00 item with 5 units in stock."""
    return await memory_store.add_item("Dune", Decimal("10.00"), 5, fiction.id)


# ============================================================================
# Engine Fixtures
# ============================================================================


@pytest.fixture
def engine(
    memory_store: InMemoryFulfillmentStore,
    fast_config: FulfillmentConfig,
) -> OrderFulfillmentEngine:
    return OrderFulfillmentEngine(memory_store, fast_config, enable_tracing=False)


@pytest.fixture
def service(
    memory_store: InMemoryFulfillmentStore,
    fast_config: FulfillmentConfig,
) -> OrderService:
    return OrderService(memory_store, fast_config, enable_tracing=False)

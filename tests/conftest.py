"""
Shared pytest fixtures for the storefront tests.

This module provides:
- Storage fixtures (memory_database, sqlite_database, and the
  backend-parametrized ``database`` fixture)
- Service fixtures (shop, users, products, orders) wired with tracing off
- Sample data fixtures (user, funded_user, product)
- Invariant helpers (assert_ledger_consistent)

Tests that take ``database`` (directly or through a service fixture) run
once per backend, so every behavior is checked against both the in-memory
adapter and SQLite.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio

from storefront import (
    Database,
    InMemoryDatabase,
    OrderOrchestrator,
    Product,
    ProductService,
    SQLiteDatabase,
    Storefront,
    User,
    UserService,
)
from storefront.observability import MockTracer

# ============================================================================
# Pytest Configuration
# ============================================================================

LOCK_TIMEOUT = 5.0


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers for tests."""
    config.addinivalue_line("markers", "sqlite: marks tests that require SQLite (aiosqlite)")


# ============================================================================
# Storage Fixtures
# ============================================================================


@pytest_asyncio.fixture
async def memory_database() -> AsyncGenerator[InMemoryDatabase, None]:
    """Provide a fresh in-memory database."""
    database = InMemoryDatabase(lock_timeout=LOCK_TIMEOUT, enable_tracing=False)
    await database.initialize()
    yield database
    await database.close()


@pytest_asyncio.fixture
async def sqlite_database(tmp_path: Path) -> AsyncGenerator[SQLiteDatabase, None]:
    """Provide an initialized SQLite database in a temporary file."""
    database = SQLiteDatabase(
        str(tmp_path / "storefront.db"),
        lock_timeout=LOCK_TIMEOUT,
        enable_tracing=False,
    )
    await database.initialize()
    yield database
    await database.close()


@pytest_asyncio.fixture(params=["memory", "sqlite"])
async def database(
    request: pytest.FixtureRequest, tmp_path: Path
) -> AsyncGenerator[Database, None]:
    """Provide each storage backend in turn."""
    if request.param == "sqlite":
        db: Database = SQLiteDatabase(
            str(tmp_path / "storefront.db"),
            lock_timeout=LOCK_TIMEOUT,
            enable_tracing=False,
        )
    else:
        db = InMemoryDatabase(lock_timeout=LOCK_TIMEOUT, enable_tracing=False)
    await db.initialize()
    yield db
    await db.close()


@pytest.fixture
def mock_tracer() -> MockTracer:
    """Provide a tracer that records span names and attributes."""
    return MockTracer()


# ============================================================================
# Service Fixtures
# ============================================================================


@pytest.fixture
def shop(database: Database) -> Storefront:
    """Provide a Storefront wired to the parametrized database."""
    return Storefront(database, enable_tracing=False)


@pytest.fixture
def users(shop: Storefront) -> UserService:
    return shop.users


@pytest.fixture
def products(shop: Storefront) -> ProductService:
    return shop.products


@pytest.fixture
def orders(shop: Storefront) -> OrderOrchestrator:
    return shop.orders


# ============================================================================
# Sample Data Fixtures
# ============================================================================


@pytest_asyncio.fixture
async def user(users: UserService) -> User:
    """A registered user with a zero balance."""
    return await users.create_user("alice")


@pytest_asyncio.fixture
async def funded_user(users: UserService) -> User:
    """A registered user holding 100_000 points."""
    created = await users.create_user("bob")
    assert created.id is not None
    return await users.charge_point(created.id, 100_000)


@pytest_asyncio.fixture
async def product(products: ProductService) -> Product:
    """A product priced 1_000 with 10 units in stock."""
    return await products.create_product("fountain pen", 1_000, 10)


# ============================================================================
# Invariant Helpers
# ============================================================================


async def assert_ledger_consistent(users: UserService, user_id: int) -> None:
    """Assert a user's balance equals the signed sum of their point history."""
    current = await users.get_user(user_id)
    history = await users.get_point_history(user_id)
    assert current.balance == sum(entry.signed_amount for entry in history)
    if history:
        assert history[-1].balance_after == current.balance


@pytest.fixture
def ledger_consistent():
    """Provide the ledger invariant check to tests without importing conftest."""
    return assert_ledger_consistent

"""
Shared pytest fixtures for integration tests.

This module provides a PostgreSQL database using testcontainers for automatic
container management.

If testcontainers or Docker is not available, tests are automatically skipped.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Generator
from typing import Any

import pytest
import pytest_asyncio

from storefront import PostgreSQLDatabase, Storefront

# ============================================================================
# Pytest Configuration
# ============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers for integration tests."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (may require docker)"
    )
    config.addinivalue_line("markers", "postgres: marks tests that require PostgreSQL")


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
    import subprocess

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
# Skip Conditions
# ============================================================================

skip_if_no_postgres_infra = pytest.mark.skipif(
    not (TESTCONTAINERS_AVAILABLE and DOCKER_AVAILABLE),
    reason="PostgreSQL test infrastructure not available",
)

TABLES = ("order_items", "orders", "products", "point_histories", "users")


# ============================================================================
# PostgreSQL Fixtures
# ============================================================================


@pytest.fixture(scope="session")
def postgres_container() -> Generator[Any, None, None]:
    """
    Provide PostgreSQL container for integration tests.

    The container is shared across all tests in the session.
    """
    if not TESTCONTAINERS_AVAILABLE or not DOCKER_AVAILABLE:
        pytest.skip("PostgreSQL testcontainer not available")

    container = PostgresContainer("postgres:15")
    container.start()

    yield container

    container.stop()


@pytest.fixture(scope="session")
def postgres_connection_url(postgres_container: Any) -> str:
    """Get PostgreSQL connection URL from container."""
    # testcontainers returns psycopg2 URL, convert to asyncpg
    url = postgres_container.get_connection_url()
    return url.replace("postgresql://", "postgresql+asyncpg://").replace("psycopg2", "asyncpg")


@pytest_asyncio.fixture
async def postgres_database(
    postgres_connection_url: str,
) -> AsyncGenerator[PostgreSQLDatabase, None]:
    """Provide an initialized PostgreSQL database with empty tables."""
    from sqlalchemy import text

    database = PostgreSQLDatabase.from_url(
        postgres_connection_url, lock_timeout=5.0, enable_tracing=False
    )
    await database.initialize()

    async with database.engine.begin() as conn:
        await conn.execute(text(f"TRUNCATE TABLE {', '.join(TABLES)} RESTART IDENTITY CASCADE"))

    yield database

    await database.close()


@pytest.fixture
def postgres_shop(postgres_database: PostgreSQLDatabase) -> Storefront:
    return Storefront(postgres_database, enable_tracing=False)

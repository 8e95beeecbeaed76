"""
Database schema support for the storefront package.

Tables:
    - users, point_histories: Point ledger
    - products: Catalog with stock and price revision
    - orders, order_items: Orders and their price-snapshot line items

Supported backends:
    - postgresql (default)
    - sqlite

Usage:
    from storefront.migrations import get_schema

    # PostgreSQL
    async with engine.begin() as conn:
        for statement in split_statements(get_schema()):
            await conn.execute(text(statement))

    # SQLite
    async with aiosqlite.connect(":memory:") as db:
        await db.executescript(get_schema(backend="sqlite"))
"""

from pathlib import Path
from typing import Literal

# Supported database backends
BackendName = Literal["postgresql", "sqlite"]

_SCHEMAS_DIR = Path(__file__).parent / "schemas"


def get_schema(backend: BackendName = "postgresql") -> str:
    """
    Load the full schema for a backend.

    Args:
        backend: The database backend ("postgresql" or "sqlite")

    Returns:
        SQL schema definition as a string

    Raises:
        ValueError: If the backend has no schema
    """
    path = _SCHEMAS_DIR / f"{backend}.sql"
    if not path.exists():
        raise ValueError(
            f"No schema available for backend '{backend}'. Available backends: {list_backends()}"
        )
    return path.read_text()


def split_statements(schema: str) -> list[str]:
    """
    Split a schema script into individual statements.

    Drivers that cannot run multi-statement scripts (asyncpg prepared
    statements) execute these one at a time. Comment lines are dropped.
    """
    lines = [line for line in schema.splitlines() if not line.lstrip().startswith("--")]
    return [statement.strip() for statement in "\n".join(lines).split(";") if statement.strip()]


def list_backends() -> list[str]:
    """List all backends that ship a schema."""
    return sorted(p.stem for p in _SCHEMAS_DIR.glob("*.sql"))


__all__ = [
    "BackendName",
    "get_schema",
    "list_backends",
    "split_statements",
]

"""Storage interfaces and adapters for the storefront package."""

from storefront.stores.in_memory import InMemoryDatabase, InMemoryUnitOfWork
from storefront.stores.interface import (
    Database,
    OrderStore,
    PointHistoryStore,
    ProductStore,
    UnitOfWork,
    UserStore,
)
from storefront.stores.postgresql import PostgreSQLDatabase, PostgreSQLUnitOfWork
from storefront.stores.sqlite import SQLiteDatabase, SQLiteUnitOfWork

__all__ = [
    # Abstract base classes
    "Database",
    "UnitOfWork",
    "UserStore",
    "ProductStore",
    "OrderStore",
    "PointHistoryStore",
    # Concrete implementations
    "InMemoryDatabase",
    "InMemoryUnitOfWork",
    "SQLiteDatabase",
    "SQLiteUnitOfWork",
    "PostgreSQLDatabase",
    "PostgreSQLUnitOfWork",
]

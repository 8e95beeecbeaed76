"""
storefront - Concurrency-safe order orchestration for a small commerce domain.

This library provides:
- Users with a point balance and an append-only point history
- Products with finite stock and a price revision counter
- Orders that atomically consume stock and points, and refund on cancellation
- Explicit units of work over in-memory, SQLite and PostgreSQL storage
- Row-level locking so concurrent orders never oversell or overdraw
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("storefront-core")
except PackageNotFoundError:
    # Package not installed (running from source without install)
    __version__ = "0.0.0.dev0"

from storefront.application import Storefront, create_database
from storefront.config import StorefrontConfig
from storefront.domain import (
    Order,
    OrderItem,
    OrderLine,
    OrderStatus,
    PointHistory,
    PointTransactionType,
    Product,
    User,
)
from storefront.exceptions import (
    ConcurrentModificationError,
    InsufficientBalanceError,
    InsufficientStockError,
    InvalidStateError,
    LockTimeoutError,
    NotFoundError,
    StoreError,
    StorefrontError,
    ValidationError,
)
from storefront.services import (
    OrderOrchestrator,
    PointLedger,
    ProductService,
    StockManager,
    UserService,
)
from storefront.stores import (
    Database,
    InMemoryDatabase,
    PostgreSQLDatabase,
    SQLiteDatabase,
    UnitOfWork,
)

__all__ = [
    "__version__",
    # Application
    "Storefront",
    "StorefrontConfig",
    "create_database",
    # Domain
    "Order",
    "OrderItem",
    "OrderLine",
    "OrderStatus",
    "PointHistory",
    "PointTransactionType",
    "Product",
    "User",
    # Services
    "OrderOrchestrator",
    "PointLedger",
    "ProductService",
    "StockManager",
    "UserService",
    # Storage
    "Database",
    "UnitOfWork",
    "InMemoryDatabase",
    "SQLiteDatabase",
    "PostgreSQLDatabase",
    # Exceptions
    "StorefrontError",
    "ValidationError",
    "NotFoundError",
    "InsufficientStockError",
    "InsufficientBalanceError",
    "InvalidStateError",
    "ConcurrentModificationError",
    "LockTimeoutError",
    "StoreError",
]

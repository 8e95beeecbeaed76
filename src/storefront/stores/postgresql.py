"""
PostgreSQL storage adapter.

Uses SQLAlchemy's async engine (asyncpg driver). Every unit of work is one
``engine.begin()`` transaction; ``find_for_update`` issues
``SELECT ... FOR UPDATE`` so concurrent units of work serialise on exactly
the rows they touch. ``lock_timeout`` is applied per transaction with
``SET LOCAL lock_timeout`` and surfaces as LockTimeoutError.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, create_async_engine

from storefront.domain.order import Order, OrderItem
from storefront.domain.product import Product
from storefront.domain.user import PointHistory, User
from storefront.exceptions import (
    ConcurrentModificationError,
    LockTimeoutError,
    NotFoundError,
    StoreError,
)
from storefront.locks import RowLockManager
from storefront.migrations import get_schema, split_statements
from storefront.observability import (
    ATTR_DB_SYSTEM,
    ATTR_LOCK_TIMEOUT,
    Tracer,
    create_tracer,
)
from storefront.stores.interface import (
    Database,
    OrderStore,
    PointHistoryStore,
    ProductStore,
    UnitOfWork,
    UserStore,
)

logger = logging.getLogger(__name__)

# SQLSTATE raised when lock_timeout expires
LOCK_NOT_AVAILABLE = "55P03"

_USER_COLUMNS = "id, name, balance, created_at, updated_at"
_PRODUCT_COLUMNS = "id, name, price, stock, version, created_at, updated_at"
_ORDER_COLUMNS = "id, user_id, status, total_amount, created_at, updated_at"
_HISTORY_COLUMNS = "id, user_id, transaction_type, amount, balance_after, created_at"


def _sqlstate(error: DBAPIError) -> str | None:
    orig = error.orig
    for candidate in (orig, getattr(orig, "__cause__", None)):
        if candidate is None:
            continue
        code = getattr(candidate, "sqlstate", None) or getattr(candidate, "pgcode", None)
        if code:
            return str(code)
    return None


class PostgreSQLDatabase(Database):
    """
    PostgreSQL implementation of the storage interface.

    Example:
        >>> engine = create_async_engine("postgresql+asyncpg://localhost/shop")
        >>> database = PostgreSQLDatabase(engine, lock_timeout=5.0)
        >>> await database.initialize()
        >>> async with database.transaction() as uow:
        ...     product = await uow.products.find_for_update(product_id)
    """

    backend = "postgresql"

    def __init__(
        self,
        engine: AsyncEngine,
        *,
        lock_timeout: float | None = None,
        owns_engine: bool = False,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the PostgreSQL adapter.

        Args:
            engine: SQLAlchemy async engine (asyncpg driver)
            lock_timeout: Maximum seconds any row lock wait may take (None = server default)
            owns_engine: If True, ``close()`` disposes the engine
            tracer: Optional custom Tracer instance
            enable_tracing: If True and OpenTelemetry is available, emit traces.
                Ignored if tracer is explicitly provided.
        """
        self._engine = engine
        self._lock_timeout = lock_timeout
        self._owns_engine = owns_engine
        self._closed = False
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    @classmethod
    def from_url(
        cls,
        url: str,
        *,
        echo: bool = False,
        lock_timeout: float | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> PostgreSQLDatabase:
        """Create an adapter that owns a new engine for ``url``."""
        engine = create_async_engine(url, echo=echo)
        return cls(
            engine,
            lock_timeout=lock_timeout,
            owns_engine=True,
            tracer=tracer,
            enable_tracing=enable_tracing,
        )

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    async def initialize(self) -> None:
        """Create all tables if they don't exist. Idempotent."""
        async with self._engine.begin() as conn:
            for statement in split_statements(get_schema(backend="postgresql")):
                await conn.execute(text(statement))
        logger.info("Initialized PostgreSQL storefront schema")

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._owns_engine:
            await self._engine.dispose()
            logger.debug("Disposed PostgreSQL engine")

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[PostgreSQLUnitOfWork]:
        if self._closed:
            raise StoreError("PostgreSQLDatabase is closed")

        with self._tracer.span(
            "storefront.postgresql.transaction",
            {
                ATTR_DB_SYSTEM: "postgresql",
                ATTR_LOCK_TIMEOUT: self._lock_timeout if self._lock_timeout is not None else -1,
            },
        ):
            async with self._engine.connect() as conn:
                await conn.begin()
                uow = PostgreSQLUnitOfWork(conn, self._lock_timeout)
                try:
                    if self._lock_timeout is not None:
                        # SET does not accept bind parameters; the value is an int
                        await conn.execute(
                            text(f"SET LOCAL lock_timeout = '{int(self._lock_timeout * 1000)}ms'")
                        )
                    yield uow
                    await conn.commit()
                except BaseException:
                    await conn.rollback()
                    logger.debug("Rolled back PostgreSQL transaction")
                    raise
                finally:
                    uow._active = False

    def __repr__(self) -> str:
        return f"PostgreSQLDatabase(url={self._engine.url!r})"


class PostgreSQLUnitOfWork(UnitOfWork):
    """One transaction on a pooled connection."""

    def __init__(self, connection: AsyncConnection, lock_timeout: float | None) -> None:
        self._connection = connection
        self._lock_timeout = lock_timeout
        self._active = True
        self.users = PostgreSQLUserStore(self)
        self.products = PostgreSQLProductStore(self)
        self.orders = PostgreSQLOrderStore(self)
        self.point_history = PostgreSQLPointHistoryStore(self)

    async def execute(
        self,
        sql: str,
        params: Mapping[str, Any] | None = None,
        *,
        lock_key: str | None = None,
    ) -> Any:
        """
        Run one statement, translating driver errors.

        Raises:
            LockTimeoutError: If a row lock wait exceeded lock_timeout
            StoreError: For any other driver error
        """
        if not self._active:
            raise StoreError("Unit of work is no longer active")
        try:
            return await self._connection.execute(text(sql), dict(params or {}))
        except DBAPIError as e:
            if _sqlstate(e) == LOCK_NOT_AVAILABLE:
                raise LockTimeoutError(lock_key or "postgresql", self._lock_timeout) from e
            raise StoreError(f"PostgreSQL error: {e.orig}") from e

    async def fetch_one(
        self, sql: str, params: Mapping[str, Any], *, lock_key: str | None = None
    ) -> dict[str, Any] | None:
        result = await self.execute(sql, params, lock_key=lock_key)
        row = result.mappings().first()
        return dict(row) if row is not None else None

    async def fetch_all(
        self, sql: str, params: Mapping[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        result = await self.execute(sql, params)
        return [dict(row) for row in result.mappings().all()]

    async def insert(self, sql: str, params: Mapping[str, Any]) -> int:
        result = await self.execute(f"{sql} RETURNING id", params)
        return int(result.scalar_one())


class PostgreSQLUserStore(UserStore):
    def __init__(self, uow: PostgreSQLUnitOfWork) -> None:
        self._uow = uow

    async def _find(self, user_id: int, lock: str) -> User:
        row = await self._uow.fetch_one(
            f"SELECT {_USER_COLUMNS} FROM users WHERE id = :id{lock}",
            {"id": user_id},
            lock_key=RowLockManager.row_key("users", user_id),
        )
        if row is None:
            raise NotFoundError("User", user_id)
        return User.model_validate(row)

    async def find(self, user_id: int) -> User:
        return await self._find(user_id, "")

    async def find_for_update(self, user_id: int) -> User:
        return await self._find(user_id, " FOR UPDATE")

    async def save(self, user: User) -> User:
        params = user.model_dump(include={"name", "balance", "created_at", "updated_at"})
        if user.id is None:
            user_id = await self._uow.insert(
                "INSERT INTO users (name, balance, created_at, updated_at) "
                "VALUES (:name, :balance, :created_at, :updated_at)",
                params,
            )
            return user.model_copy(update={"id": user_id})

        result = await self._uow.execute(
            "UPDATE users SET name = :name, balance = :balance, updated_at = :updated_at "
            "WHERE id = :id",
            {**params, "id": user.id},
        )
        if result.rowcount == 0:
            raise NotFoundError("User", user.id)
        return user


class PostgreSQLProductStore(ProductStore):
    def __init__(self, uow: PostgreSQLUnitOfWork) -> None:
        self._uow = uow

    async def _find(self, product_id: int, lock: str) -> Product:
        row = await self._uow.fetch_one(
            f"SELECT {_PRODUCT_COLUMNS} FROM products WHERE id = :id{lock}",
            {"id": product_id},
            lock_key=RowLockManager.row_key("products", product_id),
        )
        if row is None:
            raise NotFoundError("Product", product_id)
        return Product.model_validate(row)

    async def find(self, product_id: int) -> Product:
        return await self._find(product_id, "")

    async def find_for_update(self, product_id: int) -> Product:
        return await self._find(product_id, " FOR UPDATE")

    async def find_all(self) -> list[Product]:
        rows = await self._uow.fetch_all(f"SELECT {_PRODUCT_COLUMNS} FROM products ORDER BY id")
        return [Product.model_validate(row) for row in rows]

    async def save(self, product: Product) -> Product:
        params = product.model_dump(exclude={"id"})
        if product.id is None:
            product_id = await self._uow.insert(
                "INSERT INTO products (name, price, stock, version, created_at, updated_at) "
                "VALUES (:name, :price, :stock, :version, :created_at, :updated_at)",
                params,
            )
            return product.model_copy(update={"id": product_id})

        result = await self._uow.execute(
            "UPDATE products SET name = :name, price = :price, stock = :stock, "
            "version = :version, updated_at = :updated_at WHERE id = :id",
            {**params, "id": product.id},
        )
        if result.rowcount == 0:
            raise NotFoundError("Product", product.id)
        return product

    async def save_with_version_check(self, product: Product, expected_version: int) -> Product:
        if product.id is None:
            raise StoreError("Cannot version-check a product that was never saved")
        result = await self._uow.execute(
            "UPDATE products SET name = :name, price = :price, "
            "version = :version, updated_at = :updated_at "
            "WHERE id = :id AND version = :expected_version",
            {
                **product.model_dump(include={"name", "price", "version", "updated_at"}),
                "id": product.id,
                "expected_version": expected_version,
            },
            lock_key=RowLockManager.row_key("products", product.id),
        )
        current = await self.find(product.id)
        if result.rowcount == 0:
            raise ConcurrentModificationError(
                "Product", product.id, expected_version, current.version
            )
        return current


class PostgreSQLOrderStore(OrderStore):
    def __init__(self, uow: PostgreSQLUnitOfWork) -> None:
        self._uow = uow

    async def _to_order(self, row: dict[str, Any]) -> Order:
        items = await self._uow.fetch_all(
            "SELECT id, product_id, quantity, price FROM order_items "
            "WHERE order_id = :order_id ORDER BY id",
            {"order_id": row["id"]},
        )
        return Order.model_validate(
            {**row, "items": tuple(OrderItem.model_validate(item) for item in items)}
        )

    async def _find(self, order_id: int, lock: str) -> Order:
        row = await self._uow.fetch_one(
            f"SELECT {_ORDER_COLUMNS} FROM orders WHERE id = :id{lock}",
            {"id": order_id},
            lock_key=RowLockManager.row_key("orders", order_id),
        )
        if row is None:
            raise NotFoundError("Order", order_id)
        return await self._to_order(row)

    async def find(self, order_id: int) -> Order:
        return await self._find(order_id, "")

    async def find_for_update(self, order_id: int) -> Order:
        return await self._find(order_id, " FOR UPDATE")

    async def find_by_user(self, user_id: int) -> list[Order]:
        rows = await self._uow.fetch_all(
            f"SELECT {_ORDER_COLUMNS} FROM orders WHERE user_id = :user_id ORDER BY id",
            {"user_id": user_id},
        )
        return [await self._to_order(row) for row in rows]

    async def save(self, order: Order) -> Order:
        if order.id is not None:
            result = await self._uow.execute(
                "UPDATE orders SET status = :status, updated_at = :updated_at WHERE id = :id",
                {"status": order.status.value, "updated_at": order.updated_at, "id": order.id},
            )
            if result.rowcount == 0:
                raise NotFoundError("Order", order.id)
            return await self.find(order.id)

        order_id = await self._uow.insert(
            "INSERT INTO orders (user_id, status, total_amount, created_at, updated_at) "
            "VALUES (:user_id, :status, :total_amount, :created_at, :updated_at)",
            {
                "user_id": order.user_id,
                "status": order.status.value,
                "total_amount": order.total_amount,
                "created_at": order.created_at,
                "updated_at": order.updated_at,
            },
        )
        items = []
        for item in order.items:
            item_id = await self._uow.insert(
                "INSERT INTO order_items (order_id, product_id, quantity, price) "
                "VALUES (:order_id, :product_id, :quantity, :price)",
                {
                    "order_id": order_id,
                    "product_id": item.product_id,
                    "quantity": item.quantity,
                    "price": item.price,
                },
            )
            items.append(item.model_copy(update={"id": item_id}))
        return order.model_copy(update={"id": order_id, "items": tuple(items)})


class PostgreSQLPointHistoryStore(PointHistoryStore):
    def __init__(self, uow: PostgreSQLUnitOfWork) -> None:
        self._uow = uow

    async def save(self, entry: PointHistory) -> PointHistory:
        if entry.id is not None:
            raise StoreError("Point history is append-only")
        entry_id = await self._uow.insert(
            "INSERT INTO point_histories "
            "(user_id, transaction_type, amount, balance_after, created_at) "
            "VALUES (:user_id, :transaction_type, :amount, :balance_after, :created_at)",
            {
                "user_id": entry.user_id,
                "transaction_type": entry.transaction_type.value,
                "amount": entry.amount,
                "balance_after": entry.balance_after,
                "created_at": entry.created_at,
            },
        )
        return entry.model_copy(update={"id": entry_id})

    async def find_by_user(self, user_id: int) -> list[PointHistory]:
        rows = await self._uow.fetch_all(
            f"SELECT {_HISTORY_COLUMNS} FROM point_histories WHERE user_id = :user_id ORDER BY id",
            {"user_id": user_id},
        )
        return [PointHistory.model_validate(row) for row in rows]

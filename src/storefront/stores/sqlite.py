"""
SQLite storage adapter.

Lightweight persistence using SQLite with async support via aiosqlite.

This implementation is suitable for:
- Development and testing environments
- Single-instance deployments
- Embedded applications

SQLite has no row locks; a write transaction locks the whole database.
Units of work therefore run one at a time on the single connection, each
inside ``BEGIN IMMEDIATE``. That is strictly stronger than the row-level
exclusivity the services need, so ``find_for_update`` is a plain read here.
Waiting for the database is bounded by ``lock_timeout``.

SQLite-specific adaptations:
- Timestamps stored as TEXT in ISO 8601 format
- Auto-increment uses INTEGER PRIMARY KEY AUTOINCREMENT
- Positional parameters (?) instead of named parameters

For high-concurrency production workloads, consider PostgreSQLDatabase.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import aiosqlite

from storefront.domain.order import Order, OrderItem
from storefront.domain.product import Product
from storefront.domain.user import PointHistory, User
from storefront.exceptions import (
    ConcurrentModificationError,
    LockTimeoutError,
    NotFoundError,
    StoreError,
)
from storefront.migrations import get_schema
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

_USER_COLUMNS = "id, name, balance, created_at, updated_at"
_PRODUCT_COLUMNS = "id, name, price, stock, version, created_at, updated_at"
_ORDER_COLUMNS = "id, user_id, status, total_amount, created_at, updated_at"
_HISTORY_COLUMNS = "id, user_id, transaction_type, amount, balance_after, created_at"


class SQLiteDatabase(Database):
    """
    SQLite implementation of the storage interface.

    Attributes:
        _database: Path to SQLite file or ':memory:' for in-memory database
        _wal_mode: Whether WAL mode is enabled
        _busy_timeout: Timeout in ms for busy database
        _lock_timeout: Seconds a unit of work may wait for the database
        _connection: The aiosqlite connection (set after connect/initialize)

    Example:
        >>> async with SQLiteDatabase(":memory:") as database:
        ...     await database.initialize()
        ...     async with database.transaction() as uow:
        ...         user = await uow.users.save(User.register("alice"))
    """

    backend = "sqlite"

    def __init__(
        self,
        database: str,
        *,
        wal_mode: bool = True,
        busy_timeout: int = 5000,
        lock_timeout: float | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize the SQLite database adapter.

        Args:
            database: Path to SQLite database file or ':memory:' for in-memory
            wal_mode: If True, enable WAL mode for file databases (default: True)
            busy_timeout: Timeout in milliseconds when database is locked (default: 5000)
            lock_timeout: Maximum seconds to wait for the write lock (None = forever)
            tracer: Optional custom Tracer instance
            enable_tracing: If True and OpenTelemetry is available, emit traces.
                Ignored if tracer is explicitly provided.
        """
        self._database = database
        self._wal_mode = wal_mode
        self._busy_timeout = busy_timeout
        self._lock_timeout = lock_timeout
        self._connection: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()

        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    async def __aenter__(self) -> SQLiteDatabase:
        await self._connect()
        return self

    async def _connect(self) -> None:
        """
        Open the database connection and configure settings.

        Called automatically by ``__aenter__`` and ``initialize``.
        """
        if self._connection is not None:
            return

        # Autocommit mode: transactions are opened explicitly with BEGIN IMMEDIATE
        self._connection = await aiosqlite.connect(self._database, isolation_level=None)

        await self._connection.execute("PRAGMA foreign_keys = ON")
        await self._connection.execute(f"PRAGMA busy_timeout = {self._busy_timeout}")

        if self._wal_mode and self._database != ":memory:":
            await self._connection.execute("PRAGMA journal_mode = WAL")

        self._connection.row_factory = aiosqlite.Row

        logger.debug(
            "Connected to SQLite database: %s (wal_mode=%s, busy_timeout=%d)",
            self._database,
            self._wal_mode,
            self._busy_timeout,
        )

    async def close(self) -> None:
        """
        Close the database connection.

        Safe to call multiple times.
        """
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            logger.debug("Closed SQLite database connection: %s", self._database)

    async def initialize(self) -> None:
        """
        Create all tables if they don't exist. Idempotent.
        """
        if self._connection is None:
            await self._connect()

        assert self._connection is not None
        await self._connection.executescript(get_schema(backend="sqlite"))
        logger.info("Initialized SQLite storefront schema: %s", self._database)

    def _ensure_connected(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise StoreError(
                "Not connected to database. Use 'async with database:' or call initialize() first."
            )
        return self._connection

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[SQLiteUnitOfWork]:
        conn = self._ensure_connected()

        with self._tracer.span(
            "storefront.sqlite.transaction",
            {
                ATTR_DB_SYSTEM: "sqlite",
                ATTR_LOCK_TIMEOUT: self._lock_timeout if self._lock_timeout is not None else -1,
            },
        ):
            try:
                async with asyncio.timeout(self._lock_timeout):
                    await self._write_lock.acquire()
            except TimeoutError:
                raise LockTimeoutError(f"sqlite:{self._database}", self._lock_timeout) from None

            uow = SQLiteUnitOfWork(conn)
            try:
                await conn.execute("BEGIN IMMEDIATE")
                try:
                    yield uow
                    await conn.commit()
                except BaseException:
                    await conn.rollback()
                    logger.debug("Rolled back SQLite transaction: %s", self._database)
                    raise
            finally:
                uow._active = False
                self._write_lock.release()

    def __repr__(self) -> str:
        return f"SQLiteDatabase(database={self._database!r}, connected={self.is_connected})"


class SQLiteUnitOfWork(UnitOfWork):
    """One ``BEGIN IMMEDIATE`` transaction on the shared connection."""

    def __init__(self, connection: aiosqlite.Connection) -> None:
        self._connection = connection
        self._active = True
        self.users = SQLiteUserStore(self)
        self.products = SQLiteProductStore(self)
        self.orders = SQLiteOrderStore(self)
        self.point_history = SQLitePointHistoryStore(self)

    @property
    def connection(self) -> aiosqlite.Connection:
        if not self._active:
            raise StoreError("Unit of work is no longer active")
        return self._connection

    async def fetch_one(self, sql: str, params: tuple[Any, ...]) -> aiosqlite.Row | None:
        async with self.connection.execute(sql, params) as cursor:
            return await cursor.fetchone()

    async def fetch_all(self, sql: str, params: tuple[Any, ...] = ()) -> list[aiosqlite.Row]:
        async with self.connection.execute(sql, params) as cursor:
            return list(await cursor.fetchall())

    async def insert(self, sql: str, params: tuple[Any, ...]) -> int:
        async with self.connection.execute(sql, params) as cursor:
            assert cursor.lastrowid is not None
            return cursor.lastrowid

    async def update(self, sql: str, params: tuple[Any, ...]) -> int:
        async with self.connection.execute(sql, params) as cursor:
            return cursor.rowcount


class SQLiteUserStore(UserStore):
    def __init__(self, uow: SQLiteUnitOfWork) -> None:
        self._uow = uow

    async def find(self, user_id: int) -> User:
        row = await self._uow.fetch_one(
            f"SELECT {_USER_COLUMNS} FROM users WHERE id = ?", (user_id,)
        )
        if row is None:
            raise NotFoundError("User", user_id)
        return User.model_validate(dict(row))

    async def find_for_update(self, user_id: int) -> User:
        return await self.find(user_id)

    async def save(self, user: User) -> User:
        if user.id is None:
            user_id = await self._uow.insert(
                "INSERT INTO users (name, balance, created_at, updated_at) VALUES (?, ?, ?, ?)",
                (user.name, user.balance, user.created_at.isoformat(), user.updated_at.isoformat()),
            )
            return user.model_copy(update={"id": user_id})

        updated = await self._uow.update(
            "UPDATE users SET name = ?, balance = ?, updated_at = ? WHERE id = ?",
            (user.name, user.balance, user.updated_at.isoformat(), user.id),
        )
        if updated == 0:
            raise NotFoundError("User", user.id)
        return user


class SQLiteProductStore(ProductStore):
    def __init__(self, uow: SQLiteUnitOfWork) -> None:
        self._uow = uow

    async def find(self, product_id: int) -> Product:
        row = await self._uow.fetch_one(
            f"SELECT {_PRODUCT_COLUMNS} FROM products WHERE id = ?", (product_id,)
        )
        if row is None:
            raise NotFoundError("Product", product_id)
        return Product.model_validate(dict(row))

    async def find_for_update(self, product_id: int) -> Product:
        return await self.find(product_id)

    async def find_all(self) -> list[Product]:
        rows = await self._uow.fetch_all(f"SELECT {_PRODUCT_COLUMNS} FROM products ORDER BY id")
        return [Product.model_validate(dict(row)) for row in rows]

    async def save(self, product: Product) -> Product:
        if product.id is None:
            product_id = await self._uow.insert(
                "INSERT INTO products (name, price, stock, version, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    product.name,
                    product.price,
                    product.stock,
                    product.version,
                    product.created_at.isoformat(),
                    product.updated_at.isoformat(),
                ),
            )
            return product.model_copy(update={"id": product_id})

        updated = await self._uow.update(
            "UPDATE products SET name = ?, price = ?, stock = ?, version = ?, updated_at = ? "
            "WHERE id = ?",
            (
                product.name,
                product.price,
                product.stock,
                product.version,
                product.updated_at.isoformat(),
                product.id,
            ),
        )
        if updated == 0:
            raise NotFoundError("Product", product.id)
        return product

    async def save_with_version_check(self, product: Product, expected_version: int) -> Product:
        if product.id is None:
            raise StoreError("Cannot version-check a product that was never saved")
        updated = await self._uow.update(
            "UPDATE products SET name = ?, price = ?, version = ?, updated_at = ? "
            "WHERE id = ? AND version = ?",
            (
                product.name,
                product.price,
                product.version,
                product.updated_at.isoformat(),
                product.id,
                expected_version,
            ),
        )
        current = await self.find(product.id)
        if updated == 0:
            raise ConcurrentModificationError(
                "Product", product.id, expected_version, current.version
            )
        return current


class SQLiteOrderStore(OrderStore):
    def __init__(self, uow: SQLiteUnitOfWork) -> None:
        self._uow = uow

    async def _load_items(self, order_id: int) -> tuple[OrderItem, ...]:
        rows = await self._uow.fetch_all(
            "SELECT id, product_id, quantity, price FROM order_items "
            "WHERE order_id = ? ORDER BY id",
            (order_id,),
        )
        return tuple(OrderItem.model_validate(dict(row)) for row in rows)

    async def _to_order(self, row: aiosqlite.Row) -> Order:
        data = dict(row)
        data["items"] = await self._load_items(data["id"])
        return Order.model_validate(data)

    async def find(self, order_id: int) -> Order:
        row = await self._uow.fetch_one(
            f"SELECT {_ORDER_COLUMNS} FROM orders WHERE id = ?", (order_id,)
        )
        if row is None:
            raise NotFoundError("Order", order_id)
        return await self._to_order(row)

    async def find_for_update(self, order_id: int) -> Order:
        return await self.find(order_id)

    async def find_by_user(self, user_id: int) -> list[Order]:
        rows = await self._uow.fetch_all(
            f"SELECT {_ORDER_COLUMNS} FROM orders WHERE user_id = ? ORDER BY id", (user_id,)
        )
        return [await self._to_order(row) for row in rows]

    async def save(self, order: Order) -> Order:
        if order.id is not None:
            updated = await self._uow.update(
                "UPDATE orders SET status = ?, updated_at = ? WHERE id = ?",
                (order.status.value, order.updated_at.isoformat(), order.id),
            )
            if updated == 0:
                raise NotFoundError("Order", order.id)
            return await self.find(order.id)

        order_id = await self._uow.insert(
            "INSERT INTO orders (user_id, status, total_amount, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?)",
            (
                order.user_id,
                order.status.value,
                order.total_amount,
                order.created_at.isoformat(),
                order.updated_at.isoformat(),
            ),
        )
        items = []
        for item in order.items:
            item_id = await self._uow.insert(
                "INSERT INTO order_items (order_id, product_id, quantity, price) "
                "VALUES (?, ?, ?, ?)",
                (order_id, item.product_id, item.quantity, item.price),
            )
            items.append(item.model_copy(update={"id": item_id}))
        return order.model_copy(update={"id": order_id, "items": tuple(items)})


class SQLitePointHistoryStore(PointHistoryStore):
    def __init__(self, uow: SQLiteUnitOfWork) -> None:
        self._uow = uow

    async def save(self, entry: PointHistory) -> PointHistory:
        if entry.id is not None:
            raise StoreError("Point history is append-only")
        entry_id = await self._uow.insert(
            "INSERT INTO point_histories "
            "(user_id, transaction_type, amount, balance_after, created_at) "
            "VALUES (?, ?, ?, ?, ?)",
            (
                entry.user_id,
                entry.transaction_type.value,
                entry.amount,
                entry.balance_after,
                entry.created_at.isoformat(),
            ),
        )
        return entry.model_copy(update={"id": entry_id})

    async def find_by_user(self, user_id: int) -> list[PointHistory]:
        rows = await self._uow.fetch_all(
            f"SELECT {_HISTORY_COLUMNS} FROM point_histories WHERE user_id = ? ORDER BY id",
            (user_id,),
        )
        return [PointHistory.model_validate(dict(row)) for row in rows]

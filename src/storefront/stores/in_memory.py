"""
In-memory storage adapter.

Useful for testing and development. Not suitable for production as all data
is lost when the process terminates.

Transactions are real, not simulated: each unit of work writes into a private
overlay that becomes visible to others only on commit, and ``find_for_update``
takes a row lock (``RowLockManager``) that is held until the unit of work
ends. Concurrent coroutines therefore see exactly the semantics the SQL
adapters give: serialized read-check-write on a locked row, no torn state,
and nothing retained after a rollback.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager
from typing import Any, TypeVar

from pydantic import BaseModel

from storefront.domain.order import Order
from storefront.domain.product import Product
from storefront.domain.user import PointHistory, User
from storefront.exceptions import ConcurrentModificationError, NotFoundError, StoreError
from storefront.locks import RowLockManager
from storefront.observability import Tracer, create_tracer
from storefront.stores.interface import (
    Database,
    OrderStore,
    PointHistoryStore,
    ProductStore,
    UnitOfWork,
    UserStore,
)

logger = logging.getLogger(__name__)

TModel = TypeVar("TModel", bound=BaseModel)

USERS = "users"
PRODUCTS = "products"
ORDERS = "orders"
ORDER_ITEMS = "order_items"
POINT_HISTORIES = "point_histories"

_TABLES = (USERS, PRODUCTS, ORDERS, POINT_HISTORIES)
_ENTITY_NAMES = {USERS: "User", PRODUCTS: "Product", ORDERS: "Order"}


class InMemoryDatabase(Database):
    """
    In-memory implementation of the storage interface.

    Attributes:
        _tables: Committed rows per table, keyed by id
        _sequences: Id generators per table (ids are never reused, even
            when the inserting transaction rolls back)
        _locks: Row lock manager shared by all units of work

    Example:
        >>> database = InMemoryDatabase(lock_timeout=5.0)
        >>> async with database.transaction() as uow:
        ...     product = await uow.products.save(Product.create("pen", 100, 10))
    """

    backend = "memory"

    def __init__(
        self,
        *,
        lock_timeout: float | None = None,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        """
        Initialize an empty in-memory database.

        Args:
            lock_timeout: Maximum seconds a row lock wait may take (None = forever)
            tracer: Optional custom Tracer instance
            enable_tracing: If True and OpenTelemetry is available, emit traces.
                Ignored if tracer is explicitly provided.
        """
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._tables: dict[str, dict[int, BaseModel]] = {name: {} for name in _TABLES}
        self._sequences: dict[str, Iterator[int]] = {
            name: itertools.count(1) for name in (*_TABLES, ORDER_ITEMS)
        }
        self._locks = RowLockManager(tracer=self._tracer)
        self._lock_timeout = lock_timeout
        self._closed = False

    @property
    def locks(self) -> RowLockManager:
        """The row lock manager (exposed for diagnostics and tests)."""
        return self._locks

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[InMemoryUnitOfWork]:
        """
        Open a unit of work.

        Normal exit applies the overlay to the committed tables before any
        lock is released; an exception discards the overlay.
        """
        if self._closed:
            raise StoreError("InMemoryDatabase is closed")

        uow = InMemoryUnitOfWork(self)
        try:
            yield uow
        except BaseException:
            uow._discard()
            logger.debug("Rolled back in-memory unit of work")
            raise
        else:
            uow._apply()
        finally:
            self._locks.release_all(uow)

    async def initialize(self) -> None:
        """Nothing to create; tables exist from construction."""
        self._closed = False

    async def close(self) -> None:
        self._closed = True

    def clear(self) -> None:
        """Drop all committed rows. Useful for test teardown."""
        for table in self._tables.values():
            table.clear()

    def next_id(self, table: str) -> int:
        return next(self._sequences[table])

    def __repr__(self) -> str:
        sizes = ", ".join(f"{name}={len(rows)}" for name, rows in self._tables.items())
        return f"InMemoryDatabase({sizes})"


class InMemoryUnitOfWork(UnitOfWork):
    """One transaction against an ``InMemoryDatabase``."""

    def __init__(self, database: InMemoryDatabase) -> None:
        self._database = database
        self._writes: dict[str, dict[int, BaseModel]] = {name: {} for name in _TABLES}
        self._active = True
        self.users = InMemoryUserStore(self)
        self.products = InMemoryProductStore(self)
        self.orders = InMemoryOrderStore(self)
        self.point_history = InMemoryPointHistoryStore(self)

    # -- row access used by the stores ---------------------------------

    def _check_active(self) -> None:
        if not self._active:
            raise StoreError("Unit of work is no longer active")

    def _get(self, table: str, row_id: int) -> BaseModel | None:
        self._check_active()
        row = self._writes[table].get(row_id)
        if row is None:
            row = self._database._tables[table].get(row_id)
        return row.model_copy(deep=True) if row is not None else None

    def _require(self, table: str, row_id: int) -> Any:
        row = self._get(table, row_id)
        if row is None:
            raise NotFoundError(_ENTITY_NAMES.get(table, table), row_id)
        return row

    async def _lock(self, table: str, row_id: int) -> None:
        self._check_active()
        await self._database._locks.acquire(
            RowLockManager.row_key(table, row_id),
            owner=self,
            timeout=self._database._lock_timeout,
        )

    def _put(self, table: str, row: TModel) -> TModel:
        self._check_active()
        assert row.id is not None  # type: ignore[attr-defined]
        self._writes[table][row.id] = row.model_copy(deep=True)  # type: ignore[attr-defined]
        return row

    def _scan(self, table: str) -> list[Any]:
        self._check_active()
        merged = {**self._database._tables[table], **self._writes[table]}
        return [merged[row_id].model_copy(deep=True) for row_id in sorted(merged)]

    # -- transaction end ------------------------------------------------

    def _apply(self) -> None:
        for table, rows in self._writes.items():
            self._database._tables[table].update(rows)
        self._active = False

    def _discard(self) -> None:
        for rows in self._writes.values():
            rows.clear()
        self._active = False


class InMemoryUserStore(UserStore):
    def __init__(self, uow: InMemoryUnitOfWork) -> None:
        self._uow = uow

    async def find(self, user_id: int) -> User:
        return self._uow._require(USERS, user_id)  # type: ignore[no-any-return]

    async def find_for_update(self, user_id: int) -> User:
        # Existence first so a missing row does not leave a dangling lock entry
        self._uow._require(USERS, user_id)
        await self._uow._lock(USERS, user_id)
        return self._uow._require(USERS, user_id)  # type: ignore[no-any-return]

    async def save(self, user: User) -> User:
        if user.id is None:
            user = user.model_copy(update={"id": self._uow._database.next_id(USERS)})
        return self._uow._put(USERS, user)


class InMemoryProductStore(ProductStore):
    def __init__(self, uow: InMemoryUnitOfWork) -> None:
        self._uow = uow

    async def find(self, product_id: int) -> Product:
        return self._uow._require(PRODUCTS, product_id)  # type: ignore[no-any-return]

    async def find_for_update(self, product_id: int) -> Product:
        self._uow._require(PRODUCTS, product_id)
        await self._uow._lock(PRODUCTS, product_id)
        return self._uow._require(PRODUCTS, product_id)  # type: ignore[no-any-return]

    async def find_all(self) -> list[Product]:
        return self._uow._scan(PRODUCTS)

    async def save(self, product: Product) -> Product:
        if product.id is None:
            product = product.model_copy(update={"id": self._uow._database.next_id(PRODUCTS)})
        return self._uow._put(PRODUCTS, product)

    async def save_with_version_check(self, product: Product, expected_version: int) -> Product:
        if product.id is None:
            raise StoreError("Cannot version-check a product that was never saved")
        await self._uow._lock(PRODUCTS, product.id)
        stored: Product = self._uow._require(PRODUCTS, product.id)
        if stored.version != expected_version:
            raise ConcurrentModificationError(
                "Product", product.id, expected_version, stored.version
            )
        stored = stored.model_copy(
            update=product.model_dump(include={"name", "price", "version", "updated_at"})
        )
        return self._uow._put(PRODUCTS, stored)


class InMemoryOrderStore(OrderStore):
    def __init__(self, uow: InMemoryUnitOfWork) -> None:
        self._uow = uow

    async def find(self, order_id: int) -> Order:
        return self._uow._require(ORDERS, order_id)  # type: ignore[no-any-return]

    async def find_for_update(self, order_id: int) -> Order:
        self._uow._require(ORDERS, order_id)
        await self._uow._lock(ORDERS, order_id)
        return self._uow._require(ORDERS, order_id)  # type: ignore[no-any-return]

    async def find_by_user(self, user_id: int) -> list[Order]:
        return [order for order in self._uow._scan(ORDERS) if order.user_id == user_id]

    async def save(self, order: Order) -> Order:
        database = self._uow._database
        if order.id is None:
            items = tuple(
                item.model_copy(update={"id": database.next_id(ORDER_ITEMS)})
                for item in order.items
            )
            order = order.model_copy(update={"id": database.next_id(ORDERS), "items": items})
        else:
            stored: Order = self._uow._require(ORDERS, order.id)
            order = stored.model_copy(
                update={"status": order.status, "updated_at": order.updated_at}
            )
        return self._uow._put(ORDERS, order)


class InMemoryPointHistoryStore(PointHistoryStore):
    def __init__(self, uow: InMemoryUnitOfWork) -> None:
        self._uow = uow

    async def save(self, entry: PointHistory) -> PointHistory:
        if entry.id is not None:
            raise StoreError("Point history is append-only")
        entry = entry.model_copy(update={"id": self._uow._database.next_id(POINT_HISTORIES)})
        return self._uow._put(POINT_HISTORIES, entry)

    async def find_by_user(self, user_id: int) -> list[PointHistory]:
        return [entry for entry in self._uow._scan(POINT_HISTORIES) if entry.user_id == user_id]

"""
Storage interfaces consumed by the storefront services.

The services never talk to a database directly. They open an explicit unit
of work through ``Database.transaction()`` and use the stores it exposes:

    >>> async with database.transaction() as uow:
    ...     product = await uow.products.find_for_update(product_id)
    ...     product.decrease_stock(1)
    ...     await uow.products.save(product)
    ... # committed here; any exception inside the block rolls everything back

Locking contract:
    ``find_for_update`` returns the row with an exclusive lock held until the
    unit of work commits or rolls back. A concurrent ``find_for_update`` on
    the same row blocks until then and observes the committed result.
    Plain ``find`` never blocks.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from typing import Any, Self

from storefront.domain.order import Order
from storefront.domain.product import Product
from storefront.domain.user import PointHistory, User


class UserStore(ABC):
    """Persistence for users."""

    @abstractmethod
    async def find(self, user_id: int) -> User:
        """
        Load a user.

        Raises:
            NotFoundError: If no user has this id
        """
        ...

    @abstractmethod
    async def find_for_update(self, user_id: int) -> User:
        """
        Load a user and hold its row lock until the unit of work ends.

        Raises:
            NotFoundError: If no user has this id
            LockTimeoutError: If the lock wait exceeded the configured timeout
        """
        ...

    @abstractmethod
    async def save(self, user: User) -> User:
        """Insert (id is None) or update a user; returns it with its id set."""
        ...


class ProductStore(ABC):
    """Persistence for products."""

    @abstractmethod
    async def find(self, product_id: int) -> Product:
        """
        Load a product without locking.

        Raises:
            NotFoundError: If no product has this id
        """
        ...

    @abstractmethod
    async def find_for_update(self, product_id: int) -> Product:
        """
        Load a product and hold its row lock until the unit of work ends.

        Raises:
            NotFoundError: If no product has this id
            LockTimeoutError: If the lock wait exceeded the configured timeout
        """
        ...

    @abstractmethod
    async def find_all(self) -> list[Product]:
        """All products ordered by id."""
        ...

    @abstractmethod
    async def save(self, product: Product) -> Product:
        """Insert (id is None) or update a product; returns it with its id set."""
        ...

    @abstractmethod
    async def save_with_version_check(self, product: Product, expected_version: int) -> Product:
        """
        Update a product only if the stored revision is still ``expected_version``.

        Only name, price, version and updated_at are written; stock is left
        as stored, so concurrent stock changes are never overwritten. The
        check and the write are atomic with respect to other units of work.
        Returns the product as stored after the write.

        Raises:
            NotFoundError: If no product has this id
            ConcurrentModificationError: If the stored revision differs
            StoreError: If the product has never been saved
        """
        ...


class OrderStore(ABC):
    """Persistence for orders and their items."""

    @abstractmethod
    async def find(self, order_id: int) -> Order:
        """
        Load an order with its items.

        Raises:
            NotFoundError: If no order has this id
        """
        ...

    @abstractmethod
    async def find_for_update(self, order_id: int) -> Order:
        """
        Load an order and hold its row lock until the unit of work ends.

        Raises:
            NotFoundError: If no order has this id
            LockTimeoutError: If the lock wait exceeded the configured timeout
        """
        ...

    @abstractmethod
    async def find_by_user(self, user_id: int) -> list[Order]:
        """All orders of a user, oldest first."""
        ...

    @abstractmethod
    async def save(self, order: Order) -> Order:
        """
        Insert or update an order.

        Items are written once, on insert; later saves only update the
        order's status and timestamp. Returns the order with the ids of the
        order and its items set.
        """
        ...


class PointHistoryStore(ABC):
    """Append-only persistence for point history entries."""

    @abstractmethod
    async def save(self, entry: PointHistory) -> PointHistory:
        """Append an entry; returns it with its id set."""
        ...

    @abstractmethod
    async def find_by_user(self, user_id: int) -> list[PointHistory]:
        """All entries of a user, oldest first."""
        ...


class UnitOfWork(ABC):
    """
    One failure-atomic boundary with access to every store.

    Everything written through these stores is committed together when the
    ``Database.transaction()`` block exits normally and discarded together
    when it exits with an exception.
    """

    users: UserStore
    products: ProductStore
    orders: OrderStore
    point_history: PointHistoryStore


class Database(ABC):
    """
    Factory for units of work over one storage backend.

    Example:
        >>> async with SQLiteDatabase("shop.db") as database:
        ...     await database.initialize()
        ...     async with database.transaction() as uow:
        ...         user = await uow.users.save(User.register("alice"))
    """

    #: Short backend name used for logs and span attributes.
    backend: str = "unknown"

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[UnitOfWork]:
        """
        Open a unit of work as an async context manager.

        Normal exit commits; any exception rolls back every write and
        releases every lock taken inside the block, then propagates.
        """
        ...

    @abstractmethod
    async def initialize(self) -> None:
        """Create the schema if needed. Idempotent."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release connections. Safe to call more than once."""
        ...

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        await self.close()


__all__ = [
    "Database",
    "OrderStore",
    "PointHistoryStore",
    "ProductStore",
    "UnitOfWork",
    "UserStore",
]

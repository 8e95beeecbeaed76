"""
Application container.

``Storefront`` wires one database to the services by explicit constructor
injection; there is no global registry or service locator.

Example:
    >>> config = StorefrontConfig(backend="sqlite", database="shop.db")
    >>> async with Storefront.from_config(config) as shop:
    ...     user = await shop.users.create_user("alice")
    ...     await shop.users.charge_point(user.id, 10_000)
    ...     pen = await shop.products.create_product("pen", 1_500, 10)
    ...     order = await shop.orders.create_order(user.id, {pen.id: 2})
"""

from __future__ import annotations

import logging
from typing import Any

from storefront.config import StorefrontConfig
from storefront.observability import Tracer, create_tracer
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
)

logger = logging.getLogger(__name__)


def create_database(config: StorefrontConfig, tracer: Tracer | None = None) -> Database:
    """Build the storage adapter selected by ``config.backend``."""
    if config.backend == "sqlite":
        return SQLiteDatabase(
            config.database,
            wal_mode=config.wal_mode,
            busy_timeout=config.busy_timeout,
            lock_timeout=config.lock_timeout,
            tracer=tracer,
            enable_tracing=config.enable_tracing,
        )
    if config.backend == "postgresql":
        return PostgreSQLDatabase.from_url(
            config.database,
            echo=config.echo_sql,
            lock_timeout=config.lock_timeout,
            tracer=tracer,
            enable_tracing=config.enable_tracing,
        )
    return InMemoryDatabase(
        lock_timeout=config.lock_timeout,
        tracer=tracer,
        enable_tracing=config.enable_tracing,
    )


class Storefront:
    """
    The storefront services over one database.

    Attributes:
        database: Storage backend shared by all services
        users: User registration and point operations
        products: Catalog operations
        orders: Order creation, payment and cancellation
    """

    def __init__(
        self,
        database: Database,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self.database = database

        ledger = PointLedger(tracer=self._tracer)
        stock = StockManager(tracer=self._tracer)

        self.users = UserService(database, ledger, tracer=self._tracer)
        self.products = ProductService(database, tracer=self._tracer)
        self.orders = OrderOrchestrator(database, stock, ledger, tracer=self._tracer)

    @classmethod
    def from_config(cls, config: StorefrontConfig, tracer: Tracer | None = None) -> Storefront:
        """Build the database and services described by ``config``."""
        tracer = tracer or create_tracer(__name__, config.enable_tracing)
        return cls(create_database(config, tracer), tracer=tracer)

    async def start(self) -> None:
        """Connect and create the schema if needed."""
        await self.database.initialize()
        logger.info("Storefront started on %s backend", self.database.backend)

    async def stop(self) -> None:
        await self.database.close()
        logger.info("Storefront stopped")

    async def __aenter__(self) -> Storefront:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        await self.stop()

    def __repr__(self) -> str:
        return f"Storefront(backend={self.database.backend!r})"

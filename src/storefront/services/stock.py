"""
Stock management and the product service.

``StockManager`` applies stock changes inside a caller-supplied unit of
work. It is the only component that decrements stock, and every decrement
happens on a row obtained with ``find_for_update``: the row lock is held
until the unit of work ends, so concurrent buyers of one product are served
one at a time and each sees the stock left by the previous one.

``ProductService`` is the caller-facing surface for the catalog. Each of
its methods opens its own unit of work.
"""

from __future__ import annotations

import logging

from storefront.domain.base import require_non_negative, require_positive
from storefront.domain.product import Product
from storefront.exceptions import ConcurrentModificationError, InsufficientStockError
from storefront.observability import (
    ATTR_EXPECTED_VERSION,
    ATTR_PRODUCT_ID,
    ATTR_QUANTITY,
    Tracer,
    create_tracer,
)
from storefront.stores.interface import Database, UnitOfWork

logger = logging.getLogger(__name__)


class StockManager:
    """
    Applies stock decrements and increments under the product row lock.

    Example:
        >>> stock = StockManager()
        >>> async with database.transaction() as uow:
        ...     product = await stock.decrease(uow, product_id, 2)
    """

    def __init__(
        self,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    async def decrease(self, uow: UnitOfWork, product_id: int, quantity: int) -> Product:
        """
        Remove ``quantity`` units from a product.

        Args:
            uow: Unit of work the change belongs to
            product_id: Product to decrement
            quantity: Units to remove (> 0)

        Returns:
            The updated product, read under the row lock

        Raises:
            ValidationError: If quantity is not a positive integer
            NotFoundError: If the product does not exist
            InsufficientStockError: If fewer than quantity units remain
        """
        require_positive(quantity, "quantity")
        with self._tracer.span(
            "storefront.stock.decrease",
            {ATTR_PRODUCT_ID: product_id, ATTR_QUANTITY: quantity},
        ):
            product = await uow.products.find_for_update(product_id)
            try:
                product.decrease_stock(quantity)
            except InsufficientStockError:
                logger.info(
                    "Insufficient stock for product %s: requested %d, available %d",
                    product_id,
                    quantity,
                    product.stock,
                )
                raise
            return await uow.products.save(product)

    async def increase(self, uow: UnitOfWork, product_id: int, quantity: int) -> Product:
        """
        Return ``quantity`` units to a product.

        Raises:
            ValidationError: If quantity is not a positive integer
            NotFoundError: If the product does not exist
        """
        require_positive(quantity, "quantity")
        with self._tracer.span(
            "storefront.stock.increase",
            {ATTR_PRODUCT_ID: product_id, ATTR_QUANTITY: quantity},
        ):
            product = await uow.products.find_for_update(product_id)
            product.increase_stock(quantity)
            return await uow.products.save(product)


class ProductService:
    """Catalog operations, one unit of work per call."""

    def __init__(
        self,
        database: Database,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._database = database
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    async def create_product(self, name: str, price: int, stock: int) -> Product:
        """
        Register a new product.

        Raises:
            ValidationError: If name is blank or price/stock is negative
        """
        product = Product.create(name, price, stock)
        with self._tracer.span("storefront.product.create"):
            async with self._database.transaction() as uow:
                product = await uow.products.save(product)
        logger.info(
            "Created product %s",
            product.id,
            extra={"product_id": product.id, "price": product.price, "stock": product.stock},
        )
        return product

    async def get_product(self, product_id: int) -> Product:
        async with self._database.transaction() as uow:
            return await uow.products.find(product_id)

    async def get_all_products(self) -> list[Product]:
        async with self._database.transaction() as uow:
            return await uow.products.find_all()

    async def update_price(
        self,
        product_id: int,
        new_price: int,
        expected_version: int | None = None,
    ) -> Product:
        """
        Change a product's unit price.

        The row is locked before its revision is read, so without
        ``expected_version`` concurrent re-prices apply one after another.
        Existing orders keep their own price snapshots and totals.

        Args:
            product_id: Product to re-price
            new_price: New unit price (>= 0)
            expected_version: Revision the caller last read; when given and no
                longer current, the update is rejected

        Returns:
            The product with its new price and incremented version

        Raises:
            ValidationError: If new_price is negative or not an integer
            NotFoundError: If the product does not exist
            ConcurrentModificationError: If expected_version is stale
        """
        require_non_negative(new_price, "price")
        with self._tracer.span(
            "storefront.product.update_price",
            {
                ATTR_PRODUCT_ID: product_id,
                ATTR_EXPECTED_VERSION: expected_version if expected_version is not None else -1,
            },
        ):
            async with self._database.transaction() as uow:
                product = await uow.products.find_for_update(product_id)
                base_version = product.version if expected_version is None else expected_version
                if product.version != base_version:
                    logger.info(
                        "Rejected stale price update for product %s: expected version %d, "
                        "current %d",
                        product_id,
                        base_version,
                        product.version,
                    )
                    raise ConcurrentModificationError(
                        "Product", product_id, base_version, product.version
                    )
                product.change_price(new_price)
                product = await uow.products.save_with_version_check(product, base_version)

        logger.info(
            "Updated price of product %s to %d (version %d)",
            product_id,
            product.price,
            product.version,
        )
        return product

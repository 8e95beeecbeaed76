"""Product model with finite stock and a revision counter for price changes."""

from __future__ import annotations

from pydantic import Field

from storefront.domain.base import (
    Entity,
    require_non_blank,
    require_non_negative,
    require_positive,
)
from storefront.exceptions import InsufficientStockError


class Product(Entity):
    """
    A sellable product.

    Stock changes are applied under an exclusive row lock and never touch
    ``version``. The revision counter only guards the uncontended
    price-change path.

    Attributes:
        name: Product name
        price: Unit price in the smallest currency unit (>= 0)
        stock: Units currently available (>= 0)
        version: Revision counter, incremented by price changes only
    """

    name: str
    price: int = Field(ge=0)
    stock: int = Field(ge=0)
    version: int = Field(default=1, ge=1)

    @classmethod
    def create(cls, name: str, price: int, stock: int) -> Product:
        """
        Create a new product.

        Raises:
            ValidationError: If name is blank or price/stock is negative
        """
        return cls(
            name=require_non_blank(name, "name"),
            price=require_non_negative(price, "price"),
            stock=require_non_negative(stock, "stock"),
        )

    def decrease_stock(self, quantity: int) -> None:
        """
        Remove ``quantity`` units. Callers must hold the row lock.

        Raises:
            ValidationError: If quantity is not a positive integer
            InsufficientStockError: If fewer than quantity units remain
        """
        require_positive(quantity, "quantity")
        if self.stock < quantity:
            raise InsufficientStockError(
                product_id=self.id if self.id is not None else 0,
                requested=quantity,
                available=self.stock,
            )
        self.stock = self.stock - quantity
        self.touch()

    def increase_stock(self, quantity: int) -> None:
        """
        Add ``quantity`` units back.

        Raises:
            ValidationError: If quantity is not a positive integer
        """
        require_positive(quantity, "quantity")
        self.stock = self.stock + quantity
        self.touch()

    def change_price(self, new_price: int) -> None:
        """
        Set a new unit price and bump the revision.

        Raises:
            ValidationError: If new_price is negative
        """
        self.price = require_non_negative(new_price, "price")
        self.version = self.version + 1
        self.touch()

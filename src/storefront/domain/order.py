"""
Order aggregate.

An order is built once from price snapshots and never re-priced. Its
lifecycle is a small state machine:

    PENDING --pay()-->    PAID
    PENDING --cancel()--> CANCELLED
    PAID    --cancel()--> CANCELLED

Any other transition raises InvalidStateError and leaves the order as it
was. The aggregate owns its items by value and never touches users or
products; balance and stock effects belong to the orchestrator.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field

from storefront.domain.base import Entity, require_non_negative, require_positive
from storefront.exceptions import InvalidStateError, ValidationError


class OrderStatus(str, Enum):
    """Lifecycle status of an order."""

    PENDING = "PENDING"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


@dataclass(frozen=True)
class OrderLine:
    """
    Input for one order item: a product, a quantity and the unit price
    captured when the product row was locked.
    """

    product_id: int
    quantity: int
    unit_price: int


class OrderItem(BaseModel):
    """
    Immutable line item of an order.

    Attributes:
        id: Store-assigned identifier (None until saved)
        product_id: Ordered product
        quantity: Units ordered (> 0)
        price: Unit price snapshot taken at order creation
    """

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int | None = None
    product_id: int
    quantity: int = Field(gt=0)
    price: int = Field(ge=0)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_price(self) -> int:
        """Unit price times quantity."""
        return self.price * self.quantity


class Order(Entity):
    """
    Order aggregate root.

    ``user_id``, ``total_amount`` and ``items`` are frozen after
    construction; only ``status`` changes, through ``pay()`` and
    ``cancel()``.

    Example:
        >>> order = Order.create(user_id=1, lines=[OrderLine(7, 2, 1500)])
        >>> order.total_amount
        3000
        >>> order.pay()
        >>> order.status
        <OrderStatus.PAID: 'PAID'>
    """

    user_id: int = Field(frozen=True)
    status: OrderStatus = OrderStatus.PENDING
    total_amount: int = Field(ge=0, frozen=True)
    items: tuple[OrderItem, ...] = Field(frozen=True)

    @classmethod
    def create(cls, user_id: int | None, lines: Sequence[OrderLine]) -> Order:
        """
        Build a PENDING order and freeze its total.

        Args:
            user_id: Owning user
            lines: Non-empty, ordered item inputs with price snapshots

        Raises:
            ValidationError: If user_id is missing, lines is empty, or a
                line has a non-positive quantity or negative price
        """
        if user_id is None:
            raise ValidationError("order requires a user", field="user_id")
        if not lines:
            raise ValidationError("order requires at least one item", field="items")

        items = tuple(
            OrderItem(
                product_id=line.product_id,
                quantity=require_positive(line.quantity, "quantity"),
                price=require_non_negative(line.unit_price, "price"),
            )
            for line in lines
        )
        return cls(
            user_id=user_id,
            total_amount=sum(item.total_price for item in items),
            items=items,
        )

    def pay(self) -> None:
        """
        Mark the order as paid.

        Balance is debited when the order is created, so this only moves
        the status forward.

        Raises:
            InvalidStateError: If the order is not PENDING or has no items
        """
        if self.status is not OrderStatus.PENDING or not self.items:
            raise InvalidStateError(self.id, self.status.value, "pay")
        self.status = OrderStatus.PAID
        self.touch()

    def cancel(self) -> OrderStatus:
        """
        Cancel the order.

        Returns:
            The status the order had before cancellation

        Raises:
            InvalidStateError: If the order is already CANCELLED
        """
        if self.status is OrderStatus.CANCELLED:
            raise InvalidStateError(self.id, self.status.value, "cancel")
        previous = self.status
        self.status = OrderStatus.CANCELLED
        self.touch()
        return previous

    @property
    def is_cancelled(self) -> bool:
        return self.status is OrderStatus.CANCELLED

    @property
    def product_quantities(self) -> dict[int, int]:
        """Quantity per product id, as restored on cancellation."""
        quantities: dict[int, int] = {}
        for item in self.items:
            quantities[item.product_id] = quantities.get(item.product_id, 0) + item.quantity
        return quantities

"""
User and point history models.

A user's balance is only changed through ``charge()`` and ``use()``, and
every change is mirrored by exactly one immutable ``PointHistory`` entry.
The entry is created by the point ledger, which persists both in the same
unit of work.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from storefront.domain.base import Entity, require_non_blank, require_positive, utcnow
from storefront.exceptions import InsufficientBalanceError, ValidationError


class PointTransactionType(str, Enum):
    """Kind of a point ledger mutation; the kind implies the sign."""

    CHARGE = "CHARGE"
    USE = "USE"


class User(Entity):
    """
    A user with a spendable point balance.

    Attributes:
        name: Display name
        balance: Spendable points in the smallest currency unit (>= 0)

    Example:
        >>> user = User.register("alice")
        >>> user.charge(1000)
        >>> user.use(300)
        >>> user.balance
        700
    """

    name: str
    balance: int = Field(default=0, ge=0)

    @classmethod
    def register(cls, name: str) -> User:
        """
        Create a new user with a zero balance.

        Raises:
            ValidationError: If name is blank
        """
        return cls(name=require_non_blank(name, "name"))

    def charge(self, amount: int) -> None:
        """
        Add ``amount`` points to the balance.

        Raises:
            ValidationError: If amount is not a positive integer
        """
        require_positive(amount, "amount")
        self.balance = self.balance + amount
        self.touch()

    def use(self, amount: int) -> None:
        """
        Spend ``amount`` points.

        Raises:
            ValidationError: If amount is not a positive integer
            InsufficientBalanceError: If the balance is smaller than amount
        """
        require_positive(amount, "amount")
        if self.balance < amount:
            raise InsufficientBalanceError(
                user_id=self.id if self.id is not None else 0,
                requested=amount,
                available=self.balance,
            )
        self.balance = self.balance - amount
        self.touch()


class PointHistory(BaseModel):
    """
    Immutable record of one point ledger mutation.

    Attributes:
        id: Store-assigned identifier (None until saved)
        user_id: Owning user
        transaction_type: CHARGE or USE
        amount: Magnitude of the change (always positive)
        balance_after: User balance right after the change
        created_at: When the change was recorded
    """

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int | None = None
    user_id: int
    transaction_type: PointTransactionType
    amount: int = Field(gt=0)
    balance_after: int = Field(ge=0)
    created_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def record(
        cls, user: User, transaction_type: PointTransactionType, amount: int
    ) -> PointHistory:
        """Build the history entry for a mutation just applied to ``user``."""
        if user.id is None:
            raise ValidationError("point history requires a persisted user", field="user_id")
        return cls(
            user_id=user.id,
            transaction_type=transaction_type,
            amount=amount,
            balance_after=user.balance,
        )

    @property
    def signed_amount(self) -> int:
        """Amount with its sign: positive for CHARGE, negative for USE."""
        if self.transaction_type is PointTransactionType.USE:
            return -self.amount
        return self.amount

"""
Point ledger and the user service.

Every balance change goes through ``PointLedger`` and produces exactly one
``PointHistory`` row in the same unit of work, so a user's balance always
equals the signed sum of their history.
"""

from __future__ import annotations

import logging

from storefront.domain.base import require_positive
from storefront.domain.user import PointHistory, PointTransactionType, User
from storefront.exceptions import InsufficientBalanceError
from storefront.observability import ATTR_AMOUNT, ATTR_USER_ID, Tracer, create_tracer
from storefront.stores.interface import Database, UnitOfWork

logger = logging.getLogger(__name__)


class PointLedger:
    """
    Credits and debits user balances under the user row lock.

    Neither operation is idempotent: calling ``credit`` twice credits twice.
    """

    def __init__(
        self,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)

    async def credit(self, uow: UnitOfWork, user_id: int, amount: int) -> User:
        """
        Add ``amount`` points and record a CHARGE entry.

        Raises:
            ValidationError: If amount is not a positive integer
            NotFoundError: If the user does not exist
        """
        require_positive(amount, "amount")
        with self._tracer.span(
            "storefront.points.credit",
            {ATTR_USER_ID: user_id, ATTR_AMOUNT: amount},
        ):
            user = await uow.users.find_for_update(user_id)
            user.charge(amount)
            return await self._record(uow, user, PointTransactionType.CHARGE, amount)

    async def debit(self, uow: UnitOfWork, user_id: int, amount: int) -> User:
        """
        Spend ``amount`` points and record a USE entry.

        Raises:
            ValidationError: If amount is not a positive integer
            NotFoundError: If the user does not exist
            InsufficientBalanceError: If the balance is smaller than amount
        """
        require_positive(amount, "amount")
        with self._tracer.span(
            "storefront.points.debit",
            {ATTR_USER_ID: user_id, ATTR_AMOUNT: amount},
        ):
            user = await uow.users.find_for_update(user_id)
            try:
                user.use(amount)
            except InsufficientBalanceError:
                logger.info(
                    "Insufficient balance for user %s: requested %d, available %d",
                    user_id,
                    amount,
                    user.balance,
                )
                raise
            return await self._record(uow, user, PointTransactionType.USE, amount)

    async def _record(
        self,
        uow: UnitOfWork,
        user: User,
        transaction_type: PointTransactionType,
        amount: int,
    ) -> User:
        user = await uow.users.save(user)
        await uow.point_history.save(PointHistory.record(user, transaction_type, amount))
        return user


class UserService:
    """User registration and point operations, one unit of work per call."""

    def __init__(
        self,
        database: Database,
        ledger: PointLedger | None = None,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._database = database
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._ledger = ledger or PointLedger(tracer=self._tracer)

    async def create_user(self, name: str) -> User:
        """
        Register a user with a zero balance.

        Raises:
            ValidationError: If name is blank
        """
        user = User.register(name)
        with self._tracer.span("storefront.user.create"):
            async with self._database.transaction() as uow:
                user = await uow.users.save(user)
        logger.info("Created user %s", user.id, extra={"user_id": user.id})
        return user

    async def get_user(self, user_id: int) -> User:
        async with self._database.transaction() as uow:
            return await uow.users.find(user_id)

    async def charge_point(self, user_id: int, amount: int) -> User:
        """Credit ``amount`` points to a user and return the updated user."""
        async with self._database.transaction() as uow:
            user = await self._ledger.credit(uow, user_id, amount)
        logger.info(
            "Charged %d points to user %s (balance %d)",
            amount,
            user_id,
            user.balance,
            extra={"user_id": user_id, "amount": amount},
        )
        return user

    async def use_point(self, user_id: int, amount: int) -> User:
        """Debit ``amount`` points from a user and return the updated user."""
        async with self._database.transaction() as uow:
            user = await self._ledger.debit(uow, user_id, amount)
        logger.info(
            "Used %d points of user %s (balance %d)",
            amount,
            user_id,
            user.balance,
            extra={"user_id": user_id, "amount": amount},
        )
        return user

    async def get_point_history(self, user_id: int) -> list[PointHistory]:
        """
        A user's point history, oldest first.

        Raises:
            NotFoundError: If the user does not exist
        """
        async with self._database.transaction() as uow:
            await uow.users.find(user_id)
            return await uow.point_history.find_by_user(user_id)

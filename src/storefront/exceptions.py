"""Library exceptions for the storefront package."""

from __future__ import annotations

from typing import Any


class StorefrontError(Exception):
    """Base exception for storefront library."""

    pass


class ValidationError(StorefrontError):
    """
    Raised when caller input is malformed.

    Covers blank names, non-positive quantities and amounts, negative prices
    and empty orders. Always a caller bug; never retried.

    Attributes:
        field: Name of the offending field, if known
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


class NotFoundError(StorefrontError):
    """Raised when a referenced user, product or order does not exist."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


class InsufficientStockError(StorefrontError):
    """
    Raised when a decrement asks for more units than the locked stock holds.

    This is a business rejection, not a system fault. No partial decrement
    is ever applied.

    Attributes:
        product_id: Product whose stock was insufficient
        requested: Quantity that was requested
        available: Stock observed under the row lock
    """

    def __init__(self, product_id: int, requested: int, available: int) -> None:
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for product {product_id}: "
            f"requested {requested}, available {available}"
        )


class InsufficientBalanceError(StorefrontError):
    """
    Raised when a debit exceeds the user's current balance.

    Attributes:
        user_id: User whose balance was insufficient
        requested: Amount that was requested
        available: Balance observed under the row lock
    """

    def __init__(self, user_id: int, requested: int, available: int) -> None:
        self.user_id = user_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient balance for user {user_id}: "
            f"requested {requested}, available {available}"
        )


class InvalidStateError(StorefrontError):
    """
    Raised when an order transition is not allowed from its current status.

    Examples are paying twice, cancelling twice and paying after
    cancellation.

    Attributes:
        order_id: Order the transition was attempted on (None if unsaved)
        status: Status the order was in
        action: The attempted transition ("pay" or "cancel")
    """

    def __init__(self, order_id: int | None, status: str, action: str) -> None:
        self.order_id = order_id
        self.status = status
        self.action = action
        super().__init__(f"Cannot {action} order {order_id} in status {status}")


class ConcurrentModificationError(StorefrontError):
    """
    Raised when a revision-checked update finds a newer revision stored.

    Only the product price-change path is revision checked; stock changes
    rely on row locks instead.

    Attributes:
        entity_type: Type of the entity that was modified concurrently
        entity_id: Identifier of that entity
        expected_version: Revision the caller based its change on
        actual_version: Revision currently stored
    """

    def __init__(
        self,
        entity_type: str,
        entity_id: Any,
        expected_version: int,
        actual_version: int,
    ) -> None:
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Concurrent modification of {entity_type} {entity_id}: "
            f"expected version {expected_version}, but current version is {actual_version}"
        )


class LockTimeoutError(StorefrontError):
    """
    Raised when a lock cannot be acquired within the configured timeout.

    The surrounding unit of work is rolled back, exactly like any other
    failure inside it.

    Attributes:
        resource: Key of the lock that could not be acquired
        timeout: The timeout in seconds that expired
    """

    def __init__(self, resource: str, timeout: float | None) -> None:
        self.resource = resource
        self.timeout = timeout
        super().__init__(f"Timed out after {timeout}s waiting for lock on {resource}")


class StoreError(StorefrontError):
    """Raised when there's an error in a storage backend."""

    pass

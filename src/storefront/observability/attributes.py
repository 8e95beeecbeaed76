"""
Standard span attributes for storefront.

Attribute constants used across services and storage adapters so spans are
labelled consistently. Database attributes follow OpenTelemetry semantic
conventions.
"""

# =============================================================================
# Entity Attributes
# =============================================================================

ATTR_USER_ID = "storefront.user.id"
"""Identifier of the user an operation acts on (integer)."""

ATTR_PRODUCT_ID = "storefront.product.id"
"""Identifier of the product an operation acts on (integer)."""

ATTR_ORDER_ID = "storefront.order.id"
"""Identifier of the order an operation acts on (integer)."""

ATTR_ORDER_STATUS = "storefront.order.status"
"""Status of the order after the operation (string)."""

# =============================================================================
# Mutation Attributes
# =============================================================================

ATTR_QUANTITY = "storefront.quantity"
"""Stock units being moved (integer)."""

ATTR_AMOUNT = "storefront.amount"
"""Points being credited or debited (integer)."""

ATTR_ITEM_COUNT = "storefront.item.count"
"""Number of line items in an order request (integer)."""

ATTR_EXPECTED_VERSION = "storefront.expected_version"
"""Expected revision for a revision-checked update (integer)."""

# =============================================================================
# Lock Attributes
# =============================================================================

ATTR_LOCK_KEY = "storefront.lock.key"
"""Key of the row lock being acquired (string)."""

ATTR_LOCK_TIMEOUT = "storefront.lock.timeout"
"""Lock acquisition timeout in seconds, -1 for none (float)."""

# =============================================================================
# Database Attributes (OTEL semantic conventions)
# =============================================================================

ATTR_DB_SYSTEM = "db.system"
"""Database system identifier (e.g., 'postgresql', 'sqlite')."""

__all__ = [
    "ATTR_USER_ID",
    "ATTR_PRODUCT_ID",
    "ATTR_ORDER_ID",
    "ATTR_ORDER_STATUS",
    "ATTR_QUANTITY",
    "ATTR_AMOUNT",
    "ATTR_ITEM_COUNT",
    "ATTR_EXPECTED_VERSION",
    "ATTR_LOCK_KEY",
    "ATTR_LOCK_TIMEOUT",
    "ATTR_DB_SYSTEM",
]

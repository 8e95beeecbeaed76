"""
Domain models for the storefront package.

Key Components:
    User, PointHistory, PointTransactionType: point balance and its audit trail
    Product: stock and price
    Order, OrderItem, OrderLine, OrderStatus: the order aggregate
"""

from storefront.domain.base import Entity
from storefront.domain.order import Order, OrderItem, OrderLine, OrderStatus
from storefront.domain.product import Product
from storefront.domain.user import PointHistory, PointTransactionType, User

__all__ = [
    "Entity",
    "Order",
    "OrderItem",
    "OrderLine",
    "OrderStatus",
    "PointHistory",
    "PointTransactionType",
    "Product",
    "User",
]

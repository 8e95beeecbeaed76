"""Storefront services: stock, points and order orchestration."""

from storefront.services.orders import OrderOrchestrator
from storefront.services.points import PointLedger, UserService
from storefront.services.stock import ProductService, StockManager

__all__ = [
    "OrderOrchestrator",
    "PointLedger",
    "ProductService",
    "StockManager",
    "UserService",
]

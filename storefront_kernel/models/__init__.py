"""Domain models for the storefront kernel."""

from storefront_kernel.models.inventory import InventoryAdjustment, InventoryChangeType
from storefront_kernel.models.order import (
    Order,
    OrderLine,
    OrderStatus,
    OrderStatusChange,
)
from storefront_kernel.models.product import Product

__all__ = [
    "Product",
    "InventoryAdjustment",
    "InventoryChangeType",
    "Order",
    "OrderLine",
    "OrderStatus",
    "OrderStatusChange",
]

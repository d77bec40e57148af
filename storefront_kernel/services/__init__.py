"""Services for the storefront kernel (write side)."""

from storefront_kernel.services.event_publisher import (
    OrderEventPublisher,
    TransitionSubscriber,
)
from storefront_kernel.services.inventory_ledger import InventoryLedger
from storefront_kernel.services.order_lifecycle import OrderLifecycleEngine
from storefront_kernel.services.order_store import OrderStore

__all__ = [
    "InventoryLedger",
    "OrderEventPublisher",
    "OrderLifecycleEngine",
    "OrderStore",
    "TransitionSubscriber",
]

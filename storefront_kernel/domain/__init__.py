"""
Pure domain layer.

Data transfer objects, the injectable clock and tracking-number
generation, with NO dependencies on the ORM, the database or I/O
(SystemClock excepted).
"""

from storefront_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from storefront_kernel.domain.dtos import (
    AdjustmentDTO,
    BulkSetResult,
    BulkTransitionResult,
    CartLine,
    FulfillmentBacklog,
    GuestPayer,
    HistoryFilters,
    InventorySummary,
    LedgerCheck,
    OrderDTO,
    OrderFilters,
    OrderLineDTO,
    OrderStats,
    Page,
    PageRequest,
    PayerIdentity,
    ProductStock,
    RegisteredPayer,
    Shortage,
    StatusChangeDTO,
    StockUpdate,
    TransitionEvent,
)
from storefront_kernel.domain.tracking import TrackingNumberGenerator, to_base36

__all__ = [
    # Time
    "Clock",
    "DeterministicClock",
    "SystemClock",
    # Checkout input
    "CartLine",
    "GuestPayer",
    "PayerIdentity",
    "RegisteredPayer",
    "StockUpdate",
    # Read models
    "AdjustmentDTO",
    "FulfillmentBacklog",
    "InventorySummary",
    "LedgerCheck",
    "OrderDTO",
    "OrderLineDTO",
    "OrderStats",
    "ProductStock",
    "Shortage",
    "StatusChangeDTO",
    # Pagination and filters
    "HistoryFilters",
    "OrderFilters",
    "Page",
    "PageRequest",
    # Results
    "BulkSetResult",
    "BulkTransitionResult",
    "TransitionEvent",
    # Tracking numbers
    "TrackingNumberGenerator",
    "to_base36",
]

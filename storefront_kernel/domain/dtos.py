"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Immutable values that cross the service/selector boundary: checkout
    input (payer identity, cart lines), read models returned by selectors
    (orders, lines, adjustments, summaries), pagination, and the result
    objects of bulk operations and transitions.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    from_model() class methods exist as boundary converters but are only
    invoked from the service and selector layers.

Invariants enforced:
    - Selectors and services return DTOs, never live ORM entities.
    - PageRequest rejects page < 1 and limit outside 1..max.
    - Bulk results report per-item failures as data, never by raising.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Generic, TypeVar, Union
from uuid import UUID

if TYPE_CHECKING:
    from storefront_kernel.models.inventory import (
        InventoryAdjustment as InventoryAdjustmentModel,
    )
    from storefront_kernel.models.inventory import InventoryChangeType
    from storefront_kernel.models.order import Order as OrderModel
    from storefront_kernel.models.order import OrderLine as OrderLineModel
    from storefront_kernel.models.order import OrderStatus
    from storefront_kernel.models.order import (
        OrderStatusChange as OrderStatusChangeModel,
    )
    from storefront_kernel.models.product import Product as ProductModel


T = TypeVar("T")


# =============================================================================
# Checkout input
# =============================================================================


@dataclass(frozen=True)
class RegisteredPayer:
    """An authenticated shopper, identified by the identity collaborator."""

    user_id: str


@dataclass(frozen=True)
class GuestPayer:
    """A guest checkout: contact email plus display name."""

    email: str
    name: str


PayerIdentity = Union[RegisteredPayer, GuestPayer]


@dataclass(frozen=True)
class CartLine:
    """One line of the cart snapshot handed to checkout."""

    product_id: UUID
    quantity: int
    unit_price: Decimal

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class StockUpdate:
    """Bulk-set request: bring product_id to exactly target_quantity."""

    product_id: UUID
    target_quantity: int


@dataclass(frozen=True)
class Shortage:
    """
    A cart line that cannot be reserved.

    Inactive products report ``available=0``: they cannot be sold whatever
    their shelf count.
    """

    product_id: UUID
    product_name: str
    requested: int
    available: int
    is_active: bool = True

    @property
    def short_by(self) -> int:
        return self.requested - self.available


# =============================================================================
# Pagination
# =============================================================================


@dataclass(frozen=True)
class PageRequest:
    """1-based page request."""

    page: int = 1
    limit: int = 10
    max_limit: int = 100

    def __post_init__(self) -> None:
        if self.page < 1:
            raise ValueError(f"page must be >= 1, got {self.page}")
        if not 1 <= self.limit <= self.max_limit:
            raise ValueError(
                f"limit must be between 1 and {self.max_limit}, got {self.limit}"
            )

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


@dataclass(frozen=True)
class Page(Generic[T]):
    """One page of results plus the totals a paginated view needs."""

    items: tuple[T, ...]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.total else 0

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages


# =============================================================================
# Filters
# =============================================================================


@dataclass(frozen=True)
class HistoryFilters:
    """Inventory history filters; all optional, combined with AND."""

    product_id: UUID | None = None
    change_type: InventoryChangeType | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None


@dataclass(frozen=True)
class OrderFilters:
    """Admin order listing filters; all optional, combined with AND."""

    status: OrderStatus | None = None
    user_id: str | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None


# =============================================================================
# Inventory read models
# =============================================================================


@dataclass(frozen=True)
class ProductStock:
    """Stock view of a catalog product."""

    id: UUID
    name: str
    category: str | None
    inventory: int
    low_stock_threshold: int
    is_active: bool

    @classmethod
    def from_model(cls, product: ProductModel) -> ProductStock:
        return cls(
            id=product.id,
            name=product.name,
            category=product.category,
            inventory=product.inventory,
            low_stock_threshold=product.low_stock_threshold,
            is_active=product.is_active,
        )


@dataclass(frozen=True)
class AdjustmentDTO:
    """One ledger entry, with the product name for display."""

    id: UUID
    product_id: UUID
    seq: int
    product_name: str | None
    quantity_delta: int
    change_type: InventoryChangeType
    reason: str
    reference_id: str | None
    actor_id: str | None
    created_at: datetime

    @classmethod
    def from_model(cls, adj: InventoryAdjustmentModel) -> AdjustmentDTO:
        return cls(
            id=adj.id,
            product_id=adj.product_id,
            seq=adj.seq,
            product_name=adj.product.name if adj.product is not None else None,
            quantity_delta=adj.quantity_delta,
            change_type=adj.change_type,
            reason=adj.reason,
            reference_id=adj.reference_id,
            actor_id=adj.actor_id,
            created_at=adj.created_at,
        )


@dataclass(frozen=True)
class InventorySummary:
    """Dashboard summary over active products."""

    total_products: int
    low_stock_count: int
    out_of_stock_count: int
    total_units_in_stock: int
    low_stock_products: tuple[ProductStock, ...] = ()
    out_of_stock_products: tuple[ProductStock, ...] = ()
    recent_adjustments: tuple[AdjustmentDTO, ...] = ()


@dataclass(frozen=True)
class LedgerCheck:
    """Result of replaying a product's ledger against its stock count."""

    product_id: UUID
    inventory: int
    ledger_balance: int
    adjustment_count: int

    @property
    def is_consistent(self) -> bool:
        return self.inventory == self.ledger_balance


@dataclass(frozen=True)
class BulkSetResult:
    """Outcome of a best-effort bulk stock update."""

    updated_count: int
    errors: tuple[str, ...] = ()


# =============================================================================
# Order read models
# =============================================================================


@dataclass(frozen=True)
class OrderLineDTO:
    """Receipt line: enough product context to render without re-querying."""

    id: UUID
    product_id: UUID
    product_name: str | None
    category: str | None
    position: int
    quantity: int
    unit_price: Decimal

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    @classmethod
    def from_model(cls, line: OrderLineModel) -> OrderLineDTO:
        product = line.product
        return cls(
            id=line.id,
            product_id=line.product_id,
            product_name=product.name if product is not None else None,
            category=product.category if product is not None else None,
            position=line.position,
            quantity=line.quantity,
            unit_price=line.unit_price,
        )


@dataclass(frozen=True)
class OrderDTO:
    """An order with its lines."""

    id: UUID
    status: OrderStatus
    user_id: str | None
    guest_email: str | None
    guest_name: str | None
    is_guest_order: bool
    tracking_number: str | None
    total: Decimal
    payment_reference: str | None
    shipping_address: dict[str, Any]
    created_at: datetime
    updated_at: datetime
    lines: tuple[OrderLineDTO, ...] = field(default=())

    @property
    def payer(self) -> PayerIdentity:
        if self.is_guest_order:
            return GuestPayer(email=self.guest_email, name=self.guest_name)
        return RegisteredPayer(user_id=self.user_id)

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.lines)

    @classmethod
    def from_model(cls, order: OrderModel) -> OrderDTO:
        return cls(
            id=order.id,
            status=order.status,
            user_id=order.user_id,
            guest_email=order.guest_email,
            guest_name=order.guest_name,
            is_guest_order=order.is_guest_order,
            tracking_number=order.tracking_number,
            total=order.total,
            payment_reference=order.payment_reference,
            shipping_address=dict(order.shipping_address or {}),
            created_at=order.created_at,
            updated_at=order.updated_at,
            lines=tuple(OrderLineDTO.from_model(line) for line in order.lines),
        )


@dataclass(frozen=True)
class StatusChangeDTO:
    """One entry of an order's status timeline."""

    id: UUID
    order_id: UUID
    seq: int
    from_status: OrderStatus | None
    to_status: OrderStatus
    actor_id: str | None
    message: str
    created_at: datetime

    @classmethod
    def from_model(cls, change: OrderStatusChangeModel) -> StatusChangeDTO:
        return cls(
            id=change.id,
            order_id=change.order_id,
            seq=change.seq,
            from_status=change.from_status,
            to_status=change.to_status,
            actor_id=change.actor_id,
            message=change.message,
            created_at=change.created_at,
        )


@dataclass(frozen=True)
class OrderStats:
    """Revenue and status counts, optionally scoped to one user."""

    total_orders: int
    total_revenue: Decimal
    average_order_value: Decimal
    counts_by_status: dict[OrderStatus, int]


@dataclass(frozen=True)
class FulfillmentBacklog:
    """Orders still moving through fulfillment."""

    pending: int
    processing: int
    shipped: int

    @property
    def total(self) -> int:
        return self.pending + self.processing + self.shipped


# =============================================================================
# Lifecycle results
# =============================================================================


@dataclass(frozen=True)
class TransitionEvent:
    """Published to subscribers after a status change commits."""

    order_id: UUID
    from_status: OrderStatus
    to_status: OrderStatus
    timestamp: datetime
    actor_id: str | None = None
    tracking_number: str | None = None


@dataclass(frozen=True)
class BulkTransitionResult:
    """Outcome of applying one target status to many orders."""

    updated_count: int
    errors: tuple[str, ...] = ()

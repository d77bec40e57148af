"""
Module: storefront_kernel.models.order
Responsibility: ORM persistence for orders, their line items, and the order
    status timeline.
Architecture position: Kernel > Models.  May import from db/base.py only.
    MUST NOT import from services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - Exactly one payer: either user_id, or guest_email with
      is_guest_order=True (CHECK ck_order_single_payer).
    - tracking_number is UNIQUE; it is assigned once, on the first move
      into SHIPPED, and never reassigned.
    - OrderLine.quantity > 0 (CHECK); lines are immutable after creation.
    - OrderStatusChange rows are immutable; orders are never deleted
      (ORM listeners in db/immutability.py + PostgreSQL triggers).
    - Timeline entries are numbered per order (seq) while the order row is
      locked; (order_id, seq) is UNIQUE.

Failure modes:
    - IntegrityError on duplicate tracking_number (retried by OrderStore).
    - ImmutabilityViolationError on UPDATE/DELETE of lines or status changes.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storefront_kernel.db.base import Base, TimestampedBase, UUIDString

if TYPE_CHECKING:
    from storefront_kernel.models.product import Product


class OrderStatus(str, Enum):
    """Lifecycle status of an order.

    Contract: VALID_TRANSITIONS below is the transition table.
    DELIVERED, CANCELLED and REFUNDED are terminal.
    """

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


_ORDER_STATUS_TYPE = SAEnum(OrderStatus, native_enum=False, length=20)


# Allowed state transitions (from -> set of valid targets).  The happy path
# advances exactly one stage per call.
VALID_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({
        OrderStatus.PROCESSING, OrderStatus.CANCELLED, OrderStatus.REFUNDED,
    }),
    OrderStatus.PROCESSING: frozenset({
        OrderStatus.SHIPPED, OrderStatus.CANCELLED, OrderStatus.REFUNDED,
    }),
    OrderStatus.SHIPPED: frozenset({
        OrderStatus.DELIVERED, OrderStatus.REFUNDED,
    }),
    # Terminal states: no transitions allowed
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.REFUNDED: frozenset(),
}

# Moving into one of these returns every line's stock to the ledger
RELEASING_STATUSES: frozenset[OrderStatus] = frozenset({
    OrderStatus.CANCELLED, OrderStatus.REFUNDED,
})

_HAPPY_PATH: tuple[OrderStatus, ...] = (
    OrderStatus.PENDING,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
)


def transition_rejection(current: OrderStatus, target: OrderStatus) -> str | None:
    """Explain why ``current -> target`` is not allowed.

    Returns None when the move is in VALID_TRANSITIONS.  Staying in the
    current status is not a transition; callers handle it as a no-op
    before asking.
    """
    if target in VALID_TRANSITIONS[current]:
        return None
    if not VALID_TRANSITIONS[current]:
        return f"{current.value} is a terminal status"
    if target == OrderStatus.CANCELLED:
        return "shipped orders can only be refunded, not cancelled"
    if target in _HAPPY_PATH and current in _HAPPY_PATH:
        current_idx = _HAPPY_PATH.index(current)
        if _HAPPY_PATH.index(target) < current_idx:
            return "orders cannot move backward"
        return (
            "stages cannot be skipped; next stage is "
            f"{_HAPPY_PATH[current_idx + 1].value}"
        )
    allowed = ", ".join(sorted(s.value for s in VALID_TRANSITIONS[current]))
    return f"allowed targets are {allowed}"


class Order(TimestampedBase):
    """
    Order header.

    Contract:
        Created by OrderStore.create inside the Lifecycle Engine's checkout
        transaction.  Mutated only through status transitions, pre-SHIPPED
        shipping-address edits, and guest-order claiming.

    Guarantees:
        - total equals the sum of quantity * unit_price over its lines
          (computed once at creation).
    """

    __tablename__ = "orders"

    __table_args__ = (
        UniqueConstraint("tracking_number", name="uq_order_tracking_number"),
        CheckConstraint(
            "(user_id IS NOT NULL AND guest_email IS NULL AND is_guest_order = false)"
            " OR (user_id IS NULL AND guest_email IS NOT NULL AND is_guest_order = true)",
            name="ck_order_single_payer",
        ),
        Index("idx_order_user", "user_id"),
        Index("idx_order_guest_email", "guest_email"),
        Index("idx_order_status", "status"),
        Index("idx_order_created", "created_at"),
        Index("idx_order_payment_reference", "payment_reference"),
    )

    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    guest_email: Mapped[str | None] = mapped_column(String(320), nullable=True)

    guest_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    is_guest_order: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    status: Mapped[OrderStatus] = mapped_column(
        _ORDER_STATUS_TYPE,
        nullable=False,
        default=OrderStatus.PENDING,
    )

    tracking_number: Mapped[str | None] = mapped_column(String(64), nullable=True)

    total: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    # Opaque reference supplied by the payment collaborator
    payment_reference: Mapped[str | None] = mapped_column(String(255), nullable=True)

    shipping_address: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    # Last OrderStatusChange.seq issued for this order
    status_change_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
    )

    lines: Mapped[list["OrderLine"]] = relationship(
        back_populates="order",
        order_by="OrderLine.position",
    )

    status_changes: Mapped[list["OrderStatusChange"]] = relationship(
        back_populates="order",
        order_by="OrderStatusChange.seq",
    )

    @property
    def is_terminal(self) -> bool:
        return not VALID_TRANSITIONS[self.status]

    @property
    def is_editable(self) -> bool:
        return self.status == OrderStatus.PENDING

    def __repr__(self) -> str:
        return f"<Order {self.id} {self.status}>"


class OrderLine(Base):
    """
    One cart line frozen into an order.

    Contract:
        Created with its order in the same flush; never edited in place.
        Corrections happen by cancelling and placing a new order.
    """

    __tablename__ = "order_lines"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_line_quantity_positive"),
        Index("idx_order_line_order", "order_id"),
        Index("idx_order_line_product", "product_id"),
    )

    order_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("orders.id"),
        nullable=False,
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("products.id"),
        nullable=False,
    )

    # Cart order, preserved for receipts
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    unit_price: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    order: Mapped["Order"] = relationship(back_populates="lines")

    product: Mapped["Product"] = relationship()

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    def __repr__(self) -> str:
        return f"<OrderLine {self.product_id} x{self.quantity}>"


class OrderStatusChange(Base):
    """
    Immutable entry in an order's status timeline.

    Written in the same transaction as the status write it describes:
    one row at creation (from_status NULL -> PENDING, seq 1) and one per
    non-idempotent transition.  seq, not created_at, orders the timeline:
    a transition can land in the same clock instant as the one before it.
    """

    __tablename__ = "order_status_changes"

    __table_args__ = (
        UniqueConstraint("order_id", "seq", name="uq_status_change_order_seq"),
        Index("idx_status_change_order_created", "order_id", "created_at"),
        Index("idx_status_change_to_status", "to_status", "created_at"),
    )

    order_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("orders.id"),
        nullable=False,
    )

    # 1-based position in the timeline, from Order.status_change_count
    seq: Mapped[int] = mapped_column(Integer, nullable=False)

    from_status: Mapped[OrderStatus | None] = mapped_column(
        _ORDER_STATUS_TYPE,
        nullable=True,
    )

    to_status: Mapped[OrderStatus] = mapped_column(
        _ORDER_STATUS_TYPE,
        nullable=False,
    )

    actor_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    message: Mapped[str] = mapped_column(String(500), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    order: Mapped["Order"] = relationship(back_populates="status_changes")

    def __repr__(self) -> str:
        return f"<OrderStatusChange {self.from_status} -> {self.to_status}>"

"""
Module: storefront_kernel.models.inventory
Responsibility: ORM persistence for the inventory adjustment ledger -- the
    append-only record of every stock change.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Ledger invariant: for every product, initial stock plus the sum of
      quantity_delta over its adjustments equals Product.inventory.  The
      InventoryLedger writes the adjustment and the stock change in the
      same transaction.
    - Immutability: adjustments are never updated or deleted (ORM listeners
      in db/immutability.py + PostgreSQL triggers).
    - seq numbers a product's adjustments 1, 2, 3... in the order they
      were written, allocated under the product row lock.  Entries that
      share a created_at still have a definite order.
    - quantity_delta records the change actually applied, not the change
      requested (manual adjustments may be clamped at zero).

Audit relevance:
    reference_id softly links ORDER_PLACED / ORDER_RETURNED entries to the
    order that caused them.  There is deliberately no foreign key: the
    audit trail must outlive the order row.
"""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storefront_kernel.db.base import Base, UUIDString

if TYPE_CHECKING:
    from storefront_kernel.models.product import Product


class InventoryChangeType(str, Enum):
    """Typed reason for a stock change."""

    MANUAL_ADJUSTMENT = "MANUAL_ADJUSTMENT"
    RESTOCK = "RESTOCK"
    DAMAGED = "DAMAGED"
    ORDER_PLACED = "ORDER_PLACED"
    ORDER_RETURNED = "ORDER_RETURNED"
    INITIAL = "INITIAL"
    OTHER = "OTHER"


class InventoryAdjustment(Base):
    """
    One immutable stock change.

    Contract:
        Created only by InventoryLedger, in the same flush as the product's
        inventory update.  Never updated, never deleted.
    """

    __tablename__ = "inventory_adjustments"

    __table_args__ = (
        UniqueConstraint("product_id", "seq", name="uq_adjustment_product_seq"),
        Index("idx_adjustment_product_created", "product_id", "created_at"),
        Index("idx_adjustment_change_type", "change_type"),
        Index("idx_adjustment_reference", "reference_id"),
        Index("idx_adjustment_created", "created_at"),
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("products.id"),
        nullable=False,
    )

    # Per-product position in the ledger, 1-based, from Product.adjustment_count
    seq: Mapped[int] = mapped_column(Integer, nullable=False)

    # Signed: negative for reservations and damage, positive for returns
    quantity_delta: Mapped[int] = mapped_column(Integer, nullable=False)

    change_type: Mapped[InventoryChangeType] = mapped_column(
        SAEnum(InventoryChangeType, native_enum=False, length=30),
        nullable=False,
    )

    reason: Mapped[str] = mapped_column(String(500), nullable=False)

    # Soft link to the order (or other document) that caused the change
    reference_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    actor_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    product: Mapped["Product"] = relationship()

    def __repr__(self) -> str:
        return (
            f"<InventoryAdjustment {self.change_type} "
            f"{self.quantity_delta:+d} product={self.product_id}>"
        )

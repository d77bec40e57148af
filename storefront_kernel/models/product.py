"""
Module: storefront_kernel.models.product
Responsibility: ORM projection of catalog products.  The catalog collaborator
    owns every product attribute except ``inventory``, which only the
    Inventory Ledger may change.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Stock never goes negative (CHECK inventory >= 0).
    - ``inventory`` is mutated exclusively by InventoryLedger, which writes
      one InventoryAdjustment per change in the same transaction.
    - ``adjustment_count`` is the ledger's per-product sequence counter,
      advanced only by InventoryLedger under the same row lock.

Failure modes:
    - IntegrityError if a write would drive inventory below zero.
"""

from sqlalchemy import Boolean, CheckConstraint, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from storefront_kernel.db.base import TimestampedBase


class Product(TimestampedBase):
    """
    Catalog product as seen by the order lifecycle.

    Contract:
        Read by id, locked FOR UPDATE by the ledger before any stock change.

    Non-goals:
        - Pricing, descriptions, images and category trees belong to the
          catalog; ``category`` is carried only for receipts and reports.
    """

    __tablename__ = "products"

    __table_args__ = (
        CheckConstraint("inventory >= 0", name="ck_product_inventory_non_negative"),
        Index("idx_product_active_inventory", "is_active", "inventory"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    category: Mapped[str | None] = mapped_column(String(100), nullable=True)

    inventory: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    low_stock_threshold: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=10,
    )

    # Last InventoryAdjustment.seq issued for this product
    adjustment_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
    )

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    @property
    def is_out_of_stock(self) -> bool:
        return self.inventory <= 0

    @property
    def is_low_stock(self) -> bool:
        return 0 < self.inventory <= self.low_stock_threshold

    def __repr__(self) -> str:
        return f"<Product {self.name} inventory={self.inventory}>"

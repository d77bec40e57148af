"""
Module: storefront_kernel.selectors.inventory_selector
Responsibility: Read-only queries over products and the inventory adjustment
    ledger: paginated history, dashboard summary, low-stock listing, and
    ledger verification (replaying adjustments against current stock).
Architecture position: Kernel > Selectors.  Extends BaseSelector.

Invariants enforced:
    - Ledger verification derives the balance from adjustments only; it
      never trusts a stored running total.
    - History is returned newest first.  Entries for one product that share
      a created_at come back in reverse seq (write) order.
"""

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from storefront_kernel.domain.dtos import (
    AdjustmentDTO,
    HistoryFilters,
    InventorySummary,
    LedgerCheck,
    Page,
    PageRequest,
    ProductStock,
)
from storefront_kernel.exceptions import ProductNotFoundError
from storefront_kernel.models.inventory import InventoryAdjustment
from storefront_kernel.models.product import Product
from storefront_kernel.selectors.base import BaseSelector

# Dashboard lists are capped; counts are not
SUMMARY_LIST_LIMIT = 20
RECENT_ADJUSTMENT_LIMIT = 10

# Within one product seq is the write order; across products ties fall back
# to product_id so pages never shuffle.
_NEWEST_FIRST = (
    InventoryAdjustment.created_at.desc(),
    InventoryAdjustment.product_id,
    InventoryAdjustment.seq.desc(),
)


class InventorySelector(BaseSelector[InventoryAdjustment]):
    """
    Selector for stock levels and ledger history.

    Contract:
        Returns ProductStock / AdjustmentDTO / InventorySummary /
        LedgerCheck DTOs.  Never mutates.
    """

    def __init__(self, session: Session, default_low_stock_threshold: int = 10):
        super().__init__(session)
        self._default_low_stock_threshold = default_low_stock_threshold

    def history(
        self,
        filters: HistoryFilters | None = None,
        page: PageRequest | None = None,
    ) -> Page[AdjustmentDTO]:
        """Ledger entries matching ``filters``, newest first."""
        filters = filters or HistoryFilters()
        page = page or PageRequest()

        stmt = select(InventoryAdjustment)
        if filters.product_id is not None:
            stmt = stmt.where(InventoryAdjustment.product_id == filters.product_id)
        if filters.change_type is not None:
            stmt = stmt.where(InventoryAdjustment.change_type == filters.change_type)
        if filters.date_from is not None:
            stmt = stmt.where(InventoryAdjustment.created_at >= filters.date_from)
        if filters.date_to is not None:
            stmt = stmt.where(InventoryAdjustment.created_at <= filters.date_to)

        total = self._count(stmt)
        rows = self.session.execute(
            self._paginate(
                stmt.options(selectinload(InventoryAdjustment.product)).order_by(
                    *_NEWEST_FIRST,
                ),
                page,
            )
        ).scalars().all()

        return Page(
            items=tuple(AdjustmentDTO.from_model(row) for row in rows),
            page=page.page,
            limit=page.limit,
            total=total,
        )

    def for_reference(self, reference_id: str) -> tuple[AdjustmentDTO, ...]:
        """Every adjustment softly linked to an order (or other document)."""
        rows = self.session.execute(
            select(InventoryAdjustment)
            .where(InventoryAdjustment.reference_id == reference_id)
            .options(selectinload(InventoryAdjustment.product))
            .order_by(
                InventoryAdjustment.created_at,
                InventoryAdjustment.product_id,
                InventoryAdjustment.seq,
            )
        ).scalars().all()
        return tuple(AdjustmentDTO.from_model(row) for row in rows)

    def summary(self, low_stock_threshold: int | None = None) -> InventorySummary:
        """
        Dashboard view over active products.

        Low stock means ``0 < inventory <= low_stock_threshold``; out of stock
        means ``inventory <= 0``.  The threshold defaults to the one the
        selector was built with.
        """
        if low_stock_threshold is None:
            low_stock_threshold = self._default_low_stock_threshold
        active = Product.is_active.is_(True)
        low = (Product.inventory > 0) & (Product.inventory <= low_stock_threshold)
        out = Product.inventory <= 0

        total_products, total_units = self.session.execute(
            select(func.count(Product.id), func.coalesce(func.sum(Product.inventory), 0))
            .where(active)
        ).one()
        low_count = self.session.execute(
            select(func.count(Product.id)).where(active, low)
        ).scalar_one()
        out_count = self.session.execute(
            select(func.count(Product.id)).where(active, out)
        ).scalar_one()

        low_products = self.session.execute(
            select(Product)
            .where(active, low)
            .order_by(Product.inventory.asc(), Product.name)
            .limit(SUMMARY_LIST_LIMIT)
        ).scalars().all()
        out_products = self.session.execute(
            select(Product)
            .where(active, out)
            .order_by(Product.updated_at.desc(), Product.name)
            .limit(SUMMARY_LIST_LIMIT)
        ).scalars().all()
        recent = self.session.execute(
            select(InventoryAdjustment)
            .options(selectinload(InventoryAdjustment.product))
            .order_by(*_NEWEST_FIRST)
            .limit(RECENT_ADJUSTMENT_LIMIT)
        ).scalars().all()

        return InventorySummary(
            total_products=total_products,
            low_stock_count=low_count,
            out_of_stock_count=out_count,
            total_units_in_stock=int(total_units),
            low_stock_products=tuple(ProductStock.from_model(p) for p in low_products),
            out_of_stock_products=tuple(ProductStock.from_model(p) for p in out_products),
            recent_adjustments=tuple(AdjustmentDTO.from_model(a) for a in recent),
        )

    def low_stock_products(
        self, threshold: int | None = None
    ) -> tuple[ProductStock, ...]:
        """
        Active products that are running low but not yet out.

        Without ``threshold`` each product's own ``low_stock_threshold`` is
        used.
        """
        limit = Product.low_stock_threshold if threshold is None else threshold
        rows = self.session.execute(
            select(Product)
            .where(
                Product.is_active.is_(True),
                Product.inventory > 0,
                Product.inventory <= limit,
            )
            .order_by(Product.inventory.asc(), Product.name)
        ).scalars().all()
        return tuple(ProductStock.from_model(p) for p in rows)

    def stock_report(
        self, kind: str = "low_stock", threshold: int = 10
    ) -> tuple[ProductStock, ...]:
        """
        Active products for a stock export.

        ``kind`` is ``low_stock`` (0 < inventory <= threshold, lowest first),
        ``out_of_stock`` or ``all`` (both by name).
        """
        stmt = select(Product).where(Product.is_active.is_(True))
        if kind == "low_stock":
            stmt = stmt.where(
                Product.inventory > 0, Product.inventory <= threshold
            ).order_by(Product.inventory.asc(), Product.name)
        elif kind == "out_of_stock":
            stmt = stmt.where(Product.inventory <= 0).order_by(Product.name)
        elif kind == "all":
            stmt = stmt.order_by(Product.name)
        else:
            raise ValueError(f"unknown stock report {kind!r}")
        return tuple(
            ProductStock.from_model(p) for p in self.session.execute(stmt).scalars()
        )

    def stock_level(self, product_id: UUID) -> ProductStock:
        product = self.session.get(Product, product_id)
        if product is None:
            raise ProductNotFoundError(str(product_id))
        return ProductStock.from_model(product)

    def ledger_balance(self, product_id: UUID) -> int:
        """Sum of every recorded delta for the product."""
        return int(
            self.session.execute(
                select(func.coalesce(func.sum(InventoryAdjustment.quantity_delta), 0))
                .where(InventoryAdjustment.product_id == product_id)
            ).scalar_one()
        )

    def verify_ledger(self, product_id: UUID, initial_inventory: int = 0) -> LedgerCheck:
        """
        Replay the ledger for one product.

        ``initial_inventory`` is the stock the product had before its first
        recorded adjustment (zero when it was stocked via record_initial).
        """
        product = self.session.get(Product, product_id)
        if product is None:
            raise ProductNotFoundError(str(product_id))

        delta_sum, count = self.session.execute(
            select(
                func.coalesce(func.sum(InventoryAdjustment.quantity_delta), 0),
                func.count(InventoryAdjustment.id),
            ).where(InventoryAdjustment.product_id == product_id)
        ).one()

        return LedgerCheck(
            product_id=product.id,
            inventory=product.inventory,
            ledger_balance=initial_inventory + int(delta_sum),
            adjustment_count=count,
        )

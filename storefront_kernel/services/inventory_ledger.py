"""
InventoryLedger -- serialized stock changes with an append-only audit trail.

Responsibility:
    Owns ``Product.inventory``.  Every change -- checkout reservation,
    cancellation/refund release, manual correction, initial stocking,
    bulk re-count -- goes through this service, which writes exactly one
    InventoryAdjustment carrying the delta actually applied.

Architecture position:
    Kernel > Services -- imperative shell.
    Called by OrderLifecycleEngine (reserve/release) and by admin tooling
    (manual_adjust/bulk_set/record_initial).  Reads for reporting live in
    InventorySelector.

Invariants enforced:
    - Ledger invariant: initial stock + sum(quantity_delta) == inventory,
      because the stock write and its adjustment share one flush.
    - No oversell: reserve/release/manual_adjust lock the product row
      (``SELECT ... FOR UPDATE``) before reading inventory, so two
      concurrent reservations of the last unit cannot both succeed.
    - reserve never clamps: it raises InsufficientInventoryError and
      writes nothing.
    - manual_adjust clamps at zero and records the clamped delta; a
      correction clamped to nothing writes no entry.

Failure modes:
    - ProductNotFoundError for an unknown product id.
    - InsufficientInventoryError when a reservation exceeds stock or the
      product is inactive.
    - InvalidQuantityError for zero/negative quantities.
"""

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront_kernel.domain.clock import Clock
from storefront_kernel.domain.dtos import (
    AdjustmentDTO,
    BulkSetResult,
    Shortage,
    StockUpdate,
)
from storefront_kernel.exceptions import (
    InsufficientInventoryError,
    InvalidQuantityError,
    ProductNotFoundError,
)
from storefront_kernel.logging_config import get_logger
from storefront_kernel.models.inventory import InventoryAdjustment, InventoryChangeType
from storefront_kernel.models.product import Product
from storefront_kernel.services.base import BaseService

logger = get_logger("services.inventory_ledger")


class InventoryLedger(BaseService[InventoryAdjustment]):
    """
    Service for every change to product stock.

    Contract:
        Each mutating method locks the product row, applies the change,
        appends one adjustment and flushes.  The caller commits.

    Non-goals:
        - Does NOT call ``session.commit()``.
        - Does NOT touch any Product attribute other than ``inventory``,
          ``adjustment_count`` and ``updated_at``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session, clock)

    # =========================================================================
    # Reads
    # =========================================================================

    def _get_product(self, product_id: UUID) -> Product:
        product = self.session.get(Product, product_id)
        if product is None:
            raise ProductNotFoundError(str(product_id))
        return product

    def _lock_product(self, product_id: UUID) -> Product:
        """Load the product row with a row-level lock held until commit."""
        product = self.session.execute(
            select(Product)
            .where(Product.id == product_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if product is None:
            raise ProductNotFoundError(str(product_id))
        return product

    @staticmethod
    def _shortage(product: Product, quantity: int) -> Shortage | None:
        if not product.is_active:
            return Shortage(
                product_id=product.id,
                product_name=product.name,
                requested=quantity,
                available=0,
                is_active=False,
            )
        if product.inventory < quantity:
            return Shortage(
                product_id=product.id,
                product_name=product.name,
                requested=quantity,
                available=product.inventory,
            )
        return None

    def check_availability(self, product_id: UUID, quantity: int) -> bool:
        """
        True iff the product is active and has at least ``quantity`` units.

        Pure read: takes no lock, so the answer can be stale by the time a
        reservation runs.  reserve() re-checks under the lock.
        """
        return self.shortage_for(product_id, quantity) is None

    def shortage_for(self, product_id: UUID, quantity: int) -> Shortage | None:
        """Describe why ``quantity`` units cannot be reserved, or None."""
        if quantity <= 0:
            raise InvalidQuantityError(quantity, "check_availability")
        return self._shortage(self._get_product(product_id), quantity)

    # =========================================================================
    # Writes
    # =========================================================================

    def _append(
        self,
        product: Product,
        delta: int,
        change_type: InventoryChangeType,
        reason: str,
        reference_id: str | None = None,
        actor_id: str | None = None,
    ) -> InventoryAdjustment:
        now = self._clock.now()
        product.inventory += delta
        product.updated_at = now
        product.adjustment_count += 1

        adjustment = InventoryAdjustment(
            product_id=product.id,
            seq=product.adjustment_count,
            quantity_delta=delta,
            change_type=change_type,
            reason=reason,
            reference_id=reference_id,
            actor_id=actor_id,
            created_at=now,
        )
        adjustment.product = product
        self.session.add(adjustment)
        self.session.flush()
        return adjustment

    def reserve(
        self,
        product_id: UUID,
        quantity: int,
        reason: str,
        reference_id: str | None = None,
        actor_id: str | None = None,
    ) -> AdjustmentDTO:
        """
        Take ``quantity`` units out of stock for an order.

        Raises:
            InvalidQuantityError: quantity <= 0.
            ProductNotFoundError: unknown product.
            InsufficientInventoryError: not enough stock or product inactive.
                Nothing is written.
        """
        if quantity <= 0:
            raise InvalidQuantityError(quantity, "reserve")

        product = self._lock_product(product_id)
        shortage = self._shortage(product, quantity)
        if shortage is not None:
            logger.warning(
                "inventory_reservation_rejected",
                extra={
                    "product_id": str(product_id),
                    "requested": quantity,
                    "available": shortage.available,
                    "is_active": shortage.is_active,
                    "reference_id": reference_id,
                },
            )
            raise InsufficientInventoryError([shortage])

        adjustment = self._append(
            product,
            -quantity,
            InventoryChangeType.ORDER_PLACED,
            reason,
            reference_id=reference_id,
            actor_id=actor_id,
        )
        logger.info(
            "inventory_reserved",
            extra={
                "product_id": str(product_id),
                "quantity": quantity,
                "inventory_after": product.inventory,
                "reference_id": reference_id,
            },
        )
        return AdjustmentDTO.from_model(adjustment)

    def release(
        self,
        product_id: UUID,
        quantity: int,
        reason: str,
        reference_id: str | None = None,
        actor_id: str | None = None,
    ) -> AdjustmentDTO:
        """Return ``quantity`` units to stock (cancellation or refund)."""
        if quantity <= 0:
            raise InvalidQuantityError(quantity, "release")

        product = self._lock_product(product_id)
        adjustment = self._append(
            product,
            quantity,
            InventoryChangeType.ORDER_RETURNED,
            reason,
            reference_id=reference_id,
            actor_id=actor_id,
        )
        logger.info(
            "inventory_released",
            extra={
                "product_id": str(product_id),
                "quantity": quantity,
                "inventory_after": product.inventory,
                "reference_id": reference_id,
            },
        )
        return AdjustmentDTO.from_model(adjustment)

    def manual_adjust(
        self,
        product_id: UUID,
        delta: int,
        reason: str,
        change_type: InventoryChangeType = InventoryChangeType.MANUAL_ADJUSTMENT,
        actor_id: str | None = None,
    ) -> AdjustmentDTO | None:
        """
        Apply an operator correction, clamping the result at zero.

        The adjustment records the delta actually applied: removing 8 units
        from a product with 5 in stock records ``-5``.  When the clamp leaves
        nothing to apply (removing stock from a product already at zero) no
        adjustment is written and None is returned.
        """
        if delta == 0:
            raise InvalidQuantityError(delta, "manual_adjust")

        product = self._lock_product(product_id)
        new_inventory = max(0, product.inventory + delta)
        applied = new_inventory - product.inventory

        if applied == 0:
            logger.warning(
                "inventory_adjustment_skipped",
                extra={
                    "product_id": str(product_id),
                    "requested_delta": delta,
                    "change_type": change_type.value,
                    "inventory": product.inventory,
                },
            )
            return None

        adjustment = self._append(
            product,
            applied,
            change_type,
            reason,
            actor_id=actor_id,
        )
        log_extra = {
            "product_id": str(product_id),
            "requested_delta": delta,
            "applied_delta": applied,
            "change_type": change_type.value,
            "inventory_after": new_inventory,
        }
        if applied != delta:
            logger.warning("inventory_adjustment_clamped", extra=log_extra)
        else:
            logger.info("inventory_adjusted", extra=log_extra)
        return AdjustmentDTO.from_model(adjustment)

    def record_initial(
        self,
        product_id: UUID,
        quantity: int,
        actor_id: str | None = None,
        reason: str = "Initial stock",
    ) -> AdjustmentDTO:
        """Stock a product for the first time with an INITIAL entry."""
        if quantity <= 0:
            raise InvalidQuantityError(quantity, "record_initial")

        product = self._lock_product(product_id)
        adjustment = self._append(
            product,
            quantity,
            InventoryChangeType.INITIAL,
            reason,
            actor_id=actor_id,
        )
        logger.info(
            "inventory_initialized",
            extra={
                "product_id": str(product_id),
                "quantity": quantity,
                "inventory_after": product.inventory,
            },
        )
        return AdjustmentDTO.from_model(adjustment)

    def bulk_set(
        self,
        updates: Sequence[StockUpdate],
        reason: str,
        actor_id: str | None = None,
    ) -> BulkSetResult:
        """
        Bring each product to an exact count (stock-take).

        Best effort: each update runs in its own savepoint.  Unknown
        products, negative targets and database errors are recorded in
        ``errors`` and the remaining updates still run.  An update whose
        target equals the current stock counts as updated but writes no
        adjustment.
        """
        updated_count = 0
        errors: list[str] = []

        for update in updates:
            if update.target_quantity < 0:
                errors.append(
                    f"Invalid target quantity {update.target_quantity} "
                    f"for product {update.product_id}"
                )
                continue
            try:
                with self.session.begin_nested():
                    product = self._lock_product(update.product_id)
                    delta = update.target_quantity - product.inventory
                    if delta != 0:
                        self._append(
                            product,
                            delta,
                            InventoryChangeType.MANUAL_ADJUSTMENT,
                            reason,
                            actor_id=actor_id,
                        )
                updated_count += 1
            except ProductNotFoundError:
                errors.append(f"Product {update.product_id} not found")
            except SQLAlchemyError:
                logger.warning(
                    "inventory_bulk_set_item_failed",
                    extra={"product_id": str(update.product_id)},
                    exc_info=True,
                )
                errors.append(f"Failed to update product {update.product_id}")

        logger.info(
            "inventory_bulk_set_completed",
            extra={
                "requested": len(updates),
                "updated_count": updated_count,
                "error_count": len(errors),
            },
        )
        return BulkSetResult(updated_count=updated_count, errors=tuple(errors))

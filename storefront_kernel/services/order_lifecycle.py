"""
OrderLifecycleEngine -- checkout and status transitions as single transactions.

Responsibility:
    The one entry point for placing orders and moving them through the
    status state machine.  Composes OrderStore writes with InventoryLedger
    reservations/releases so that an order row and its stock effect are
    never observable independently.

Architecture position:
    Kernel > Services -- orchestrator.  Owns the transaction boundary
    (commit/rollback) when ``auto_commit=True``; every service it calls
    only flushes.

Invariants enforced:
    - Checkout is all-or-nothing: availability is checked for every line
      before any write, then the order insert and every reservation run
      inside one SAVEPOINT.  A reservation failure on any line undoes the
      order and every earlier reservation.
    - Reservations and releases lock products in product-id order, so two
      orders over the same products cannot deadlock each other.
    - transition() locks the order row, validates against
      VALID_TRANSITIONS, releases stock for CANCELLED/REFUNDED, writes the
      status and its timeline entry, then commits once.
    - Re-requesting the current status is a no-op success: no stock
      movement, no timeline entry, no event.
    - TransitionEvents are published only after commit.

Failure modes:
    - EmptyOrderError / InvalidLineError / InvalidPayerError: bad checkout.
    - ProductNotFoundError: a cart line names an unknown product.
    - InsufficientInventoryError: lists every short line.
    - OrderNotFoundError / InvalidTransitionError: bad transition request.
    - TrackingNumberCollisionError: fatal, transition rolled back.
"""

import time
from collections.abc import Mapping, Sequence
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront_kernel.domain.clock import Clock, SystemClock
from storefront_kernel.domain.dtos import (
    BulkTransitionResult,
    CartLine,
    OrderDTO,
    PayerIdentity,
    TransitionEvent,
)
from storefront_kernel.exceptions import (
    InsufficientInventoryError,
    InvalidTransitionError,
    StorefrontError,
)
from storefront_kernel.logging_config import LogContext, get_logger
from storefront_kernel.models.order import (
    RELEASING_STATUSES,
    OrderStatus,
    transition_rejection,
)
from storefront_kernel.services.event_publisher import OrderEventPublisher
from storefront_kernel.services.inventory_ledger import InventoryLedger
from storefront_kernel.services.order_store import OrderStore

logger = get_logger("services.order_lifecycle")

# One fulfillment step per advance() call, with the timeline message it records
_NEXT_STAGE: dict[OrderStatus, tuple[OrderStatus, str]] = {
    OrderStatus.PENDING: (OrderStatus.PROCESSING, "Order processing started"),
    OrderStatus.PROCESSING: (OrderStatus.SHIPPED, "Order shipped"),
}


class OrderLifecycleEngine:
    """
    Orchestrates checkout and status transitions.

    Contract:
        ``create_order`` and ``transition`` each run as one atomic unit.
        With ``auto_commit=True`` (the default) the engine commits on
        success and rolls back on failure.  With ``auto_commit=False`` the
        work is still confined to a SAVEPOINT, the caller commits, and
        must call ``publish_pending_events()`` after doing so.

    Non-goals:
        - Does NOT call payment gateways; the payment reference is opaque.
        - Does NOT deliver notifications; it only publishes events.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        auto_commit: bool = True,
        publisher: OrderEventPublisher | None = None,
        order_store: OrderStore | None = None,
        ledger: InventoryLedger | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._auto_commit = auto_commit
        self._publisher = publisher or OrderEventPublisher()
        self._store = order_store or OrderStore(session, self._clock)
        self._ledger = ledger or InventoryLedger(session, self._clock)
        self._pending_events: list[TransitionEvent] = []

    @property
    def publisher(self) -> OrderEventPublisher:
        return self._publisher

    # =========================================================================
    # Transaction helpers
    # =========================================================================

    def _commit(self) -> None:
        if self._auto_commit:
            self._session.commit()
            self.publish_pending_events()

    def _rollback(self) -> None:
        if self._auto_commit:
            self._session.rollback()
        self._pending_events.clear()

    def publish_pending_events(self) -> int:
        """Publish events queued by committed transitions."""
        events, self._pending_events = self._pending_events, []
        for event in events:
            self._publisher.publish(event)
        return len(events)

    # =========================================================================
    # Checkout
    # =========================================================================

    def create_order(
        self,
        payer: PayerIdentity,
        lines: Sequence[CartLine],
        shipping_address: Mapping[str, Any],
        payment_reference: str | None = None,
        actor_id: str | None = None,
    ) -> OrderDTO:
        """
        Place an order and reserve stock for every line.

        Preconditions:
            - Any external payment authorization has already completed;
              no lock is held across calls to collaborators.

        Postconditions:
            - On success the order is PENDING, each line has one
              ORDER_PLACED adjustment tagged with the order id, and the
              transaction is committed (auto_commit=True).
            - On failure nothing is written.

        Raises:
            InsufficientInventoryError: Every short line, before any write.
        """
        with LogContext.bind(correlation_id=str(uuid4()), actor_id=actor_id):
            logger.info(
                "order_creation_started",
                extra={"line_count": len(lines), "payment_reference": payment_reference},
            )
            t0 = time.monotonic()
            try:
                order = self._do_create_order(
                    payer, lines, shipping_address, payment_reference, actor_id
                )
                self._commit()
            except StorefrontError as exc:
                self._rollback()
                logger.warning(
                    "order_creation_rejected",
                    extra={"error_code": exc.code, "error": str(exc)},
                )
                raise
            except Exception:
                self._rollback()
                logger.error(
                    "order_creation_failed",
                    extra={"duration_ms": round((time.monotonic() - t0) * 1000, 2)},
                    exc_info=True,
                )
                raise

            logger.info(
                "order_created",
                extra={
                    "order_id": str(order.id),
                    "total": order.total,
                    "is_guest_order": order.is_guest_order,
                    "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                },
            )
            return order

    def _do_create_order(
        self,
        payer: PayerIdentity,
        lines: Sequence[CartLine],
        shipping_address: Mapping[str, Any],
        payment_reference: str | None,
        actor_id: str | None,
    ) -> OrderDTO:
        self._store.validate_checkout(payer, lines)

        # Fail fast: report every short line before reserving anything
        shortages = []
        for line in lines:
            shortage = self._ledger.shortage_for(line.product_id, line.quantity)
            if shortage is not None:
                shortages.append(shortage)
        if shortages:
            raise InsufficientInventoryError(shortages)

        with self._session.begin_nested():
            order = self._store.create(
                payer,
                lines,
                shipping_address,
                payment_reference=payment_reference,
                actor_id=actor_id,
            )
            reference = str(order.id)
            for line in sorted(lines, key=lambda l: str(l.product_id)):
                self._ledger.reserve(
                    line.product_id,
                    line.quantity,
                    reason=f"Order {reference} placed",
                    reference_id=reference,
                    actor_id=actor_id,
                )
        return order

    # =========================================================================
    # Transitions
    # =========================================================================

    def transition(
        self,
        order_id: UUID,
        target_status: OrderStatus,
        actor_id: str | None = None,
        message: str | None = None,
    ) -> OrderDTO:
        """
        Move an order to ``target_status``.

        Postconditions:
            - Requesting the current status returns the order unchanged.
            - Moving to CANCELLED or REFUNDED returns every line's quantity
              to stock (one ORDER_RETURNED adjustment per line) in the same
              transaction as the status write.
            - The first move into SHIPPED issues a tracking number.

        Raises:
            OrderNotFoundError: Unknown order.
            InvalidTransitionError: States the current status and why the
                move is not allowed.
        """
        target_status = OrderStatus(target_status)
        with LogContext.bind(
            correlation_id=str(uuid4()),
            order_id=str(order_id),
            actor_id=actor_id,
        ):
            t0 = time.monotonic()
            try:
                order = self._do_transition(order_id, target_status, actor_id, message)
                self._commit()
            except StorefrontError as exc:
                self._rollback()
                logger.warning(
                    "order_transition_rejected",
                    extra={
                        "to_status": target_status.value,
                        "error_code": exc.code,
                        "error": str(exc),
                    },
                )
                raise
            except Exception:
                self._rollback()
                logger.error(
                    "order_transition_failed",
                    extra={
                        "to_status": target_status.value,
                        "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                    },
                    exc_info=True,
                )
                raise
            return order

    def _do_transition(
        self,
        order_id: UUID,
        target_status: OrderStatus,
        actor_id: str | None,
        message: str | None,
    ) -> OrderDTO:
        with self._session.begin_nested():
            order = self._store.get(order_id, for_update=True)
            current = order.status

            if current == target_status:
                logger.info(
                    "order_transition_noop",
                    extra={"status": current.value},
                )
                return OrderDTO.from_model(order)

            reason = transition_rejection(current, target_status)
            if reason is not None:
                raise InvalidTransitionError(
                    str(order.id), current.value, target_status.value, reason
                )

            if target_status in RELEASING_STATUSES:
                reference = str(order.id)
                for line in sorted(order.lines, key=lambda l: str(l.product_id)):
                    self._ledger.release(
                        line.product_id,
                        line.quantity,
                        reason=f"Order {reference} {target_status.value.lower()}",
                        reference_id=reference,
                        actor_id=actor_id,
                    )

            updated = self._store.update_status(
                order.id, target_status, actor_id=actor_id, message=message
            )

        self._pending_events.append(
            TransitionEvent(
                order_id=updated.id,
                from_status=current,
                to_status=target_status,
                timestamp=self._clock.now(),
                actor_id=actor_id,
                tracking_number=updated.tracking_number,
            )
        )
        logger.info(
            "order_transitioned",
            extra={
                "from_status": current.value,
                "to_status": target_status.value,
                "released": target_status in RELEASING_STATUSES,
                "tracking_number": updated.tracking_number,
            },
        )
        return updated

    def advance(self, order_id: UUID, actor_id: str | None = None) -> OrderDTO:
        """
        Move one order a single fulfillment step: PENDING to PROCESSING, or
        PROCESSING to SHIPPED.

        Orders in any other status are returned unchanged.  Delivery is
        reported by the carrier, never advanced here.
        """
        order = self._store.get(order_id)
        step = _NEXT_STAGE.get(order.status)
        if step is None:
            logger.debug(
                "order_advance_skipped",
                extra={"order_id": str(order_id), "status": order.status.value},
            )
            return OrderDTO.from_model(order)

        target, message = step
        return self.transition(order_id, target, actor_id=actor_id, message=message)

    def bulk_transition(
        self,
        order_ids: Sequence[UUID],
        target_status: OrderStatus,
        actor_id: str | None = None,
    ) -> BulkTransitionResult:
        """
        Apply ``target_status`` to each order independently.

        One order's failure is recorded in ``errors`` and never stops the
        rest.  Idempotent no-ops count as updated.
        """
        updated_count = 0
        errors: list[str] = []
        for order_id in order_ids:
            try:
                self.transition(order_id, target_status, actor_id=actor_id)
            except (StorefrontError, SQLAlchemyError) as exc:
                errors.append(f"Order {order_id}: {exc}")
                continue
            updated_count += 1

        logger.info(
            "order_bulk_transition_completed",
            extra={
                "to_status": OrderStatus(target_status).value,
                "requested": len(order_ids),
                "updated_count": updated_count,
                "error_count": len(errors),
            },
        )
        return BulkTransitionResult(updated_count=updated_count, errors=tuple(errors))

    # =========================================================================
    # Edits
    # =========================================================================

    def update_shipping_address(
        self,
        order_id: UUID,
        address: Mapping[str, Any],
        actor_id: str | None = None,
    ) -> OrderDTO:
        """Replace the address of a PENDING order (OrderNotEditableError otherwise)."""
        with LogContext.bind(order_id=str(order_id), actor_id=actor_id):
            try:
                order = self._store.update_shipping_address(
                    order_id, address, actor_id=actor_id
                )
                self._commit()
            except Exception:
                self._rollback()
                raise
            return order

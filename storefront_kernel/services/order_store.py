"""
OrderStore -- durable writes for orders, lines and the status timeline.

Responsibility:
    Persists new orders with their lines, applies status writes handed
    down by the Lifecycle Engine (issuing the tracking number on the first
    move into SHIPPED), edits shipping addresses while an order is still
    PENDING, and converts guest orders to a registered account.

Architecture position:
    Kernel > Services -- imperative shell.
    Called only by OrderLifecycleEngine for create/update_status; admin
    tooling may call update_shipping_address and claim_guest_orders
    directly.  Never touches inventory.  Reads live in OrderSelector.

Invariants enforced:
    - Every order has at least one line and every line a positive quantity.
    - Exactly one payer (registered user or guest email), also enforced
      by CHECK ck_order_single_payer.
    - One OrderStatusChange per status write, in the same flush.
    - tracking_number is assigned once; a UNIQUE collision is retried in a
      SAVEPOINT with a fresh number up to ``max_tracking_attempts`` times.

Failure modes:
    - EmptyOrderError, InvalidLineError, InvalidPayerError on bad input.
    - OrderNotFoundError for an unknown order id.
    - OrderNotEditableError when editing a non-PENDING order.
    - TrackingNumberCollisionError when retries are exhausted (fatal).
"""

from collections.abc import Callable, Mapping, Sequence
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from storefront_kernel.domain.clock import Clock
from storefront_kernel.domain.dtos import (
    CartLine,
    GuestPayer,
    OrderDTO,
    PayerIdentity,
    RegisteredPayer,
)
from storefront_kernel.domain.tracking import TrackingNumberGenerator
from storefront_kernel.exceptions import (
    EmptyOrderError,
    InvalidLineError,
    InvalidPayerError,
    OrderNotEditableError,
    OrderNotFoundError,
    TrackingNumberCollisionError,
)
from storefront_kernel.logging_config import get_logger
from storefront_kernel.models.order import (
    Order,
    OrderLine,
    OrderStatus,
    OrderStatusChange,
)
from storefront_kernel.services.base import BaseService

logger = get_logger("services.order_store")


class OrderStore(BaseService[Order]):
    """
    Service for order persistence.

    Contract:
        Validates checkout input, writes orders and status changes, and
        flushes within the caller's transaction.  Transition legality is
        the Lifecycle Engine's concern, not the store's.

    Non-goals:
        - Does NOT call ``session.commit()``.
        - Does NOT reserve or release stock.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        tracking_number_generator: Callable[[], str] | None = None,
        max_tracking_attempts: int = 5,
    ):
        super().__init__(session, clock)
        self._next_tracking_number = (
            tracking_number_generator or TrackingNumberGenerator(self._clock)
        )
        self._max_tracking_attempts = max_tracking_attempts

    # =========================================================================
    # Loading
    # =========================================================================

    def get(self, order_id: UUID, for_update: bool = False) -> Order:
        """Load an order, optionally locking its row until commit."""
        stmt = select(Order).where(Order.id == order_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        order = self.session.execute(stmt).scalar_one_or_none()
        if order is None:
            raise OrderNotFoundError(str(order_id))
        return order

    # =========================================================================
    # Creation
    # =========================================================================

    @staticmethod
    def _validate_payer(payer: PayerIdentity) -> None:
        if isinstance(payer, RegisteredPayer):
            if not payer.user_id or not payer.user_id.strip():
                raise InvalidPayerError("user_id must not be blank")
        elif isinstance(payer, GuestPayer):
            if not payer.email or "@" not in payer.email:
                raise InvalidPayerError("guest checkout requires a valid email")
        else:
            raise InvalidPayerError(
                f"unsupported payer type {type(payer).__name__}"
            )

    @staticmethod
    def _validate_lines(lines: Sequence[CartLine]) -> None:
        if not lines:
            raise EmptyOrderError()
        for index, line in enumerate(lines):
            if line.quantity <= 0:
                raise InvalidLineError(
                    index, str(line.product_id), "quantity must be positive"
                )
            if line.unit_price < 0:
                raise InvalidLineError(
                    index, str(line.product_id), "unit price must not be negative"
                )

    def validate_checkout(
        self, payer: PayerIdentity, lines: Sequence[CartLine]
    ) -> None:
        """Reject malformed checkout input before anything is locked or written."""
        self._validate_lines(lines)
        self._validate_payer(payer)

    def create(
        self,
        payer: PayerIdentity,
        lines: Sequence[CartLine],
        shipping_address: Mapping[str, Any],
        payment_reference: str | None = None,
        actor_id: str | None = None,
    ) -> OrderDTO:
        """
        Persist a PENDING order with one OrderLine per cart line.

        Raises:
            EmptyOrderError: No lines.
            InvalidLineError: A line with quantity <= 0 or a negative price.
            InvalidPayerError: Payer is neither a user nor a guest email.
        """
        self.validate_checkout(payer, lines)

        now = self._clock.now()
        total = sum((line.line_total for line in lines), Decimal("0"))

        order = Order(
            status=OrderStatus.PENDING,
            total=total,
            payment_reference=payment_reference,
            shipping_address=dict(shipping_address),
            status_change_count=1,
            created_at=now,
            updated_at=now,
        )
        if isinstance(payer, RegisteredPayer):
            order.user_id = payer.user_id
            order.is_guest_order = False
        else:
            order.guest_email = payer.email
            order.guest_name = payer.name
            order.is_guest_order = True

        order.lines = [
            OrderLine(
                product_id=line.product_id,
                position=position,
                quantity=line.quantity,
                unit_price=line.unit_price,
            )
            for position, line in enumerate(lines)
        ]
        order.status_changes = [
            OrderStatusChange(
                seq=1,
                from_status=None,
                to_status=OrderStatus.PENDING,
                actor_id=actor_id,
                message="Order placed",
                created_at=now,
            )
        ]

        self.session.add(order)
        self.session.flush()

        logger.info(
            "order_persisted",
            extra={
                "order_id": str(order.id),
                "line_count": len(lines),
                "total": total,
                "is_guest_order": order.is_guest_order,
            },
        )
        return OrderDTO.from_model(order)

    # =========================================================================
    # Status writes
    # =========================================================================

    def update_status(
        self,
        order_id: UUID,
        new_status: OrderStatus,
        actor_id: str | None = None,
        message: str | None = None,
    ) -> OrderDTO:
        """
        Write a status change the Lifecycle Engine has already validated.

        Appends the timeline entry and, on the first move into SHIPPED,
        issues a tracking number.  An order that already has one keeps it.
        """
        order = self.get(order_id, for_update=True)
        from_status = order.status
        now = self._clock.now()

        order.status = new_status
        order.updated_at = now
        order.status_change_count += 1
        self.session.add(
            OrderStatusChange(
                order_id=order.id,
                seq=order.status_change_count,
                from_status=from_status,
                to_status=new_status,
                actor_id=actor_id,
                message=message or f"Status changed to {new_status.value}",
                created_at=now,
            )
        )
        self.session.flush()

        if new_status == OrderStatus.SHIPPED and order.tracking_number is None:
            self._assign_tracking_number(order)

        logger.info(
            "order_status_written",
            extra={
                "order_id": str(order.id),
                "from_status": from_status.value,
                "to_status": new_status.value,
                "tracking_number": order.tracking_number,
            },
        )
        return OrderDTO.from_model(order)

    def _assign_tracking_number(self, order: Order) -> str:
        """
        Issue a unique tracking number.

        Each attempt runs in a SAVEPOINT so a UNIQUE violation only undoes
        the tracking-number write, not the status change flushed before it.
        """
        for attempt in range(1, self._max_tracking_attempts + 1):
            candidate = self._next_tracking_number()
            savepoint = self.session.begin_nested()
            try:
                order.tracking_number = candidate
                self.session.flush()
                savepoint.commit()
            except IntegrityError:
                savepoint.rollback()
                logger.warning(
                    "tracking_number_collision_retry",
                    extra={
                        "order_id": str(order.id),
                        "attempt": attempt,
                        "max_attempts": self._max_tracking_attempts,
                    },
                )
                continue

            logger.info(
                "tracking_number_assigned",
                extra={
                    "order_id": str(order.id),
                    "tracking_number": candidate,
                    "attempt": attempt,
                },
            )
            return candidate

        logger.error(
            "tracking_number_collision_exhausted",
            extra={
                "order_id": str(order.id),
                "attempts": self._max_tracking_attempts,
            },
        )
        raise TrackingNumberCollisionError(
            str(order.id), self._max_tracking_attempts
        )

    # =========================================================================
    # Edits
    # =========================================================================

    def update_shipping_address(
        self,
        order_id: UUID,
        address: Mapping[str, Any],
        actor_id: str | None = None,
    ) -> OrderDTO:
        """
        Replace the shipping address of a PENDING order.

        Raises:
            OrderNotFoundError: Unknown order.
            OrderNotEditableError: Order has left PENDING.
        """
        order = self.get(order_id, for_update=True)
        if not order.is_editable:
            raise OrderNotEditableError(
                str(order.id), order.status.value, "shipping_address"
            )

        order.shipping_address = dict(address)
        order.updated_at = self._clock.now()
        self.session.flush()

        logger.info(
            "order_shipping_address_updated",
            extra={"order_id": str(order.id), "actor_id": actor_id},
        )
        return OrderDTO.from_model(order)

    def claim_guest_orders(self, guest_email: str, user_id: str) -> int:
        """
        Attach every guest order placed with ``guest_email`` to ``user_id``.

        Used when a guest registers.  Email matching is case-insensitive.
        Returns the number of orders converted.
        """
        if not user_id or not user_id.strip():
            raise InvalidPayerError("user_id must not be blank")

        orders = self.session.execute(
            select(Order)
            .where(Order.is_guest_order.is_(True))
            .where(func.lower(Order.guest_email) == guest_email.strip().lower())
            .with_for_update()
        ).scalars().all()

        now = self._clock.now()
        for order in orders:
            order.user_id = user_id
            order.guest_email = None
            order.guest_name = None
            order.is_guest_order = False
            order.updated_at = now
        self.session.flush()

        logger.info(
            "guest_orders_claimed",
            extra={"user_id": user_id, "claimed_count": len(orders)},
        )
        return len(orders)

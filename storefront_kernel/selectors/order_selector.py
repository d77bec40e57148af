"""
Module: storefront_kernel.selectors.order_selector
Responsibility: Read-only queries over orders for customers, admins,
    reporting collaborators and the fulfillment scheduler.
Architecture position: Kernel > Selectors.  Extends BaseSelector.

Invariants enforced:
    - Every order read eager-loads lines and their products (selectinload),
      so receipts render without one query per line.
    - Paginated listings are newest first with id as tie-breaker.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Select, String, cast, func, or_, select
from sqlalchemy.orm import selectinload

from storefront_kernel.domain.dtos import (
    FulfillmentBacklog,
    OrderDTO,
    OrderFilters,
    OrderStats,
    Page,
    PageRequest,
    StatusChangeDTO,
)
from storefront_kernel.exceptions import OrderNotFoundError
from storefront_kernel.models.order import (
    Order,
    OrderLine,
    OrderStatus,
    OrderStatusChange,
)
from storefront_kernel.selectors.base import BaseSelector


class OrderSelector(BaseSelector[Order]):
    """
    Selector for orders and their status timelines.

    Contract:
        Returns OrderDTO (with lines), StatusChangeDTO, OrderStats and
        FulfillmentBacklog DTOs.  Never mutates.
    """

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _with_lines(stmt: Select) -> Select:
        return stmt.options(
            selectinload(Order.lines).selectinload(OrderLine.product)
        )

    def _page_of(self, stmt: Select, page: PageRequest | None) -> Page[OrderDTO]:
        page = page or PageRequest()
        total = self._count(stmt)
        rows = self.session.execute(
            self._paginate(
                self._with_lines(stmt).order_by(Order.created_at.desc(), Order.id.desc()),
                page,
            )
        ).scalars().all()
        return Page(
            items=tuple(OrderDTO.from_model(row) for row in rows),
            page=page.page,
            limit=page.limit,
            total=total,
        )

    # =========================================================================
    # Single-order lookups
    # =========================================================================

    def find_by_id(self, order_id: UUID) -> OrderDTO | None:
        order = self.session.execute(
            self._with_lines(select(Order).where(Order.id == order_id))
        ).scalar_one_or_none()
        return OrderDTO.from_model(order) if order is not None else None

    def get(self, order_id: UUID) -> OrderDTO:
        """Like find_by_id, but raises OrderNotFoundError."""
        order = self.find_by_id(order_id)
        if order is None:
            raise OrderNotFoundError(str(order_id))
        return order

    def find_by_payment_reference(self, payment_reference: str) -> OrderDTO | None:
        """Look up the order a payment webhook refers to."""
        order = self.session.execute(
            self._with_lines(
                select(Order)
                .where(Order.payment_reference == payment_reference)
                .order_by(Order.created_at.desc())
                .limit(1)
            )
        ).scalar_one_or_none()
        return OrderDTO.from_model(order) if order is not None else None

    def timeline(self, order_id: UUID) -> tuple[StatusChangeDTO, ...]:
        """Status history in the order it was written."""
        rows = self.session.execute(
            select(OrderStatusChange)
            .where(OrderStatusChange.order_id == order_id)
            .order_by(OrderStatusChange.seq)
        ).scalars().all()
        return tuple(StatusChangeDTO.from_model(row) for row in rows)

    # =========================================================================
    # Listings
    # =========================================================================

    def find_by_user_id(
        self, user_id: str, page: PageRequest | None = None
    ) -> Page[OrderDTO]:
        return self._page_of(select(Order).where(Order.user_id == user_id), page)

    def find_by_guest_email(
        self, guest_email: str, page: PageRequest | None = None
    ) -> Page[OrderDTO]:
        """Guest orders for an email address, matched case-insensitively."""
        stmt = select(Order).where(
            Order.is_guest_order.is_(True),
            func.lower(Order.guest_email) == guest_email.strip().lower(),
        )
        return self._page_of(stmt, page)

    def find_all(
        self,
        filters: OrderFilters | None = None,
        page: PageRequest | None = None,
    ) -> Page[OrderDTO]:
        filters = filters or OrderFilters()
        stmt = select(Order)
        if filters.status is not None:
            stmt = stmt.where(Order.status == filters.status)
        if filters.user_id is not None:
            stmt = stmt.where(Order.user_id == filters.user_id)
        if filters.date_from is not None:
            stmt = stmt.where(Order.created_at >= filters.date_from)
        if filters.date_to is not None:
            stmt = stmt.where(Order.created_at <= filters.date_to)
        return self._page_of(stmt, page)

    def search(self, query: str, page: PageRequest | None = None) -> Page[OrderDTO]:
        """
        Case-insensitive substring search over order id, payment reference,
        guest email, guest name and user id.  A blank query lists everything.
        """
        term = query.strip().lower()
        if not term:
            return self._page_of(select(Order), page)

        pattern = f"%{term}%"
        stmt = select(Order).where(
            or_(
                func.lower(cast(Order.id, String)).like(pattern),
                func.lower(Order.payment_reference).like(pattern),
                func.lower(Order.guest_email).like(pattern),
                func.lower(Order.guest_name).like(pattern),
                func.lower(Order.user_id).like(pattern),
            )
        )
        return self._page_of(stmt, page)

    def recent(self, limit: int = 10) -> tuple[OrderDTO, ...]:
        rows = self.session.execute(
            self._with_lines(
                select(Order).order_by(Order.created_at.desc(), Order.id.desc()).limit(limit)
            )
        ).scalars().all()
        return tuple(OrderDTO.from_model(row) for row in rows)

    def requiring_fulfillment(self) -> tuple[OrderDTO, ...]:
        """PROCESSING orders, oldest first."""
        rows = self.session.execute(
            self._with_lines(
                select(Order)
                .where(Order.status == OrderStatus.PROCESSING)
                .order_by(Order.created_at.asc(), Order.id)
            )
        ).scalars().all()
        return tuple(OrderDTO.from_model(row) for row in rows)

    # =========================================================================
    # Scheduler support
    # =========================================================================

    def ids_in_status(self, status: OrderStatus) -> tuple[UUID, ...]:
        """Ids of every order in ``status``, oldest first."""
        return tuple(
            self.session.execute(
                select(Order.id)
                .where(Order.status == status)
                .order_by(Order.created_at.asc(), Order.id)
            ).scalars().all()
        )

    def processing_entered_before(self, cutoff: datetime) -> tuple[UUID, ...]:
        """
        PROCESSING orders whose latest move into PROCESSING happened at or
        before ``cutoff``.  Orders without a timeline entry fall back to
        ``updated_at``.
        """
        entered = (
            select(
                OrderStatusChange.order_id.label("order_id"),
                func.max(OrderStatusChange.created_at).label("entered_at"),
            )
            .where(OrderStatusChange.to_status == OrderStatus.PROCESSING)
            .group_by(OrderStatusChange.order_id)
            .subquery()
        )
        entered_at = func.coalesce(entered.c.entered_at, Order.updated_at)
        return tuple(
            self.session.execute(
                select(Order.id)
                .outerjoin(entered, entered.c.order_id == Order.id)
                .where(Order.status == OrderStatus.PROCESSING, entered_at <= cutoff)
                .order_by(Order.created_at.asc(), Order.id)
            ).scalars().all()
        )

    def fulfillment_backlog(self) -> FulfillmentBacklog:
        counts = self._status_counts(select(Order.status, func.count(Order.id)))
        return FulfillmentBacklog(
            pending=counts[OrderStatus.PENDING],
            processing=counts[OrderStatus.PROCESSING],
            shipped=counts[OrderStatus.SHIPPED],
        )

    # =========================================================================
    # Reporting
    # =========================================================================

    def _status_counts(self, stmt: Select) -> dict[OrderStatus, int]:
        counts = {status: 0 for status in OrderStatus}
        for status, count in self.session.execute(stmt.group_by(Order.status)):
            counts[OrderStatus(status)] = count
        return counts

    def stats(self, user_id: str | None = None) -> OrderStats:
        """
        Order count, revenue and per-status counts.

        Revenue is the sum of every order total regardless of status.
        """
        totals = select(func.count(Order.id), func.coalesce(func.sum(Order.total), 0))
        by_status = select(Order.status, func.count(Order.id))
        if user_id is not None:
            totals = totals.where(Order.user_id == user_id)
            by_status = by_status.where(Order.user_id == user_id)

        total_orders, revenue = self.session.execute(totals).one()
        total_revenue = Decimal(str(revenue))
        average = total_revenue / total_orders if total_orders else Decimal("0")

        return OrderStats(
            total_orders=total_orders,
            total_revenue=total_revenue,
            average_order_value=average,
            counts_by_status=self._status_counts(by_status),
        )

"""
Read-model and request DTO tests -- pure, no database.
"""

import dataclasses
from datetime import datetime
from decimal import Decimal
from uuid import uuid4

import pytest

from storefront_kernel.domain.dtos import (
    CartLine,
    FulfillmentBacklog,
    GuestPayer,
    LedgerCheck,
    OrderDTO,
    OrderLineDTO,
    Page,
    PageRequest,
    RegisteredPayer,
    Shortage,
)
from storefront_kernel.exceptions import InsufficientInventoryError
from storefront_kernel.models.order import OrderStatus


def _order(**overrides) -> OrderDTO:
    values = dict(
        id=uuid4(),
        status=OrderStatus.PENDING,
        user_id="user-1",
        guest_email=None,
        guest_name=None,
        is_guest_order=False,
        tracking_number=None,
        total=Decimal("30.00"),
        payment_reference=None,
        shipping_address={},
        created_at=datetime(2024, 1, 1),
        updated_at=datetime(2024, 1, 1),
    )
    values.update(overrides)
    return OrderDTO(**values)


class TestPagination:

    def test_offset(self):
        assert PageRequest(page=1, limit=10).offset == 0
        assert PageRequest(page=4, limit=25).offset == 75

    @pytest.mark.parametrize("page, limit", [(0, 10), (-1, 10), (1, 0), (1, 101)])
    def test_out_of_range(self, page, limit):
        with pytest.raises(ValueError):
            PageRequest(page=page, limit=limit)

    def test_custom_max_limit(self):
        assert PageRequest(limit=500, max_limit=500).limit == 500

    @pytest.mark.parametrize(
        "total, limit, pages",
        [(0, 10, 0), (1, 10, 1), (10, 10, 1), (11, 10, 2), (100, 7, 15)],
    )
    def test_total_pages(self, total, limit, pages):
        assert Page(items=(), page=1, limit=limit, total=total).total_pages == pages

    def test_has_next(self):
        assert Page(items=(), page=1, limit=10, total=11).has_next
        assert not Page(items=(), page=2, limit=10, total=11).has_next
        assert not Page(items=(), page=1, limit=10, total=0).has_next


class TestLines:

    def test_cart_line_total(self):
        line = CartLine(product_id=uuid4(), quantity=3, unit_price=Decimal("4.99"))
        assert line.line_total == Decimal("14.97")

    def test_order_line_total_and_item_count(self):
        lines = tuple(
            OrderLineDTO(
                id=uuid4(),
                product_id=uuid4(),
                product_name="Mug",
                category="Kitchen",
                position=i,
                quantity=qty,
                unit_price=Decimal("10.00"),
            )
            for i, qty in enumerate((1, 2))
        )
        order = _order(lines=lines)

        assert [line.line_total for line in order.lines] == [Decimal("10.00"), Decimal("20.00")]
        assert order.item_count == 3


class TestPayer:

    def test_registered(self):
        assert _order().payer == RegisteredPayer(user_id="user-1")

    def test_guest(self):
        order = _order(
            user_id=None,
            guest_email="g@example.com",
            guest_name="Gee",
            is_guest_order=True,
        )
        assert order.payer == GuestPayer(email="g@example.com", name="Gee")

    def test_dtos_are_frozen(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            _order().status = OrderStatus.SHIPPED


class TestShortages:

    def test_short_by(self):
        shortage = Shortage(product_id=uuid4(), product_name="Lamp", requested=5, available=2)
        assert shortage.short_by == 3

    def test_error_lists_every_short_line(self):
        error = InsufficientInventoryError(
            [
                Shortage(product_id=uuid4(), product_name="Lamp", requested=5, available=2),
                Shortage(
                    product_id=uuid4(),
                    product_name="Old Lamp",
                    requested=1,
                    available=0,
                    is_active=False,
                ),
            ]
        )

        assert len(error.shortages) == 2
        assert "Lamp: requested 5, available 2" in str(error)
        assert "Old Lamp: requested 1, available 0 (inactive)" in str(error)
        assert error.code == "INSUFFICIENT_INVENTORY"


class TestSummaries:

    def test_ledger_check(self):
        pid = uuid4()
        assert LedgerCheck(pid, inventory=4, ledger_balance=4, adjustment_count=2).is_consistent
        assert not LedgerCheck(pid, inventory=5, ledger_balance=4, adjustment_count=2).is_consistent

    def test_backlog_total(self):
        assert FulfillmentBacklog(pending=2, processing=3, shipped=4).total == 9

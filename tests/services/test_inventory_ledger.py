"""
Tests for InventoryLedger.

Tests cover:
1. Reservations and releases write one signed adjustment each
2. Reservations never oversell and never write on rejection
3. Manual adjustments clamp at zero and record the applied delta
4. Bulk stock-takes are best effort per item
5. The ledger balance always matches the stock count
"""

from uuid import uuid4

import pytest

from storefront_kernel.domain.dtos import StockUpdate
from storefront_kernel.exceptions import (
    InsufficientInventoryError,
    InvalidQuantityError,
    ProductNotFoundError,
)
from storefront_kernel.models.inventory import InventoryAdjustment, InventoryChangeType


def _adjustments(session, product_id):
    return (
        session.query(InventoryAdjustment)
        .filter(InventoryAdjustment.product_id == product_id)
        .order_by(InventoryAdjustment.created_at, InventoryAdjustment.id)
        .all()
    )


def _manual(session, product_id):
    return [
        adj
        for adj in _adjustments(session, product_id)
        if adj.change_type == InventoryChangeType.MANUAL_ADJUSTMENT
    ]


class TestAvailability:

    def test_available_when_stock_covers_quantity(self, ledger, make_product):
        product = make_product(stock=5)
        assert ledger.check_availability(product.id, 5) is True
        assert ledger.check_availability(product.id, 6) is False

    def test_inactive_product_is_never_available(self, ledger, make_product):
        product = make_product(stock=50, is_active=False)

        shortage = ledger.shortage_for(product.id, 1)

        assert shortage is not None
        assert shortage.available == 0
        assert shortage.is_active is False

    def test_shortage_reports_amount_short(self, ledger, make_product):
        product = make_product(name="Lamp", stock=2)

        shortage = ledger.shortage_for(product.id, 5)

        assert shortage.product_name == "Lamp"
        assert shortage.requested == 5
        assert shortage.available == 2
        assert shortage.short_by == 3

    def test_non_positive_quantity_rejected(self, ledger, make_product):
        product = make_product(stock=5)
        with pytest.raises(InvalidQuantityError):
            ledger.check_availability(product.id, 0)

    def test_unknown_product(self, ledger, db_engine):
        with pytest.raises(ProductNotFoundError):
            ledger.check_availability(uuid4(), 1)


class TestReserve:

    def test_reserve_decrements_and_records(self, session, ledger, make_product):
        product = make_product(stock=5)

        adj = ledger.reserve(
            product.id, 2, reason="Order X placed", reference_id="order-x", actor_id="u1"
        )
        session.commit()

        assert adj.quantity_delta == -2
        assert adj.change_type == InventoryChangeType.ORDER_PLACED
        assert adj.reference_id == "order-x"
        assert adj.product_name == product.name
        session.refresh(product)
        assert product.inventory == 3

    def test_reserve_exact_stock_reaches_zero(self, session, ledger, make_product):
        product = make_product(stock=3)

        ledger.reserve(product.id, 3, reason="all of it")
        session.commit()

        session.refresh(product)
        assert product.inventory == 0

    def test_oversell_rejected_without_writing(self, session, ledger, make_product):
        product = make_product(stock=2)
        before = len(_adjustments(session, product.id))

        with pytest.raises(InsufficientInventoryError) as exc_info:
            ledger.reserve(product.id, 3, reason="too many")

        assert exc_info.value.code == "INSUFFICIENT_INVENTORY"
        assert exc_info.value.shortages[0].available == 2
        session.rollback()
        session.refresh(product)
        assert product.inventory == 2
        assert len(_adjustments(session, product.id)) == before

    def test_inactive_product_cannot_be_reserved(self, ledger, make_product):
        product = make_product(stock=10, is_active=False)
        with pytest.raises(InsufficientInventoryError) as exc_info:
            ledger.reserve(product.id, 1, reason="inactive")
        assert "inactive" in str(exc_info.value)

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_non_positive_quantity_rejected(self, ledger, make_product, quantity):
        product = make_product(stock=5)
        with pytest.raises(InvalidQuantityError):
            ledger.reserve(product.id, quantity, reason="bad")

    def test_unknown_product(self, ledger, db_engine):
        with pytest.raises(ProductNotFoundError):
            ledger.reserve(uuid4(), 1, reason="ghost")

    def test_rejection_is_logged(self, ledger, make_product, captured_logs):
        product = make_product(stock=1)
        with pytest.raises(InsufficientInventoryError):
            ledger.reserve(product.id, 2, reason="too many")

        records = [r for r in captured_logs() if r["message"] == "inventory_reservation_rejected"]
        assert len(records) == 1
        assert records[0]["requested"] == 2
        assert records[0]["available"] == 1


class TestRelease:

    def test_release_increments_and_records(self, session, ledger, make_product):
        product = make_product(stock=5)
        ledger.reserve(product.id, 4, reason="placed", reference_id="o1")

        adj = ledger.release(product.id, 4, reason="cancelled", reference_id="o1")
        session.commit()

        assert adj.quantity_delta == 4
        assert adj.change_type == InventoryChangeType.ORDER_RETURNED
        session.refresh(product)
        assert product.inventory == 5

    def test_non_positive_quantity_rejected(self, ledger, make_product):
        product = make_product(stock=5)
        with pytest.raises(InvalidQuantityError):
            ledger.release(product.id, 0, reason="bad")


class TestManualAdjust:

    def test_positive_adjustment(self, session, ledger, make_product):
        product = make_product(stock=5)

        adj = ledger.manual_adjust(
            product.id, 10, reason="delivery", change_type=InventoryChangeType.RESTOCK
        )
        session.commit()

        assert adj.quantity_delta == 10
        assert adj.change_type == InventoryChangeType.RESTOCK
        session.refresh(product)
        assert product.inventory == 15

    def test_clamps_at_zero_and_records_applied_delta(
        self, session, ledger, make_product, captured_logs
    ):
        product = make_product(stock=5)

        adj = ledger.manual_adjust(
            product.id, -8, reason="water damage", change_type=InventoryChangeType.DAMAGED
        )
        session.commit()

        session.refresh(product)
        assert product.inventory == 0
        assert adj.quantity_delta == -5
        clamped = [r for r in captured_logs() if r["message"] == "inventory_adjustment_clamped"]
        assert clamped[0]["requested_delta"] == -8
        assert clamped[0]["applied_delta"] == -5

    def test_removal_from_empty_stock_writes_nothing(
        self, session, ledger, inventory_selector, make_product, captured_logs
    ):
        product = make_product(stock=0)

        assert ledger.manual_adjust(product.id, -3, reason="recount") is None
        session.commit()

        session.refresh(product)
        assert product.inventory == 0
        assert inventory_selector.verify_ledger(product.id).adjustment_count == 0
        skipped = [r for r in captured_logs() if r["message"] == "inventory_adjustment_skipped"]
        assert skipped[0]["requested_delta"] == -3

    def test_zero_delta_rejected(self, ledger, make_product):
        product = make_product(stock=5)
        with pytest.raises(InvalidQuantityError):
            ledger.manual_adjust(product.id, 0, reason="nothing")

    def test_default_change_type_is_manual(self, ledger, make_product):
        product = make_product(stock=5)
        adj = ledger.manual_adjust(product.id, -1, reason="recount")
        assert adj.change_type == InventoryChangeType.MANUAL_ADJUSTMENT


class TestRecordInitial:

    def test_initial_entry(self, session, ledger, make_product):
        product = make_product(stock=0)

        adj = ledger.record_initial(product.id, 25)
        session.commit()

        assert adj.change_type == InventoryChangeType.INITIAL
        assert adj.quantity_delta == 25
        assert adj.reason == "Initial stock"
        session.refresh(product)
        assert product.inventory == 25

    def test_non_positive_quantity_rejected(self, ledger, make_product):
        product = make_product()
        with pytest.raises(InvalidQuantityError):
            ledger.record_initial(product.id, 0)


class TestBulkSet:

    def test_sets_exact_counts(self, session, ledger, make_product):
        a = make_product(name="A", stock=5)
        b = make_product(name="B", stock=20)

        result = ledger.bulk_set(
            [StockUpdate(a.id, 12), StockUpdate(b.id, 3)], reason="stock-take"
        )
        session.commit()

        assert result.updated_count == 2
        assert result.errors == ()
        session.refresh(a)
        session.refresh(b)
        assert a.inventory == 12
        assert b.inventory == 3
        assert [x.quantity_delta for x in _manual(session, a.id)] == [7]
        assert [x.quantity_delta for x in _manual(session, b.id)] == [-17]

    def test_unchanged_count_writes_no_adjustment(self, session, ledger, make_product):
        product = make_product(stock=5)
        before = len(_adjustments(session, product.id))

        result = ledger.bulk_set([StockUpdate(product.id, 5)], reason="stock-take")

        assert result.updated_count == 1
        assert len(_adjustments(session, product.id)) == before

    def test_failures_do_not_stop_the_batch(self, session, ledger, make_product):
        good = make_product(stock=1)
        missing = uuid4()

        result = ledger.bulk_set(
            [
                StockUpdate(missing, 4),
                StockUpdate(good.id, -1),
                StockUpdate(good.id, 9),
            ],
            reason="stock-take",
        )
        session.commit()

        assert result.updated_count == 1
        assert result.errors == (
            f"Product {missing} not found",
            f"Invalid target quantity -1 for product {good.id}",
        )
        session.refresh(good)
        assert good.inventory == 9


class TestLedgerBalance:

    def test_balance_matches_stock_after_mixed_activity(
        self, session, ledger, inventory_selector, make_product
    ):
        product = make_product(stock=10)

        ledger.reserve(product.id, 4, reason="o1", reference_id="o1")
        ledger.reserve(product.id, 3, reason="o2", reference_id="o2")
        ledger.release(product.id, 4, reason="o1 cancelled", reference_id="o1")
        ledger.manual_adjust(product.id, -20, reason="shrinkage")
        ledger.manual_adjust(product.id, 6, reason="found")
        session.commit()

        check = inventory_selector.verify_ledger(product.id)
        assert check.is_consistent
        assert check.inventory == 6
        assert check.adjustment_count == 6

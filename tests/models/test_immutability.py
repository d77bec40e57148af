"""
Append-only persistence tests.

Verifies:
- Inventory adjustments cannot be updated or deleted
- Order lines and status history cannot be updated or deleted
- Orders cannot be deleted
- On PostgreSQL, raw SQL is blocked by the triggers as well
"""

import pytest
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError

from storefront_kernel.db.engine import get_engine, is_postgres
from storefront_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from storefront_kernel.db.triggers import ALL_TRIGGER_NAMES, triggers_installed
from storefront_kernel.exceptions import ImmutabilityViolationError
from storefront_kernel.models.inventory import InventoryAdjustment
from storefront_kernel.models.order import Order, OrderLine, OrderStatus, OrderStatusChange


@pytest.fixture
def placed_order(session, make_product, place_order):
    product = make_product(stock=5)
    order = place_order([(product, 2, 10)])
    return session.get(Order, order.id)


class TestInventoryAdjustmentImmutability:

    def test_update_blocked(self, session, placed_order):
        adj = session.query(InventoryAdjustment).filter(
            InventoryAdjustment.reference_id == str(placed_order.id)
        ).one()

        adj.quantity_delta = -1
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()

        assert exc_info.value.code == "IMMUTABILITY_VIOLATION"
        session.rollback()

    def test_delete_blocked(self, session, placed_order):
        adj = session.query(InventoryAdjustment).first()

        session.delete(adj)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()


class TestOrderLineImmutability:

    def test_quantity_update_blocked(self, session, placed_order):
        line = session.query(OrderLine).filter_by(order_id=placed_order.id).one()

        line.quantity = 99
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_delete_blocked(self, session, placed_order):
        line = session.query(OrderLine).filter_by(order_id=placed_order.id).one()

        session.delete(line)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()


class TestStatusHistoryImmutability:

    def test_message_update_blocked(self, session, placed_order):
        change = session.query(OrderStatusChange).filter_by(order_id=placed_order.id).one()

        change.message = "rewritten"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()


class TestOrderDeletion:

    def test_order_delete_blocked(self, session, placed_order):
        session.delete(placed_order)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_address_update_allowed(self, session, placed_order, clock):
        placed_order.shipping_address = {"line1": "elsewhere"}
        placed_order.updated_at = clock.now()
        session.flush()
        session.commit()


class TestListenerRegistration:

    def test_unregister_allows_correction(self, session, placed_order):
        if is_postgres():
            pytest.skip("database triggers still block the update")
        change = session.query(OrderStatusChange).filter_by(order_id=placed_order.id).one()
        unregister_immutability_listeners()
        try:
            change.message = "corrected"
            session.flush()
        finally:
            session.rollback()
            register_immutability_listeners()

    def test_register_is_idempotent(self, session, placed_order):
        register_immutability_listeners()
        register_immutability_listeners()

        change = session.query(OrderStatusChange).filter_by(order_id=placed_order.id).one()
        change.message = "rewritten"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()


@pytest.mark.postgres
class TestDatabaseTriggers:

    def test_all_triggers_installed(self, db_engine):
        assert triggers_installed(get_engine())
        assert len(ALL_TRIGGER_NAMES) == 8

    def test_raw_update_of_adjustment_blocked(self, session, placed_order):
        with pytest.raises(DBAPIError) as exc_info:
            session.execute(
                text("UPDATE inventory_adjustments SET quantity_delta = 0")
            )
        assert "IMMUTABILITY_VIOLATION" in str(exc_info.value)
        session.rollback()

    def test_raw_delete_of_order_blocked(self, session, placed_order):
        with pytest.raises(DBAPIError):
            session.execute(text("DELETE FROM orders"))
        session.rollback()

    def test_tracking_number_cannot_be_reassigned(self, session, lifecycle, placed_order):
        order_id = placed_order.id
        lifecycle.transition(order_id, OrderStatus.PROCESSING)
        lifecycle.transition(order_id, OrderStatus.SHIPPED)

        with pytest.raises(DBAPIError):
            session.execute(
                text("UPDATE orders SET tracking_number = 'TNOTHER' WHERE id = :id"),
                {"id": str(order_id)},
            )
        session.rollback()

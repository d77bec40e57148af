"""
Append-only guards for ledger and order history, enforced inside the ORM.

Stock on hand is only trustworthy if it always equals the sum of the
recorded adjustments, and the lines and timeline a shopper sees must be the
ones an operator sees later.  These listeners raise ImmutabilityViolationError
before SQLAlchemy emits the offending UPDATE or DELETE.  The PostgreSQL
triggers in db/triggers.py apply the same rules to writes that never pass
through the ORM.

    InventoryAdjustment   no update, no delete
    OrderLine             no update, no delete (cancel and reorder instead)
    OrderStatusChange     no update, no delete
    Order                 no delete (cancel or refund instead)

Entry points (the fulfillment CLI, the test suite) call
register_immutability_listeners() once at startup.  Tests that need to
write forbidden rows on purpose unregister, write, then register again.
"""

from sqlalchemy import event
from sqlalchemy.orm import object_session

from storefront_kernel.exceptions import ImmutabilityViolationError
from storefront_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _block(entity_type: str, target, operation: str, reason: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _has_column_changes(target) -> bool:
    """True when the flush would emit an UPDATE for target's own columns."""
    session = object_session(target)
    if session is None:
        return True
    return session.is_modified(target, include_collections=False)


# =============================================================================
# Inventory Adjustments
# =============================================================================


def _check_inventory_adjustment_immutability(mapper, connection, target):
    """Prevent any update to a ledger entry."""
    if not _has_column_changes(target):
        return
    _block(
        "InventoryAdjustment",
        target,
        "UPDATE",
        "Inventory adjustments are immutable; record a new adjustment instead",
    )


def _check_inventory_adjustment_delete(mapper, connection, target):
    _block(
        "InventoryAdjustment",
        target,
        "DELETE",
        "Inventory adjustments cannot be deleted",
    )


# =============================================================================
# Order Lines
# =============================================================================


def _check_order_line_immutability(mapper, connection, target):
    """
    Prevent edits to order lines.

    Line quantities and prices are frozen at checkout.  A wrong line is
    fixed by cancelling the order and placing a new one.
    """
    if not _has_column_changes(target):
        return
    _block(
        "OrderLine",
        target,
        "UPDATE",
        "Order lines are immutable after order creation",
    )


def _check_order_line_delete(mapper, connection, target):
    _block("OrderLine", target, "DELETE", "Order lines cannot be deleted")


# =============================================================================
# Status Timeline
# =============================================================================


def _check_status_change_immutability(mapper, connection, target):
    if not _has_column_changes(target):
        return
    _block(
        "OrderStatusChange",
        target,
        "UPDATE",
        "Status history entries are immutable",
    )


def _check_status_change_delete(mapper, connection, target):
    _block(
        "OrderStatusChange",
        target,
        "DELETE",
        "Status history entries cannot be deleted",
    )


# =============================================================================
# Orders
# =============================================================================


def _check_order_delete(mapper, connection, target):
    """Orders are cancelled or refunded, never physically deleted."""
    _block(
        "Order",
        target,
        "DELETE",
        "Orders cannot be deleted; cancel or refund instead",
    )


# =============================================================================
# Registration
# =============================================================================


def _listeners():
    from storefront_kernel.models.inventory import InventoryAdjustment
    from storefront_kernel.models.order import Order, OrderLine, OrderStatusChange

    return [
        (InventoryAdjustment, "before_update", _check_inventory_adjustment_immutability),
        (InventoryAdjustment, "before_delete", _check_inventory_adjustment_delete),
        (OrderLine, "before_update", _check_order_line_immutability),
        (OrderLine, "before_delete", _check_order_line_delete),
        (OrderStatusChange, "before_update", _check_status_change_immutability),
        (OrderStatusChange, "before_delete", _check_status_change_delete),
        (Order, "before_delete", _check_order_delete),
    ]


def register_immutability_listeners():
    """
    Attach every guard; repeated calls attach nothing new.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Detach every guard.  Tests only, and re-register afterwards.
    """
    for target, event_name, listener_fn in _listeners():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)

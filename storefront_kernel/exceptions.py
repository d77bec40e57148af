"""
Typed Exception Hierarchy for the Storefront Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Checkout and order-administration callers must react precisely to each
failure: a short line is shown to the shopper, an invalid transition is
shown to the operator, a tracking-number collision is an internal error.
Parsing message strings for that is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        engine.create_order(payer, lines, address)
    except InsufficientInventoryError as e:
        for shortage in e.shortages:
            show(f"{shortage.product_name}: only {shortage.available} left")

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    StorefrontError (base)
    |
    +-- NotFoundError
    |   +-- ProductNotFoundError
    |   +-- OrderNotFoundError
    |
    +-- InventoryError
    |   +-- InsufficientInventoryError
    |   +-- InvalidQuantityError
    |
    +-- OrderError
    |   +-- EmptyOrderError
    |   +-- InvalidLineError
    |   +-- InvalidPayerError
    |   +-- OrderNotEditableError
    |   +-- InvalidTransitionError
    |
    +-- TrackingNumberCollisionError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                         | When Raised
----------------|------------------------------|---------------------------------------
Not found       | PRODUCT_NOT_FOUND            | Product id doesn't exist
                | ORDER_NOT_FOUND              | Order id doesn't exist
----------------|------------------------------|---------------------------------------
Inventory       | INSUFFICIENT_INVENTORY       | Reservation would drive stock negative
                | INVALID_QUANTITY             | Zero or negative quantity argument
----------------|------------------------------|---------------------------------------
Order           | EMPTY_ORDER                  | Checkout with no lines
                | INVALID_LINE                 | Line quantity <= 0 or bad price
                | INVALID_PAYER                | Neither / both of user and guest
                | ORDER_NOT_EDITABLE           | Edit attempted on non-PENDING order
                | INVALID_TRANSITION           | State-machine violation
----------------|------------------------------|---------------------------------------
Tracking        | TRACKING_NUMBER_COLLISION    | Unique tracking number retries exhausted
----------------|------------------------------|---------------------------------------
Immutability    | IMMUTABILITY_VIOLATION       | UPDATE/DELETE of an audit record
----------------|------------------------------|---------------------------------------
Configuration   | CONFIGURATION_ERROR          | Invalid configuration value

Bulk operations never raise for a single item: per-item failures are
returned as data (``BulkSetResult.errors``, ``BulkTransitionResult.errors``).
===============================================================================
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from storefront_kernel.domain.dtos import Shortage


class StorefrontError(Exception):
    """
    Base exception for all storefront kernel errors.

    All subclasses must have a `code` class attribute for
    machine-readable error identification.
    """

    code: str = "STOREFRONT_ERROR"


# Lookup failures


class NotFoundError(StorefrontError):
    """Base exception for missing products and orders."""

    code: str = "NOT_FOUND"


class ProductNotFoundError(NotFoundError):
    """Product with given ID was not found."""

    code: str = "PRODUCT_NOT_FOUND"

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}")


class OrderNotFoundError(NotFoundError):
    """Order with given ID was not found."""

    code: str = "ORDER_NOT_FOUND"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


# Inventory-related exceptions


class InventoryError(StorefrontError):
    """Base exception for inventory ledger errors."""

    code: str = "INVENTORY_ERROR"


class InsufficientInventoryError(InventoryError):
    """
    One or more lines cannot be reserved without driving stock negative.

    Carries every short line so checkout can report which products are
    short and by how much.
    """

    code: str = "INSUFFICIENT_INVENTORY"

    def __init__(self, shortages: Sequence["Shortage"]):
        self.shortages = tuple(shortages)
        details = "; ".join(
            f"{s.product_name or s.product_id}: requested {s.requested}, "
            f"available {s.available}"
            + ("" if s.is_active else " (inactive)")
            for s in self.shortages
        )
        super().__init__(f"Insufficient inventory: {details}")


class InvalidQuantityError(InventoryError):
    """Quantity argument was zero or negative."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, quantity: int, operation: str):
        self.quantity = quantity
        self.operation = operation
        super().__init__(
            f"Invalid quantity {quantity} for {operation}: must be positive"
        )


# Order-related exceptions


class OrderError(StorefrontError):
    """Base exception for order validation and lifecycle errors."""

    code: str = "ORDER_ERROR"


class EmptyOrderError(OrderError):
    """Checkout attempted with no lines."""

    code: str = "EMPTY_ORDER"

    def __init__(self):
        super().__init__("Order must contain at least one line")


class InvalidLineError(OrderError):
    """A checkout line is malformed."""

    code: str = "INVALID_LINE"

    def __init__(self, line_index: int, product_id: str, reason: str):
        self.line_index = line_index
        self.product_id = product_id
        self.reason = reason
        super().__init__(
            f"Invalid line {line_index} for product {product_id}: {reason}"
        )


class InvalidPayerError(OrderError):
    """Payer identity is neither a registered user nor a complete guest."""

    code: str = "INVALID_PAYER"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid payer identity: {reason}")


class OrderNotEditableError(OrderError):
    """Mutation attempted on an order whose status forbids editing."""

    code: str = "ORDER_NOT_EDITABLE"

    def __init__(self, order_id: str, status: str, field: str):
        self.order_id = order_id
        self.status = status
        self.field = field
        super().__init__(
            f"Cannot change {field} of order {order_id}: "
            f"order is {status}, only PENDING orders can be edited"
        )


class InvalidTransitionError(OrderError):
    """Requested status change violates the order state machine."""

    code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        order_id: str,
        current_status: str,
        requested_status: str,
        reason: str,
    ):
        self.order_id = order_id
        self.current_status = current_status
        self.requested_status = requested_status
        self.reason = reason
        super().__init__(
            f"Cannot move order {order_id} from {current_status} to "
            f"{requested_status}: {reason}"
        )


# Tracking numbers


class TrackingNumberCollisionError(StorefrontError):
    """
    Unique tracking number could not be issued within the retry bound.

    Fatal: surfaced as an internal error, never retried by callers.
    """

    code: str = "TRACKING_NUMBER_COLLISION"

    def __init__(self, order_id: str, attempts: int):
        self.order_id = order_id
        self.attempts = attempts
        super().__init__(
            f"Could not assign a unique tracking number to order {order_id} "
            f"after {attempts} attempts"
        )


# Immutability-related exceptions


class ImmutabilityError(StorefrontError):
    """Base exception for immutability violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    Inventory adjustments, order lines and status changes are immutable
    from creation; orders are never physically deleted.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Configuration


class ConfigurationError(StorefrontError):
    """Configuration value is missing or invalid."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid configuration '{key}': {reason}")

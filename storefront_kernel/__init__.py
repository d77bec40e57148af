"""
Storefront Kernel - inventory-consistent order lifecycle.

An append-only inventory ledger and order state machine with:
- Atomic multi-line reservation at checkout
- Compensating releases on cancellation and refund
- Row-level locking for concurrent orders against the same product
- Immutable audit trail of every stock change
"""

__version__ = "0.1.0"

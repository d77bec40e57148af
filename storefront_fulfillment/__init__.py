"""
storefront_fulfillment -- Periodic promotion of orders through fulfillment.

Moves PENDING orders to PROCESSING and, once a grace period has passed,
PROCESSING orders to SHIPPED.  Every promotion goes through the kernel's
OrderLifecycleEngine.transition(), one order per transaction.

Architecture:
    storefront_fulfillment/ is a top-level package.  It imports from
    storefront_kernel; nothing in storefront_kernel imports from it.
"""

"""Fulfillment services."""

from storefront_fulfillment.services.scheduler import FulfillmentScheduler

__all__ = ["FulfillmentScheduler"]

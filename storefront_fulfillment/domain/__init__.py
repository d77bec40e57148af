"""Pure result types for fulfillment runs."""

from storefront_fulfillment.domain.types import (
    FulfillmentRunResult,
    OrderFailure,
    StageResult,
)

__all__ = [
    "FulfillmentRunResult",
    "OrderFailure",
    "StageResult",
]

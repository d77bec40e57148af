"""
storefront_fulfillment.domain.types -- Frozen results of a fulfillment run.

ZERO I/O.  Failures are data: one order's error is recorded here and never
aborts the rest of the run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID


@dataclass(frozen=True)
class OrderFailure:
    """One order the run could not promote."""

    order_id: UUID
    error_code: str
    message: str
    timed_out: bool = False


@dataclass(frozen=True)
class StageResult:
    """Outcome of one promotion stage (PENDING->PROCESSING or ->SHIPPED)."""

    processed_count: int = 0
    total: int = 0
    failures: tuple[OrderFailure, ...] = field(default=())

    @property
    def failed_count(self) -> int:
        return len(self.failures)


@dataclass(frozen=True)
class FulfillmentRunResult:
    """Both stages of one scheduler pass."""

    run_id: UUID
    started_at: datetime
    processing: StageResult
    shipping: StageResult
    duration_ms: float = 0.0

    @property
    def shipped_count(self) -> int:
        return self.shipping.processed_count

    @property
    def is_clean(self) -> bool:
        return not self.processing.failures and not self.shipping.failures

"""
FulfillmentScheduler -- in-process periodic promotion of orders.

Contract:
    ``run_once()`` promotes every PENDING order to PROCESSING, then every
    PROCESSING order that entered PROCESSING at least
    ``ship_grace_period_seconds`` ago to SHIPPED.  ``start()``/``stop()``
    repeat ``run_once()`` on a background thread.

Architecture: storefront_fulfillment/services.  Every promotion goes through
    OrderLifecycleEngine.transition(); the scheduler owns no order logic.

Invariants enforced:
    - Each order runs in its own session and transaction, on a worker
      thread joined with ``per_order_timeout_seconds``.  A stuck order is
      recorded as a timeout and the run moves on.
    - One order's failure is logged and recorded, never retried within the
      same run, and never aborts the batch.
    - On PostgreSQL each per-order transaction sets ``lock_timeout`` so no
      order lock is waited on longer than one transition should take.
    - All cutoffs come from the injected Clock.
"""

from __future__ import annotations

import contextvars
import threading
import time
from datetime import timedelta
from typing import Callable
from uuid import UUID, uuid4

from sqlalchemy import text
from sqlalchemy.orm import Session

from storefront_kernel.domain.clock import Clock, SystemClock
from storefront_kernel.logging_config import LogContext, get_logger
from storefront_kernel.models.order import OrderStatus
from storefront_kernel.selectors.order_selector import OrderSelector
from storefront_kernel.services.event_publisher import OrderEventPublisher
from storefront_kernel.services.order_lifecycle import OrderLifecycleEngine

from storefront_fulfillment.domain.types import (
    FulfillmentRunResult,
    OrderFailure,
    StageResult,
)

logger = get_logger("fulfillment.scheduler")

SCHEDULER_ACTOR_ID = "fulfillment-scheduler"


class FulfillmentScheduler:
    """Periodic PENDING -> PROCESSING -> SHIPPED promotion.

    Contract:
        - ``run_once()`` performs one pass and returns per-stage counts.
        - ``start()`` / ``stop()`` for background thread operation.
        - Respects the stop signal between orders.

    Non-goals:
        - NOT a distributed scheduler (run one instance per database).
        - Does NOT move orders to DELIVERED; carriers report delivery.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        engine_factory: Callable[[Session], OrderLifecycleEngine] | None = None,
        clock: Clock | None = None,
        publisher: OrderEventPublisher | None = None,
        ship_grace_period_seconds: float = 60,
        per_order_timeout_seconds: float = 30,
        tick_interval_seconds: float = 60,
        lock_timeout_ms: int | None = None,
        actor_id: str = SCHEDULER_ACTOR_ID,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._publisher = publisher or OrderEventPublisher()
        self._engine_factory = engine_factory or self._default_engine
        self._grace = timedelta(seconds=ship_grace_period_seconds)
        self._per_order_timeout = per_order_timeout_seconds
        self._tick_interval = tick_interval_seconds
        self._lock_timeout_ms = lock_timeout_ms
        self._actor_id = actor_id
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def _default_engine(self, session: Session) -> OrderLifecycleEngine:
        return OrderLifecycleEngine(
            session, clock=self._clock, publisher=self._publisher
        )

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def run_once(self) -> FulfillmentRunResult:
        """One full pass over both stages."""
        run_id = uuid4()
        started_at = self._clock.now()
        with LogContext.bind(run_id=str(run_id)):
            logger.info("fulfillment_run_started")
            t0 = time.monotonic()

            pending_ids = self._read_ids(
                lambda selector: selector.ids_in_status(OrderStatus.PENDING)
            )
            processing = self._run_stage(pending_ids, OrderStatus.PROCESSING)

            cutoff = self._clock.now() - self._grace
            ready_ids = self._read_ids(
                lambda selector: selector.processing_entered_before(cutoff)
            )
            shipping = self._run_stage(ready_ids, OrderStatus.SHIPPED)

            duration_ms = round((time.monotonic() - t0) * 1000, 2)
            logger.info(
                "fulfillment_run_completed",
                extra={
                    "processed_count": processing.processed_count,
                    "processing_total": processing.total,
                    "shipped_count": shipping.processed_count,
                    "shipping_total": shipping.total,
                    "failure_count": processing.failed_count + shipping.failed_count,
                    "duration_ms": duration_ms,
                },
            )
            return FulfillmentRunResult(
                run_id=run_id,
                started_at=started_at,
                processing=processing,
                shipping=shipping,
                duration_ms=duration_ms,
            )

    def start(self) -> None:
        """Start the scheduler in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="fulfillment-scheduler",
            daemon=True,
        )
        self._thread.start()
        logger.info("scheduler_started", extra={"tick_interval": self._tick_interval})

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for the current pass to finish."""
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("scheduler_stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.run_once()
            except Exception:
                logger.exception("fulfillment_run_exception")
            self._stop_event.wait(timeout=self._tick_interval)

    def _read_ids(self, query: Callable[[OrderSelector], tuple[UUID, ...]]) -> tuple[UUID, ...]:
        session = self._session_factory()
        try:
            return query(OrderSelector(session))
        finally:
            session.close()

    def _run_stage(self, order_ids: tuple[UUID, ...], target: OrderStatus) -> StageResult:
        processed = 0
        failures: list[OrderFailure] = []
        for order_id in order_ids:
            if self._stop_event.is_set():
                break
            failure = self._promote(order_id, target)
            if failure is None:
                processed += 1
            else:
                failures.append(failure)
        return StageResult(
            processed_count=processed,
            total=len(order_ids),
            failures=tuple(failures),
        )

    def _promote(self, order_id: UUID, target: OrderStatus) -> OrderFailure | None:
        """Run one transition on a worker thread, bounded by the per-order timeout."""
        outcome: dict[str, BaseException] = {}

        def work() -> None:
            session = self._session_factory()
            try:
                if self._lock_timeout_ms and session.get_bind().dialect.name == "postgresql":
                    session.execute(
                        text(f"SET LOCAL lock_timeout = {int(self._lock_timeout_ms)}")
                    )
                self._engine_factory(session).transition(
                    order_id,
                    target,
                    actor_id=self._actor_id,
                    message=f"Moved to {target.value} by fulfillment scheduler",
                )
            except Exception as exc:
                outcome["error"] = exc
            finally:
                session.close()

        # The worker carries the run's LogContext (run_id) with it
        context = contextvars.copy_context()
        worker = threading.Thread(
            target=context.run,
            args=(work,),
            name=f"fulfillment-{order_id}",
            daemon=True,
        )
        worker.start()
        worker.join(timeout=self._per_order_timeout)

        if worker.is_alive():
            logger.error(
                "fulfillment_order_timed_out",
                extra={
                    "order_id": str(order_id),
                    "to_status": target.value,
                    "timeout_seconds": self._per_order_timeout,
                },
            )
            return OrderFailure(
                order_id=order_id,
                error_code="TIMEOUT",
                message=(
                    f"Transition to {target.value} did not finish within "
                    f"{self._per_order_timeout}s"
                ),
                timed_out=True,
            )

        error = outcome.get("error")
        if error is None:
            return None

        logger.error(
            "fulfillment_order_failed",
            extra={
                "order_id": str(order_id),
                "to_status": target.value,
                "error_code": getattr(error, "code", type(error).__name__),
            },
            exc_info=(type(error), error, error.__traceback__),
        )
        return OrderFailure(
            order_id=order_id,
            error_code=getattr(error, "code", type(error).__name__),
            message=str(error),
        )

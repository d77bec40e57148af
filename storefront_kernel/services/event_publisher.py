"""
OrderEventPublisher -- in-process fan-out of committed status changes.

Responsibility:
    Lets collaborators (e-mail notification, analytics, webhooks) react
    to order transitions without the Lifecycle Engine knowing about them.
    The engine publishes a TransitionEvent only after the transition has
    committed, so subscribers never see a change that was rolled back.

Failure modes:
    - A subscriber that raises is logged with its traceback and skipped;
      the remaining subscribers still run and the transition stays
      committed.
"""

import threading
from collections.abc import Callable

from storefront_kernel.domain.dtos import TransitionEvent
from storefront_kernel.logging_config import get_logger

logger = get_logger("services.event_publisher")

TransitionSubscriber = Callable[[TransitionEvent], None]


class OrderEventPublisher:
    """Thread-safe subscriber registry for TransitionEvents."""

    def __init__(self) -> None:
        self._subscribers: list[TransitionSubscriber] = []
        self._lock = threading.Lock()

    def subscribe(self, subscriber: TransitionSubscriber) -> None:
        with self._lock:
            if subscriber not in self._subscribers:
                self._subscribers.append(subscriber)

    def unsubscribe(self, subscriber: TransitionSubscriber) -> None:
        with self._lock:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, event: TransitionEvent) -> int:
        """
        Deliver ``event`` to every subscriber.

        Returns the number of subscribers that handled it without raising.
        """
        with self._lock:
            subscribers = list(self._subscribers)

        delivered = 0
        for subscriber in subscribers:
            try:
                subscriber(event)
            except Exception:
                logger.error(
                    "transition_subscriber_failed",
                    extra={
                        "order_id": str(event.order_id),
                        "to_status": event.to_status.value,
                        "subscriber": getattr(
                            subscriber, "__qualname__", repr(subscriber)
                        ),
                    },
                    exc_info=True,
                )
                continue
            delivered += 1
        return delivered

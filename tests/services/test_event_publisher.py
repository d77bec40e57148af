"""Tests for OrderEventPublisher -- in-process, no database."""

from datetime import datetime
from uuid import uuid4

from storefront_kernel.domain.dtos import TransitionEvent
from storefront_kernel.models.order import OrderStatus
from storefront_kernel.services.event_publisher import OrderEventPublisher


def _event():
    return TransitionEvent(
        order_id=uuid4(),
        from_status=OrderStatus.PROCESSING,
        to_status=OrderStatus.SHIPPED,
        timestamp=datetime(2024, 1, 1, 12, 0, 0),
        tracking_number="TNABC",
    )


class TestSubscriptions:

    def test_subscribe_is_idempotent(self):
        publisher = OrderEventPublisher()
        seen = []
        publisher.subscribe(seen.append)
        publisher.subscribe(seen.append)

        assert publisher.subscriber_count == 1
        assert publisher.publish(_event()) == 1
        assert len(seen) == 1

    def test_unsubscribe(self):
        publisher = OrderEventPublisher()
        seen = []
        publisher.subscribe(seen.append)
        publisher.unsubscribe(seen.append)
        publisher.unsubscribe(seen.append)

        assert publisher.publish(_event()) == 0
        assert seen == []

    def test_delivery_in_subscription_order(self):
        publisher = OrderEventPublisher()
        calls = []
        publisher.subscribe(lambda e: calls.append("email"))
        publisher.subscribe(lambda e: calls.append("analytics"))

        publisher.publish(_event())

        assert calls == ["email", "analytics"]


class TestFailingSubscribers:

    def test_failure_does_not_block_others(self, captured_logs):
        publisher = OrderEventPublisher()
        seen = []

        def broken(event):
            raise RuntimeError("smtp down")

        publisher.subscribe(broken)
        publisher.subscribe(seen.append)
        event = _event()

        delivered = publisher.publish(event)

        assert delivered == 1
        assert seen == [event]
        failures = [r for r in captured_logs() if r["message"] == "transition_subscriber_failed"]
        assert failures[0]["order_id"] == str(event.order_id)
        assert failures[0]["exc_message"] == "smtp down"

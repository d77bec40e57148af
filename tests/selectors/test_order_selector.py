"""
Tests for OrderSelector: lookups, listings, search, scheduler support
queries and statistics.
"""

from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from storefront_kernel.domain.dtos import GuestPayer, OrderFilters, PageRequest, RegisteredPayer
from storefront_kernel.exceptions import OrderNotFoundError
from storefront_kernel.models.order import OrderStatus


@pytest.fixture
def product(make_product):
    return make_product(name="Desk Lamp", category="Lighting", stock=100)


class TestLookups:

    def test_find_by_id_includes_line_context(self, order_selector, product, place_order):
        order = place_order([(product, 2, "19.99")])

        found = order_selector.find_by_id(order.id)

        assert found.id == order.id
        assert found.lines[0].product_name == "Desk Lamp"
        assert found.lines[0].category == "Lighting"
        assert found.lines[0].line_total == Decimal("39.98")

    def test_missing_order(self, order_selector, db_engine):
        assert order_selector.find_by_id(uuid4()) is None
        with pytest.raises(OrderNotFoundError):
            order_selector.get(uuid4())

    def test_find_by_payment_reference(self, order_selector, product, place_order):
        order = place_order([(product, 1, 5)], payment_reference="pi_abc")

        assert order_selector.find_by_payment_reference("pi_abc").id == order.id
        assert order_selector.find_by_payment_reference("pi_zzz") is None

    def test_timeline_oldest_first(self, clock, lifecycle, order_selector, product, place_order):
        order = place_order([(product, 1, 5)])
        clock.advance(60)
        lifecycle.transition(order.id, OrderStatus.PROCESSING, actor_id="ops")
        clock.advance(60)
        lifecycle.transition(order.id, OrderStatus.SHIPPED, actor_id="ops")

        timeline = order_selector.timeline(order.id)

        assert [(c.from_status, c.to_status) for c in timeline] == [
            (None, OrderStatus.PENDING),
            (OrderStatus.PENDING, OrderStatus.PROCESSING),
            (OrderStatus.PROCESSING, OrderStatus.SHIPPED),
        ]
        assert timeline[1].actor_id == "ops"


    def test_timeline_order_survives_shared_timestamps(
        self, lifecycle, order_selector, product, place_order
    ):
        orders = [place_order([(product, 1, 5)]) for _ in range(10)]
        for order in orders:
            lifecycle.transition(order.id, OrderStatus.PROCESSING)
            lifecycle.transition(order.id, OrderStatus.SHIPPED)

        for order in orders:
            timeline = order_selector.timeline(order.id)
            assert [c.to_status for c in timeline] == [
                OrderStatus.PENDING,
                OrderStatus.PROCESSING,
                OrderStatus.SHIPPED,
            ]
            assert [c.seq for c in timeline] == [1, 2, 3]
            assert len({c.created_at for c in timeline}) == 1


class TestListings:

    def test_find_by_user_newest_first(self, clock, order_selector, product, place_order):
        first = place_order([(product, 1, 5)], payer=RegisteredPayer("alice"))
        clock.advance(60)
        second = place_order([(product, 1, 5)], payer=RegisteredPayer("alice"))
        place_order([(product, 1, 5)], payer=RegisteredPayer("bob"))

        page = order_selector.find_by_user_id("alice")

        assert page.total == 2
        assert [o.id for o in page.items] == [second.id, first.id]

    def test_find_by_guest_email_ignores_case(self, order_selector, product, place_order):
        place_order([(product, 1, 5)], payer=GuestPayer("Sam@Example.com", "Sam"))

        page = order_selector.find_by_guest_email("sam@example.COM")

        assert page.total == 1
        assert page.items[0].guest_name == "Sam"

    def test_find_all_filters_by_status(self, lifecycle, order_selector, product, place_order):
        pending = place_order([(product, 1, 5)])
        moved = place_order([(product, 1, 5)])
        lifecycle.transition(moved.id, OrderStatus.PROCESSING)

        page = order_selector.find_all(OrderFilters(status=OrderStatus.PENDING))

        assert [o.id for o in page.items] == [pending.id]

    def test_recent(self, clock, order_selector, product, place_order):
        placed = []
        for _ in range(3):
            clock.advance(1)
            placed.append(place_order([(product, 1, 5)]))

        recent = order_selector.recent(limit=2)

        assert [o.id for o in recent] == [placed[2].id, placed[1].id]

    def test_pagination(self, clock, order_selector, product, place_order):
        for _ in range(5):
            clock.advance(1)
            place_order([(product, 1, 5)])

        page = order_selector.find_all(page=PageRequest(page=3, limit=2))

        assert page.total == 5
        assert page.total_pages == 3
        assert len(page.items) == 1
        assert not page.has_next

    def test_page_request_bounds(self):
        with pytest.raises(ValueError):
            PageRequest(page=0)
        with pytest.raises(ValueError):
            PageRequest(limit=101)


class TestSearch:

    def test_matches_guest_name_and_reference(self, order_selector, product, place_order):
        place_order(
            [(product, 1, 5)],
            payer=GuestPayer("jo@example.com", "Jo Marsh"),
            payment_reference="pi_777",
        )
        place_order([(product, 1, 5)], payment_reference="pi_888")

        assert order_selector.search("marsh").total == 1
        assert order_selector.search("PI_888").total == 1
        assert order_selector.search("pi_").total == 2

    def test_matches_order_id_fragment(self, order_selector, product, place_order):
        order = place_order([(product, 1, 5)])

        page = order_selector.search(str(order.id)[:8])

        assert order.id in [o.id for o in page.items]

    def test_blank_query_lists_everything(self, order_selector, product, place_order):
        place_order([(product, 1, 5)])
        place_order([(product, 1, 5)])

        assert order_selector.search("  ").total == 2


class TestSchedulerSupport:

    def test_ids_in_status(self, lifecycle, order_selector, product, place_order):
        a = place_order([(product, 1, 5)])
        b = place_order([(product, 1, 5)])
        lifecycle.transition(b.id, OrderStatus.PROCESSING)

        assert order_selector.ids_in_status(OrderStatus.PENDING) == (a.id,)
        assert order_selector.ids_in_status(OrderStatus.PROCESSING) == (b.id,)

    def test_processing_entered_before_cutoff(
        self, clock, lifecycle, order_selector, product, place_order
    ):
        early = place_order([(product, 1, 5)])
        lifecycle.transition(early.id, OrderStatus.PROCESSING)
        clock.advance(300)
        late = place_order([(product, 1, 5)])
        lifecycle.transition(late.id, OrderStatus.PROCESSING)

        cutoff = clock.now() - timedelta(seconds=60)
        ready = order_selector.processing_entered_before(cutoff)

        assert ready == (early.id,)
        assert set(order_selector.processing_entered_before(clock.now())) == {early.id, late.id}

    def test_backlog(self, lifecycle, order_selector, product, place_order):
        place_order([(product, 1, 5)])
        moved = place_order([(product, 1, 5)])
        lifecycle.transition(moved.id, OrderStatus.PROCESSING)
        cancelled = place_order([(product, 1, 5)])
        lifecycle.transition(cancelled.id, OrderStatus.CANCELLED)

        backlog = order_selector.fulfillment_backlog()

        assert (backlog.pending, backlog.processing, backlog.shipped) == (1, 1, 0)
        assert backlog.total == 2

    def test_requiring_fulfillment(self, lifecycle, order_selector, product, place_order):
        order = place_order([(product, 1, 5)])
        lifecycle.transition(order.id, OrderStatus.PROCESSING)

        assert [o.id for o in order_selector.requiring_fulfillment()] == [order.id]


class TestStats:

    def test_revenue_and_counts(self, lifecycle, order_selector, product, place_order):
        place_order([(product, 2, "10.00")], payer=RegisteredPayer("alice"))
        cancelled = place_order([(product, 1, "30.00")], payer=RegisteredPayer("alice"))
        lifecycle.transition(cancelled.id, OrderStatus.CANCELLED)
        place_order([(product, 1, "5.00")], payer=RegisteredPayer("bob"))

        stats = order_selector.stats()

        assert stats.total_orders == 3
        assert stats.total_revenue == Decimal("55.00")
        assert stats.average_order_value.quantize(Decimal("0.01")) == Decimal("18.33")
        assert stats.counts_by_status[OrderStatus.PENDING] == 2
        assert stats.counts_by_status[OrderStatus.CANCELLED] == 1
        assert stats.counts_by_status[OrderStatus.DELIVERED] == 0

    def test_scoped_to_user(self, order_selector, product, place_order):
        place_order([(product, 2, "10.00")], payer=RegisteredPayer("alice"))
        place_order([(product, 1, "5.00")], payer=RegisteredPayer("bob"))

        stats = order_selector.stats(user_id="bob")

        assert stats.total_orders == 1
        assert stats.total_revenue == Decimal("5.00")

    def test_no_orders(self, order_selector, db_engine):
        stats = order_selector.stats()
        assert stats.total_orders == 0
        assert stats.average_order_value == Decimal("0")

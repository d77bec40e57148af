"""
Pytest fixtures for the storefront test suite.

Provides:
- A fresh database per test (SQLite in memory unless DATABASE_URL is set)
- Services and selectors bound to one session and a DeterministicClock
- Product and order builders
- Captured structured logs

Set DATABASE_URL to a PostgreSQL URL to run the tests marked ``postgres``;
without it they are skipped.
"""

import json
import logging
import os
from datetime import datetime
from decimal import Decimal
from io import StringIO
from typing import Generator

import pytest
from sqlalchemy.orm import Session

from storefront_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from storefront_kernel.db.immutability import register_immutability_listeners
from storefront_kernel.domain.clock import DeterministicClock
from storefront_kernel.domain.dtos import CartLine, GuestPayer, RegisteredPayer
from storefront_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from storefront_kernel.models.product import Product
from storefront_kernel.selectors.inventory_selector import InventorySelector
from storefront_kernel.selectors.order_selector import OrderSelector
from storefront_kernel.services.inventory_ledger import InventoryLedger
from storefront_kernel.services.order_lifecycle import OrderLifecycleEngine
from storefront_kernel.services.order_store import OrderStore

DEFAULT_DATABASE_URL = "sqlite:///:memory:"

TEST_ACTOR_ID = "test-operator"

SHIPPING_ADDRESS = {
    "line1": "1 Market Street",
    "city": "Springfield",
    "postal_code": "12345",
    "country": "US",
}


def get_database_url() -> str:
    return os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)


def is_postgres_url(url: str) -> bool:
    return url.startswith("postgresql")


def pytest_collection_modifyitems(config, items):
    if is_postgres_url(get_database_url()):
        return
    skip = pytest.mark.skip(reason="requires DATABASE_URL pointing at PostgreSQL")
    for item in items:
        if "postgres" in item.keywords:
            item.add_marker(skip)


@pytest.fixture(autouse=True, scope="session")
def json_logging_for_session():
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def fresh_log_context():
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture storefront_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, lifecycle):
            lifecycle.create_order(...)
            logs = captured_logs()
            assert any(r["message"] == "order_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("storefront_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def records() -> list[dict]:
        return [json.loads(raw) for raw in stream.getvalue().splitlines() if raw]

    yield records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def db_engine():
    """A fresh schema per test; tables are dropped on teardown."""
    eng = init_engine_from_url(
        get_database_url(),
        echo=False,
        pool_size=20,
        max_overflow=10,
        pool_timeout=10,
    )
    create_tables(install_triggers=True)
    register_immutability_listeners()
    yield eng
    drop_tables()
    reset_engine()


@pytest.fixture
def session_factory(db_engine):
    return get_session_factory()


@pytest.fixture
def session(db_engine) -> Generator[Session, None, None]:
    """
    The test's session.  Services commit for real; the schema is dropped
    afterwards, so no rollback isolation is needed.

    On in-memory SQLite every session shares one connection: a test must
    not hold this session's transaction open while another session works.
    """
    sess = get_session()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(datetime(2024, 1, 1, 12, 0, 0))


# =============================================================================
# Services and selectors
# =============================================================================


@pytest.fixture
def ledger(session, clock) -> InventoryLedger:
    return InventoryLedger(session, clock)


@pytest.fixture
def order_store(session, clock) -> OrderStore:
    return OrderStore(session, clock)


@pytest.fixture
def lifecycle(session, clock) -> OrderLifecycleEngine:
    return OrderLifecycleEngine(session, clock=clock)


@pytest.fixture
def inventory_selector(session) -> InventorySelector:
    return InventorySelector(session)


@pytest.fixture
def order_selector(session) -> OrderSelector:
    return OrderSelector(session)


# =============================================================================
# Builders
# =============================================================================


@pytest.fixture
def make_product(session, clock):
    """
    Create and commit a product.

    ``stock`` is recorded through the ledger as an INITIAL adjustment, so
    the ledger balance matches the stock count from the start.
    """

    def _make(
        name: str = "Widget",
        stock: int = 0,
        category: str | None = "General",
        low_stock_threshold: int = 10,
        is_active: bool = True,
    ) -> Product:
        now = clock.now()
        product = Product(
            name=name,
            category=category,
            inventory=0,
            low_stock_threshold=low_stock_threshold,
            is_active=is_active,
            created_at=now,
            updated_at=now,
        )
        session.add(product)
        session.flush()
        if stock:
            InventoryLedger(session, clock).record_initial(
                product.id, stock, actor_id=TEST_ACTOR_ID
            )
        session.commit()
        return product

    return _make


@pytest.fixture
def place_order(lifecycle):
    """
    Place an order through the lifecycle engine.

    ``lines`` is a list of ``(product, quantity, unit_price)`` tuples.
    """

    def _place(
        lines,
        payer=None,
        payment_reference: str | None = None,
        shipping_address: dict | None = None,
    ):
        return lifecycle.create_order(
            payer or RegisteredPayer(user_id="user-1"),
            [
                CartLine(product_id=p.id, quantity=qty, unit_price=Decimal(str(price)))
                for p, qty, price in lines
            ],
            shipping_address or SHIPPING_ADDRESS,
            payment_reference=payment_reference,
            actor_id=TEST_ACTOR_ID,
        )

    return _place


@pytest.fixture
def guest():
    return GuestPayer(email="Guest@Example.com", name="Guest Shopper")

"""
Config -> Kernel Bridges.

Turn a StorefrontConfig into kernel constructor arguments.  These live in
storefront_config because the kernel must NEVER import storefront_config.

Usage:
    config = get_active_config()
    init_database(config)
    engine_factory = lifecycle_engine_factory(config, clock, publisher)
    engine = engine_factory(session)
"""

from __future__ import annotations

import logging
from typing import Callable

from sqlalchemy.orm import Session

from storefront_config.schema import StorefrontConfig
from storefront_kernel.db.engine import init_engine_from_url
from storefront_kernel.domain.clock import Clock, SystemClock
from storefront_kernel.domain.dtos import PageRequest
from storefront_kernel.domain.tracking import TrackingNumberGenerator
from storefront_kernel.logging_config import configure_logging
from storefront_kernel.selectors.inventory_selector import InventorySelector
from storefront_kernel.services.event_publisher import OrderEventPublisher
from storefront_kernel.services.inventory_ledger import InventoryLedger
from storefront_kernel.services.order_lifecycle import OrderLifecycleEngine
from storefront_kernel.services.order_store import OrderStore


def init_database(config: StorefrontConfig):
    """Configure logging at the configured level and initialize the engine."""
    configure_logging(level=getattr(logging, config.logging.level.upper()))
    db = config.database
    return init_engine_from_url(
        db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_timeout=db.pool_timeout,
    )


def tracking_number_generator(
    config: StorefrontConfig, clock: Clock
) -> TrackingNumberGenerator:
    return TrackingNumberGenerator(
        clock,
        prefix=config.orders.tracking_prefix,
        suffix_length=config.orders.tracking_suffix_length,
    )


def build_order_store(
    config: StorefrontConfig, session: Session, clock: Clock
) -> OrderStore:
    return OrderStore(
        session,
        clock,
        tracking_number_generator=tracking_number_generator(config, clock),
        max_tracking_attempts=config.orders.tracking_max_attempts,
    )


def build_inventory_selector(config: StorefrontConfig, session: Session) -> InventorySelector:
    """Selector whose dashboard summary uses the configured low-stock threshold."""
    return InventorySelector(
        session,
        default_low_stock_threshold=config.inventory.default_low_stock_threshold,
    )


def lifecycle_engine_factory(
    config: StorefrontConfig,
    clock: Clock | None = None,
    publisher: OrderEventPublisher | None = None,
) -> Callable[[Session], OrderLifecycleEngine]:
    """Factory building a configured OrderLifecycleEngine per session."""
    clock = clock or SystemClock()
    publisher = publisher or OrderEventPublisher()

    def build(session: Session) -> OrderLifecycleEngine:
        return OrderLifecycleEngine(
            session,
            clock=clock,
            publisher=publisher,
            order_store=build_order_store(config, session, clock),
            ledger=InventoryLedger(session, clock),
        )

    return build


def page_request(
    config: StorefrontConfig, page: int = 1, limit: int | None = None
) -> PageRequest:
    """PageRequest using the configured default and maximum page sizes."""
    return PageRequest(
        page=page,
        limit=limit or config.orders.default_page_size,
        max_limit=config.orders.max_page_size,
    )

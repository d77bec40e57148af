"""
StorefrontConfig schema.

Frozen dataclasses that YAML settings are parsed into by the loader.
Defaults here mirror ``defaults.yaml`` so a section omitted from an
override file keeps its packaged values.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection settings passed to init_engine_from_url()."""

    url: str = "sqlite:///storefront.db"
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30


@dataclass(frozen=True)
class InventoryConfig:
    default_low_stock_threshold: int = 10


@dataclass(frozen=True)
class OrdersConfig:
    """Tracking-number format and listing page sizes."""

    tracking_prefix: str = "TN"
    tracking_suffix_length: int = 5
    tracking_max_attempts: int = 5
    default_page_size: int = 10
    max_page_size: int = 100


@dataclass(frozen=True)
class FulfillmentConfig:
    ship_grace_period_seconds: float = 60
    per_order_timeout_seconds: float = 30
    tick_interval_seconds: float = 60
    lock_timeout_ms: int | None = 5000


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class StorefrontConfig:
    """The complete runtime configuration."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    inventory: InventoryConfig = field(default_factory=InventoryConfig)
    orders: OrdersConfig = field(default_factory=OrdersConfig)
    fulfillment: FulfillmentConfig = field(default_factory=FulfillmentConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

"""
Configuration Loader (``storefront_config.loader``).

Responsibility
--------------
Reads YAML files, overlays them on the packaged defaults, and parses the
result into the frozen dataclasses of ``storefront_config.schema``.
Runtime callers go through ``storefront_config.get_active_config()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown section or key, wrong type, out-of-range value
  -> ``ConfigurationError`` naming the dotted key.
"""

from __future__ import annotations

import logging
from dataclasses import fields
from pathlib import Path
from typing import Any

import yaml

from storefront_config.schema import (
    DatabaseConfig,
    FulfillmentConfig,
    InventoryConfig,
    LoggingConfig,
    OrdersConfig,
    StorefrontConfig,
)
from storefront_kernel.exceptions import ConfigurationError

_SECTIONS: dict[str, type] = {
    "database": DatabaseConfig,
    "inventory": InventoryConfig,
    "orders": OrdersConfig,
    "fulfillment": FulfillmentConfig,
    "logging": LoggingConfig,
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ConfigurationError: if the document is not a mapping.
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(str(path), "top level must be a mapping")
    return data


def merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively overlay ``override`` on ``base`` (neither is modified)."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge(merged[key], value)
        else:
            merged[key] = value
    return merged


# ---------------------------------------------------------------------------
# Value checks
# ---------------------------------------------------------------------------


def _int(key: str, value: Any, minimum: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(key, f"expected an integer, got {value!r}")
    if value < minimum:
        raise ConfigurationError(key, f"must be >= {minimum}, got {value}")
    return value


def _number(key: str, value: Any, minimum: float, inclusive: bool = True) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(key, f"expected a number, got {value!r}")
    if value < minimum or (not inclusive and value == minimum):
        op = ">=" if inclusive else ">"
        raise ConfigurationError(key, f"must be {op} {minimum}, got {value}")
    return value


def _text(key: str, value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ConfigurationError(key, "expected a non-empty string")
    return value


def _bool(key: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise ConfigurationError(key, f"expected true or false, got {value!r}")
    return value


def _validate(config: StorefrontConfig) -> None:
    db = config.database
    _text("database.url", db.url)
    _bool("database.echo", db.echo)
    _int("database.pool_size", db.pool_size, 1)
    _int("database.max_overflow", db.max_overflow, 0)
    _int("database.pool_timeout", db.pool_timeout, 1)

    _int(
        "inventory.default_low_stock_threshold",
        config.inventory.default_low_stock_threshold,
        0,
    )

    orders = config.orders
    prefix = _text("orders.tracking_prefix", orders.tracking_prefix)
    if not prefix.isalnum():
        raise ConfigurationError("orders.tracking_prefix", "must be alphanumeric")
    _int("orders.tracking_suffix_length", orders.tracking_suffix_length, 1)
    _int("orders.tracking_max_attempts", orders.tracking_max_attempts, 1)
    _int("orders.max_page_size", orders.max_page_size, 1)
    _int("orders.default_page_size", orders.default_page_size, 1)
    if orders.default_page_size > orders.max_page_size:
        raise ConfigurationError(
            "orders.default_page_size", "must not exceed orders.max_page_size"
        )

    ff = config.fulfillment
    _number("fulfillment.ship_grace_period_seconds", ff.ship_grace_period_seconds, 0)
    _number(
        "fulfillment.per_order_timeout_seconds",
        ff.per_order_timeout_seconds,
        0,
        inclusive=False,
    )
    _number("fulfillment.tick_interval_seconds", ff.tick_interval_seconds, 0, inclusive=False)
    if ff.lock_timeout_ms is not None:
        _int("fulfillment.lock_timeout_ms", ff.lock_timeout_ms, 1)

    level = _text("logging.level", config.logging.level)
    if not isinstance(logging.getLevelName(level.upper()), int):
        raise ConfigurationError("logging.level", f"unknown level {level!r}")


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _parse_section(name: str, raw: Any, cls: type) -> Any:
    if raw is None:
        return cls()
    if not isinstance(raw, dict):
        raise ConfigurationError(name, "section must be a mapping")
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ConfigurationError(f"{name}.{unknown[0]}", "unknown setting")
    return cls(**raw)


def parse_config(data: dict[str, Any]) -> StorefrontConfig:
    """Parse a merged settings dict into a validated StorefrontConfig."""
    unknown = sorted(set(data) - set(_SECTIONS))
    if unknown:
        raise ConfigurationError(unknown[0], "unknown configuration section")

    config = StorefrontConfig(
        **{
            name: _parse_section(name, data.get(name), cls)
            for name, cls in _SECTIONS.items()
        }
    )
    _validate(config)
    return config

"""
storefront_config -- single public entrypoint for runtime configuration.

Responsibility:
    ``get_active_config()`` is the only way to obtain settings at runtime.
    It layers, in order: the packaged ``defaults.yaml``, an optional
    override file (argument, else the ``STOREFRONT_CONFIG`` environment
    variable), and ``DATABASE_URL`` for the connection string.

Architecture position:
    Configuration sits above ``storefront_kernel``.  The kernel MUST NEVER
    import from ``storefront_config``; ``storefront_config.bridges``
    translates settings into kernel constructor arguments.

Failure modes:
    - ``FileNotFoundError`` -- the override file does not exist.
    - ``ConfigurationError`` -- unknown keys or invalid values.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

from storefront_config.loader import load_yaml_file, merge, parse_config
from storefront_config.schema import (
    DatabaseConfig,
    FulfillmentConfig,
    InventoryConfig,
    LoggingConfig,
    OrdersConfig,
    StorefrontConfig,
)

_logger = logging.getLogger("storefront_kernel.config")

DEFAULTS_FILE = Path(__file__).parent / "defaults.yaml"

CONFIG_ENV_VAR = "STOREFRONT_CONFIG"
DATABASE_URL_ENV_VAR = "DATABASE_URL"


def get_active_config(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> StorefrontConfig:
    """The ONLY public configuration entrypoint.

    Args:
        path: Override YAML file.  Defaults to ``$STOREFRONT_CONFIG``.
        environ: Environment mapping (``os.environ`` when omitted).

    Returns:
        A validated, frozen StorefrontConfig.
    """
    env = os.environ if environ is None else environ
    data = load_yaml_file(DEFAULTS_FILE)

    override_path = path or env.get(CONFIG_ENV_VAR)
    if override_path:
        data = merge(data, load_yaml_file(Path(override_path)))

    database_url = env.get(DATABASE_URL_ENV_VAR)
    if database_url:
        data = merge(data, {"database": {"url": database_url}})

    config = parse_config(data)
    _logger.info(
        "storefront_config_loaded",
        extra={
            "override_file": str(override_path) if override_path else None,
            "database_url_from_env": bool(database_url),
            "dialect": config.database.url.split(":", 1)[0],
        },
    )
    return config


__all__ = [
    "get_active_config",
    "StorefrontConfig",
    "DatabaseConfig",
    "InventoryConfig",
    "OrdersConfig",
    "FulfillmentConfig",
    "LoggingConfig",
]

#!/usr/bin/env python3
"""
Run the fulfillment scheduler against the configured database.

Promotes PENDING orders to PROCESSING and, once the ship grace period has
passed, PROCESSING orders to SHIPPED.  Settings come from
storefront_config (defaults.yaml, then --config or STOREFRONT_CONFIG, then
DATABASE_URL); command-line flags override the fulfillment timings.

Usage:
  python3 scripts/run_fulfillment.py --once
  python3 scripts/run_fulfillment.py --loop [--tick 30] [--grace 120]
  python3 scripts/run_fulfillment.py --once --create-tables
"""

import argparse
import sys
import time
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Promote orders through fulfillment")
    p.add_argument("--config", default=None, help="Override YAML file")
    mode = p.add_mutually_exclusive_group()
    mode.add_argument("--once", action="store_true", help="Run a single pass and exit (default)")
    mode.add_argument("--loop", action="store_true", help="Run until interrupted")
    p.add_argument("--grace", type=float, default=None, help="Ship grace period in seconds")
    p.add_argument("--tick", type=float, default=None, help="Seconds between passes in --loop mode")
    p.add_argument(
        "--create-tables",
        action="store_true",
        help="Create tables (and PostgreSQL triggers) before running",
    )
    return p.parse_args()


def _print_result(result) -> None:
    print(f"  Run {result.run_id} ({result.duration_ms} ms)")
    print(
        f"    PENDING -> PROCESSING: {result.processing.processed_count}"
        f"/{result.processing.total}"
    )
    print(
        f"    PROCESSING -> SHIPPED: {result.shipping.processed_count}"
        f"/{result.shipping.total}"
    )
    for failure in result.processing.failures + result.shipping.failures:
        print(f"    FAILED {failure.order_id} [{failure.error_code}] {failure.message}")


def main() -> int:
    args = _parse_args()

    from storefront_config import get_active_config
    from storefront_config.bridges import init_database, lifecycle_engine_factory
    from storefront_fulfillment.services.scheduler import FulfillmentScheduler
    from storefront_kernel.db.engine import create_tables, get_session_factory
    from storefront_kernel.db.immutability import register_immutability_listeners
    from storefront_kernel.exceptions import ConfigurationError

    try:
        config = get_active_config(args.config)
    except (ConfigurationError, FileNotFoundError) as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 2

    try:
        init_database(config)
    except Exception as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 1

    if args.create_tables:
        create_tables(install_triggers=True)
    register_immutability_listeners()

    ff = config.fulfillment
    scheduler = FulfillmentScheduler(
        get_session_factory(),
        engine_factory=lifecycle_engine_factory(config),
        ship_grace_period_seconds=(
            args.grace if args.grace is not None else ff.ship_grace_period_seconds
        ),
        per_order_timeout_seconds=ff.per_order_timeout_seconds,
        tick_interval_seconds=args.tick if args.tick is not None else ff.tick_interval_seconds,
        lock_timeout_ms=ff.lock_timeout_ms,
    )

    if not args.loop:
        result = scheduler.run_once()
        _print_result(result)
        return 0 if result.is_clean else 1

    print("  Fulfillment scheduler running. Ctrl-C to stop.")
    scheduler.start()
    try:
        while scheduler.is_running:
            time.sleep(1.0)
    except KeyboardInterrupt:
        print()
    finally:
        scheduler.stop()
    print("  Stopped.")
    return 0


if __name__ == "__main__":
    sys.exit(main())

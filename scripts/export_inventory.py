#!/usr/bin/env python3
"""
Export a stock report as CSV.

Reports cover active products only: ``low_stock`` (in stock but at or
below the threshold), ``out_of_stock`` or ``all``.  The threshold defaults
to inventory.default_low_stock_threshold from storefront_config.

Usage:
  python3 scripts/export_inventory.py                       # low stock to stdout
  python3 scripts/export_inventory.py --kind out_of_stock -o out.csv
  python3 scripts/export_inventory.py --kind low_stock --threshold 5
"""

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from storefront_kernel.domain.stock_export import STOCK_REPORT_KINDS  # noqa: E402


def _parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Export low/out-of-stock products as CSV")
    p.add_argument("--config", default=None, help="Override YAML file")
    p.add_argument("--kind", choices=STOCK_REPORT_KINDS, default="low_stock")
    p.add_argument("--threshold", type=int, default=None, help="Low-stock threshold")
    p.add_argument("-o", "--output", default=None, help="File to write (default: stdout)")
    return p.parse_args()


def main() -> int:
    args = _parse_args()

    from storefront_config import get_active_config
    from storefront_config.bridges import init_database
    from storefront_kernel.db.engine import get_session
    from storefront_kernel.domain.stock_export import write_stock_csv
    from storefront_kernel.exceptions import ConfigurationError
    from storefront_kernel.selectors.inventory_selector import InventorySelector

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

    threshold = (
        args.threshold
        if args.threshold is not None
        else config.inventory.default_low_stock_threshold
    )

    session = get_session()
    try:
        rows = InventorySelector(session).stock_report(args.kind, threshold)
    finally:
        session.close()

    if args.output is None:
        write_stock_csv(rows, sys.stdout)
        return 0

    with open(args.output, "w", encoding="utf-8", newline="") as out:
        count = write_stock_csv(rows, out)
    print(f"  Wrote {count} products to {args.output}", file=sys.stderr)
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""
CSV rendering of stock reports.

Every field is quoted; products without a category are listed as
``Uncategorized``.  Callers pick the rows with InventorySelector.stock_report().
"""

from __future__ import annotations

import csv
from collections.abc import Iterable
from typing import TextIO

from storefront_kernel.domain.dtos import ProductStock

STOCK_REPORT_KINDS = ("low_stock", "out_of_stock", "all")

HEADER = ("id", "name", "inventory", "low_stock_threshold", "category")


def write_stock_csv(rows: Iterable[ProductStock], stream: TextIO) -> int:
    """Write a header plus one line per product; returns the product count."""
    writer = csv.writer(stream, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(HEADER)
    count = 0
    for row in rows:
        writer.writerow(
            (
                row.id,
                row.name,
                row.inventory,
                row.low_stock_threshold,
                row.category or "Uncategorized",
            )
        )
        count += 1
    return count

"""
CSV export of trade history.

Writes one row per offer event, grouped by item, with a profit comment after
each item's rows.
"""
from __future__ import annotations

import csv
import logging
from pathlib import Path
from typing import Iterable

from flipping.models import FlippingItem

logger = logging.getLogger(__name__)

CSV_COLUMNS = ["name", "date", "quantity", "price", "state"]
EXPORT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def export_trades_to_csv(
    path: Path, trades: Iterable[FlippingItem], interval_name: str
) -> int:
    """
    Export items and their offers to a CSV file.

    Args:
        path: Output file (overwritten)
        trades: Items to export, each with its offer history
        interval_name: Label of the selected time interval for the header

    Returns:
        Number of offer rows written

    Raises:
        OSError: If the file cannot be written
    """
    rows = 0
    with open(path, "w", newline="", encoding="utf-8") as f:
        f.write(f"# Displaying trades for selected time interval: {interval_name}\n")
        writer = csv.writer(f, lineterminator="\n")
        writer.writerow(CSV_COLUMNS)

        for item in trades:
            for offer in item.history:
                writer.writerow([
                    item.item_name,
                    offer.time.strftime(EXPORT_DATE_FORMAT),
                    offer.current_quantity_in_trade,
                    offer.price,
                    offer.state.name,
                ])
                rows += 1
            f.write(f"# Total profit: {FlippingItem.get_profit(item.history)}\n")
            writer.writerow([])

    logger.info(f"Exported {rows} offers to {path}")
    return rows

"""
Order grouping.

Partitions parsed rows by their ORDER NO cell.  Groups keep file order
(first appearance of each order number) and rows keep their original order
within a group.  Rows without an order number cannot be attributed to any
order and are skipped; they are counted, never reported as errors.
"""
import logging
from dataclasses import dataclass, field
from typing import Any

from models.import_row import COL_ORDER_NO, clean_text

logger = logging.getLogger(__name__)


@dataclass
class GroupedRows:
    """Rows keyed by order number plus the 1-based data-row numbers skipped."""
    orders: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    skipped_rows: list[int] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return sum(len(rows) for rows in self.orders.values())


def group_by_order(rows: list[dict[str, Any]]) -> GroupedRows:
    """
    Group *rows* by order number.

    ``sum(len(group)) + len(skipped_rows) == len(rows)`` always holds.
    """
    grouped = GroupedRows()
    for index, row in enumerate(rows, 1):
        order_no = clean_text(row.get(COL_ORDER_NO))
        if not order_no:
            logger.warning("Skipping row %d without %s: %s", index, COL_ORDER_NO, row)
            grouped.skipped_rows.append(index)
            continue
        grouped.orders.setdefault(order_no, []).append(row)

    logger.info(
        "Grouped %d row(s) into %d order(s), %d skipped",
        len(rows), len(grouped.orders), len(grouped.skipped_rows),
    )
    return grouped

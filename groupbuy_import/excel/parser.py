from __future__ import annotations

import logging

from ..models.import_data import ImportData, ProductType
from ..services.aggregate import aggregate_orders_by_nickname
from .layout import locate_layout
from .reader import WorkbookBytes, read_workbook, select_sheet
from .rows import parse_raw_orders

"""Order workbook parser entry point.

Sheet Reader -> Layout Locator -> Row Parser -> Aggregator -> ImportData.

Pure transformation over an in-memory buffer: no file or network I/O, no
global state. Identical input always yields an identical result or the same
ExcelParseError.
"""

__all__ = [
    "parse_order_workbook",
]

logger = logging.getLogger(__name__)


def parse_order_workbook(data: WorkbookBytes, sheet_name: str | None = None) -> ImportData:
    """Parse a group-buy summary workbook.

    Parameters
    ----------
    data: xlsx payload (bytes / bytearray / memoryview)
    sheet_name: sheet to use; None means the first sheet in document order

    Raises
    ------
    ExcelParseError: the workbook does not match the summary sheet layout
    WorkbookReadError: the payload is not a readable workbook
    """
    workbook = read_workbook(data)
    rows = select_sheet(workbook, sheet_name)
    layout = locate_layout(rows)
    raw_orders = parse_raw_orders(rows, layout.data_start_row_index, layout.product_columns)
    orders = aggregate_orders_by_nickname(raw_orders)
    logger.debug(
        "parsed period=%s products=%d raw_orders=%d orders=%d",
        layout.period_name,
        len(layout.product_columns),
        len(raw_orders),
        len(orders),
    )
    return ImportData(
        period_name=layout.period_name,
        product_types=[ProductType(name=c.name, unit_price=c.unit_price) for c in layout.product_columns],
        orders=orders,
    )

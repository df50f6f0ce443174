from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from .cells import Row, cell_at, cell_to_number, cell_to_text
from .errors import ExcelParseError, ParseErrorCode

"""Layout locator for group-buy summary sheets.

The sheet is loosely structured; anchors are found by scanning rows top to
bottom (first match wins, 0-indexed):

    row t : ... "<period>汇总表" ...          title row (any column)
    row p : _, "种类", name, name, ...         product-name row (column B)
    row u : _, "单价", price, price, ...       unit-price row (column B), u > p
    row h : "总金额", ...                      totals-header row (column A, optional)
    row h+1 (or u+1) ...                       member data rows

Product columns start at column index 2. A column whose product name is empty
is a spacer: it is skipped together with whatever its unit-price cell holds.
"""

__all__ = [
    "TITLE_MARKER",
    "PRODUCT_ROW_MARKER",
    "UNIT_PRICE_ROW_MARKER",
    "TOTAL_HEADER_MARKER",
    "FIRST_PRODUCT_COLUMN",
    "ProductColumn",
    "SheetLayout",
    "find_row_index",
    "extract_period_name",
    "parse_product_columns",
    "locate_layout",
]

logger = logging.getLogger(__name__)

TITLE_MARKER = "汇总表"
PRODUCT_ROW_MARKER = "种类"
UNIT_PRICE_ROW_MARKER = "单价"
TOTAL_HEADER_MARKER = "总金额"

TOTAL_COLUMN = 0
NICKNAME_COLUMN = 1
FIRST_PRODUCT_COLUMN = 2


@dataclass(frozen=True)
class ProductColumn:
    name: str  # trimmed, non-empty
    unit_price: float  # finite
    column_index: int  # >= FIRST_PRODUCT_COLUMN


@dataclass(frozen=True)
class SheetLayout:
    """Anchors and derived structure of one summary sheet."""
    title_row_index: int
    period_name: str
    product_row_index: int
    unit_price_row_index: int
    total_header_row_index: int | None
    data_start_row_index: int
    product_columns: list[ProductColumn]


def find_row_index(rows: Sequence[Row], predicate: Callable[[Row], bool]) -> int:
    """Return the index of the first row matching ``predicate``, or -1."""
    for i, row in enumerate(rows):
        if predicate(row):
            return i
    return -1


def _has_title(row: Row) -> bool:
    return any(TITLE_MARKER in cell_to_text(cell) for cell in row)


def extract_period_name(title_row: Row) -> str:
    """Period name = text before the first title marker in the first titled cell."""
    for cell in title_row:
        text = cell_to_text(cell)
        idx = text.find(TITLE_MARKER)
        if idx >= 0:
            return text[:idx].strip()
    return ""


def parse_product_columns(product_row: Row, unit_price_row: Row) -> list[ProductColumn]:
    columns: list[ProductColumn] = []
    column_count = max(len(product_row), len(unit_price_row))
    for col in range(FIRST_PRODUCT_COLUMN, column_count):
        name = cell_to_text(cell_at(product_row, col))
        if not name:
            continue
        unit_price = cell_to_number(cell_at(unit_price_row, col))
        if unit_price is None:
            raise ExcelParseError(
                ParseErrorCode.MISSING_UNIT_PRICE,
                f'Missing unit price for product "{name}"',
            )
        columns.append(ProductColumn(name=name, unit_price=unit_price, column_index=col))

    if not columns:
        raise ExcelParseError(ParseErrorCode.MISSING_PRODUCT_TYPES, "No product types found")
    return columns


def locate_layout(rows: Sequence[Row]) -> SheetLayout:
    """Find the structural anchors of a summary sheet.

    Raises:
        ExcelParseError: MISSING_TITLE_ROW, MISSING_PERIOD_NAME, MISSING_PRODUCT_ROW,
            MISSING_UNIT_PRICE_ROW, INVALID_LAYOUT, MISSING_UNIT_PRICE or
            MISSING_PRODUCT_TYPES
    """
    title_idx = find_row_index(rows, _has_title)
    if title_idx < 0:
        raise ExcelParseError(
            ParseErrorCode.MISSING_TITLE_ROW,
            f'Cannot find title row containing "{TITLE_MARKER}"',
        )

    period_name = extract_period_name(rows[title_idx])
    if not period_name:
        raise ExcelParseError(
            ParseErrorCode.MISSING_PERIOD_NAME,
            "Cannot extract period name from title row",
            row=title_idx + 1,
        )

    product_idx = find_row_index(
        rows, lambda r: cell_to_text(cell_at(r, NICKNAME_COLUMN)) == PRODUCT_ROW_MARKER
    )
    if product_idx < 0:
        raise ExcelParseError(
            ParseErrorCode.MISSING_PRODUCT_ROW,
            f'Cannot find product row containing "{PRODUCT_ROW_MARKER}"',
        )

    price_idx = find_row_index(
        rows, lambda r: cell_to_text(cell_at(r, NICKNAME_COLUMN)) == UNIT_PRICE_ROW_MARKER
    )
    if price_idx < 0:
        raise ExcelParseError(
            ParseErrorCode.MISSING_UNIT_PRICE_ROW,
            f'Cannot find unit price row containing "{UNIT_PRICE_ROW_MARKER}"',
        )
    if price_idx <= product_idx:
        raise ExcelParseError(
            ParseErrorCode.INVALID_LAYOUT,
            f'"{UNIT_PRICE_ROW_MARKER}" row must appear after "{PRODUCT_ROW_MARKER}" row',
            row=price_idx + 1,
        )

    header_idx = find_row_index(
        rows, lambda r: cell_to_text(cell_at(r, TOTAL_COLUMN)) == TOTAL_HEADER_MARKER
    )
    data_start = header_idx + 1 if header_idx >= 0 else price_idx + 1

    product_columns = parse_product_columns(rows[product_idx], rows[price_idx])
    logger.debug(
        "layout title=%d products=%d prices=%d header=%s data_start=%d columns=%s",
        title_idx,
        product_idx,
        price_idx,
        header_idx if header_idx >= 0 else None,
        data_start,
        [c.name for c in product_columns],
    )
    return SheetLayout(
        title_row_index=title_idx,
        period_name=period_name,
        product_row_index=product_idx,
        unit_price_row_index=price_idx,
        total_header_row_index=header_idx if header_idx >= 0 else None,
        data_start_row_index=data_start,
        product_columns=product_columns,
    )

from __future__ import annotations

from collections.abc import Sequence

from ..models.import_data import Order, OrderItem
from .cells import NonIntegerQuantityError, Row, cell_at, cell_to_number, cell_to_quantity, cell_to_text
from .errors import ExcelParseError, ParseErrorCode
from .layout import NICKNAME_COLUMN, TOTAL_COLUMN, ProductColumn

"""Data row parser.

Each row from the data start index to the end of the grid becomes one raw
order, a silent skip (blank / structural row) or an error.
"""

__all__ = [
    "parse_order_row",
    "parse_raw_orders",
]


def _has_meaningful_data(total_amount: float, items: list[OrderItem]) -> bool:
    return total_amount != 0 or any(i.quantity != 0 or i.subtotal != 0 for i in items)


def parse_order_row(row: Row, row_index: int, product_columns: Sequence[ProductColumn]) -> Order | None:
    """Parse one data row. Returns None when the row should be skipped.

    ``row_index`` is 0-based; messages report it 1-based.
    """
    nickname = cell_to_text(cell_at(row, NICKNAME_COLUMN))

    items: list[OrderItem] = []
    for column in product_columns:
        try:
            quantity = cell_to_quantity(cell_at(row, column.column_index))
        except NonIntegerQuantityError as e:
            raise ExcelParseError(
                ParseErrorCode.INVALID_QUANTITY,
                f'Invalid quantity for product "{column.name}" at row {row_index + 1}: {e}',
                row=row_index + 1,
            ) from e
        items.append(OrderItem.create(column.name, column.unit_price, quantity))

    computed_total = sum(item.subtotal for item in items)
    total_amount = cell_to_number(cell_at(row, TOTAL_COLUMN))
    if total_amount is None:
        total_amount = computed_total

    if not nickname:
        if _has_meaningful_data(total_amount, items):
            raise ExcelParseError(
                ParseErrorCode.MISSING_NICKNAME,
                f"Missing nickname at row {row_index + 1}",
                row=row_index + 1,
            )
        return None

    return Order(nickname=nickname, total_amount=total_amount, items=items)


def parse_raw_orders(
    rows: Sequence[Row], data_start_index: int, product_columns: Sequence[ProductColumn]
) -> list[Order]:
    """Parse all data rows into raw (not yet merged) orders.

    Raises:
        ExcelParseError: INVALID_QUANTITY, MISSING_NICKNAME or NO_ORDERS
    """
    orders: list[Order] = []
    for row_index in range(data_start_index, len(rows)):
        order = parse_order_row(rows[row_index], row_index, product_columns)
        if order is not None:
            orders.append(order)

    if not orders:
        raise ExcelParseError(ParseErrorCode.NO_ORDERS, "No orders found")
    return orders

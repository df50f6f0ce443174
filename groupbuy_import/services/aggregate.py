from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace
from functools import reduce

from ..excel.errors import ExcelParseError, ParseErrorCode
from ..models.import_data import Order, OrderItem

"""Merge raw orders sharing a nickname.

A member may appear on several rows (e.g. a late addition or a return). Rows
with the same trimmed nickname are folded into one order: totals and
quantities are summed, subtotals recomputed from the unchanged unit price.
Output keeps first-seen nickname order.
"""

__all__ = [
    "merge_orders",
    "aggregate_orders_by_nickname",
]


def merge_orders(existing: Order, incoming: Order) -> Order:
    """Merge ``incoming`` into ``existing`` (same nickname, same product sequence)."""
    merged_items: list[OrderItem] = []
    for i, item in enumerate(existing.items):
        if i >= len(incoming.items):
            merged_items.append(item)
            continue
        other = incoming.items[i]
        if item.product_name != other.product_name:
            raise ExcelParseError(
                ParseErrorCode.PRODUCT_MISMATCH,
                f'Product mismatch while merging nickname "{existing.nickname}"',
            )
        merged_items.append(OrderItem.create(item.product_name, item.unit_price, item.quantity + other.quantity))
    return replace(
        existing,
        total_amount=existing.total_amount + incoming.total_amount,
        items=merged_items,
    )


def _fold(acc: dict[str, Order], order: Order) -> dict[str, Order]:
    nickname = order.nickname.strip()
    if not nickname:
        return acc
    current = acc.get(nickname)
    if current is None:
        acc[nickname] = replace(order, nickname=nickname, items=list(order.items))
    else:
        acc[nickname] = merge_orders(current, order)
    return acc


def aggregate_orders_by_nickname(orders: Iterable[Order]) -> list[Order]:
    """Return one order per distinct trimmed nickname, in first-seen order.

    Raises:
        ExcelParseError: PRODUCT_MISMATCH when two rows for a nickname disagree
            on the product at the same position
    """
    merged: dict[str, Order] = reduce(_fold, orders, {})
    return list(merged.values())

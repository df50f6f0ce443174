from __future__ import annotations

import json
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import jsonschema
from jsonschema.exceptions import ValidationError
from psycopg2.extras import execute_values

from ..models.import_data import ImportData

"""Order upsert: persist a parsed workbook into PostgreSQL.

All rows are keyed by natural keys so re-importing the same workbook is
idempotent:

    periods        (group_id, name)
    product_types  (period_id, name)          -> unit_price updated
    orders         (period_id, nickname)      -> total_amount updated
    order_items    (order_id, product_type_id) -> quantity, subtotal updated

A sheet may repeat a product name in two columns. Rows are collapsed per
natural key before the multi-row upsert (last column wins), since one
``INSERT ... ON CONFLICT DO UPDATE`` cannot touch the same row twice.

The caller owns the transaction (BEGIN / COMMIT / ROLLBACK); nothing here
commits.
"""

__all__ = [
    "OrderUpsertError",
    "ImportResult",
    "IMPORT_DATA_SCHEMA_PATH",
    "validate_import_data",
    "find_group_id",
    "import_order_data",
]

IMPORT_DATA_SCHEMA_PATH = Path(__file__).with_name("import_data_schema.json")

PERIOD_UPSERT_SQL = (
    "INSERT INTO periods (group_id, name) VALUES (%s, %s) "
    "ON CONFLICT (group_id, name) DO UPDATE SET name = EXCLUDED.name "
    "RETURNING id, name"
)
PRODUCT_TYPE_UPSERT_SQL = (
    "INSERT INTO product_types (period_id, name, unit_price) VALUES %s "
    "ON CONFLICT (period_id, name) DO UPDATE SET unit_price = EXCLUDED.unit_price "
    "RETURNING id, name"
)
ORDER_UPSERT_SQL = (
    "INSERT INTO orders (period_id, nickname, total_amount) VALUES %s "
    "ON CONFLICT (period_id, nickname) DO UPDATE SET total_amount = EXCLUDED.total_amount "
    "RETURNING id, nickname"
)
ORDER_ITEM_UPSERT_SQL = (
    "INSERT INTO order_items (order_id, product_type_id, quantity, subtotal) VALUES %s "
    "ON CONFLICT (order_id, product_type_id) DO UPDATE "
    "SET quantity = EXCLUDED.quantity, subtotal = EXCLUDED.subtotal"
)
GROUP_LOOKUP_SQL = "SELECT id FROM groups WHERE slug = %s"


class OrderUpsertError(Exception):
    pass


@dataclass(frozen=True)
class ImportResult:
    period_id: Any
    period_name: str
    total_orders: int
    total_amount: float


_schema_cache: dict[str, Any] | None = None


def _load_schema() -> dict[str, Any]:
    global _schema_cache
    if _schema_cache is None:
        _schema_cache = json.loads(IMPORT_DATA_SCHEMA_PATH.read_text(encoding="utf-8"))
    return _schema_cache


def _iter_numbers(value: Any):
    if isinstance(value, bool):
        return
    if isinstance(value, (int, float)):
        yield value
    elif isinstance(value, dict):
        for v in value.values():
            yield from _iter_numbers(v)
    elif isinstance(value, list):
        for v in value:
            yield from _iter_numbers(v)


def validate_import_data(data: ImportData) -> dict[str, Any]:
    """Validate a parse result before any write. Returns its dict form.

    Raises:
        OrderUpsertError: schema violation or a non-finite number
    """
    payload = data.to_dict()
    try:
        jsonschema.validate(payload, _load_schema())
    except ValidationError as e:
        raise OrderUpsertError(f"import data validation failed: {e.message}") from e
    # JSON schema では NaN / inf を弾けないため別途確認
    if not all(math.isfinite(n) for n in _iter_numbers(payload)):
        raise OrderUpsertError("import data validation failed: non-finite number")
    return payload


def _last_wins(rows: list[tuple], key_size: int) -> list[tuple]:
    """Keep one row per leading natural key; later rows replace earlier ones."""
    unique: dict[tuple, tuple] = {}
    for row in rows:
        unique[row[:key_size]] = row
    return list(unique.values())


def find_group_id(cursor: Any, slug: str) -> Any | None:
    """Resolve a tenant group id from its slug (None when unknown)."""
    try:
        cursor.execute(GROUP_LOOKUP_SQL, (slug,))
        row = cursor.fetchone()
    except Exception as e:  # pragma: no cover - driver level
        raise OrderUpsertError(f"group lookup failed: {e}") from e
    return row[0] if row else None


def import_order_data(cursor: Any, data: ImportData, group_id: Any, page_size: int = 1000) -> ImportResult:
    """Upsert period, product types, orders and order items for one workbook.

    Parameters
    ----------
    cursor: psycopg2 cursor inside an open transaction
    data: validated-or-not parse result (validated here first)
    group_id: tenant group the period belongs to
    page_size: execute_values page size
    """
    validate_import_data(data)

    try:
        cursor.execute(PERIOD_UPSERT_SQL, (group_id, data.period_name))
        period_id, period_name = cursor.fetchone()

        product_rows = execute_values(
            cursor,
            PRODUCT_TYPE_UPSERT_SQL,
            _last_wins([(period_id, p.name, p.unit_price) for p in data.product_types], 2),
            page_size=page_size,
            fetch=True,
        )
        product_type_ids = {name: pid for pid, name in product_rows}

        order_rows = execute_values(
            cursor,
            ORDER_UPSERT_SQL,
            [(period_id, o.nickname, o.total_amount) for o in data.orders],
            page_size=page_size,
            fetch=True,
        )
        order_ids = {nickname: oid for oid, nickname in order_rows}
    except Exception as e:
        raise OrderUpsertError(str(e)) from e

    item_rows: list[tuple[Any, Any, int, float]] = []
    for order in data.orders:
        order_id = order_ids.get(order.nickname)
        if order_id is None:
            raise OrderUpsertError(f"order upsert returned no id for nickname: {order.nickname}")
        for item in order.items:
            product_type_id = product_type_ids.get(item.product_name)
            if product_type_id is None:
                raise OrderUpsertError(f"unknown product type: {item.product_name}")
            item_rows.append((order_id, product_type_id, item.quantity, item.subtotal))

    try:
        execute_values(cursor, ORDER_ITEM_UPSERT_SQL, _last_wins(item_rows, 2), page_size=page_size)
    except Exception as e:
        raise OrderUpsertError(str(e)) from e

    return ImportResult(
        period_id=period_id,
        period_name=period_name,
        total_orders=len(data.orders),
        total_amount=data.total_amount,
    )

from __future__ import annotations

import math

import pytest

from groupbuy_import.db.order_upsert import (
    ImportResult,
    OrderUpsertError,
    find_group_id,
    import_order_data,
    validate_import_data,
)
from groupbuy_import.models.import_data import ImportData, Order, OrderItem, ProductType


class DummyCursor:
    def __init__(self) -> None:
        self.queries: list[tuple[str, tuple]] = []
        self.fetchone_results: list[tuple | None] = [("period_1", "【测试】")]

    def execute(self, sql, params=None):
        self.queries.append((sql, params))

    def fetchone(self):
        return self.fetchone_results.pop(0)


@pytest.fixture()
def execute_values_calls(monkeypatch):
    """Replace psycopg2 execute_values; emulate RETURNING for fetch=True."""
    import groupbuy_import.db.order_upsert as mod

    calls: list[dict] = []

    def fake_execute_values(cursor, sql, rows, template=None, page_size=100, fetch=False):
        rows = list(rows)
        calls.append({"sql": sql, "rows": rows, "fetch": fetch})
        if not fetch:
            return None
        if "product_types" in sql:
            return [(f"pt_{name}", name) for _, name, _ in rows]
        if "INTO orders" in sql:
            return [(f"order_{nickname}", nickname) for _, nickname, _ in rows]
        return []

    monkeypatch.setattr(mod, "execute_values", fake_execute_values)
    return calls


def _sample_data() -> ImportData:
    return ImportData(
        period_name="【测试】",
        product_types=[ProductType("A", 5), ProductType("B", 2.5)],
        orders=[
            Order("alice", 12.5, [OrderItem.create("A", 5, 1), OrderItem.create("B", 2.5, 3)]),
            Order("bob", 2.5, [OrderItem.create("A", 5, 1), OrderItem.create("B", 2.5, -1)]),
        ],
    )


def test_import_upserts_by_natural_keys(execute_values_calls):
    cur = DummyCursor()
    result = import_order_data(cur, _sample_data(), group_id="group_1")

    assert result == ImportResult(period_id="period_1", period_name="【测试】", total_orders=2, total_amount=15)
    period_sql, period_params = cur.queries[0]
    assert "ON CONFLICT (group_id, name)" in period_sql
    assert period_params == ("group_1", "【测试】")

    products, orders, items = execute_values_calls
    assert products["rows"] == [("period_1", "A", 5), ("period_1", "B", 2.5)]
    assert "ON CONFLICT (period_id, name)" in products["sql"]
    assert orders["rows"] == [("period_1", "alice", 12.5), ("period_1", "bob", 2.5)]
    assert "ON CONFLICT (period_id, nickname)" in orders["sql"]
    assert items["rows"] == [
        ("order_alice", "pt_A", 1, 5),
        ("order_alice", "pt_B", 3, 7.5),
        ("order_bob", "pt_A", 1, 5),
        ("order_bob", "pt_B", -1, -2.5),
    ]
    assert "ON CONFLICT (order_id, product_type_id)" in items["sql"]
    # トランザクション制御は呼び出し側
    assert not any(q[0] in ("COMMIT", "ROLLBACK") for q in cur.queries)


def test_reimport_issues_same_statements(execute_values_calls):
    data = _sample_data()
    import_order_data(DummyCursor(), data, group_id="group_1")
    first = [c["rows"] for c in execute_values_calls]
    execute_values_calls.clear()
    import_order_data(DummyCursor(), data, group_id="group_1")
    assert [c["rows"] for c in execute_values_calls] == first


def test_unknown_product_type(execute_values_calls):
    data = _sample_data()
    broken = ImportData(
        period_name=data.period_name,
        product_types=data.product_types,
        orders=[Order("alice", 5, [OrderItem.create("UNKNOWN", 5, 1)])],
    )
    with pytest.raises(OrderUpsertError, match="unknown product type: UNKNOWN"):
        import_order_data(DummyCursor(), broken, group_id="group_1")
    # order_items は書き込まれない
    assert len(execute_values_calls) == 2


def test_driver_error_is_wrapped(monkeypatch):
    import groupbuy_import.db.order_upsert as mod

    def failing_execute_values(*args, **kwargs):
        raise RuntimeError("DB failure")

    monkeypatch.setattr(mod, "execute_values", failing_execute_values)
    with pytest.raises(OrderUpsertError, match="DB failure"):
        import_order_data(DummyCursor(), _sample_data(), group_id="group_1")


def test_validation_rejects_empty_orders(execute_values_calls):
    data = ImportData(period_name="p", product_types=[ProductType("A", 1)], orders=[])
    with pytest.raises(OrderUpsertError, match="validation failed"):
        import_order_data(DummyCursor(), data, group_id="group_1")
    assert execute_values_calls == []


@pytest.mark.parametrize(
    "data",
    [
        ImportData(period_name="  ", product_types=[ProductType("A", 1)], orders=[Order("a", 1, [OrderItem.create("A", 1, 1)])]),
        ImportData(period_name="p", product_types=[], orders=[Order("a", 1, [OrderItem.create("A", 1, 1)])]),
        ImportData(period_name="p", product_types=[ProductType("A", 1)], orders=[Order("a", 1, [])]),
        ImportData(period_name="p", product_types=[ProductType("A", 1)], orders=[Order("a", 1, [OrderItem("A", 1, 1.5, 1.5)])]),
        ImportData(period_name="p", product_types=[ProductType("A", math.nan)], orders=[Order("a", 1, [OrderItem.create("A", 1, 1)])]),
    ],
)
def test_validate_import_data_rejects(data):
    with pytest.raises(OrderUpsertError):
        validate_import_data(data)


def test_validate_import_data_returns_payload():
    payload = validate_import_data(_sample_data())
    assert payload["orders"][1]["nickname"] == "bob"


def test_find_group_id():
    cur = DummyCursor()
    cur.fetchone_results = [("group_1",)]
    assert find_group_id(cur, "spring-2026") == "group_1"
    assert cur.queries[-1][1] == ("spring-2026",)

    cur.fetchone_results = [None]
    assert find_group_id(cur, "missing") is None


def test_repeated_product_name_last_column_wins(execute_values_calls):
    data = ImportData(
        period_name="【测试】",
        product_types=[ProductType("A", 1), ProductType("B", 3), ProductType("A", 2)],
        orders=[
            Order(
                "alice",
                9,
                [OrderItem.create("A", 1, 1), OrderItem.create("B", 3, 1), OrderItem.create("A", 2, 2)],
            ),
        ],
    )

    import_order_data(DummyCursor(), data, group_id="group_1")

    products, _, items = execute_values_calls
    assert products["rows"] == [("period_1", "A", 2), ("period_1", "B", 3)]
    assert items["rows"] == [("order_alice", "pt_A", 2, 4), ("order_alice", "pt_B", 1, 3)]

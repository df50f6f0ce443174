from __future__ import annotations

import psycopg2
import pytest
from fake_db import InMemoryConnection, InMemoryOrderDatabase

import groupbuy_import.db.order_upsert as order_upsert


@pytest.fixture()
def memory_db(monkeypatch) -> InMemoryOrderDatabase:
    """Route the CLI's psycopg2 connection and execute_values into an in-memory store."""
    db = InMemoryOrderDatabase(groups={"spring-2026": "group_1"})
    monkeypatch.delenv("DISABLE_DB_CONNECT", raising=False)
    monkeypatch.setattr(psycopg2, "connect", lambda dsn: InMemoryConnection(db))
    monkeypatch.setattr(order_upsert, "execute_values", db.execute_values)
    return db

import sqlite3

import pytest

import database
from database import _ensure_orders_schema


def test_ensure_orders_schema_backfills_missing_columns():
    conn = sqlite3.connect(":memory:")
    cursor = conn.cursor()

    cursor.execute(
        """
        CREATE TABLE orders (
            id TEXT PRIMARY KEY NOT NULL,
            customer_id TEXT NOT NULL,
            order_date TEXT NOT NULL,
            total_amount REAL NOT NULL DEFAULT 0
        );
        """
    )
    cursor.execute(
        "INSERT INTO orders (id, customer_id, order_date, total_amount) VALUES (?, ?, ?, ?)",
        ("PO-1", "CUST-1", "2024-01-01", 99.5),
    )

    _ensure_orders_schema(cursor)

    cursor.execute("PRAGMA table_info(orders)")
    column_names = {row[1] for row in cursor.fetchall()}
    assert {"status", "payment_method", "updated_at"}.issubset(column_names)

    cursor.execute("SELECT status, payment_method FROM orders")
    assert [tuple(row) for row in cursor.fetchall()] == [("completed", None)]

    cursor.execute("PRAGMA index_list(orders)")
    index_names = {row[1] for row in cursor.fetchall()}
    assert "idx_orders_order_date" in index_names
    assert "idx_orders_customer" in index_names

    conn.close()


def test_init_db_creates_ledger_tables(tmp_path):
    db_file = tmp_path / "ledger.db"
    database.init_db(db_file)

    conn = database.get_db_connection(db_file)
    try:
        tables = {
            row["name"]
            for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
        }
    finally:
        conn.close()
    assert {"customers", "orders"}.issubset(tables)


def test_orders_reject_negative_totals(tmp_path):
    db_file = tmp_path / "ledger.db"
    database.init_db(db_file)
    conn = database.get_db_connection(db_file)
    try:
        conn.execute("INSERT INTO customers (id, name) VALUES ('CUST-1', 'Acme')")
        with pytest.raises(sqlite3.IntegrityError):
            conn.execute(
                "INSERT INTO orders (id, customer_id, order_date, total_amount) VALUES ('PO-1', 'CUST-1', '2024-01-01', -1)"
            )
    finally:
        conn.close()

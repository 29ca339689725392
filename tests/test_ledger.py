import sqlite3
from datetime import date

import pytest

from database import create_schema
from services.cancellation import CancellationToken, OperationCancelled
from services.ledger import (
    CorruptOrderRecord,
    Order,
    SQLiteOrderLedger,
    StorageUnavailable,
)


@pytest.fixture
def conn():
    connection = sqlite3.connect(":memory:")
    connection.row_factory = sqlite3.Row
    create_schema(connection.cursor())
    connection.executemany(
        "INSERT INTO orders (id, customer_id, order_date, status, payment_method, total_amount) VALUES (?, ?, ?, ?, ?, ?)",
        [
            ("A-1", "C-1", "2024-03-01", "completed", "card", 10.0),
            ("A-2", "C-2", "2024-03-01T18:45:00", "completed", "cash", 15.5),
            ("A-3", "C-1", "2024-03-02 09:00:00", "shipped", None, 4.5),
            ("A-4", "C-3", "2024-03-05", "completed", "card", 100.0),
        ],
    )
    connection.commit()
    try:
        yield connection
    finally:
        connection.close()


def test_orders_in_range_is_inclusive_and_normalises_dates(conn):
    ledger = SQLiteOrderLedger(conn)
    orders = ledger.orders_in_range(date(2024, 3, 1), date(2024, 3, 2))

    assert [order.order_id for order in orders] == ["A-1", "A-2", "A-3"]
    assert orders[1] == Order(
        order_id="A-2",
        customer_id="C-2",
        order_date=date(2024, 3, 1),
        total_amount=15.5,
        status="completed",
        payment_method="cash",
    )
    assert orders[2].order_date == date(2024, 3, 2)


def test_orders_on_date_matches_single_day_range(conn):
    ledger = SQLiteOrderLedger(conn)
    day = date(2024, 3, 1)
    assert ledger.orders_on_date(day) == ledger.orders_in_range(day, day)
    assert ledger.orders_on_date(date(2024, 3, 3)) == []


def test_customer_spend_sums_per_customer(conn):
    ledger = SQLiteOrderLedger(conn)
    spend = ledger.customer_spend_in_range(date(2024, 3, 1), date(2024, 3, 31))
    assert spend == {"C-1": pytest.approx(14.5), "C-2": pytest.approx(15.5), "C-3": pytest.approx(100.0)}


def test_works_without_row_factory():
    connection = sqlite3.connect(":memory:")
    create_schema(connection.cursor())
    connection.execute(
        "INSERT INTO orders (id, customer_id, order_date, total_amount) VALUES ('B-1', 'C-9', '2024-06-01', 20)"
    )
    orders = SQLiteOrderLedger(connection).orders_in_range(date(2024, 6, 1), date(2024, 6, 1))
    connection.close()

    assert orders[0].customer_id == "C-9"
    assert orders[0].status == "completed"


def test_missing_orders_table_is_storage_unavailable():
    connection = sqlite3.connect(":memory:")
    ledger = SQLiteOrderLedger(connection)
    with pytest.raises(StorageUnavailable) as excinfo:
        ledger.orders_in_range(date(2024, 1, 1), date(2024, 1, 31))
    connection.close()
    assert isinstance(excinfo.value.__cause__, sqlite3.Error)


def test_closed_connection_is_storage_unavailable(conn):
    ledger = SQLiteOrderLedger(conn)
    conn.close()
    with pytest.raises(StorageUnavailable):
        ledger.customer_spend_in_range(date(2024, 1, 1), date(2024, 1, 31))


def test_negative_totals_are_reported_as_corrupt():
    connection = sqlite3.connect(":memory:")
    connection.execute(
        "CREATE TABLE orders (id TEXT, customer_id TEXT, order_date TEXT, status TEXT, payment_method TEXT, total_amount REAL)"
    )
    connection.execute(
        "INSERT INTO orders VALUES ('X-1', 'C-1', '2024-01-01', 'refunded', 'card', -5)"
    )
    with pytest.raises(CorruptOrderRecord):
        SQLiteOrderLedger(connection).orders_in_range(date(2024, 1, 1), date(2024, 1, 1))
    connection.close()


def test_cancelled_token_rejects_new_queries(conn):
    token = CancellationToken()
    ledger = SQLiteOrderLedger(conn, cancellation=token)
    token.cancel()
    with pytest.raises(OperationCancelled):
        ledger.orders_in_range(date(2024, 3, 1), date(2024, 3, 31))


def test_cancelled_token_interrupts_running_statements(conn):
    token = CancellationToken()
    SQLiteOrderLedger(conn, cancellation=token)
    token.cancel()
    with pytest.raises(sqlite3.OperationalError):
        conn.execute(
            "WITH RECURSIVE counter(x) AS (SELECT 1 UNION ALL SELECT x + 1 FROM counter LIMIT 200000) "
            "SELECT COUNT(*) FROM counter"
        ).fetchone()

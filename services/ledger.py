"""Read-only access to the order ledger consumed by the analytics engine."""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Protocol, Sequence

from dateutil.parser import isoparse

from .cancellation import CancellationToken, OperationCancelled

LOGGER = logging.getLogger(__name__)

__all__ = [
    "CorruptOrderRecord",
    "LedgerError",
    "Order",
    "OrderLedger",
    "SQLiteOrderLedger",
    "StorageUnavailable",
]

# Number of SQLite VM instructions between cancellation checks.
PROGRESS_HANDLER_INTERVAL = 1000


class LedgerError(RuntimeError):
    """Base class for failures raised while reading the order ledger."""


class StorageUnavailable(LedgerError):
    """Raised when the underlying store cannot be queried."""


class CorruptOrderRecord(LedgerError):
    """Raised when a persisted order violates the ledger invariants."""


@dataclass(frozen=True)
class Order:
    order_id: str
    customer_id: str
    order_date: date
    total_amount: float
    status: Optional[str] = None
    payment_method: Optional[str] = None


class OrderLedger(Protocol):
    """Query contract the analytics engine relies on.

    All ranges are inclusive on both ends.
    """

    def orders_in_range(self, start: date, end: date) -> List[Order]:
        ...

    def orders_on_date(self, day: date) -> List[Order]:
        ...

    def customer_spend_in_range(self, start: date, end: date) -> Dict[str, float]:
        ...


def _rows_to_dicts(cursor: sqlite3.Cursor) -> List[Dict[str, Any]]:
    """Normalise sqlite rows to plain dictionaries, with or without a row factory."""

    columns = [column[0] for column in cursor.description or ()]
    normalised: List[Dict[str, Any]] = []
    for row in cursor.fetchall():
        if isinstance(row, sqlite3.Row):
            normalised.append({key: row[key] for key in row.keys()})
        else:
            normalised.append(dict(zip(columns, row)))
    return normalised


def _parse_order_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if value in (None, ""):
        raise CorruptOrderRecord("Order is missing its order date")
    try:
        return isoparse(str(value)).date()
    except (TypeError, ValueError) as exc:
        raise CorruptOrderRecord(f"Could not parse order date '{value}'") from exc


def _parse_amount(value: Any, order_id: str) -> float:
    if value in (None, ""):
        return 0.0
    try:
        amount = float(value)
    except (TypeError, ValueError) as exc:
        raise CorruptOrderRecord(
            f"Order {order_id} has a non-numeric total amount '{value}'"
        ) from exc
    if amount < 0:
        raise CorruptOrderRecord(f"Order {order_id} has a negative total amount {amount}")
    return amount


def _row_to_order(row: Dict[str, Any]) -> Order:
    order_id = str(row.get("id"))
    return Order(
        order_id=order_id,
        customer_id=str(row.get("customer_id") or ""),
        order_date=_parse_order_date(row.get("order_date")),
        total_amount=_parse_amount(row.get("total_amount"), order_id),
        status=row.get("status"),
        payment_method=row.get("payment_method"),
    )


class SQLiteOrderLedger:
    """:class:`OrderLedger` backed by the ``orders`` table of a SQLite database.

    The ledger never writes and never closes the connection it is given; the
    caller owns the connection lifecycle. When a cancellation token is
    supplied, a progress handler aborts queries that are still running once
    the token is cancelled.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        *,
        cancellation: Optional[CancellationToken] = None,
    ) -> None:
        self._conn = conn
        self._cancellation = cancellation
        if cancellation is not None:
            conn.set_progress_handler(
                lambda: 1 if cancellation.cancelled else 0, PROGRESS_HANDLER_INTERVAL
            )

    def orders_in_range(self, start: date, end: date) -> List[Order]:
        rows = self._query(
            "orders_in_range",
            """
            SELECT id, customer_id, order_date, status, payment_method, total_amount
            FROM orders
            WHERE date(order_date) BETWEEN ? AND ?
            ORDER BY date(order_date), id
            """,
            (start.isoformat(), end.isoformat()),
        )
        return [_row_to_order(row) for row in rows]

    def orders_on_date(self, day: date) -> List[Order]:
        return self.orders_in_range(day, day)

    def customer_spend_in_range(self, start: date, end: date) -> Dict[str, float]:
        rows = self._query(
            "customer_spend_in_range",
            """
            SELECT customer_id, SUM(total_amount) AS total_spend
            FROM orders
            WHERE date(order_date) BETWEEN ? AND ?
            GROUP BY customer_id
            ORDER BY customer_id
            """,
            (start.isoformat(), end.isoformat()),
        )
        spend: Dict[str, float] = {}
        for row in rows:
            customer_id = str(row.get("customer_id") or "")
            spend[customer_id] = _parse_amount(row.get("total_spend"), f"group {customer_id}")
        return spend

    def _query(
        self, operation: str, sql: str, params: Sequence[Any]
    ) -> List[Dict[str, Any]]:
        if self._cancellation is not None:
            self._cancellation.raise_if_cancelled(operation)
        try:
            cursor = self._conn.execute(sql, params)
            return _rows_to_dicts(cursor)
        except sqlite3.Error as exc:
            if self._cancellation is not None and self._cancellation.cancelled:
                raise OperationCancelled(f"{operation} was cancelled") from exc
            LOGGER.warning("Ledger query %s failed: %s", operation, exc)
            raise StorageUnavailable(f"{operation} failed: {exc}") from exc

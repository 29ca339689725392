"""Print sales analytics for a date range as JSON."""
from __future__ import annotations

import argparse
import json
import pathlib
import sqlite3
import sys
from typing import Optional, Sequence

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from dotenv import load_dotenv

from database import get_db_connection
from services.analytics import SalesAnalytics, parse_calendar_date, parse_percentile
from services.cancellation import CancellationToken, OperationCancelled
from services.ledger import LedgerError, SQLiteOrderLedger

METRICS = (
    "revenue",
    "daily",
    "average-check",
    "orders-median",
    "customer-median",
    "orders-percentile",
    "customer-percentile",
    "report",
)


def _date_argument(value: str):
    try:
        return parse_calendar_date(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid date '{value}', use YYYY-MM-DD")


def _percentile_argument(value: str) -> int:
    try:
        return parse_percentile(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc))


def _compute(engine: SalesAnalytics, args: argparse.Namespace, token: CancellationToken):
    start, end = args.start, args.end
    if args.metric == "revenue":
        return engine.revenue_summary(start, end, cancellation=token)
    if args.metric == "daily":
        return engine.daily_order_counts(start, end, cancellation=token)
    if args.metric == "average-check":
        return engine.average_check(start, end, cancellation=token)
    if args.metric == "orders-median":
        return engine.orders_median(start, end, cancellation=token)
    if args.metric == "customer-median":
        return engine.customer_spending_median(start, end, cancellation=token)
    if args.metric == "orders-percentile":
        return engine.orders_percentile(start, end, args.percentile, cancellation=token)
    if args.metric == "customer-percentile":
        return engine.customer_spending_percentile(start, end, args.percentile, cancellation=token)
    return engine.generate_report(start, end, cancellation=token)


def main(argv: Optional[Sequence[str]] = None) -> int:
    load_dotenv()
    parser = argparse.ArgumentParser(description="Compute sales analytics from the order ledger.")
    parser.add_argument("--start", required=True, type=_date_argument, help="First day (YYYY-MM-DD)")
    parser.add_argument("--end", required=True, type=_date_argument, help="Last day (YYYY-MM-DD)")
    parser.add_argument("--metric", choices=METRICS, default="report", help="Statistic to compute (default: report)")
    parser.add_argument("--percentile", type=_percentile_argument, default=50, help="Percentile for percentile metrics (default: 50)")
    parser.add_argument("--db", type=pathlib.Path, default=None, help="SQLite database file (default: configured ledger)")
    parser.add_argument("--timezone", default="UTC", help="Timezone for report timestamps (default: UTC)")
    parser.add_argument("--timeout", type=float, default=None, help="Abort after this many seconds")
    args = parser.parse_args(argv)

    token = CancellationToken(timeout=args.timeout)
    try:
        conn = get_db_connection(args.db)
    except sqlite3.Error as exc:
        print(f"Unable to open the order ledger: {exc}", file=sys.stderr)
        return 3
    try:
        engine = SalesAnalytics(SQLiteOrderLedger(conn, cancellation=token), timezone_name=args.timezone)
        result = _compute(engine, args, token)
    except ValueError as exc:
        print(f"Invalid request: {exc}", file=sys.stderr)
        return 2
    except (LedgerError, OperationCancelled) as exc:
        print(f"Analytics failed: {exc}", file=sys.stderr)
        return 3
    finally:
        conn.close()

    if isinstance(result, list):
        payload = [entry.to_dict() for entry in result]
    else:
        payload = result.to_dict()
    print(json.dumps(payload, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())

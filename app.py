import os
import sqlite3
import sys
from datetime import date
from typing import Callable

from dotenv import load_dotenv
from flask import Flask, jsonify, request

from database import get_db_connection, init_db
from services.analytics import InvalidRange, SalesAnalytics, parse_calendar_date, parse_percentile
from services.cancellation import CancellationToken, OperationCancelled
from services.ledger import CorruptOrderRecord, SQLiteOrderLedger, StorageUnavailable

# Load environment variables from .env file
load_dotenv()

# --- App Initialization ---
APP_ENV = os.getenv('APP_ENV', 'local')
SERVER_HOST = os.getenv('SERVER_HOST', '0.0.0.0')
SERVER_PORT = int(os.getenv('SERVER_PORT', '8080'))
REPORT_TIMEZONE = os.getenv('REPORT_TIMEZONE', 'UTC')
QUERY_TIMEOUT_SECONDS = float(os.getenv('QUERY_TIMEOUT_SECONDS', '30'))

app = Flask(__name__)
app.json.sort_keys = False


# --- Request helpers ---
def respond_error(status: int, message: str):
    return jsonify({'error': message}), status


def _parse_date_param(name: str) -> date:
    return parse_calendar_date(request.args.get(name), name)


def _parse_percentile_param() -> int:
    return parse_percentile(request.args.get('percentile'))


def _run_analytics(operation: str, compute: Callable[[SalesAnalytics, date, date, CancellationToken], object]):
    """Parse the range, run ``compute`` against a per-request ledger and render the result."""
    try:
        start = _parse_date_param('start')
        end = _parse_date_param('end')
        if start > end:
            raise InvalidRange('start date must not be after end date')
    except ValueError as exc:
        return respond_error(400, str(exc))

    cancellation = CancellationToken(timeout=QUERY_TIMEOUT_SECONDS)
    try:
        conn = get_db_connection()
    except sqlite3.Error as exc:
        app.logger.error("Could not open the order ledger for %s: %s", operation, exc)
        return respond_error(503, 'order ledger is unavailable')
    try:
        engine = SalesAnalytics(
            SQLiteOrderLedger(conn, cancellation=cancellation),
            timezone_name=REPORT_TIMEZONE,
        )
        result = compute(engine, start, end, cancellation)
        if isinstance(result, list):
            return jsonify([entry.to_dict() for entry in result])
        return jsonify(result.to_dict())
    except ValueError as exc:
        return respond_error(400, str(exc))
    except StorageUnavailable as exc:
        app.logger.error("Analytics %s failed, storage unavailable: %s", operation, exc)
        return respond_error(503, str(exc))
    except CorruptOrderRecord as exc:
        app.logger.error("Analytics %s failed on corrupt ledger data: %s", operation, exc)
        return respond_error(502, str(exc))
    except OperationCancelled as exc:
        app.logger.warning("Analytics %s exceeded its deadline: %s", operation, exc)
        return respond_error(504, str(exc))
    except Exception as exc:  # pragma: no cover - defensive logging
        app.logger.exception("Failed to compute analytics %s: %s", operation, exc)
        return respond_error(500, 'Failed to compute analytics.')
    finally:
        conn.close()


# --- Routes ---
@app.route('/health', methods=['GET'])
def health():
    return 'OK', 200


@app.route('/analytics/revenue', methods=['GET'])
def total_revenue_by_period():
    return _run_analytics(
        'revenue',
        lambda engine, start, end, token: engine.revenue_summary(start, end, cancellation=token),
    )


@app.route('/analytics/daily-orders', methods=['GET'])
def orders_per_day():
    return _run_analytics(
        'daily-orders',
        lambda engine, start, end, token: engine.daily_order_counts(start, end, cancellation=token),
    )


@app.route('/analytics/average-check', methods=['GET'])
def average_check_by_period():
    return _run_analytics(
        'average-check',
        lambda engine, start, end, token: engine.average_check(start, end, cancellation=token),
    )


@app.route('/analytics/orders-median', methods=['GET'])
def orders_median():
    return _run_analytics(
        'orders-median',
        lambda engine, start, end, token: engine.orders_median(start, end, cancellation=token),
    )


@app.route('/analytics/customer-median', methods=['GET'])
def customer_spending_median():
    return _run_analytics(
        'customer-median',
        lambda engine, start, end, token: engine.customer_spending_median(
            start, end, cancellation=token
        ),
    )


@app.route('/analytics/orders-percentile', methods=['GET'])
def orders_percentile():
    try:
        percentile = _parse_percentile_param()
    except ValueError as exc:
        return respond_error(400, str(exc))
    return _run_analytics(
        'orders-percentile',
        lambda engine, start, end, token: engine.orders_percentile(
            start, end, percentile, cancellation=token
        ),
    )


@app.route('/analytics/customer-percentile', methods=['GET'])
def customer_spending_percentile():
    try:
        percentile = _parse_percentile_param()
    except ValueError as exc:
        return respond_error(400, str(exc))
    return _run_analytics(
        'customer-percentile',
        lambda engine, start, end, token: engine.customer_spending_percentile(
            start, end, percentile, cancellation=token
        ),
    )


@app.route('/analytics/sales-report', methods=['GET'])
def generate_sales_report():
    return _run_analytics(
        'sales-report',
        lambda engine, start, end, token: engine.generate_report(start, end, cancellation=token),
    )


def main() -> int:
    try:
        init_db()
    except sqlite3.Error as exc:
        app.logger.error("Could not initialise the order ledger: %s", exc)
        return 1
    app.logger.info("Starting sales tracker (%s) on %s:%s", APP_ENV, SERVER_HOST, SERVER_PORT)
    app.run(host=SERVER_HOST, port=SERVER_PORT, debug=False)
    return 0


if __name__ == '__main__':
    sys.exit(main())

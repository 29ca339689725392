import sqlite3
import logging

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

from data_paths import resolve_database_file


ORDER_COLUMN_BACKFILLS = {
    'status': "TEXT NOT NULL DEFAULT 'completed'",
    'payment_method': "TEXT",
    'updated_at': "TEXT",
}


def get_db_connection(database_file=None):
    """Establishes a connection to the SQLite database."""
    target = str(database_file or resolve_database_file())
    conn = sqlite3.connect(target, timeout=30.0, isolation_level='DEFERRED')
    try:
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("PRAGMA synchronous=NORMAL;")
        conn.execute("PRAGMA temp_store=MEMORY;")
    except sqlite3.Error as e:
        logger.warning(f"Could not set PRAGMA settings: {e}")
    conn.row_factory = sqlite3.Row
    return conn


def _ensure_orders_schema(cursor: sqlite3.Cursor) -> None:
    """Backfill columns that older order ledgers were created without."""
    cursor.execute("PRAGMA table_info(orders)")
    order_columns = {row[1] for row in cursor.fetchall()}
    for column, definition in ORDER_COLUMN_BACKFILLS.items():
        if column not in order_columns:
            cursor.execute(f"ALTER TABLE orders ADD COLUMN {column} {definition}")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_orders_order_date ON orders(order_date)")
    cursor.execute("CREATE INDEX IF NOT EXISTS idx_orders_customer ON orders(customer_id)")


def create_schema(cursor: sqlite3.Cursor) -> None:
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS customers (
            id TEXT PRIMARY KEY NOT NULL,
            name TEXT NOT NULL,
            email TEXT,
            created_at TEXT DEFAULT CURRENT_TIMESTAMP
        );
    """)

    # order_date holds a plain ISO calendar date (YYYY-MM-DD)
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS orders (
            id TEXT PRIMARY KEY NOT NULL,
            customer_id TEXT NOT NULL,
            order_date TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'completed',
            payment_method TEXT,
            total_amount REAL NOT NULL DEFAULT 0 CHECK (total_amount >= 0),
            created_at TEXT DEFAULT CURRENT_TIMESTAMP,
            updated_at TEXT DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (customer_id) REFERENCES customers (id)
        );
    """)
    _ensure_orders_schema(cursor)
    cursor.execute("CREATE TRIGGER IF NOT EXISTS update_orders_updated_at AFTER UPDATE ON orders FOR EACH ROW BEGIN UPDATE orders SET updated_at = CURRENT_TIMESTAMP WHERE id = OLD.id; END;")


def init_db(database_file=None):
    """Initializes the database schema."""
    conn = get_db_connection(database_file)
    try:
        create_schema(conn.cursor())
        conn.commit()
    finally:
        conn.close()
    logger.info("Database initialized.")

if __name__ == '__main__':
    init_db()

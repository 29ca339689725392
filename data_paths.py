"""Centralized helpers for resolving the application's data directory."""
from __future__ import annotations

import logging
import os
from pathlib import Path

LOGGER = logging.getLogger(__name__)

APP_ROOT = Path(__file__).resolve().parent
DATA_ROOT = APP_ROOT / "data"
DATABASE_FILENAME = "sales_tracker.db"


def resolve_data_root() -> Path:
    """Return the configured data root without touching the filesystem."""
    override = os.getenv("SALES_TRACKER_DATA_DIR")
    if override:
        return Path(override).expanduser()
    return DATA_ROOT


def ensure_data_root() -> Path:
    """Return the data root, creating it when missing."""
    data_root = resolve_data_root()
    if not data_root.exists():
        LOGGER.info("Creating data directory %s", data_root)
    data_root.mkdir(parents=True, exist_ok=True)
    return data_root


def resolve_database_file() -> Path:
    """Return the SQLite file holding the order ledger."""
    override = os.getenv("SALES_TRACKER_DB")
    if override:
        return Path(override).expanduser()
    return ensure_data_root() / DATABASE_FILENAME

"""
Database connection management.

Provides SQLite connections for account state persistence.
"""

import sqlite3
from pathlib import Path


DEFAULT_DB_PATH = "contact_ledger.db"


def get_connection(db_path: str = DEFAULT_DB_PATH, timeout: float = 5.0) -> sqlite3.Connection:
    """Create and return a SQLite database connection.

    Args:
        db_path: Path to SQLite database file
        timeout: Seconds to wait for a competing writer before failing

    Returns:
        SQLite connection
    """
    path = Path(db_path)
    conn = sqlite3.connect(str(path), timeout=timeout)
    conn.execute("PRAGMA synchronous = FULL")
    return conn

"""SQLite-backed key/value store for mindspace.

The workspace persists everything as string values under string keys, the
same shape as a browser's local storage. This module owns the SQLite file;
JSON encoding and key naming live in mindspace.persistence.
"""

import logging
import os
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional, Union

logger = logging.getLogger(__name__)


def get_data_dir() -> Path:
    """Get the application data directory."""
    override = os.environ.get("MINDSPACE_DATA_DIR")
    data_dir = Path(override).expanduser() if override else Path.home() / ".local" / "share" / "mindspace"
    data_dir.mkdir(parents=True, exist_ok=True)
    (data_dir / "exports").mkdir(exist_ok=True)
    (data_dir / "backups").mkdir(exist_ok=True)
    return data_dir


def get_db_path() -> Path:
    """Get the database file path."""
    return get_data_dir() / "mindspace.db"


class Database:
    """Key/value store on top of a single SQLite table."""

    def __init__(self, db_path: Optional[Union[Path, str]] = None):
        self.db_path = db_path or get_db_path()
        self._conn: Optional[sqlite3.Connection] = None
        self._tx_depth = 0
        self._init_db()

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            # Autocommit; transaction() issues BEGIN/COMMIT itself.
            self._conn = sqlite3.connect(str(self.db_path), isolation_level=None)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode = WAL")
        return self._conn

    def _init_db(self):
        """Initialize the database schema."""
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS kv (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
        """)

    def close(self):
        """Close the database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    @contextmanager
    def transaction(self) -> Iterator["Database"]:
        """Group several reads and writes into one SQLite transaction.

        Nested use joins the outermost transaction.
        """
        if self._tx_depth:
            self._tx_depth += 1
            try:
                yield self
            finally:
                self._tx_depth -= 1
            return

        self.conn.execute("BEGIN IMMEDIATE")
        self._tx_depth = 1
        try:
            yield self
        except BaseException:
            self._tx_depth = 0
            self.conn.execute("ROLLBACK")
            raise
        self._tx_depth = 0
        self.conn.execute("COMMIT")

    # ==================== Item Operations ====================

    def get_item(self, key: str) -> Optional[str]:
        """Return the value stored under key, or None."""
        row = self.conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        if not row:
            return None
        return row["value"]

    def set_item(self, key: str, value: str):
        """Store value under key, replacing any previous value."""
        if not isinstance(value, str):
            raise TypeError(f"Value for '{key}' must be a string, got {type(value).__name__}")
        self.conn.execute(
            "INSERT OR REPLACE INTO kv (key, value) VALUES (?, ?)",
            (key, value)
        )
        logger.debug("set %s (%d chars)", key, len(value))

    def remove_item(self, key: str):
        """Delete key if present."""
        self.conn.execute("DELETE FROM kv WHERE key = ?", (key,))
        logger.debug("removed %s", key)

    def keys(self, prefix: str = "") -> List[str]:
        """List stored keys, optionally only those starting with prefix."""
        if prefix:
            rows = self.conn.execute(
                "SELECT key FROM kv WHERE substr(key, 1, ?) = ? ORDER BY key",
                (len(prefix), prefix)
            ).fetchall()
        else:
            rows = self.conn.execute("SELECT key FROM kv ORDER BY key").fetchall()
        return [row["key"] for row in rows]

    def clear(self):
        """Remove every key."""
        self.conn.execute("DELETE FROM kv")

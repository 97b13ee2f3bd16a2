"""SQLite connection for the signal store, WAL mode, errors as StorageError."""

import sqlite3
import logging
from pathlib import Path
from contextlib import contextmanager

from utils.errors import StorageError

logger = logging.getLogger("horsai.database")


class DatabaseConnection:
    """One short-lived connection per statement; every write commits whole."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self):
        with self.connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL")

    @contextmanager
    def connect(self):
        """Yield a connection; commit on success, roll back and re-raise on error.

        sqlite3 errors surface as StorageError so callers can tell a store
        failure apart from a bug in their own code.
        """
        try:
            conn = sqlite3.connect(str(self.db_path))
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA foreign_keys=ON")
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            logger.warning("Storage operation failed: %s", e)
            raise StorageError(str(e)) from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def execute(self, sql: str, params: tuple = ()) -> list:
        """Execute a query and return all results."""
        with self.connect() as conn:
            return conn.execute(sql, params).fetchall()

    def execute_one(self, sql: str, params: tuple = ()):
        """Execute a query and return the first result (or None)."""
        with self.connect() as conn:
            return conn.execute(sql, params).fetchone()

    def execute_write(self, sql: str, params: tuple = ()) -> int:
        """Execute a single write statement and return the affected row count."""
        with self.connect() as conn:
            return conn.execute(sql, params).rowcount


_db: DatabaseConnection | None = None


def get_connection(db_path: Path | None = None) -> DatabaseConnection:
    """Get or create the singleton database connection."""
    global _db
    if _db is None:
        if db_path is None:
            from config.settings import get_settings
            db_path = get_settings().db_path
        _db = DatabaseConnection(db_path)
    return _db

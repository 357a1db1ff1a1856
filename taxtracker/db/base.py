"""
Base store module with connection management.

Provides the SQLite foundation for the record store: connection handling,
transactions, and translation of engine failures into typed errors.
"""

import logging
import sqlite3
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Optional

from taxtracker.config import DB_TIMEOUT, get_db_path
from taxtracker.errors import StorageError

logger = logging.getLogger(__name__)


class Collection(str, Enum):
    """The three record collections held by the store."""

    EXPENSES = "expenses"
    CATEGORIES = "categories"
    SETTINGS = "settings"


class BaseStore:
    """
    Base class with SQLite connection management.

    Every operation opens its own short-lived connection. Writes happen
    inside a single transaction per operation so a failure never leaves a
    half-applied change behind.
    """

    def __init__(self, db_path: Optional[Path] = None, timeout: float = DB_TIMEOUT):
        """
        Initialize the base store.

        Args:
            db_path: Path to the SQLite database file. Defaults to data/taxtracker.db
            timeout: Seconds to wait on a locked database
        """
        self.db_path = Path(db_path) if db_path else get_db_path()
        self.timeout = timeout

    def _ensure_db_directory(self):
        """Create the folder holding the database file."""
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Cannot create store directory {self.db_path.parent}: {e}")
            raise StorageError(f"Cannot create {self.db_path.parent}: {e}") from e
        logger.debug(f"Store directory ready: {self.db_path.parent}")

    @contextmanager
    def _get_connection(self):
        """Yield a connection that commits on success and rolls back on any error."""
        conn = None
        try:
            conn = sqlite3.connect(self.db_path, timeout=self.timeout)
            conn.row_factory = sqlite3.Row
            # Receipts cascade with their expense
            conn.execute("PRAGMA foreign_keys = ON")
            yield conn
            conn.commit()
        except sqlite3.OperationalError as e:
            logger.error(f"SQLite operational error on {self.db_path.name}: {e}", exc_info=True)
            if conn:
                conn.rollback()
            raise StorageError(str(e)) from e
        except sqlite3.Error as e:
            logger.error(f"SQLite error on {self.db_path.name}: {e}", exc_info=True)
            if conn:
                conn.rollback()
            raise StorageError(str(e)) from e
        except Exception:
            if conn:
                conn.rollback()
            raise
        finally:
            if conn:
                conn.close()

    @contextmanager
    def _transaction(self):
        """Connection with an immediate write transaction already started."""
        with self._get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            yield conn

    @contextmanager
    def _read_transaction(self):
        """Connection with a read transaction so multiple selects see one state."""
        with self._get_connection() as conn:
            conn.execute("BEGIN")
            yield conn

"""
Record store for expenses, categories and settings.

Handles all persisted state of the tracker:
- Opening the database and running schema migrations
- Keyed access (put/get/get_all/delete) per collection
- Index-backed lookups on expense date, merchant and category
- Atomic read-modify-write, bulk insert and whole-store replace

Every public operation is a coroutine. Operations are serialised through a
single lock and the blocking SQLite work runs in a worker thread, so two
calls fired close together interleave only at operation boundaries.
"""

import asyncio
import json
import logging
import sqlite3
from dataclasses import replace
from datetime import date
from pathlib import Path
from typing import Any, Callable, Iterable, Optional, Sequence

from taxtracker.config import DB_TIMEOUT, ERROR_MESSAGES
from taxtracker.errors import DuplicateCategory, NotFound, StorageError, StorageUnavailable
from taxtracker.models import Category, Expense, ReceiptFile, Setting

from .base import BaseStore, Collection
from .migrations import (
    LATEST_VERSION,
    ensure_meta_table,
    get_schema_version,
    replay_migrations,
    run_migrations,
)

logger = logging.getLogger(__name__)

SCHEMA_VERSION = LATEST_VERSION

EXPENSE_COLUMNS = (
    "id, date_paid, merchant, expense_details, expense_category, expense_amount, "
    "percent_used_for_work, deductible, notes, created_at, updated_at"
)


class RecordStore(BaseStore):
    """
    Durable keyed storage for the three collections.

    Create one instance per process and share it between the services that
    need it.
    """

    def __init__(self, db_path: Optional[Path] = None, timeout: float = DB_TIMEOUT):
        """
        Initialize the record store. Call ``open()`` before any other operation.

        Args:
            db_path: Path to the SQLite database file
            timeout: Seconds to wait on a locked database
        """
        super().__init__(db_path, timeout)
        self._lock = asyncio.Lock()
        self._opened = False

    @property
    def is_open(self) -> bool:
        return self._opened

    async def _run(self, func: Callable, *args):
        """Run a blocking store function, one at a time, off the event loop."""
        if not self._opened:
            raise StorageError("Record store has not been opened")
        async with self._lock:
            return await asyncio.to_thread(func, *args)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def open(self) -> "RecordStore":
        """
        Open the store, creating it if absent, and apply pending migrations.

        Returns:
            The store itself

        Raises:
            StorageUnavailable: If the database cannot be opened or upgraded
        """
        async with self._lock:
            if self._opened:
                return self
            try:
                version = await asyncio.to_thread(self._open_sync)
            except (StorageError, sqlite3.Error, OSError) as e:
                logger.critical(
                    f"Failed to open record store at {self.db_path}: {e}",
                    exc_info=True,
                )
                raise StorageUnavailable(ERROR_MESSAGES["storage_unavailable"]) from e
            self._opened = True
        logger.info(f"Record store opened at {self.db_path} (schema v{version})")
        return self

    def _open_sync(self) -> int:
        self._ensure_db_directory()
        with self._get_connection() as conn:
            return run_migrations(conn)

    async def apply_migrations(self) -> int:
        """Apply any migrations newer than the stored version. Returns the version."""
        return await self._run(self._open_sync)

    async def schema_version(self) -> int:
        return await self._run(self._schema_version_sync)

    def _schema_version_sync(self) -> int:
        with self._get_connection() as conn:
            ensure_meta_table(conn)
            return get_schema_version(conn)

    # =========================================================================
    # Keyed access
    # =========================================================================

    async def put(self, collection: Collection, record):
        """
        Insert or fully replace a record.

        Records without an id are inserted and returned with the assigned id.
        Ids are never reused, even after delete or clear.

        Raises:
            DuplicateCategory: If a category name is already taken
        """
        return await self._run(self._put_sync, Collection(collection), record)

    def _put_sync(self, collection: Collection, record):
        with self._transaction() as conn:
            return self._write(conn, collection, record)

    async def get(self, collection: Collection, record_id) -> Optional[Any]:
        return await self._run(self._get_sync, Collection(collection), record_id)

    def _get_sync(self, collection: Collection, record_id):
        with self._get_connection() as conn:
            return self._read_one(conn, collection, record_id)

    async def get_all(self, collection: Collection) -> list:
        """Get every record in a collection, ordered by id (settings by key)."""
        return await self._run(self._get_all_sync, Collection(collection))

    def _get_all_sync(self, collection: Collection) -> list:
        with self._get_connection() as conn:
            return self._read_all(conn, collection)

    async def delete(self, collection: Collection, record_id) -> bool:
        """
        Delete a record. Receipts are deleted with their expense.

        Returns:
            True if a record was deleted, False if it did not exist
        """
        return await self._run(self._delete_sync, Collection(collection), record_id)

    def _delete_sync(self, collection: Collection, record_id) -> bool:
        key = "key" if collection == Collection.SETTINGS else "id"
        with self._transaction() as conn:
            cursor = conn.execute(
                f"DELETE FROM {collection.value} WHERE {key} = ?", (record_id,)
            )
            deleted = cursor.rowcount > 0
        if deleted:
            logger.debug(f"Deleted {collection.value} record {record_id}")
        return deleted

    async def update(
        self, collection: Collection, record_id, mutate: Callable[[Any], Any]
    ):
        """
        Atomically read a record, transform it and write the result back.

        ``mutate`` receives the current record and returns the replacement.
        Both the read and the write happen inside one transaction.

        Raises:
            NotFound: If the record does not exist
        """
        return await self._run(
            self._update_sync, Collection(collection), record_id, mutate
        )

    def _update_sync(self, collection: Collection, record_id, mutate):
        with self._transaction() as conn:
            current = self._read_one(conn, collection, record_id)
            if current is None:
                raise NotFound(collection.value, record_id)
            updated = mutate(current)
            return self._write(conn, collection, updated)

    async def add_category(self, category: Category) -> Category:
        """
        Insert a category whose name must not already exist.

        Raises:
            DuplicateCategory: If the name is taken
        """
        return await self._run(self._add_category_sync, category)

    def _add_category_sync(self, category: Category) -> Category:
        with self._transaction() as conn:
            existing = conn.execute(
                "SELECT id FROM categories WHERE name = ?", (category.name,)
            ).fetchone()
            if existing:
                raise DuplicateCategory(category.name)
            return self._write(conn, Collection.CATEGORIES, replace(category, id=None))

    async def bulk_insert(self, collection: Collection, records: Sequence) -> list:
        """Write many records in a single transaction (all or nothing)."""
        return await self._run(
            self._bulk_insert_sync, Collection(collection), list(records)
        )

    def _bulk_insert_sync(self, collection: Collection, records: list) -> list:
        with self._transaction() as conn:
            saved = [self._write(conn, collection, record) for record in records]
        logger.info(f"Bulk inserted {len(saved)} {collection.value} records")
        return saved

    # =========================================================================
    # Indexed lookups
    # =========================================================================

    async def get_by_date_range(self, start: date, end: date) -> list[Expense]:
        """
        Get expenses paid between two dates, both inclusive.

        Results are in ascending date order (ties by id).
        """
        return await self._run(self._get_by_date_range_sync, start, end)

    def _get_by_date_range_sync(self, start: date, end: date) -> list[Expense]:
        with self._get_connection() as conn:
            return self._select_expenses(
                conn,
                "WHERE date_paid >= ? AND date_paid <= ? ORDER BY date_paid ASC, id ASC",
                (start.isoformat(), end.isoformat()),
            )

    async def find_by_merchant(self, merchant: str) -> list[Expense]:
        return await self._run(self._find_by_column_sync, "merchant", merchant)

    async def find_by_category(self, category: str) -> list[Expense]:
        return await self._run(
            self._find_by_column_sync, "expense_category", category
        )

    def _find_by_column_sync(self, column: str, value: str) -> list[Expense]:
        with self._get_connection() as conn:
            return self._select_expenses(
                conn, f"WHERE {column} = ? ORDER BY date_paid ASC, id ASC", (value,)
            )

    # =========================================================================
    # Whole-store operations
    # =========================================================================

    async def read_consistent(self) -> tuple[list[Expense], list[Category]]:
        """Read all expenses and categories from a single point in time."""
        return await self._run(self._read_consistent_sync)

    def _read_consistent_sync(self) -> tuple[list[Expense], list[Category]]:
        with self._read_transaction() as conn:
            expenses = self._read_all(conn, Collection.EXPENSES)
            categories = self._read_all(conn, Collection.CATEGORIES)
        return expenses, categories

    async def replace_all(
        self,
        expenses: Sequence[Expense],
        categories: Sequence[Category],
        from_version: int = SCHEMA_VERSION,
    ) -> None:
        """
        Replace every expense and category in one transaction.

        Record ids are preserved. Migrations newer than ``from_version`` are
        replayed on the loaded rows before commit. Settings are untouched.
        """
        await self._run(
            self._replace_all_sync, list(expenses), list(categories), from_version
        )

    def _replace_all_sync(
        self, expenses: list[Expense], categories: list[Category], from_version: int
    ) -> None:
        with self._transaction() as conn:
            conn.execute("DELETE FROM receipt_files")
            conn.execute("DELETE FROM expenses")
            conn.execute("DELETE FROM categories")
            for category in categories:
                self._write(conn, Collection.CATEGORIES, category)
            for expense in expenses:
                self._write(conn, Collection.EXPENSES, expense)
            replay_migrations(conn, from_version)
        logger.info(
            f"Replaced store contents with {len(expenses)} expenses and "
            f"{len(categories)} categories"
        )

    async def clear_all(self) -> None:
        """Empty every collection. Only used by an explicit reset."""
        await self._run(self._clear_all_sync)

    def _clear_all_sync(self) -> None:
        with self._transaction() as conn:
            for table in ("receipt_files", "expenses", "categories", "settings"):
                conn.execute(f"DELETE FROM {table}")
        logger.warning("All collections cleared")

    # =========================================================================
    # Row mapping
    # =========================================================================

    def _write(self, conn: sqlite3.Connection, collection: Collection, record):
        if collection == Collection.EXPENSES:
            return self._write_expense(conn, record)
        if collection == Collection.CATEGORIES:
            return self._write_category(conn, record)
        return self._write_setting(conn, record)

    def _write_expense(self, conn: sqlite3.Connection, expense: Expense) -> Expense:
        values = (
            expense.date_paid.isoformat(),
            expense.merchant,
            expense.expense_details,
            expense.expense_category,
            expense.expense_amount,
            expense.percent_used_for_work,
            expense.deductible,
            expense.notes or "",
            expense.created_at.isoformat() if expense.created_at else None,
            expense.updated_at.isoformat() if expense.updated_at else None,
        )

        if expense.id is None:
            cursor = conn.execute(
                """
                INSERT INTO expenses (
                    date_paid, merchant, expense_details, expense_category,
                    expense_amount, percent_used_for_work, deductible, notes,
                    created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                values,
            )
            expense = replace(expense, id=cursor.lastrowid)
        else:
            conn.execute(
                """
                INSERT INTO expenses (
                    id, date_paid, merchant, expense_details, expense_category,
                    expense_amount, percent_used_for_work, deductible, notes,
                    created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    date_paid = excluded.date_paid,
                    merchant = excluded.merchant,
                    expense_details = excluded.expense_details,
                    expense_category = excluded.expense_category,
                    expense_amount = excluded.expense_amount,
                    percent_used_for_work = excluded.percent_used_for_work,
                    deductible = excluded.deductible,
                    notes = excluded.notes,
                    created_at = excluded.created_at,
                    updated_at = excluded.updated_at
                """,
                (expense.id, *values),
            )
            conn.execute(
                "DELETE FROM receipt_files WHERE expense_id = ?", (expense.id,)
            )

        self._write_receipts(conn, expense.id, expense.receipt_files)
        return expense

    def _write_receipts(
        self, conn: sqlite3.Connection, expense_id: int, receipts: Iterable[ReceiptFile]
    ) -> None:
        conn.executemany(
            """
            INSERT INTO receipt_files (
                expense_id, position, name, mime_type, size_bytes, payload, uploaded_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (
                    expense_id,
                    position,
                    receipt.name,
                    receipt.mime_type,
                    receipt.size_bytes,
                    sqlite3.Binary(receipt.payload),
                    receipt.uploaded_at.isoformat() if receipt.uploaded_at else None,
                )
                for position, receipt in enumerate(receipts)
            ],
        )

    def _write_category(self, conn: sqlite3.Connection, category: Category) -> Category:
        try:
            if category.id is None:
                cursor = conn.execute(
                    "INSERT INTO categories (name, icon, color) VALUES (?, ?, ?)",
                    (category.name, category.icon, category.color),
                )
                return replace(category, id=cursor.lastrowid)

            conn.execute(
                """
                INSERT INTO categories (id, name, icon, color) VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    icon = excluded.icon,
                    color = excluded.color
                """,
                (category.id, category.name, category.icon, category.color),
            )
            return category
        except sqlite3.IntegrityError as e:
            if "UNIQUE" in str(e) and "categories.name" in str(e):
                raise DuplicateCategory(category.name) from e
            raise

    def _write_setting(self, conn: sqlite3.Connection, setting: Setting) -> Setting:
        conn.execute(
            """
            INSERT INTO settings (key, value) VALUES (?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value
            """,
            (setting.key, json.dumps(setting.value)),
        )
        return setting

    def _read_one(self, conn: sqlite3.Connection, collection: Collection, record_id):
        if collection == Collection.EXPENSES:
            found = self._select_expenses(conn, "WHERE id = ?", (record_id,))
            return found[0] if found else None
        if collection == Collection.CATEGORIES:
            row = conn.execute(
                "SELECT id, name, icon, color FROM categories WHERE id = ?",
                (record_id,),
            ).fetchone()
            return Category.from_row(tuple(row)) if row else None
        row = conn.execute(
            "SELECT key, value FROM settings WHERE key = ?", (record_id,)
        ).fetchone()
        return Setting.from_row(tuple(row)) if row else None

    def _read_all(self, conn: sqlite3.Connection, collection: Collection) -> list:
        if collection == Collection.EXPENSES:
            return self._select_expenses(conn, "ORDER BY id ASC", ())
        if collection == Collection.CATEGORIES:
            cursor = conn.execute(
                "SELECT id, name, icon, color FROM categories ORDER BY id ASC"
            )
            return [Category.from_row(tuple(row)) for row in cursor.fetchall()]
        cursor = conn.execute("SELECT key, value FROM settings ORDER BY key ASC")
        return [Setting.from_row(tuple(row)) for row in cursor.fetchall()]

    def _select_expenses(
        self, conn: sqlite3.Connection, clause: str, params: tuple
    ) -> list[Expense]:
        """Select expenses with their receipts in two queries."""
        rows = conn.execute(
            f"SELECT {EXPENSE_COLUMNS} FROM expenses {clause}", params
        ).fetchall()
        if not rows:
            return []

        receipts: dict[int, list[ReceiptFile]] = {}
        ids = [row["id"] for row in rows]
        # Chunk to stay under SQLite's bound-parameter limit
        for offset in range(0, len(ids), 500):
            chunk = ids[offset : offset + 500]
            placeholders = ", ".join("?" for _ in chunk)
            cursor = conn.execute(
                f"""
                SELECT expense_id, name, mime_type, size_bytes, payload, uploaded_at
                FROM receipt_files
                WHERE expense_id IN ({placeholders})
                ORDER BY expense_id ASC, position ASC
                """,
                chunk,
            )
            for row in cursor.fetchall():
                receipts.setdefault(row["expense_id"], []).append(
                    ReceiptFile.from_row(row)
                )

        return [Expense.from_row(row, receipts.get(row["id"], [])) for row in rows]

"""
Versioned schema migrations.

Each migration upgrades the database from ``version - 1`` to ``version``.
Migrations run in order when the store is opened, once per version
transition, each inside its own transaction together with the version bump.
Every step checks what already exists before changing anything, so running
a step twice is harmless. Snapshot imports replay the steps newer than the
snapshot's version against the imported rows.
"""

import logging
import sqlite3
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

logger = logging.getLogger(__name__)

SCHEMA_META_SQL = """
    CREATE TABLE IF NOT EXISTS schema_meta (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL
    )
"""


@dataclass(frozen=True)
class Migration:
    """A single schema upgrade step."""

    version: int
    description: str
    upgrade: Callable[[sqlite3.Connection], None]


def _create_base_schema(conn: sqlite3.Connection) -> None:
    """Create the expenses, receipts, categories and settings tables."""
    conn.execute("""
        CREATE TABLE IF NOT EXISTS expenses (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            date_paid TEXT NOT NULL,
            merchant TEXT NOT NULL,
            expense_details TEXT NOT NULL,
            expense_category TEXT NOT NULL,
            expense_amount REAL NOT NULL,
            percent_used_for_work REAL NOT NULL,
            deductible REAL NOT NULL,
            notes TEXT NOT NULL DEFAULT '',
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS receipt_files (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            expense_id INTEGER NOT NULL
                REFERENCES expenses(id) ON DELETE CASCADE,
            position INTEGER NOT NULL,
            name TEXT NOT NULL,
            mime_type TEXT NOT NULL,
            size_bytes INTEGER NOT NULL CHECK(size_bytes >= 0),
            payload BLOB NOT NULL,
            uploaded_at TEXT
        )
    """)

    # Category names are case-sensitive (BINARY collation)
    conn.execute("""
        CREATE TABLE IF NOT EXISTS categories (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL UNIQUE CHECK(length(name) > 0),
            icon TEXT,
            color TEXT
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS settings (
            key TEXT PRIMARY KEY,
            value TEXT
        )
    """)

    indexes = [
        ("idx_expenses_date_paid", "expenses", "date_paid"),
        ("idx_expenses_merchant", "expenses", "merchant"),
        ("idx_expenses_category", "expenses", "expense_category"),
        ("idx_expenses_created_at", "expenses", "created_at"),
        ("idx_receipt_files_expense_id", "receipt_files", "expense_id, position"),
    ]
    for index_name, table, columns in indexes:
        conn.execute(f"""
            CREATE INDEX IF NOT EXISTS {index_name}
            ON {table}({columns})
        """)


class CategoryMerge:
    """
    Consolidate legacy categories into a single replacement category.

    Creates the replacement if it is missing and deletes the legacy rows.
    Expenses keep their old category name and show up as orphaned
    references afterwards.
    """

    def __init__(
        self,
        legacy_names: Sequence[str],
        name: str,
        icon: Optional[str] = None,
        color: Optional[str] = None,
    ):
        self.legacy_names = tuple(legacy_names)
        self.name = name
        self.icon = icon
        self.color = color

    def __call__(self, conn: sqlite3.Connection) -> None:
        placeholders = ", ".join("?" for _ in self.legacy_names)
        cursor = conn.execute(
            f"SELECT id, name FROM categories WHERE name IN ({placeholders})",
            self.legacy_names,
        )
        legacy = cursor.fetchall()
        if not legacy:
            return

        existing = conn.execute(
            "SELECT id FROM categories WHERE name = ?", (self.name,)
        ).fetchone()
        if existing is None:
            conn.execute(
                "INSERT INTO categories (name, icon, color) VALUES (?, ?, ?)",
                (self.name, self.icon, self.color),
            )

        conn.execute(
            f"DELETE FROM categories WHERE name IN ({placeholders})",
            self.legacy_names,
        )
        logger.info(
            f"Merged categories {[row['name'] for row in legacy]} into '{self.name}'"
        )


MIGRATIONS: list[Migration] = [
    Migration(1, "create base schema", _create_base_schema),
    Migration(
        2,
        "merge Desk and Chair categories into Furniture",
        CategoryMerge(["Desk", "Chair"], "Furniture", icon="🪑", color="#ff5630"),
    ),
]

LATEST_VERSION = MIGRATIONS[-1].version


def ensure_meta_table(conn: sqlite3.Connection) -> None:
    conn.execute(SCHEMA_META_SQL)


def get_schema_version(conn: sqlite3.Connection) -> int:
    """Read the stored schema version; 0 for a brand new database."""
    row = conn.execute(
        "SELECT value FROM schema_meta WHERE key = 'schema_version'"
    ).fetchone()
    return int(row[0]) if row else 0


def _set_schema_version(conn: sqlite3.Connection, version: int) -> None:
    conn.execute(
        """
        INSERT INTO schema_meta (key, value) VALUES ('schema_version', ?)
        ON CONFLICT(key) DO UPDATE SET value = excluded.value
        """,
        (str(version),),
    )


def pending_migrations(
    current_version: int, migrations: Optional[Sequence[Migration]] = None
) -> list[Migration]:
    """Migrations newer than ``current_version``, in version order."""
    steps = migrations if migrations is not None else MIGRATIONS
    return sorted(
        (m for m in steps if m.version > current_version), key=lambda m: m.version
    )


def run_migrations(
    conn: sqlite3.Connection, migrations: Optional[Sequence[Migration]] = None
) -> int:
    """
    Bring the database up to the latest schema version.

    Each version runs in its own transaction; a failing step rolls back that
    version and re-raises, leaving the stored version at the last success.

    Args:
        conn: Open connection outside of any transaction
        migrations: Override of the migration list (tests)

    Returns:
        The schema version after upgrading
    """
    ensure_meta_table(conn)
    conn.commit()
    version = get_schema_version(conn)

    for migration in pending_migrations(version, migrations):
        logger.info(
            f"Applying migration v{migration.version}: {migration.description}"
        )
        try:
            conn.execute("BEGIN TRANSACTION")
            migration.upgrade(conn)
            _set_schema_version(conn, migration.version)
            conn.commit()
        except Exception as e:
            logger.error(
                f"Migration v{migration.version} failed: {e}", exc_info=True
            )
            conn.rollback()
            raise
        version = migration.version

    return version


def replay_migrations(conn: sqlite3.Connection, from_version: int) -> None:
    """
    Re-run the steps newer than ``from_version`` inside the caller's transaction.

    Used after bulk-loading data that was written by an older schema.
    """
    for migration in pending_migrations(from_version):
        logger.info(
            f"Replaying migration v{migration.version} on imported data: "
            f"{migration.description}"
        )
        migration.upgrade(conn)

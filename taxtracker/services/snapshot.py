"""
Snapshot exchange for backup and restore.

A snapshot is a single JSON document holding every expense (receipts
included, as data URIs) and every category. Importing a snapshot replaces
all expenses and categories in one transaction; settings are kept.
"""

import json
import logging
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Union

from taxtracker.config import SETTING_LAST_BACKUP, SNAPSHOT_FILENAME_PREFIX
from taxtracker.db import SCHEMA_VERSION, Collection, RecordStore
from taxtracker.errors import InvalidSnapshot
from taxtracker.models import Category, Expense, Setting, format_timestamp

from .ledger import calculate_deductible

logger = logging.getLogger(__name__)

# Snapshots written before versioning was recorded carry no version at all
LEGACY_SNAPSHOT_VERSION = 1


class SnapshotExchange:
    """Service for whole-store export and import."""

    def __init__(self, store: RecordStore):
        """
        Initialize the snapshot exchange.

        Args:
            store: The process-wide record store
        """
        self.store = store

    # =========================================================================
    # Export
    # =========================================================================

    async def export_snapshot(self) -> dict[str, Any]:
        """
        Export all expenses and categories from one consistent read.

        Also records the export time in the ``lastBackup`` setting.
        """
        expenses, categories = await self.store.read_consistent()
        exported_at = datetime.now(timezone.utc)

        snapshot = {
            "expenses": [e.to_dict() for e in expenses],
            "categories": [c.to_dict() for c in categories],
            "exportDate": format_timestamp(exported_at),
            "schemaVersion": SCHEMA_VERSION,
        }

        await self.store.put(
            Collection.SETTINGS,
            Setting(key=SETTING_LAST_BACKUP, value=snapshot["exportDate"]),
        )
        logger.info(
            f"Exported snapshot with {len(expenses)} expenses and "
            f"{len(categories)} categories"
        )
        return snapshot

    @staticmethod
    def dumps(snapshot: dict[str, Any]) -> str:
        return json.dumps(snapshot, indent=2, ensure_ascii=False)

    @staticmethod
    def loads(text: Union[str, bytes]) -> dict[str, Any]:
        """
        Parse a snapshot document.

        Raises:
            InvalidSnapshot: If the text is not JSON
        """
        try:
            return json.loads(text)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise InvalidSnapshot(f"Backup file is not valid JSON: {e}") from e

    async def write(self, path: Path) -> Path:
        """Export a snapshot to a JSON file."""
        snapshot = await self.export_snapshot()
        path = Path(path)
        path.write_text(self.dumps(snapshot), encoding="utf-8")
        logger.info(f"Snapshot written to {path}")
        return path

    async def read(self, path: Path) -> dict[str, Any]:
        """Import a snapshot from a JSON file. Returns the parsed document."""
        snapshot = self.loads(Path(path).read_text(encoding="utf-8"))
        await self.import_snapshot(snapshot)
        return snapshot

    @staticmethod
    def get_filename(exported_at: Optional[datetime] = None) -> str:
        exported_at = exported_at or datetime.now(timezone.utc)
        return f"{SNAPSHOT_FILENAME_PREFIX}-{exported_at.strftime('%Y-%m-%d')}.json"

    # =========================================================================
    # Import
    # =========================================================================

    async def import_snapshot(self, snapshot: dict[str, Any]) -> None:
        """
        Replace all expenses and categories with the snapshot's contents.

        The whole document is decoded and checked before anything is written,
        then the replace runs as one transaction. Migrations newer than the
        snapshot's schema version are applied to the imported rows.

        Raises:
            InvalidSnapshot: If the document is malformed; the store is unchanged
        """
        expenses, categories, version = self.decode(snapshot)
        await self.store.replace_all(expenses, categories, from_version=version)
        logger.info(
            f"Imported snapshot (schema v{version}) with {len(expenses)} expenses "
            f"and {len(categories)} categories"
        )

    def decode(
        self, snapshot: Any
    ) -> tuple[list[Expense], list[Category], int]:
        """
        Decode and check a snapshot document without touching the store.

        Returns:
            Tuple of (expenses, categories, schema_version)

        Raises:
            InvalidSnapshot: If the document is malformed
        """
        if not isinstance(snapshot, dict):
            raise InvalidSnapshot("Snapshot must be a JSON object")
        if "expenses" not in snapshot or "categories" not in snapshot:
            raise InvalidSnapshot("Snapshot must contain expenses and categories")
        if not isinstance(snapshot["expenses"], list) or not isinstance(
            snapshot["categories"], list
        ):
            raise InvalidSnapshot("Snapshot expenses and categories must be lists")

        version = self._decode_version(snapshot)

        categories = []
        for index, record in enumerate(snapshot["categories"]):
            try:
                categories.append(Category.from_dict(record))
            except (ValueError, TypeError) as e:
                raise InvalidSnapshot(f"Invalid category at index {index}: {e}") from e

        imported_at = datetime.now(timezone.utc)
        expenses = []
        for index, record in enumerate(snapshot["expenses"]):
            try:
                expense = Expense.from_dict(record)
            except (ValueError, TypeError) as e:
                raise InvalidSnapshot(f"Invalid expense at index {index}: {e}") from e
            expenses.append(
                replace(
                    expense,
                    deductible=calculate_deductible(
                        expense.expense_amount, expense.percent_used_for_work
                    ),
                    created_at=expense.created_at or imported_at,
                    updated_at=expense.updated_at or expense.created_at or imported_at,
                )
            )

        self._check_unique(
            [c.name for c in categories], "category name"
        )
        self._check_unique(
            [c.id for c in categories if c.id is not None], "category id"
        )
        self._check_unique(
            [e.id for e in expenses if e.id is not None], "expense id"
        )
        return expenses, categories, version

    @staticmethod
    def _decode_version(snapshot: dict[str, Any]) -> int:
        raw = snapshot.get("schemaVersion", snapshot.get("version"))
        if raw is None:
            return LEGACY_SNAPSHOT_VERSION
        try:
            version = int(raw)
        except (TypeError, ValueError) as e:
            raise InvalidSnapshot(f"Invalid schema version: {raw!r}") from e
        if version > SCHEMA_VERSION:
            raise InvalidSnapshot(
                f"Snapshot schema v{version} is newer than supported v{SCHEMA_VERSION}"
            )
        return version

    @staticmethod
    def _check_unique(values: list, label: str) -> None:
        seen = set()
        for value in values:
            if value in seen:
                raise InvalidSnapshot(f"Duplicate {label} in snapshot: {value!r}")
            seen.add(value)

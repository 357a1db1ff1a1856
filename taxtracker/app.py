"""
Application container for the tax deductible tracker.

Builds one instance of each service per process and wires them to a single
shared record store.
"""

import logging
from pathlib import Path
from typing import Optional

from taxtracker.config import get_db_path
from taxtracker.db import RecordStore
from taxtracker.services import (
    CategoryRegistry,
    ExpenseLedger,
    ExportService,
    QueryEngine,
    ReportService,
    SettingsService,
    SnapshotExchange,
)

logger = logging.getLogger(__name__)


class TrackerApp:
    """Holds the record store and every service built on it."""

    def __init__(self, store: RecordStore):
        try:
            self.store = store

            self.registry = CategoryRegistry(store)
            self.ledger = ExpenseLedger(store)
            self.query = QueryEngine(self.ledger, self.registry)
            self.snapshot = SnapshotExchange(store)
            self.settings = SettingsService(store)
            self.reports = ReportService(store)
            self.export = ExportService()
            logger.info("Tracker services initialized")
        except Exception as e:
            logger.error(f"Failed to initialize tracker services: {e}", exc_info=True)
            raise

    async def start(self) -> "TrackerApp":
        """
        Open the store and seed default categories on first run.

        Raises:
            StorageUnavailable: If the database cannot be opened
        """
        await self.store.open()
        await self.registry.initialize_defaults()
        return self

    async def reset(self) -> None:
        """Delete every record, then seed the default categories again."""
        logger.warning("Resetting all tracker data")
        await self.store.clear_all()
        await self.registry.initialize_defaults()


async def create_app(db_path: Optional[Path] = None) -> TrackerApp:
    """
    Create and start a tracker application.

    Args:
        db_path: Database file; defaults to the configured path

    Returns:
        A started TrackerApp
    """
    store = RecordStore(Path(db_path) if db_path else get_db_path())
    return await TrackerApp(store).start()

"""
Settings helpers over the settings collection.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from taxtracker.config import SETTING_LAST_BACKUP
from taxtracker.db import Collection, RecordStore
from taxtracker.models import Setting, parse_timestamp

logger = logging.getLogger(__name__)


class SettingsService:
    """Typed get/set for key-value settings."""

    def __init__(self, store: RecordStore):
        self.store = store

    async def get(self, key: str, default: Any = None) -> Any:
        """Get a setting's value, or ``default`` if it has never been set."""
        setting = await self.store.get(Collection.SETTINGS, key)
        return setting.value if setting is not None else default

    async def set(self, key: str, value: Any) -> Setting:
        setting = await self.store.put(Collection.SETTINGS, Setting(key=key, value=value))
        logger.debug(f"Setting '{key}' updated")
        return setting

    async def get_all(self) -> dict[str, Any]:
        return {s.key: s.value for s in await self.store.get_all(Collection.SETTINGS)}

    async def last_backup(self) -> Optional[datetime]:
        """When the last snapshot was exported, if ever."""
        value = await self.get(SETTING_LAST_BACKUP)
        return parse_timestamp(value) if value else None

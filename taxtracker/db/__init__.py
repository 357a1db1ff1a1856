"""
Database module for the tax deductible tracker.

Structure:
- base.py: Connection management, transactions and the Collection enum
- migrations.py: Versioned schema upgrade steps
- store.py: RecordStore, the async keyed store for all three collections
"""

from .base import BaseStore, Collection
from .migrations import MIGRATIONS, CategoryMerge, Migration
from .store import SCHEMA_VERSION, RecordStore

__all__ = [
    "BaseStore",
    "CategoryMerge",
    "Collection",
    "MIGRATIONS",
    "Migration",
    "RecordStore",
    "SCHEMA_VERSION",
]

"""
Tax Deductible Tracker

Persistence and query core for recording tax-deductible expenses, attaching
receipts and producing quarterly reports.
"""

from .app import TrackerApp, create_app
from .db import RecordStore
from .errors import (
    DuplicateCategory,
    InvalidSnapshot,
    NotFound,
    StorageError,
    StorageUnavailable,
    TrackerError,
    ValidationFailed,
)
from .models import Category, Expense, ExpenseDraft, ReceiptFile, Setting

__version__ = "0.1.0"

__all__ = [
    "Category",
    "DuplicateCategory",
    "Expense",
    "ExpenseDraft",
    "InvalidSnapshot",
    "NotFound",
    "ReceiptFile",
    "RecordStore",
    "Setting",
    "StorageError",
    "StorageUnavailable",
    "TrackerError",
    "TrackerApp",
    "ValidationFailed",
    "create_app",
]

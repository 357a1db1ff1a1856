"""
Error types raised by the persistence and query layer.

Storage failures are fatal or propagate unchanged; the remaining errors are
recoverable and carry enough context for the caller to report them.
"""

from typing import Optional


class TrackerError(Exception):
    """Base class for all tracker errors."""


class StorageError(TrackerError):
    """The embedded database failed while executing an operation."""


class StorageUnavailable(StorageError):
    """The embedded database could not be opened. Nothing else can run."""


class ValidationFailed(TrackerError):
    """An expense draft has one or more field-level violations."""

    def __init__(self, violations: list[str]):
        self.violations = list(violations)
        super().__init__("; ".join(self.violations))


class DuplicateCategory(TrackerError):
    """A category with the same name already exists."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Category '{name}' already exists")


class NotFound(TrackerError):
    """An update or delete referenced a record that does not exist."""

    def __init__(self, collection: str, record_id: Optional[object]):
        self.collection = collection
        self.record_id = record_id
        super().__init__(f"No record {record_id!r} in {collection}")


class InvalidSnapshot(TrackerError):
    """A snapshot document is malformed; nothing was written."""

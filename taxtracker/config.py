"""
Configuration module for the tax deductible tracker.

Paths, limits, filenames and user-facing messages shared by the store,
the services and the command line runner.
"""

import os
from pathlib import Path

# Version
VERSION = "0.1.0"

# Application paths
PROJECT_ROOT = Path(__file__).parent.parent
DATA_DIR = PROJECT_ROOT / "data"
LOG_DIR = PROJECT_ROOT / "logs"

# Database configuration
DEFAULT_DB_PATH = DATA_DIR / "taxtracker.db"
DB_PATH_ENV_VAR = "TAXTRACKER_DB_PATH"
DB_TIMEOUT = 10.0  # seconds

# Expense constraints
MIN_WORK_PERCENTAGE = 0.0
MAX_WORK_PERCENTAGE = 100.0
DEFAULT_CATEGORY_FILTER = "all"

# Dashboard defaults
DEFAULT_TREND_MONTHS = 6
DEFAULT_RECENT_EXPENSES = 5
TOP_CATEGORY_LIMIT = 8

# Settings keys
SETTING_LAST_BACKUP = "lastBackup"

# Export configuration
SNAPSHOT_FILENAME_PREFIX = "tax-tracker-backup"
REPORT_FILENAME_PREFIX = "QPD"

# Chart generation
CHART_DPI = 150
CHART_FORMAT = "png"
CHART_WIDTH = 12
CHART_HEIGHT = 6

# Logging configuration
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FILE = "taxtracker.log"
LOG_LEVEL_ENV_VAR = "LOG_LEVEL"
DEFAULT_LOG_LEVEL = "INFO"

# Error messages
ERROR_MESSAGES = {
    "storage_unavailable": (
        "The expense database could not be opened. "
        "Check that the data directory is writable and reload."
    ),
    "storage_error": "Database error occurred. Please try again.",
    "validation_error": "Invalid expense. Please check your values and try again.",
    "duplicate_category": "A category named '{name}' already exists.",
    "not_found": "The requested record was not found. Please refresh.",
    "invalid_snapshot": "Invalid backup file format.",
}


def ensure_directories():
    """Create the data and log folders if they are missing."""
    for directory in (DATA_DIR, LOG_DIR):
        directory.mkdir(parents=True, exist_ok=True)


def get_db_path() -> Path:
    """Get the database path, honouring the environment override."""
    override = os.getenv(DB_PATH_ENV_VAR)
    return Path(override) if override else DEFAULT_DB_PATH


def get_log_level():
    """Read LOG_LEVEL from the environment as a logging level, defaulting to INFO."""
    import logging

    level = logging.getLevelName(os.getenv(LOG_LEVEL_ENV_VAR, DEFAULT_LOG_LEVEL).upper())
    return level if isinstance(level, int) else logging.INFO

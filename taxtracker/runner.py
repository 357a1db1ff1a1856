"""
Command line runner for the tax deductible tracker.

This module handles configuration loading and the maintenance commands:
summary, report, backup, restore, orphans and reset.
"""

import argparse
import asyncio
import logging
import sys
from datetime import date
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from taxtracker.config import (
    ERROR_MESSAGES,
    LOG_DIR,
    LOG_FILE,
    LOG_FORMAT,
    VERSION,
    ensure_directories,
    get_log_level,
)
from taxtracker.errors import (
    DuplicateCategory,
    InvalidSnapshot,
    NotFound,
    StorageError,
    StorageUnavailable,
    TrackerError,
    ValidationFailed,
)
from taxtracker.services import ExportFormat
from taxtracker.services.query import quarter_of

from .app import TrackerApp, create_app

logger = logging.getLogger(__name__)


def configure_logging():
    """Send log records to the log file and stdout."""
    ensure_directories()
    logging.basicConfig(
        level=get_log_level(),
        format=LOG_FORMAT,
        handlers=[
            logging.FileHandler(LOG_DIR / LOG_FILE),
            logging.StreamHandler(sys.stdout),
        ],
    )


def load_environment() -> Optional[Path]:
    """
    Load a .env file from the project root if there is one.

    Runs before logging is configured so LOG_LEVEL from the file applies.

    Returns:
        Path of the loaded file, or None
    """
    env_path = Path(__file__).parent.parent / ".env"
    if not env_path.exists():
        return None
    load_dotenv(env_path)
    return env_path


def build_parser() -> argparse.ArgumentParser:
    today = date.today()

    parser = argparse.ArgumentParser(
        prog="taxtracker",
        description="Maintenance commands for the tax deductible tracker.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    parser.add_argument("--db", type=Path, default=None, help="Database file to use")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("summary", help="Show dashboard totals")

    report = subparsers.add_parser("report", help="Show or export a quarterly report")
    report.add_argument("--year", type=int, default=today.year)
    report.add_argument(
        "--quarter", type=int, choices=[1, 2, 3, 4], default=quarter_of(today)
    )
    report.add_argument(
        "--format", choices=[f.value for f in ExportFormat], default=None,
        help="Write the report to a file in this format",
    )
    report.add_argument("--output", type=Path, default=None)

    backup = subparsers.add_parser("backup", help="Export a JSON snapshot")
    backup.add_argument("--output", type=Path, default=None)

    restore = subparsers.add_parser("restore", help="Replace all data from a snapshot")
    restore.add_argument("path", type=Path)

    subparsers.add_parser(
        "orphans", help="List categories used by expenses but no longer defined"
    )

    reset = subparsers.add_parser("reset", help="Delete all data and re-seed defaults")
    reset.add_argument("--yes", action="store_true", help="Skip the confirmation")

    return parser


# =============================================================================
# Commands
# =============================================================================


async def cmd_summary(app: TrackerApp, args) -> int:
    stats = await app.reports.dashboard_stats()
    last_backup = await app.settings.last_backup()

    print(f"Total Expenses:   {stats.overall.total_expenses:>14,.2f}")
    print(
        f"Total Deductible: {stats.overall.total_deductible:>14,.2f} "
        f"({stats.deductible_ratio:.1%} of expenses)"
    )
    print(
        f"Q{stats.current_quarter} {stats.current_year} Deductible: "
        f"{stats.quarter_summary.total_deductible:,.2f} "
        f"({stats.quarter_summary.count} expenses)"
    )
    print(f"Avg Work Usage:   {stats.overall.average_work_percentage:>13.1f}%")
    print(f"Last Backup:      {last_backup.isoformat() if last_backup else 'never'}")

    if stats.top_categories:
        print("")
        print("Top categories:")
        for share in stats.top_categories:
            print(
                f"  {share.category:<24}{share.totals.total_deductible:>14,.2f}"
                f"{share.share:>8.1%}"
            )
    return 0


async def cmd_report(app: TrackerApp, args) -> int:
    report = await app.reports.generate_report(args.year, args.quarter)
    print(app.reports.format_report(report))

    if args.format:
        if report.is_empty:
            print(f"No expenses to export for {report.period_label}")
            return 0
        fmt = ExportFormat(args.format)
        if fmt == ExportFormat.CSV:
            buffer = app.export.export_report_to_csv(report)
        else:
            buffer = app.export.export_report_to_xlsx(report)
        output = args.output or Path(
            app.export.get_filename(fmt, report.year, report.quarter)
        )
        output.write_bytes(buffer.getvalue())
        print(f"Report written to {output}")
    return 0


async def cmd_backup(app: TrackerApp, args) -> int:
    output = args.output or Path(app.snapshot.get_filename())
    await app.snapshot.write(output)
    print(f"Backup written to {output}")
    return 0


async def cmd_restore(app: TrackerApp, args) -> int:
    snapshot = await app.snapshot.read(args.path)
    print(
        f"Restored {len(snapshot['expenses'])} expenses and "
        f"{len(snapshot['categories'])} categories from {args.path}"
    )
    return 0


async def cmd_orphans(app: TrackerApp, args) -> int:
    orphans = await app.query.orphaned_categories()
    if not orphans:
        print("Every expense uses a defined category")
        return 0
    for name, count in sorted(orphans.items()):
        print(f"{name}: {count} expense(s)")
    return 0


async def cmd_reset(app: TrackerApp, args) -> int:
    if not args.yes:
        answer = input("Delete ALL expenses, categories and settings? [y/N] ")
        if answer.strip().lower() != "y":
            print("Reset cancelled")
            return 1
    await app.reset()
    print("All data deleted; default categories restored")
    return 0


COMMANDS = {
    "summary": cmd_summary,
    "report": cmd_report,
    "backup": cmd_backup,
    "restore": cmd_restore,
    "orphans": cmd_orphans,
    "reset": cmd_reset,
}


def user_message(error: TrackerError) -> str:
    """Turn a tracker error into a message for the person at the terminal."""
    if isinstance(error, StorageUnavailable):
        return ERROR_MESSAGES["storage_unavailable"]
    if isinstance(error, StorageError):
        return ERROR_MESSAGES["storage_error"]
    if isinstance(error, ValidationFailed):
        details = "\n".join(f"  - {v}" for v in error.violations)
        return f"{ERROR_MESSAGES['validation_error']}\n{details}"
    if isinstance(error, DuplicateCategory):
        return ERROR_MESSAGES["duplicate_category"].format(name=error.name)
    if isinstance(error, NotFound):
        return ERROR_MESSAGES["not_found"]
    if isinstance(error, InvalidSnapshot):
        return f"{ERROR_MESSAGES['invalid_snapshot']} {error}"
    return str(error)


async def run(args) -> int:
    app = await create_app(args.db)
    return await COMMANDS[args.command](app, args)


def main(argv: Optional[list[str]] = None) -> int:
    """Run one maintenance command with comprehensive error handling."""
    env_path = load_environment()
    configure_logging()
    if env_path:
        logger.info(f"Loaded environment from {env_path}")
    args = build_parser().parse_args(argv)

    try:
        return asyncio.run(run(args))
    except StorageUnavailable as e:
        logger.critical(f"Storage unavailable: {e}", exc_info=True)
        print(f"\nError: {user_message(e)}")
        return 2
    except InvalidSnapshot as e:
        logger.error(f"Invalid backup file: {e}")
        print(f"\n{user_message(e)}")
        return 1
    except TrackerError as e:
        logger.error(f"Command '{args.command}' failed: {e}", exc_info=True)
        print(f"\nError: {user_message(e)}")
        return 1
    except OSError as e:
        logger.error(f"File error in '{args.command}': {e}", exc_info=True)
        print(f"\nError: {e}")
        return 1
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt, shutting down...")
        print("\nShutting down...")
        return 130


if __name__ == "__main__":
    sys.exit(main())

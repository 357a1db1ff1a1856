from .categories import CategoryRegistry
from .export import ExportFormat, ExportService
from .ledger import ExpenseLedger, calculate_deductible, ensure_valid, validate
from .query import (
    CategoryShare,
    CategoryTotals,
    ExpenseFilter,
    ExpenseSummary,
    MonthlyTotal,
    QueryEngine,
    SortSpec,
    category_breakdown,
    filter_expenses,
    find_orphaned_categories,
    group_by_category,
    group_by_month,
    group_by_quarter,
    quarter_date_range,
    sort_expenses,
    summarize,
)
from .reports import DashboardStats, QuarterlyReport, ReportService
from .settings import SettingsService
from .snapshot import SnapshotExchange

__all__ = [
    "CategoryRegistry",
    "CategoryShare",
    "CategoryTotals",
    "DashboardStats",
    "ExpenseFilter",
    "ExpenseLedger",
    "ExpenseSummary",
    "ExportFormat",
    "ExportService",
    "MonthlyTotal",
    "QuarterlyReport",
    "QueryEngine",
    "ReportService",
    "SettingsService",
    "SnapshotExchange",
    "SortSpec",
    "calculate_deductible",
    "category_breakdown",
    "ensure_valid",
    "filter_expenses",
    "find_orphaned_categories",
    "group_by_category",
    "group_by_month",
    "group_by_quarter",
    "quarter_date_range",
    "sort_expenses",
    "summarize",
    "validate",
]

"""
Query and aggregation over expenses.

Provides functionality for:
- Filtering by category, date range or year/quarter, and free-text search
- Stable sorting by any expense field
- Summaries, category rollups, quarter rollups and monthly trends
- Detecting expenses whose category no longer exists

The module-level functions are pure: they never mutate the expenses they
receive and return the same output for the same input. ``QueryEngine`` adds
the per-session filter and sort state on top of them.
"""

import logging
from dataclasses import dataclass, replace
from datetime import date
from typing import Any, Iterable, Optional, Sequence

from taxtracker.config import DEFAULT_CATEGORY_FILTER, DEFAULT_TREND_MONTHS
from taxtracker.models import Category, Expense, normalize_field_name, parse_date

from .categories import CategoryRegistry
from .ledger import ExpenseLedger

logger = logging.getLogger(__name__)

# Quarter -> (first month, last month), 1-indexed calendar months
QUARTER_MONTHS = {
    1: (1, 3),
    2: (4, 6),
    3: (7, 9),
    4: (10, 12),
}

_QUARTER_END_DAYS = {1: 31, 2: 30, 3: 30, 4: 31}


@dataclass
class ExpenseFilter:
    """
    Filter criteria for the expense list.

    A date range applies only with both bounds set and then takes priority
    over year/quarter.
    ``quarter`` is ignored unless ``year`` is set.
    """

    category: str = DEFAULT_CATEGORY_FILTER
    search_term: str = ""
    year: Optional[int] = None
    quarter: Optional[int] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None

    def __post_init__(self):
        self.date_from = parse_date(self.date_from)
        self.date_to = parse_date(self.date_to)
        if self.quarter is not None and self.quarter not in QUARTER_MONTHS:
            raise ValueError(f"Invalid quarter: {self.quarter}")


@dataclass
class SortSpec:
    """Sort field (snake_case or camelCase) and direction."""

    field: str = "date_paid"
    descending: bool = True

    def __post_init__(self):
        self.field = normalize_field_name(self.field)
        if self.field == "receipt_files":
            raise ValueError("Cannot sort by receipt_files")


@dataclass
class ExpenseSummary:
    """Totals over a set of expenses."""

    count: int
    total_expenses: float
    total_deductible: float
    average_work_percentage: float

    def to_dict(self) -> dict:
        return {
            "count": self.count,
            "totalExpenses": self.total_expenses,
            "totalDeductible": self.total_deductible,
            "averageWorkPercentage": self.average_work_percentage,
        }


@dataclass
class CategoryTotals:
    """Totals for one category."""

    count: int = 0
    total_amount: float = 0.0
    total_deductible: float = 0.0

    def to_dict(self) -> dict:
        return {
            "count": self.count,
            "totalAmount": self.total_amount,
            "totalDeductible": self.total_deductible,
        }


@dataclass
class CategoryShare:
    """A category's totals and its share of the deductible total."""

    category: str
    totals: CategoryTotals
    share: float  # 0..1 of the deductible total of the same expense set


@dataclass
class MonthlyTotal:
    """Deductible total for one calendar month of a trend window."""

    year: int
    month: int
    label: str
    total_deductible: float = 0.0
    count: int = 0


# =============================================================================
# Quarter helpers
# =============================================================================


def quarter_of(day: date) -> int:
    return (day.month - 1) // 3 + 1


def quarter_date_range(year: int, quarter: int) -> tuple[date, date]:
    """
    First and last day of a calendar quarter.

    Raises:
        ValueError: If the quarter is not 1-4
    """
    if quarter not in QUARTER_MONTHS:
        raise ValueError(f"Invalid quarter: {quarter}")
    first_month, last_month = QUARTER_MONTHS[quarter]
    return (
        date(year, first_month, 1),
        date(year, last_month, _QUARTER_END_DAYS[quarter]),
    )


# =============================================================================
# Filtering and sorting
# =============================================================================


def _matches_date(expense: Expense, flt: ExpenseFilter) -> bool:
    # A range applies only when both bounds are set
    if flt.date_from and flt.date_to:
        return flt.date_from <= expense.date_paid <= flt.date_to

    if flt.year is not None:
        if expense.date_paid.year != flt.year:
            return False
        if flt.quarter is not None and quarter_of(expense.date_paid) != flt.quarter:
            return False
    return True


def _matches_search(expense: Expense, search_term: str) -> bool:
    if not search_term:
        return True
    searchable = " ".join(
        [
            expense.merchant or "",
            expense.expense_details or "",
            expense.expense_category or "",
            expense.notes or "",
        ]
    ).lower()
    return search_term.lower() in searchable


def matches(expense: Expense, flt: ExpenseFilter) -> bool:
    """Category AND date AND search."""
    if flt.category != DEFAULT_CATEGORY_FILTER and expense.expense_category != flt.category:
        return False
    return _matches_date(expense, flt) and _matches_search(expense, flt.search_term)


def filter_expenses(
    expenses: Iterable[Expense], flt: Optional[ExpenseFilter] = None
) -> list[Expense]:
    flt = flt or ExpenseFilter()
    return [e for e in expenses if matches(e, flt)]


def _sort_key(value: Any) -> tuple:
    # None sorts before any value
    return (value is not None, value if value is not None else 0)


def sort_expenses(
    expenses: Iterable[Expense], spec: Optional[SortSpec] = None
) -> list[Expense]:
    """Stable sort; equal keys keep their input order in both directions."""
    spec = spec or SortSpec()
    return sorted(
        expenses,
        key=lambda e: _sort_key(getattr(e, spec.field)),
        reverse=spec.descending,
    )


# =============================================================================
# Aggregation
# =============================================================================


def summarize(expenses: Sequence[Expense]) -> ExpenseSummary:
    count = len(expenses)
    return ExpenseSummary(
        count=count,
        total_expenses=sum(e.expense_amount for e in expenses),
        total_deductible=sum(e.deductible for e in expenses),
        average_work_percentage=(
            sum(e.percent_used_for_work for e in expenses) / count if count else 0
        ),
    )


def group_by_category(expenses: Iterable[Expense]) -> dict[str, CategoryTotals]:
    """Totals per category name. Categories without expenses are absent."""
    by_category: dict[str, CategoryTotals] = {}
    for expense in expenses:
        totals = by_category.setdefault(expense.expense_category, CategoryTotals())
        totals.count += 1
        totals.total_amount += expense.expense_amount
        totals.total_deductible += expense.deductible
    return by_category


def group_by_quarter(
    year: int, quarter: int, expenses: Iterable[Expense]
) -> ExpenseSummary:
    """Summary of the expenses paid within one calendar quarter."""
    start, end = quarter_date_range(year, quarter)
    return summarize([e for e in expenses if start <= e.date_paid <= end])


def _shift_month(year: int, month: int, offset: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + offset
    return index // 12, index % 12 + 1


def group_by_month(
    expenses: Iterable[Expense],
    window_size: int = DEFAULT_TREND_MONTHS,
    today: Optional[date] = None,
) -> list[MonthlyTotal]:
    """
    Deductible totals for the trailing ``window_size`` months.

    The window ends at the current month (inclusive) and includes months
    with no expenses as zero entries, oldest first.
    """
    if window_size < 1:
        raise ValueError("window_size must be at least 1")
    today = today or date.today()

    months: list[MonthlyTotal] = []
    for offset in range(window_size - 1, -1, -1):
        year, month = _shift_month(today.year, today.month, -offset)
        months.append(
            MonthlyTotal(
                year=year,
                month=month,
                label=date(year, month, 1).strftime("%b %y"),
            )
        )

    slots = {(m.year, m.month): m for m in months}
    for expense in expenses:
        slot = slots.get((expense.date_paid.year, expense.date_paid.month))
        if slot is not None:
            slot.total_deductible += expense.deductible
            slot.count += 1
    return months


def category_breakdown(
    expenses: Sequence[Expense], limit: Optional[int] = None
) -> list[CategoryShare]:
    """
    Categories ranked by deductible total, with their share of that total.

    Shares are relative to the deductible total of ``expenses`` itself, so a
    filtered list yields shares of the filtered total.
    """
    grouped = group_by_category(expenses)
    total = sum(t.total_deductible for t in grouped.values())
    ranked = sorted(grouped.items(), key=lambda item: item[1].total_deductible, reverse=True)
    if limit is not None:
        ranked = ranked[:limit]
    return [
        CategoryShare(
            category=name,
            totals=totals,
            share=totals.total_deductible / total if total else 0.0,
        )
        for name, totals in ranked
    ]


def find_orphaned_categories(
    expenses: Iterable[Expense], categories: Iterable[Category]
) -> dict[str, int]:
    """
    Category names used by expenses that match no live category.

    Returns:
        Mapping of orphaned name to the number of expenses using it
    """
    live = {c.name for c in categories}
    orphans: dict[str, int] = {}
    for expense in expenses:
        if expense.expense_category not in live:
            orphans[expense.expense_category] = orphans.get(expense.expense_category, 0) + 1
    return orphans


# =============================================================================
# Session engine
# =============================================================================


class QueryEngine:
    """
    Read-side service holding one session's filter and sort settings.

    The settings are transient UI state; nothing here is persisted.
    """

    def __init__(self, ledger: ExpenseLedger, registry: CategoryRegistry):
        """
        Initialize the query engine.

        Args:
            ledger: Expense ledger used for reads
            registry: Category registry used for orphan detection
        """
        self.ledger = ledger
        self.registry = registry
        self.current_filter = ExpenseFilter()
        self.current_sort = SortSpec()

    def set_filter(self, **changes) -> ExpenseFilter:
        """Change one or more filter fields, keeping the others."""
        self.current_filter = replace(self.current_filter, **changes)
        return self.current_filter

    def reset_filter(self) -> None:
        self.current_filter = ExpenseFilter()

    def set_sort(self, field: str, descending: bool = True) -> SortSpec:
        self.current_sort = SortSpec(field=field, descending=descending)
        return self.current_sort

    async def query(self) -> list[Expense]:
        """Expenses matching the current filter, in the current sort order."""
        expenses = await self.ledger.list_expenses()
        return sort_expenses(
            filter_expenses(expenses, self.current_filter), self.current_sort
        )

    async def get_summary(self) -> tuple[list[Expense], ExpenseSummary]:
        """The filtered, sorted expenses and their summary."""
        filtered = await self.query()
        return filtered, summarize(filtered)

    async def quarter_summary(self, year: int, quarter: int) -> ExpenseSummary:
        return group_by_quarter(year, quarter, await self.ledger.list_expenses())

    async def orphaned_categories(self) -> dict[str, int]:
        expenses = await self.ledger.list_expenses()
        categories = await self.registry.list_categories()
        orphans = find_orphaned_categories(expenses, categories)
        if orphans:
            logger.warning(f"Expenses reference missing categories: {orphans}")
        return orphans

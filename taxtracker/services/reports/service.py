"""
Report service for quarterly tax reports and dashboard statistics.

Provides functionality for:
- Quarterly reports built from an index-backed date-range read
- Dashboard stats: all-time totals, current quarter, top categories
- Monthly deductible trend chart visualization
"""

import io
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Optional

import matplotlib
import matplotlib.pyplot as plt
import pandas as pd
import seaborn as sns
from matplotlib.ticker import FuncFormatter

from taxtracker.config import (
    CHART_DPI,
    CHART_FORMAT,
    CHART_HEIGHT,
    CHART_WIDTH,
    DEFAULT_RECENT_EXPENSES,
    DEFAULT_TREND_MONTHS,
    TOP_CATEGORY_LIMIT,
)
from taxtracker.db import Collection, RecordStore
from taxtracker.models import Expense

from ..query import (
    CategoryShare,
    CategoryTotals,
    ExpenseSummary,
    MonthlyTotal,
    SortSpec,
    category_breakdown,
    group_by_category,
    group_by_month,
    group_by_quarter,
    quarter_date_range,
    quarter_of,
    sort_expenses,
    summarize,
)

# Use non-interactive backend
matplotlib.use("Agg")

logger = logging.getLogger(__name__)


@dataclass
class QuarterlyReport:
    """Expenses and rollups for one calendar quarter."""

    year: int
    quarter: int
    start_date: date
    end_date: date
    expenses: list[Expense]  # ascending by date paid
    summary: ExpenseSummary
    by_category: dict[str, CategoryTotals]
    generated_at: datetime

    @property
    def period_label(self) -> str:
        return f"Q{self.quarter} {self.year}"

    @property
    def is_empty(self) -> bool:
        return not self.expenses

    def to_dict(self) -> dict:
        return {
            "year": self.year,
            "quarter": self.quarter,
            "startDate": self.start_date.isoformat(),
            "endDate": self.end_date.isoformat(),
            "expenses": [e.to_dict() for e in self.expenses],
            "byCategory": {k: v.to_dict() for k, v in self.by_category.items()},
            "generatedAt": self.generated_at.isoformat(),
            **self.summary.to_dict(),
        }


@dataclass
class DashboardStats:
    """Figures shown on the dashboard."""

    today: date
    overall: ExpenseSummary
    current_year: int
    current_quarter: int
    quarter_summary: ExpenseSummary
    top_categories: list[CategoryShare] = field(default_factory=list)
    recent_expenses: list[Expense] = field(default_factory=list)
    monthly_trend: list[MonthlyTotal] = field(default_factory=list)

    @property
    def deductible_ratio(self) -> float:
        """Deductible total as a fraction of all expenses (0 when empty)."""
        if not self.overall.total_expenses:
            return 0.0
        return self.overall.total_deductible / self.overall.total_expenses


class ReportService:
    """Service for quarterly reports, dashboard stats and charts."""

    def __init__(self, store: RecordStore):
        """
        Initialize the report service.

        Args:
            store: The process-wide record store
        """
        self.store = store

        # Set up seaborn style
        try:
            sns.set_theme(style="darkgrid")
            logger.info("ReportService initialized successfully")
        except Exception as e:
            logger.warning(f"Failed to set seaborn theme: {e}")

    async def generate_report(self, year: int, quarter: int) -> QuarterlyReport:
        """
        Generate the report for one calendar quarter.

        Raises:
            ValueError: If the quarter is not 1-4
        """
        start, end = quarter_date_range(year, quarter)
        expenses = await self.store.get_by_date_range(start, end)

        report = QuarterlyReport(
            year=year,
            quarter=quarter,
            start_date=start,
            end_date=end,
            expenses=expenses,
            summary=summarize(expenses),
            by_category=group_by_category(expenses),
            generated_at=datetime.now(timezone.utc),
        )
        logger.info(
            f"Generated {report.period_label} report: {report.summary.count} expenses, "
            f"{report.summary.total_deductible:.2f} deductible"
        )
        return report

    async def dashboard_stats(
        self,
        today: Optional[date] = None,
        trend_months: int = DEFAULT_TREND_MONTHS,
        recent_limit: int = DEFAULT_RECENT_EXPENSES,
        category_limit: int = TOP_CATEGORY_LIMIT,
    ) -> DashboardStats:
        """
        Compute dashboard figures over every stored expense.

        Args:
            today: Reference date for the current quarter and trend window
            trend_months: Months in the trend window
            recent_limit: Number of most recent expenses to include
            category_limit: Number of top categories to include
        """
        if today is None:
            today = date.today()

        expenses = await self.store.get_all(Collection.EXPENSES)
        current_quarter = quarter_of(today)

        recent = sort_expenses(expenses, SortSpec(field="date_paid", descending=True))

        return DashboardStats(
            today=today,
            overall=summarize(expenses),
            current_year=today.year,
            current_quarter=current_quarter,
            quarter_summary=group_by_quarter(today.year, current_quarter, expenses),
            top_categories=category_breakdown(expenses, limit=category_limit),
            recent_expenses=recent[:recent_limit],
            monthly_trend=group_by_month(expenses, window_size=trend_months, today=today),
        )

    def generate_trend_chart(self, monthly: list[MonthlyTotal]) -> io.BytesIO:
        """
        Generate a bar chart of deductible totals per month.

        Args:
            monthly: Trend window from ``group_by_month``

        Returns:
            BytesIO buffer containing the PNG image
        """
        fig = None
        try:
            if not monthly or not any(m.count for m in monthly):
                # No data - create empty chart
                fig, ax = plt.subplots(figsize=(CHART_WIDTH, CHART_HEIGHT))
                ax.text(
                    0.5,
                    0.5,
                    "No expense data available",
                    ha="center",
                    va="center",
                    fontsize=14,
                )
                ax.set_xlim(0, 1)
                ax.set_ylim(0, 1)
                buf = io.BytesIO()
                fig.savefig(buf, format=CHART_FORMAT, dpi=CHART_DPI, bbox_inches="tight")
                buf.seek(0)
                logger.debug("Generated empty trend chart")
                return buf

            df = pd.DataFrame(
                {
                    "Month": [m.label for m in monthly],
                    "Deductible": [m.total_deductible for m in monthly],
                    "Expenses": [m.count for m in monthly],
                }
            )

            fig, ax = plt.subplots(figsize=(CHART_WIDTH, CHART_HEIGHT))
            sns.barplot(data=df, x="Month", y="Deductible", color="#4c9aff", ax=ax)

            for index, row in df.iterrows():
                if row["Expenses"]:
                    ax.annotate(
                        f"{row['Deductible']:,.2f}",
                        (index, row["Deductible"]),
                        ha="center",
                        va="bottom",
                        fontsize=9,
                    )

            ax.set_title("Monthly Deductible Trend", fontsize=14, fontweight="bold")
            ax.set_xlabel("")
            ax.set_ylabel("Deductible", fontsize=11)
            ax.yaxis.set_major_formatter(FuncFormatter(lambda x, p: f"{x:,.0f}"))

            plt.tight_layout()

            buf = io.BytesIO()
            fig.savefig(buf, format=CHART_FORMAT, dpi=CHART_DPI, bbox_inches="tight")
            buf.seek(0)

            logger.debug(f"Generated trend chart for {len(monthly)} months")
            return buf
        except Exception as e:
            logger.error(f"Error generating trend chart: {e}", exc_info=True)
            raise
        finally:
            # Always close the figure to free memory
            if fig is not None:
                plt.close(fig)

    def format_report(self, report: QuarterlyReport) -> str:
        """Format a quarterly report as plain text for the terminal."""
        lines = [
            f"Quarterly Report {report.period_label} "
            f"({report.start_date.isoformat()} to {report.end_date.isoformat()})",
            "",
        ]

        if report.is_empty:
            lines.append(f"No expenses for {report.period_label}")
            return "\n".join(lines)

        lines.append(f"{'Category':<24}{'Count':>7}{'Amount':>14}{'Deductible':>14}")
        for name, totals in sorted(report.by_category.items()):
            lines.append(
                f"{name:<24}{totals.count:>7}"
                f"{totals.total_amount:>14,.2f}{totals.total_deductible:>14,.2f}"
            )
        lines.append("")
        lines.append(f"Total Expenses:   {report.summary.total_expenses:>14,.2f}")
        lines.append(f"Total Deductible: {report.summary.total_deductible:>14,.2f}")
        lines.append(f"Expenses:         {report.summary.count:>14}")
        lines.append(
            f"Avg Work Usage:   {report.summary.average_work_percentage:>13.1f}%"
        )
        return "\n".join(lines)

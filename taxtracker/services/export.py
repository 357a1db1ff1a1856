"""
Export service for expense data.

Provides functionality to export a filtered expense list or a quarterly
report to XLSX and CSV formats. Summary figures are always taken from the
summary objects passed in, so an export agrees with what the caller shows.
"""

import csv
import io
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Sequence, cast

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from taxtracker.config import REPORT_FILENAME_PREFIX
from taxtracker.models import Expense

from .query import ExpenseSummary, summarize
from .reports import QuarterlyReport


class ExportFormat(str, Enum):
    """Supported export formats."""

    CSV = "csv"
    XLSX = "xlsx"


HEADERS = [
    "Date Paid",
    "Merchant",
    "Expense Details",
    "Expense Category",
    "Expense Amount",
    "% Used for Work",
    "Deductible",
    "Notes",
    "Receipt Count",
]

COLUMN_WIDTHS = [12, 24, 36, 22, 15, 15, 15, 30, 14]


def _expense_row(expense: Expense) -> list:
    return [
        expense.date_paid.isoformat(),
        expense.merchant,
        expense.expense_details,
        expense.expense_category,
        expense.expense_amount,
        expense.percent_used_for_work,
        expense.deductible,
        expense.notes or "",
        len(expense.receipt_files),
    ]


class ExportService:
    """Service for exporting expenses to various formats."""

    # =========================================================================
    # CSV
    # =========================================================================

    def export_to_csv(
        self,
        expenses: Sequence[Expense],
        summary: Optional[ExpenseSummary] = None,
        period_label: Optional[str] = None,
    ) -> io.BytesIO:
        """
        Export expenses to CSV format with trailing summary rows.

        Args:
            expenses: Expenses to export, in the order to write them
            summary: Summary of ``expenses``; computed if omitted
            period_label: Optional report period, e.g. "Q1 2024"

        Returns:
            BytesIO buffer containing the CSV data
        """
        if summary is None:
            summary = summarize(expenses)

        buffer = io.BytesIO()
        text_buffer = io.StringIO()

        writer = csv.writer(text_buffer)

        writer.writerow(HEADERS)
        for expense in expenses:
            row = _expense_row(expense)
            row[4] = f"{expense.expense_amount:.2f}"
            row[6] = f"{expense.deductible:.2f}"
            writer.writerow(row)

        writer.writerow([])
        for label, value in self._summary_rows(summary, period_label):
            writer.writerow([label, value])

        buffer.write(text_buffer.getvalue().encode("utf-8-sig"))  # BOM for Excel
        buffer.seek(0)

        return buffer

    def export_report_to_csv(self, report: QuarterlyReport) -> io.BytesIO:
        return self.export_to_csv(report.expenses, report.summary, report.period_label)

    # =========================================================================
    # XLSX
    # =========================================================================

    def export_to_xlsx(
        self,
        expenses: Sequence[Expense],
        summary: Optional[ExpenseSummary] = None,
        period_label: Optional[str] = None,
        by_category: Optional[dict] = None,
    ) -> io.BytesIO:
        """
        Export expenses to XLSX format with formatting and a summary sheet.

        Args:
            expenses: Expenses to export, in the order to write them
            summary: Summary of ``expenses``; computed if omitted
            period_label: Optional report period, e.g. "Q1 2024"
            by_category: Optional per-category totals for the summary sheet

        Returns:
            BytesIO buffer containing the XLSX data
        """
        if summary is None:
            summary = summarize(expenses)

        wb = Workbook()
        ws = cast(Worksheet, wb.active)
        ws.title = "Expenses"

        # Define styles
        header_font = Font(bold=True, color="FFFFFF")
        header_fill = PatternFill(
            start_color="4472C4", end_color="4472C4", fill_type="solid"
        )
        full_fill = PatternFill(
            start_color="C6EFCE", end_color="C6EFCE", fill_type="solid"
        )
        partial_fill = PatternFill(
            start_color="FFEB9C", end_color="FFEB9C", fill_type="solid"
        )

        for col, header in enumerate(HEADERS, 1):
            cell = ws.cell(row=1, column=col, value=header)
            cell.font = header_font
            cell.fill = header_fill
            cell.alignment = Alignment(horizontal="center")

        for row_idx, expense in enumerate(expenses, 2):
            for col, value in enumerate(_expense_row(expense), 1):
                ws.cell(row=row_idx, column=col, value=value)

            # Fully deductible rows in green, partial in yellow
            if expense.percent_used_for_work >= 100:
                fill = full_fill
            elif expense.percent_used_for_work > 0:
                fill = partial_fill
            else:
                continue
            for col in range(1, len(HEADERS) + 1):
                ws.cell(row=row_idx, column=col).fill = fill

        for row in range(2, len(expenses) + 2):
            ws.cell(row=row, column=5).number_format = "#,##0.00"
            ws.cell(row=row, column=6).number_format = "0.##"
            ws.cell(row=row, column=7).number_format = "#,##0.00"

        for col, width in enumerate(COLUMN_WIDTHS, 1):
            ws.column_dimensions[get_column_letter(col)].width = width

        # Freeze header row
        ws.freeze_panes = "A2"

        self._add_summary_sheet(wb, summary, period_label, by_category)

        buffer = io.BytesIO()
        wb.save(buffer)
        buffer.seek(0)

        return buffer

    def export_report_to_xlsx(self, report: QuarterlyReport) -> io.BytesIO:
        return self.export_to_xlsx(
            report.expenses, report.summary, report.period_label, report.by_category
        )

    def _add_summary_sheet(
        self,
        wb: Workbook,
        summary: ExpenseSummary,
        period_label: Optional[str],
        by_category: Optional[dict],
    ):
        """Add a summary sheet to the workbook."""
        ws = wb.create_sheet(title="Summary")

        header_font = Font(bold=True)
        title_font = Font(bold=True, size=14)

        title = f"Expense Report {period_label}" if period_label else "Expense Summary"
        ws.cell(row=1, column=1, value=title).font = title_font
        ws.cell(
            row=2,
            column=1,
            value=f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M')}",
        )

        row = 4
        for label, value in self._summary_rows(summary, None):
            ws.cell(row=row, column=1, value=label).font = header_font
            ws.cell(row=row, column=2, value=value)
            row += 1
        ws.cell(row=4, column=2).number_format = "#,##0.00"
        ws.cell(row=5, column=2).number_format = "#,##0.00"
        ws.cell(row=7, column=2).number_format = "0.0"

        if by_category:
            row += 1
            ws.cell(row=row, column=1, value="Category").font = header_font
            ws.cell(row=row, column=2, value="Count").font = header_font
            ws.cell(row=row, column=3, value="Amount").font = header_font
            ws.cell(row=row, column=4, value="Deductible").font = header_font
            for name, totals in sorted(by_category.items()):
                row += 1
                ws.cell(row=row, column=1, value=name)
                ws.cell(row=row, column=2, value=totals.count)
                ws.cell(row=row, column=3, value=totals.total_amount).number_format = "#,##0.00"
                ws.cell(row=row, column=4, value=totals.total_deductible).number_format = "#,##0.00"

        ws.column_dimensions["A"].width = 22
        ws.column_dimensions["B"].width = 15
        ws.column_dimensions["C"].width = 15
        ws.column_dimensions["D"].width = 15

    @staticmethod
    def _summary_rows(
        summary: ExpenseSummary, period_label: Optional[str]
    ) -> list[tuple[str, object]]:
        rows: list[tuple[str, object]] = [
            ("Total Expenses", round(summary.total_expenses, 2)),
            ("Total Deductible", round(summary.total_deductible, 2)),
            ("Count", summary.count),
            ("Average Work %", round(summary.average_work_percentage, 1)),
        ]
        if period_label:
            rows.append(("Report Period", period_label))
        return rows

    # =========================================================================
    # Filenames
    # =========================================================================

    def get_filename(
        self,
        format: ExportFormat,
        year: Optional[int] = None,
        quarter: Optional[int] = None,
    ) -> str:
        """
        Generate a filename for the export.

        Args:
            format: Export format
            year: Report year, for quarterly reports
            quarter: Report quarter, for quarterly reports

        Returns:
            Suggested filename
        """
        format = ExportFormat(format)
        if year is not None and quarter is not None:
            return f"{REPORT_FILENAME_PREFIX}_Q{quarter}_{year}.{format.value}"

        date_str = datetime.now(timezone.utc).strftime("%Y-%m-%d")
        return f"expenses-{date_str}.{format.value}"

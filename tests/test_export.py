import csv
import io
from datetime import date

import pytest
from openpyxl import load_workbook

from taxtracker.services import ExportFormat, ExportService, summarize

from .factories import make_draft, make_expense


@pytest.fixture
def exporter():
    return ExportService()


@pytest.fixture
def expenses():
    return [
        make_expense(
            id=1,
            date_paid=date(2024, 1, 10),
            merchant='Shop, "The Best"',
            expense_amount=99.99,
            percent_used_for_work=33.0,
        ),
        make_expense(
            id=2,
            date_paid=date(2024, 2, 20),
            expense_category="Software",
            expense_amount=250.0,
            percent_used_for_work=100.0,
            notes="line one\nline two",
        ),
    ]


def read_csv(buffer: io.BytesIO) -> list[list[str]]:
    raw = buffer.getvalue()
    assert raw.startswith(b"\xef\xbb\xbf")
    return list(csv.reader(io.StringIO(raw.decode("utf-8-sig"))))


def summary_rows(rows: list[list[str]]) -> dict[str, str]:
    blank = rows.index([])
    return {row[0]: row[1] for row in rows[blank + 1 :]}


def test_csv_rows_and_escaping(exporter, expenses):
    rows = read_csv(exporter.export_to_csv(expenses))

    assert rows[0][:4] == ["Date Paid", "Merchant", "Expense Details", "Expense Category"]
    assert rows[1][0] == "2024-01-10"
    assert rows[1][1] == 'Shop, "The Best"'
    assert rows[1][4] == "99.99"
    assert rows[2][7] == "line one\nline two"


def test_csv_summary_reconciles_with_summary(exporter, expenses):
    summary = summarize(expenses)

    totals = summary_rows(read_csv(exporter.export_to_csv(expenses, summary, "Q1 2024")))

    assert float(totals["Total Expenses"]) == round(summary.total_expenses, 2)
    assert float(totals["Total Deductible"]) == round(summary.total_deductible, 2)
    assert int(totals["Count"]) == summary.count
    assert float(totals["Average Work %"]) == round(summary.average_work_percentage, 1)
    assert totals["Report Period"] == "Q1 2024"


def test_csv_uses_given_summary_verbatim(exporter, expenses):
    summary = summarize(expenses[:1])

    totals = summary_rows(read_csv(exporter.export_to_csv(expenses, summary)))

    assert int(totals["Count"]) == 1


def test_xlsx_sheets_and_summary(exporter, expenses):
    summary = summarize(expenses)

    workbook = load_workbook(exporter.export_to_xlsx(expenses, summary))

    assert workbook.sheetnames == ["Expenses", "Summary"]
    sheet = workbook["Expenses"]
    assert sheet.cell(row=1, column=1).value == "Date Paid"
    assert sheet.cell(row=3, column=4).value == "Software"
    assert sheet.cell(row=3, column=7).value == 250.0

    values = {
        row[0]: row[1]
        for row in workbook["Summary"].iter_rows(min_row=4, max_row=7, values_only=True)
    }
    assert values["Total Expenses"] == round(summary.total_expenses, 2)
    assert values["Total Deductible"] == round(summary.total_deductible, 2)
    assert values["Count"] == summary.count


async def test_report_exports_match_report_summary(app, exporter):
    await app.ledger.create(make_draft(date_paid=date(2024, 1, 5), expense_amount=120.0))
    await app.ledger.create(
        make_draft(date_paid=date(2024, 3, 31), expense_category="Software", expense_amount=80.0)
    )
    report = await app.reports.generate_report(2024, 1)

    totals = summary_rows(read_csv(exporter.export_report_to_csv(report)))
    assert float(totals["Total Deductible"]) == round(report.summary.total_deductible, 2)
    assert totals["Report Period"] == "Q1 2024"

    workbook = load_workbook(exporter.export_report_to_xlsx(report))
    category_rows = [
        row
        for row in workbook["Summary"].iter_rows(values_only=True)
        if row[0] in report.by_category
    ]
    assert {row[0]: row[3] for row in category_rows} == {
        name: totals.total_deductible for name, totals in report.by_category.items()
    }


def test_filenames(exporter):
    assert exporter.get_filename(ExportFormat.CSV, 2024, 2) == "QPD_Q2_2024.csv"
    assert exporter.get_filename("xlsx").startswith("expenses-")
    assert exporter.get_filename("xlsx").endswith(".xlsx")

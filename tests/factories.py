"""Builders for test records."""

from datetime import date, datetime, timezone

from taxtracker.models import Expense, ExpenseDraft

CREATED_AT = datetime(2024, 1, 1, 9, 30, tzinfo=timezone.utc)


def make_draft(**overrides) -> ExpenseDraft:
    values = dict(
        date_paid=date(2024, 2, 10),
        merchant="Telecom",
        expense_details="Fibre internet",
        expense_category="Internet",
        expense_amount=100.0,
        percent_used_for_work=50.0,
    )
    values.update(overrides)
    return ExpenseDraft(**values)


def make_expense(**overrides) -> Expense:
    values = dict(
        id=None,
        date_paid=date(2024, 2, 10),
        merchant="Telecom",
        expense_details="Fibre internet",
        expense_category="Internet",
        expense_amount=100.0,
        percent_used_for_work=50.0,
        created_at=CREATED_AT,
        updated_at=CREATED_AT,
    )
    values.update(overrides)
    values.setdefault(
        "deductible", values["expense_amount"] * values["percent_used_for_work"] / 100
    )
    return Expense(**values)

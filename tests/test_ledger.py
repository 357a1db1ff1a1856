import math
from datetime import date

import pytest

from taxtracker.errors import NotFound, ValidationFailed
from taxtracker.models import ExpenseDraft, ReceiptFile
from taxtracker.services import ExpenseLedger, calculate_deductible, ensure_valid, validate

from .factories import make_draft


@pytest.fixture
def ledger(store):
    return ExpenseLedger(store)


def test_calculate_deductible():
    assert calculate_deductible(100.0, 50.0) == 50.0
    assert calculate_deductible(80.0, 0.0) == 0.0
    assert calculate_deductible(33.33, 100.0) == pytest.approx(33.33)


def test_valid_draft_has_no_violations():
    assert validate(make_draft()) == []


def test_zero_amount_is_rejected():
    assert validate(make_draft(expense_amount=0)) == [
        "Expense Amount must be greater than 0"
    ]


@pytest.mark.parametrize("amount", [math.nan, math.inf, -math.inf])
def test_non_finite_amount_is_rejected(amount):
    assert validate(make_draft(expense_amount=amount)) == [
        "Expense Amount must be greater than 0"
    ]


@pytest.mark.parametrize("percent", [math.nan, math.inf])
def test_non_finite_work_percentage_is_rejected(percent):
    assert validate(make_draft(percent_used_for_work=percent)) == [
        "% Used for Work must be between 0 and 100"
    ]


def test_nan_from_form_data_fails_validation():
    draft = ExpenseDraft.from_dict(
        {
            "datePaid": "2024-05-01",
            "merchant": "Shop",
            "expenseDetails": "Chair",
            "expenseCategory": "Furniture",
            "expenseAmount": "nan",
            "percentUsedForWork": "80",
        }
    )

    with pytest.raises(ValidationFailed):
        ensure_valid(draft)


def test_work_percentage_over_100_is_rejected():
    assert validate(make_draft(percent_used_for_work=150)) == [
        "% Used for Work must be between 0 and 100"
    ]


def test_work_percentage_bounds_are_inclusive():
    assert validate(make_draft(percent_used_for_work=0)) == []
    assert validate(make_draft(percent_used_for_work=100)) == []


def test_every_violation_is_reported():
    violations = validate(make_draft(expense_amount=0, percent_used_for_work=150))

    assert violations == [
        "Expense Amount must be greater than 0",
        "% Used for Work must be between 0 and 100",
    ]


def test_empty_draft_reports_every_required_field():
    violations = validate(ExpenseDraft())

    assert violations == [
        "Date Paid is required",
        "Merchant is required",
        "Expense Details is required",
        "Expense Category is required",
        "Expense Amount must be greater than 0",
        "% Used for Work must be between 0 and 100",
    ]


def test_whitespace_merchant_is_rejected():
    assert "Merchant is required" in validate(make_draft(merchant="   "))


def test_ensure_valid_raises_with_violations():
    with pytest.raises(ValidationFailed) as excinfo:
        ensure_valid(make_draft(expense_amount=-5))
    assert excinfo.value.violations == ["Expense Amount must be greater than 0"]


def test_draft_from_camel_case_form_data():
    draft = ExpenseDraft.from_dict(
        {
            "datePaid": "2024-05-01",
            "merchant": "Shop",
            "expenseDetails": "Chair",
            "expenseCategory": "Furniture",
            "expenseAmount": "250.50",
            "percentUsedForWork": "80",
        }
    )

    assert draft.date_paid == date(2024, 5, 1)
    assert draft.expense_amount == 250.5
    assert draft.percent_used_for_work == 80.0
    assert validate(draft) == []


async def test_create_computes_deductible_and_timestamps(ledger):
    expense = await ledger.create(make_draft(expense_amount=200.0, percent_used_for_work=25.0))

    assert expense.id is not None
    assert expense.deductible == 50.0
    assert expense.created_at is not None
    assert expense.created_at == expense.updated_at
    assert await ledger.get(expense.id) == expense


async def test_create_trims_text_fields(ledger):
    expense = await ledger.create(make_draft(merchant="  Shop  ", expense_details=" Pens "))

    assert expense.merchant == "Shop"
    assert expense.expense_details == "Pens"


async def test_update_recomputes_deductible_from_merged_record(ledger):
    expense = await ledger.create(make_draft(expense_amount=100.0, percent_used_for_work=50.0))

    updated = await ledger.update(expense.id, {"percentUsedForWork": 20})
    assert updated.deductible == 20.0
    assert updated.expense_amount == 100.0

    updated = await ledger.update(expense.id, {"expense_amount": 300})
    assert updated.deductible == 60.0
    assert updated.created_at == expense.created_at
    assert updated.updated_at >= expense.updated_at

    assert (await ledger.get(expense.id)).deductible == 60.0


async def test_update_rejects_derived_fields(ledger):
    expense = await ledger.create(make_draft())

    with pytest.raises(ValueError):
        await ledger.update(expense.id, {"deductible": 1000})
    with pytest.raises(ValueError):
        await ledger.update(expense.id, {"id": 5})


async def test_update_missing_expense_raises_not_found(ledger):
    with pytest.raises(NotFound):
        await ledger.update(404, {"merchant": "Nobody"})


async def test_delete(ledger):
    expense = await ledger.create(make_draft())

    await ledger.delete(expense.id)

    assert await ledger.get(expense.id) is None
    with pytest.raises(NotFound):
        await ledger.delete(expense.id)


async def test_list_expenses_in_id_order(ledger):
    first = await ledger.create(make_draft(merchant="First"))
    second = await ledger.create(make_draft(merchant="Second"))

    assert [e.id for e in await ledger.list_expenses()] == [first.id, second.id]


async def test_add_and_remove_receipts(ledger):
    expense = await ledger.create(make_draft())
    receipt = ReceiptFile.from_bytes("invoice.pdf", "application/pdf", b"%PDF-1.4")

    with_receipt = await ledger.add_receipt(expense.id, receipt)
    assert [r.name for r in with_receipt.receipt_files] == ["invoice.pdf"]
    assert (await ledger.get(expense.id)).receipt_files[0].payload == b"%PDF-1.4"

    without = await ledger.remove_receipt(expense.id, 0)
    assert without.receipt_files == []

    with pytest.raises(IndexError):
        await ledger.remove_receipt(expense.id, 0)

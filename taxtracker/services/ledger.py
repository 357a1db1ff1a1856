"""
Expense ledger.

Validated CRUD over expense records. This module is the single place where
the deductible amount is computed.

Validation is a separate step: callers run ``validate()`` (or
``ensure_valid()``) before ``create()``/``update()``, which assume their
input is acceptable.
"""

import logging
import math
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Optional

from taxtracker.config import MAX_WORK_PERCENTAGE, MIN_WORK_PERCENTAGE
from taxtracker.db import Collection, RecordStore
from taxtracker.errors import NotFound, ValidationFailed
from taxtracker.models import (
    EDITABLE_FIELDS,
    Expense,
    ExpenseDraft,
    ReceiptFile,
    normalize_field_name,
    parse_date,
)

logger = logging.getLogger(__name__)


def calculate_deductible(expense_amount: float, percent_used_for_work: float) -> float:
    """Portion of an expense claimable for tax purposes. Never rounded here."""
    return expense_amount * percent_used_for_work / 100


def validate(draft: ExpenseDraft) -> list[str]:
    """
    Check an expense draft, collecting every violation.

    Returns:
        Human-readable messages; empty if the draft is acceptable
    """
    errors = []

    if not draft.date_paid:
        errors.append("Date Paid is required")

    if not draft.merchant or not draft.merchant.strip():
        errors.append("Merchant is required")

    if not draft.expense_details or not draft.expense_details.strip():
        errors.append("Expense Details is required")

    if not draft.expense_category:
        errors.append("Expense Category is required")

    amount = draft.expense_amount
    if amount is None or not math.isfinite(amount) or amount <= 0:
        errors.append("Expense Amount must be greater than 0")

    percent = draft.percent_used_for_work
    if (
        percent is None
        or not math.isfinite(percent)
        or not MIN_WORK_PERCENTAGE <= percent <= MAX_WORK_PERCENTAGE
    ):
        errors.append("% Used for Work must be between 0 and 100")

    return errors


def ensure_valid(draft: ExpenseDraft) -> None:
    """
    Raises:
        ValidationFailed: If the draft has any violation
    """
    violations = validate(draft)
    if violations:
        raise ValidationFailed(violations)


def _coerce_patch_value(name: str, value: Any) -> Any:
    if name == "date_paid":
        return parse_date(value)
    if name in ("expense_amount", "percent_used_for_work"):
        return float(value)
    if name == "receipt_files":
        return list(value or [])
    if name == "notes":
        return value or ""
    return value


class ExpenseLedger:
    """Service for creating, reading, updating and deleting expenses."""

    def __init__(self, store: RecordStore):
        """
        Initialize the ledger.

        Args:
            store: The process-wide record store
        """
        self.store = store

    # =========================================================================
    # Validation
    # =========================================================================

    validate = staticmethod(validate)
    ensure_valid = staticmethod(ensure_valid)
    calculate_deductible = staticmethod(calculate_deductible)

    # =========================================================================
    # Create / Read
    # =========================================================================

    async def create(self, draft: ExpenseDraft) -> Expense:
        """
        Persist a validated draft.

        Returns:
            The new Expense with its assigned id and timestamps
        """
        now = datetime.now(timezone.utc)
        expense = Expense(
            id=None,
            date_paid=draft.date_paid,
            merchant=draft.merchant.strip(),
            expense_details=draft.expense_details.strip(),
            expense_category=draft.expense_category,
            expense_amount=draft.expense_amount,
            percent_used_for_work=draft.percent_used_for_work,
            deductible=calculate_deductible(
                draft.expense_amount, draft.percent_used_for_work
            ),
            notes=draft.notes or "",
            receipt_files=list(draft.receipt_files),
            created_at=now,
            updated_at=now,
        )

        saved = await self.store.put(Collection.EXPENSES, expense)
        logger.info(
            f"Created expense {saved.id}: {saved.merchant} "
            f"{saved.expense_amount:.2f} ({saved.deductible:.2f} deductible)"
        )
        return saved

    async def get(self, expense_id: int) -> Optional[Expense]:
        return await self.store.get(Collection.EXPENSES, expense_id)

    async def list_expenses(self) -> list[Expense]:
        return await self.store.get_all(Collection.EXPENSES)

    # =========================================================================
    # Update / Delete
    # =========================================================================

    async def update(self, expense_id: int, patch: dict[str, Any]) -> Expense:
        """
        Merge a patch over an existing expense and persist it.

        The deductible amount is recomputed from the merged amount and work
        percentage, so a patch touching only one of them stays consistent.

        Args:
            expense_id: The expense to update
            patch: Field name (snake_case or camelCase) to new value

        Raises:
            ValueError: If the patch names a field that cannot be edited
            NotFound: If the expense does not exist
        """
        changes: dict[str, Any] = {}
        for key, value in patch.items():
            name = normalize_field_name(key)
            if name not in EDITABLE_FIELDS:
                raise ValueError(f"Field '{key}' cannot be changed directly")
            changes[name] = _coerce_patch_value(name, value)

        def apply(current: Expense) -> Expense:
            merged = replace(current, **changes)
            return replace(
                merged,
                deductible=calculate_deductible(
                    merged.expense_amount, merged.percent_used_for_work
                ),
                updated_at=datetime.now(timezone.utc),
            )

        updated = await self.store.update(Collection.EXPENSES, expense_id, apply)
        logger.info(f"Updated expense {expense_id}: {sorted(changes)}")
        return updated

    async def delete(self, expense_id: int) -> None:
        """
        Delete an expense together with its receipts.

        Raises:
            NotFound: If the expense does not exist
        """
        if not await self.store.delete(Collection.EXPENSES, expense_id):
            raise NotFound(Collection.EXPENSES.value, expense_id)
        logger.info(f"Deleted expense {expense_id}")

    async def add_receipt(self, expense_id: int, receipt: ReceiptFile) -> Expense:
        """Append a receipt to an expense's attachments."""
        return await self.store.update(
            Collection.EXPENSES,
            expense_id,
            lambda current: replace(
                current,
                receipt_files=[*current.receipt_files, receipt],
                updated_at=datetime.now(timezone.utc),
            ),
        )

    async def remove_receipt(self, expense_id: int, index: int) -> Expense:
        """
        Remove the receipt at ``index`` from an expense.

        Raises:
            IndexError: If there is no receipt at that position
            NotFound: If the expense does not exist
        """

        def apply(current: Expense) -> Expense:
            receipts = list(current.receipt_files)
            del receipts[index]
            return replace(
                current,
                receipt_files=receipts,
                updated_at=datetime.now(timezone.utc),
            )

        return await self.store.update(Collection.EXPENSES, expense_id, apply)

"""
Expense models.

Defines the persisted Expense record, the ExpenseDraft submitted by callers
before validation, and the mapping between Python field names and the
camelCase names used in snapshot documents.
"""

import math
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Optional

from .receipt import ReceiptFile
from .timestamps import format_timestamp, parse_date, parse_timestamp

# Python attribute -> snapshot key
WIRE_FIELD_NAMES = {
    "id": "id",
    "date_paid": "datePaid",
    "merchant": "merchant",
    "expense_details": "expenseDetails",
    "expense_category": "expenseCategory",
    "expense_amount": "expenseAmount",
    "percent_used_for_work": "percentUsedForWork",
    "deductible": "deductible",
    "notes": "notes",
    "receipt_files": "receiptFiles",
    "created_at": "createdAt",
    "updated_at": "updatedAt",
}

_FIELD_ALIASES = {wire: name for name, wire in WIRE_FIELD_NAMES.items()}

# Fields a caller may change through an update patch
EDITABLE_FIELDS = (
    "date_paid",
    "merchant",
    "expense_details",
    "expense_category",
    "expense_amount",
    "percent_used_for_work",
    "notes",
    "receipt_files",
)


def normalize_field_name(name: str) -> str:
    """
    Map a snapshot (camelCase) or attribute (snake_case) name to the attribute name.

    Raises:
        ValueError: If the name is not an expense field
    """
    if name in WIRE_FIELD_NAMES:
        return name
    if name in _FIELD_ALIASES:
        return _FIELD_ALIASES[name]
    raise ValueError(f"Unknown expense field: {name}")


@dataclass
class ExpenseDraft:
    """
    Unvalidated expense fields as submitted by a form or API caller.

    Every field is optional so that validation can report all missing
    values at once.
    """

    date_paid: Optional[date] = None
    merchant: Optional[str] = None
    expense_details: Optional[str] = None
    expense_category: Optional[str] = None
    expense_amount: Optional[float] = None
    percent_used_for_work: Optional[float] = None
    notes: str = ""
    receipt_files: list[ReceiptFile] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ExpenseDraft":
        """Create a draft from snake_case or camelCase form data."""
        values: dict[str, Any] = {}
        for key, value in data.items():
            name = normalize_field_name(key)
            if name in EDITABLE_FIELDS:
                values[name] = value

        if "date_paid" in values:
            values["date_paid"] = parse_date(values["date_paid"])
        for numeric in ("expense_amount", "percent_used_for_work"):
            if values.get(numeric) not in (None, ""):
                values[numeric] = float(values[numeric])
            else:
                values[numeric] = None
        values["notes"] = values.get("notes") or ""
        return cls(**values)


@dataclass
class Expense:
    """
    A deductible expense transaction.

    The deductible amount is derived from the amount and the work percentage
    and stored alongside them; the ledger recomputes it on every write.
    """

    id: Optional[int]
    date_paid: date
    merchant: str
    expense_details: str
    expense_category: str
    expense_amount: float
    percent_used_for_work: float
    deductible: float = 0.0
    notes: str = ""
    receipt_files: list[ReceiptFile] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def quarter(self) -> int:
        """Calendar quarter (1-4) the expense was paid in."""
        return (self.date_paid.month - 1) // 3 + 1

    def to_dict(self) -> dict:
        """Convert to the snapshot representation."""
        return {
            "id": self.id,
            "datePaid": self.date_paid.isoformat(),
            "merchant": self.merchant,
            "expenseDetails": self.expense_details,
            "expenseCategory": self.expense_category,
            "expenseAmount": self.expense_amount,
            "percentUsedForWork": self.percent_used_for_work,
            "deductible": self.deductible,
            "notes": self.notes,
            "receiptFiles": [r.to_dict() for r in self.receipt_files],
            "createdAt": format_timestamp(self.created_at),
            "updatedAt": format_timestamp(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Expense":
        """
        Create an Expense from its snapshot representation.

        Raises:
            ValueError: If a required field is missing or malformed
        """
        if not isinstance(data, dict):
            raise ValueError("Expense record must be an object")

        date_paid = parse_date(data.get("datePaid"))
        if date_paid is None:
            raise ValueError("Expense record has no datePaid")

        try:
            amount = float(data["expenseAmount"])
            percent = float(data["percentUsedForWork"])
        except (KeyError, TypeError) as e:
            raise ValueError(f"Expense record has no usable amount: {e}") from e
        if not (math.isfinite(amount) and math.isfinite(percent)):
            raise ValueError("Expense amount and work percentage must be finite numbers")

        record_id = data.get("id")
        receipts = data.get("receiptFiles") or []
        if not isinstance(receipts, list):
            raise ValueError("receiptFiles must be a list")

        return cls(
            id=int(record_id) if record_id is not None else None,
            date_paid=date_paid,
            merchant=str(data.get("merchant") or ""),
            expense_details=str(data.get("expenseDetails") or ""),
            expense_category=str(data.get("expenseCategory") or ""),
            expense_amount=amount,
            percent_used_for_work=percent,
            deductible=float(data.get("deductible") or 0.0),
            notes=str(data.get("notes") or ""),
            receipt_files=[ReceiptFile.from_dict(r) for r in receipts],
            created_at=parse_timestamp(data.get("createdAt")),
            updated_at=parse_timestamp(data.get("updatedAt")),
        )

    @classmethod
    def from_row(cls, row, receipts: Optional[list[ReceiptFile]] = None) -> "Expense":
        """Create an Expense from an expenses row and its receipts."""
        return cls(
            id=row["id"],
            date_paid=date.fromisoformat(row["date_paid"]),
            merchant=row["merchant"],
            expense_details=row["expense_details"],
            expense_category=row["expense_category"],
            expense_amount=row["expense_amount"],
            percent_used_for_work=row["percent_used_for_work"],
            deductible=row["deductible"],
            notes=row["notes"] or "",
            receipt_files=list(receipts or []),
            created_at=parse_timestamp(row["created_at"]),
            updated_at=parse_timestamp(row["updated_at"]),
        )

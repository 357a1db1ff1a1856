from datetime import date, datetime, timezone

import pytest

from taxtracker.models import (
    Category,
    Expense,
    ReceiptFile,
    decode_data_uri,
    encode_data_uri,
    normalize_field_name,
    parse_date,
    parse_timestamp,
)

from .factories import make_expense


def test_data_uri_encoding():
    uri = encode_data_uri("image/png", b"\x00\x01binary")

    assert uri.startswith("data:image/png;base64,")
    assert decode_data_uri(uri) == ("image/png", b"\x00\x01binary")


@pytest.mark.parametrize(
    "uri",
    ["plain text", "data:image/png,notbase64", "data:image/png;base64,***", None],
)
def test_bad_data_uri_is_rejected(uri):
    with pytest.raises(ValueError):
        decode_data_uri(uri)


def test_receipt_accepts_legacy_keys():
    receipt = ReceiptFile.from_dict(
        {
            "name": "scan.jpg",
            "type": "image/jpeg",
            "size": 3,
            "data": encode_data_uri("image/jpeg", b"abc"),
        }
    )

    assert receipt.mime_type == "image/jpeg"
    assert receipt.size_bytes == 3
    assert receipt.payload == b"abc"
    assert receipt.uploaded_at is None


def test_receipt_size_defaults_to_payload_length():
    receipt = ReceiptFile.from_dict(
        {"name": "a.pdf", "payload": encode_data_uri("application/pdf", b"12345")}
    )

    assert receipt.size_bytes == 5
    assert receipt.mime_type == "application/pdf"


def test_expense_dict_uses_camel_case():
    data = make_expense(id=3).to_dict()

    assert data["datePaid"] == "2024-02-10"
    assert data["percentUsedForWork"] == 50.0
    assert Expense.from_dict(data) == make_expense(id=3)


def test_expense_quarter():
    assert make_expense(date_paid=date(2024, 9, 30)).quarter == 3
    assert make_expense(date_paid=date(2024, 10, 1)).quarter == 4


def test_expense_from_dict_requires_amount():
    with pytest.raises(ValueError):
        Expense.from_dict({"datePaid": "2024-01-01", "percentUsedForWork": 10})


def test_normalize_field_name():
    assert normalize_field_name("expenseAmount") == "expense_amount"
    assert normalize_field_name("merchant") == "merchant"
    with pytest.raises(ValueError):
        normalize_field_name("amount")


def test_parse_timestamp_handles_browser_format():
    parsed = parse_timestamp("2024-03-01T10:15:00.000Z")

    assert parsed == datetime(2024, 3, 1, 10, 15, tzinfo=timezone.utc)
    assert parse_timestamp("2024-03-01T10:15:00").tzinfo is not None
    assert parse_timestamp(None) is None


def test_parse_date():
    assert parse_date("2024-03-01T23:00:00Z") == date(2024, 3, 1)
    assert parse_date(datetime(2024, 3, 1, 8)) == date(2024, 3, 1)
    assert parse_date("") is None


def test_expense_from_dict_rejects_non_finite_amount():
    data = make_expense(id=1).to_dict()
    data["expenseAmount"] = float("nan")

    with pytest.raises(ValueError):
        Expense.from_dict(data)


def test_receipt_rejects_negative_size():
    with pytest.raises(ValueError):
        ReceiptFile.from_dict(
            {"name": "a.png", "size": -1, "data": encode_data_uri("image/png", b"x")}
        )


def test_category_name_is_trimmed():
    assert Category(id=None, name="  Travel ").name == "Travel"
    with pytest.raises(ValueError):
        Category.from_dict({"icon": "x"})
    with pytest.raises(ValueError):
        Category.from_dict({"name": "   "})

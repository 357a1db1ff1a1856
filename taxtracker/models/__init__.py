from .category import DEFAULT_CATEGORIES, Category, Setting, default_categories
from .expense import (
    EDITABLE_FIELDS,
    WIRE_FIELD_NAMES,
    Expense,
    ExpenseDraft,
    normalize_field_name,
)
from .receipt import ReceiptFile, decode_data_uri, encode_data_uri
from .timestamps import format_timestamp, parse_date, parse_timestamp

__all__ = [
    "Category",
    "DEFAULT_CATEGORIES",
    "EDITABLE_FIELDS",
    "Expense",
    "ExpenseDraft",
    "ReceiptFile",
    "Setting",
    "WIRE_FIELD_NAMES",
    "decode_data_uri",
    "default_categories",
    "encode_data_uri",
    "format_timestamp",
    "normalize_field_name",
    "parse_date",
    "parse_timestamp",
]

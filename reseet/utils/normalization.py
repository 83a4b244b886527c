"""
Centralized normalization utilities for untrusted receipt fields.

Extraction output and storage rows arrive loosely typed: amounts may be
numbers, numeric strings, currency-formatted strings or garbage, and dates
may be in any human format. Everything here is total: bad input yields a
default, never an exception.
"""

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from dateutil import parser as date_parser

MONTH_ABBREVIATIONS = ['Jan', 'Feb', 'Mar', 'Apr', 'May', 'Jun',
                       'Jul', 'Aug', 'Sep', 'Oct', 'Nov', 'Dec']

_CURRENCY_NOISE = re.compile(r'[\s$,]')


def parse_amount(value: Any, default: Optional[Decimal] = Decimal('0')) -> Optional[Decimal]:
    """
    Parses a money value defensively.

    Accepts ints, floats, Decimals and strings such as '12.5' or '$1,234.50'.
    Booleans, NaN/infinity and unparseable values return `default`.
    """
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, float)):
        amount = Decimal(str(value))
    elif isinstance(value, str):
        cleaned = _CURRENCY_NOISE.sub('', value)
        if not cleaned:
            return default
        try:
            amount = Decimal(cleaned)
        except InvalidOperation:
            return default
    else:
        return default
    if not amount.is_finite():
        return default
    return amount


def parse_optional_amount(value: Any) -> Optional[Decimal]:
    """Parses an optional adjustment (discount, tip). Zero counts as absent."""
    amount = parse_amount(value, default=None)
    if amount is None or amount == 0:
        return None
    return amount


def parse_quantity(value: Any) -> Optional[int]:
    """Returns a positive integer quantity, or None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        quantity = int(Decimal(str(value).strip()))
    except (InvalidOperation, ValueError, OverflowError):
        return None
    return quantity if quantity > 0 else None


def clean_text(value: Any) -> Optional[str]:
    """Strips a free-text value; blanks and non-strings become None."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def format_display_date(value: date) -> str:
    """Formats a date as 'Mon D, YYYY' (e.g. 'Jan 5, 2024')."""
    return f"{MONTH_ABBREVIATIONS[value.month - 1]} {value.day}, {value.year}"


def parse_receipt_date(value: Any) -> Optional[date]:
    """
    Parses a receipt date from ISO strings, display strings ('Jan 15, 2024')
    or anything dateutil understands. Returns None when it cannot.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return date_parser.parse(text).date()
    except (ValueError, OverflowError):
        return None

"""
Data models for receipt processing and organizing.
"""

from .receipt import Receipt, DraftReceipt, LineItem, utc_now, new_id
from .category import Category, DEFAULT_CATEGORIES, default_categories, is_hex_color
from .ingested import IngestedReceipt, IngestedItem, SourceType, ReceiptStatus

__all__ = [
    "Receipt",
    "DraftReceipt",
    "LineItem",
    "Category",
    "DEFAULT_CATEGORIES",
    "default_categories",
    "is_hex_color",
    "IngestedReceipt",
    "IngestedItem",
    "SourceType",
    "ReceiptStatus",
    "utc_now",
    "new_id",
]

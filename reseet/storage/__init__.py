"""
Storage: persistence backends, row transforms and the receipt repository.
"""

from .backend import InMemoryBackend, PersistenceBackend, Row
from .repository import PendingChange, ReceiptRepository
from .rows import category_from_row, category_to_row, receipt_from_row, receipt_to_row
from .sqlite_backend import SQLiteBackend

__all__ = [
    "PersistenceBackend",
    "InMemoryBackend",
    "SQLiteBackend",
    "Row",
    "ReceiptRepository",
    "PendingChange",
    "receipt_to_row",
    "receipt_from_row",
    "category_to_row",
    "category_from_row",
]

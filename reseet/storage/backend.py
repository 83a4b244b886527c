"""
Persistence collaborator boundary.

A row store partitioned by user id with `receipts` and `categories`
collections. Every method is a suspension point; implementations raise on
failure and the repository turns that into PersistFailed.
"""

import copy
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Any, Dict, List

Row = Dict[str, Any]


class PersistenceBackend(ABC):
    """Durable mirror of a user's receipts and categories."""

    @abstractmethod
    async def fetch_receipts(self, user_id: str) -> List[Row]:
        """All receipt rows for the user, oldest first."""

    @abstractmethod
    async def fetch_categories(self, user_id: str) -> List[Row]:
        """All category rows for the user, oldest first."""

    @abstractmethod
    async def upsert_receipt(self, user_id: str, row: Row) -> None:
        """Inserts or replaces a receipt row."""

    @abstractmethod
    async def delete_receipt(self, user_id: str, receipt_id: str) -> None:
        """Removes a receipt row; absent rows are not an error."""

    @abstractmethod
    async def upsert_category(self, user_id: str, row: Row) -> None:
        """Inserts or replaces a category row."""

    @abstractmethod
    async def delete_category(self, user_id: str, category_id: str, updated_at: str) -> None:
        """
        Atomically clears `folder_id` (stamping `updated_at`) on every receipt
        filed under the category, then removes the category. Either both steps
        happen or neither does.
        """


class InMemoryBackend(PersistenceBackend):
    """
    Dict-backed backend for tests and offline use. Rows are deep-copied on
    the way in and out so callers cannot alias stored state.
    """

    def __init__(self):
        self.receipts: Dict[str, Dict[str, Row]] = defaultdict(dict)
        self.categories: Dict[str, Dict[str, Row]] = defaultdict(dict)

    async def fetch_receipts(self, user_id: str) -> List[Row]:
        rows = sorted(self.receipts[user_id].values(), key=lambda r: r['created_at'])
        return copy.deepcopy(rows)

    async def fetch_categories(self, user_id: str) -> List[Row]:
        rows = sorted(self.categories[user_id].values(), key=lambda r: r['created_at'])
        return copy.deepcopy(rows)

    async def upsert_receipt(self, user_id: str, row: Row) -> None:
        self.receipts[user_id][row['id']] = copy.deepcopy(row)

    async def delete_receipt(self, user_id: str, receipt_id: str) -> None:
        self.receipts[user_id].pop(receipt_id, None)

    async def upsert_category(self, user_id: str, row: Row) -> None:
        self.categories[user_id][row['id']] = copy.deepcopy(row)

    async def delete_category(self, user_id: str, category_id: str, updated_at: str) -> None:
        for row in self.receipts[user_id].values():
            if row.get('folder_id') == category_id:
                row['folder_id'] = None
                row['updated_at'] = updated_at
        self.categories[user_id].pop(category_id, None)

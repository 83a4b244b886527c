"""
Compound filing operations on top of the repository, plus the single-slot
undo affordance shared by swipe triage and batch filing.
"""

import time
from typing import Callable, List, Optional

from pydantic import BaseModel

# Absolute imports for industrial stability
from reseet.models import Category, Receipt
from reseet.storage.repository import ReceiptRepository
from reseet.utils.logging_config import logger

DEFAULT_UNDO_WINDOW = 5.0


class PendingUndo(BaseModel):
    """The most recent committed move, undoable until `expires_at`."""
    receipt_id: str
    category_id: str
    expires_at: float


class CategoryDeletion(BaseModel):
    """
    Outcome of deleting a category.

    `navigate_away` is set when the deleted category was the one on screen;
    the shell is expected to leave that view.
    """
    category_id: str
    unsorted_receipt_ids: List[str]
    navigate_away: bool = False


class CategoryAssignmentService:
    """
    Filing, unsorting and category management for the signed-in user.

    Only one undo slot exists: a newer move replaces the pending one, and the
    slot lapses after `undo_window` seconds on the injected monotonic clock.
    """

    def __init__(self, repository: ReceiptRepository,
                 undo_window: float = DEFAULT_UNDO_WINDOW,
                 clock: Callable[[], float] = time.monotonic):
        self.repository = repository
        self.undo_window = undo_window
        self.clock = clock
        self._undo: Optional[PendingUndo] = None

    @property
    def pending_undo(self) -> Optional[PendingUndo]:
        """The live undo slot, or None once it has expired."""
        if self._undo is not None and self.clock() >= self._undo.expires_at:
            logger.debug(f"Undo for receipt {self._undo.receipt_id} expired")
            self._undo = None
        return self._undo

    def clear_undo(self) -> None:
        self._undo = None

    async def move_to_category(self, receipt_id: str, category_id: str) -> Receipt:
        """
        Files a receipt under a category and makes the move undoable.

        Raises:
            NotFound: unknown receipt or category.
            PersistFailed: the backend did not confirm the move.
        """
        receipt = await self.repository.assign_folder(receipt_id, category_id)
        self._undo = PendingUndo(
            receipt_id=receipt_id,
            category_id=category_id,
            expires_at=self.clock() + self.undo_window,
        )
        logger.info(f"Moved receipt {receipt_id} to category {category_id}")
        return receipt

    async def unsort(self, receipt_id: str) -> Receipt:
        """Clears the receipt's folder. Already-unsorted receipts are left untouched."""
        return await self.repository.assign_folder(receipt_id, None)

    async def undo_last_move(self) -> Optional[str]:
        """
        Unsorts the most recently moved receipt if the undo window is still open.

        Returns:
            The undone receipt id, or None when there was nothing to undo.
        """
        pending = self.pending_undo
        if pending is None:
            return None
        self._undo = None
        await self.unsort(pending.receipt_id)
        logger.info(f"Undid move of receipt {pending.receipt_id}")
        return pending.receipt_id

    async def delete_category(self, category_id: str,
                              viewing_category_id: Optional[str] = None) -> CategoryDeletion:
        unsorted_ids = await self.repository.delete_category(category_id)
        if self._undo is not None and self._undo.category_id == category_id:
            self._undo = None
        return CategoryDeletion(
            category_id=category_id,
            unsorted_receipt_ids=unsorted_ids,
            navigate_away=viewing_category_id == category_id,
        )

    async def rename_or_recolor(self, category_id: str, label: Optional[str] = None,
                                color: Optional[str] = None) -> Category:
        return await self.repository.update_category(category_id, label=label, color=color)

    async def add_category(self, label: str, color: str) -> Category:
        return await self.repository.create_category(label, color)

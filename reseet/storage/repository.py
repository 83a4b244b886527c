"""
Receipt repository: the signed-in user's working set of receipts and
categories, mirrored to a persistence backend.

Every mutation follows the same two steps:
1. Model update: validate, then change the in-memory working set synchronously.
2. Durable save: await the backend write.

If step 2 fails the change stays in memory but is recorded as unconfirmed
and PersistFailed is raised. The caller then decides: `retry(entity_id)`
re-sends the write, `rollback(entity_id)` restores the prior in-memory state.

Rollback reverts only the fields the failed write touched, and only where
they still hold what that write set, so later confirmed changes survive.
A reverted folder that no longer exists becomes unsorted.
"""

from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, ValidationError

# Absolute imports for industrial stability
from reseet.errors import NotFound, PersistFailed, ValidationFailed
from reseet.models import Category, DraftReceipt, Receipt, default_categories, is_hex_color, utc_now
from reseet.scoring import score_receipt
from reseet.storage.backend import PersistenceBackend
from reseet.storage.rows import (
    category_from_row,
    category_to_row,
    receipt_from_row,
    receipt_to_row,
)
from reseet.utils.logging_config import logger

ReceiptPredicate = Callable[[Receipt], bool]
CategoryPredicate = Callable[[Category], bool]

# Receipt fields that only dedicated operations may change
PROTECTED_RECEIPT_FIELDS = {'id', 'score', 'folder_id', 'created_at', 'updated_at'}
SCORING_FIELDS = {'merchant', 'category', 'amount', 'items'}
EDITABLE_RECEIPT_FIELDS = set(DraftReceipt.model_fields) - PROTECTED_RECEIPT_FIELDS


class PendingChange(BaseModel):
    """An in-memory change whose backend write has not been confirmed."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    operation: str
    entity_id: str
    write: Callable[[], Awaitable[None]]
    undo: Callable[[], None]
    # True while the entity's creation itself is unconfirmed
    is_new: bool = False


def validate_label(label: Optional[str]) -> str:
    label = (label or "").strip()
    if not label:
        raise ValidationFailed("Category label must not be empty", field='label')
    return label


def validate_color(color: Optional[str]) -> str:
    if not is_hex_color(color or ""):
        raise ValidationFailed(f"Invalid category color '{color}'", field='color')
    return color


class ReceiptRepository:
    """
    Owns the canonical receipts and categories for one user.

    Reads are synchronous and served from memory; mutations are coroutines
    because they wait for the durable mirror.
    """

    def __init__(self, backend: PersistenceBackend, user_id: str,
                 clock: Callable[[], datetime] = utc_now):
        self.backend = backend
        self.user_id = user_id
        self.clock = clock
        self._receipts: Dict[str, Receipt] = {}
        self._categories: Dict[str, Category] = {}
        self._unconfirmed: Dict[str, PendingChange] = {}

    @classmethod
    async def open(cls, backend: PersistenceBackend, user_id: str,
                   seed_defaults: bool = True, **kwargs) -> "ReceiptRepository":
        """Creates a repository and loads the user's working set."""
        repository = cls(backend, user_id, **kwargs)
        await repository.load(seed_defaults=seed_defaults)
        return repository

    async def load(self, seed_defaults: bool = True) -> None:
        """
        Loads receipts and categories wholesale. Seeds the default categories
        when the user has none.
        """
        receipt_rows, category_rows = await self._fetch_all()
        self._receipts = {r.id: r for r in map(receipt_from_row, receipt_rows)}
        self._categories = {c.id: c for c in map(category_from_row, category_rows)}
        self._unconfirmed.clear()
        logger.info(
            f"Loaded {len(self._receipts)} receipts and {len(self._categories)} categories "
            f"for user {self.user_id}"
        )

        if seed_defaults and not self._categories:
            logger.info("No categories found, creating default categories")
            for category in default_categories():
                await self.create_category(category.label, category.color)

    async def reload(self) -> None:
        """
        Re-reads the backend and merges per entity id, last write wins on
        `updated_at`. Entities with unconfirmed local changes are kept.
        """
        receipt_rows, category_rows = await self._fetch_all()
        self._receipts = self._merge(self._receipts, map(receipt_from_row, receipt_rows))
        self._categories = self._merge(self._categories, map(category_from_row, category_rows))

    def _merge(self, local: Dict[str, Any], remote: Iterable[Any]) -> Dict[str, Any]:
        merged = {}
        for entity in remote:
            current = local.get(entity.id)
            if current is None and entity.id in self._unconfirmed:
                # Deleted locally, delete not yet confirmed
                continue
            if current is not None and current.updated_at > entity.updated_at:
                merged[entity.id] = current
            else:
                merged[entity.id] = entity
        for entity_id, entity in local.items():
            if entity_id not in merged and entity_id in self._unconfirmed:
                merged[entity_id] = entity
        return merged

    async def _fetch_all(self):
        try:
            receipt_rows = await self.backend.fetch_receipts(self.user_id)
            category_rows = await self.backend.fetch_categories(self.user_id)
        except Exception as e:
            logger.error(f"Loading working set for user {self.user_id} failed: {e}")
            raise PersistFailed("load") from e
        return receipt_rows, category_rows

    # --- persistence bookkeeping ---

    async def _commit(self, operation: str, entity_id: str,
                      write: Callable[[], Awaitable[None]], undo: Callable[[], None]) -> None:
        previous = self._unconfirmed.get(entity_id)
        is_new = operation.startswith("create") or (previous is not None and previous.is_new)
        if previous is not None:
            # Rolling back must reach the last confirmed state
            newer_undo = undo

            def undo():
                newer_undo()
                previous.undo()

        try:
            await write()
        except Exception as e:
            logger.error(f"Persisting {operation} for '{entity_id}' failed: {e}")
            self._unconfirmed[entity_id] = PendingChange(
                operation=operation, entity_id=entity_id, write=write, undo=undo, is_new=is_new,
            )
            raise PersistFailed(operation, entity_id) from e
        self._unconfirmed.pop(entity_id, None)

    def unconfirmed(self) -> List[PendingChange]:
        """Changes applied in memory whose backend write failed."""
        return list(self._unconfirmed.values())

    def is_confirmed(self, entity_id: str) -> bool:
        return entity_id not in self._unconfirmed

    def _is_unconfirmed_new(self, entity_id: str) -> bool:
        pending = self._unconfirmed.get(entity_id)
        return pending is not None and pending.is_new

    async def retry(self, entity_id: str) -> None:
        """Re-sends the pending write for an entity. Raises PersistFailed again on failure."""
        pending = self._unconfirmed.get(entity_id)
        if pending is None:
            return
        try:
            await pending.write()
        except Exception as e:
            logger.error(f"Retrying {pending.operation} for '{entity_id}' failed: {e}")
            raise PersistFailed(pending.operation, entity_id) from e
        self._unconfirmed.pop(entity_id, None)
        logger.info(f"Confirmed {pending.operation} for '{entity_id}' on retry")

    def rollback(self, entity_id: str) -> None:
        """Discards an unconfirmed change, restoring the prior in-memory state."""
        pending = self._unconfirmed.pop(entity_id, None)
        if pending is None:
            return
        pending.undo()
        logger.info(f"Rolled back unconfirmed {pending.operation} for '{entity_id}'")

    # --- receipts ---

    def get_receipt(self, receipt_id: str) -> Receipt:
        receipt = self._receipts.get(receipt_id)
        if receipt is None:
            raise NotFound("Receipt", receipt_id)
        return receipt

    def list_receipts(self, predicate: Optional[ReceiptPredicate] = None) -> List[Receipt]:
        """Receipts oldest first, optionally filtered."""
        receipts = sorted(self._receipts.values(), key=lambda r: r.created_at)
        if predicate is None:
            return receipts
        return [r for r in receipts if predicate(r)]

    def unsorted_receipts(self) -> List[Receipt]:
        return self.list_receipts(lambda r: r.folder_id is None)

    def receipts_in(self, category_id: str) -> List[Receipt]:
        return self.list_receipts(lambda r: r.folder_id == category_id)

    def _put_receipt(self, receipt: Receipt) -> None:
        self._receipts[receipt.id] = receipt

    def _drop_receipt(self, receipt_id: str) -> None:
        self._receipts.pop(receipt_id, None)

    def _existing_folder(self, folder_id: Optional[str]) -> Optional[str]:
        return folder_id if folder_id in self._categories else None

    def _restore_receipt(self, receipt: Receipt) -> None:
        folder_id = self._existing_folder(receipt.folder_id)
        if folder_id != receipt.folder_id:
            receipt = receipt.model_copy(update={'folder_id': folder_id})
        self._put_receipt(receipt)

    def _revert_receipt(self, written: Receipt, prior: Receipt, fields: Iterable[str]) -> None:
        """Puts `fields` back to `prior` where they still hold what `written` set."""
        receipt = self._receipts.get(written.id)
        if receipt is None:
            return
        restore = {
            name: getattr(prior, name) for name in fields
            if getattr(receipt, name) == getattr(written, name)
        }
        if 'folder_id' in restore:
            restore['folder_id'] = self._existing_folder(restore['folder_id'])
        if restore:
            self._put_receipt(receipt.model_copy(update=restore))

    def _write_receipt(self, receipt: Receipt) -> Callable[[], Awaitable[None]]:
        row = receipt_to_row(receipt, self.user_id)
        return lambda: self.backend.upsert_receipt(self.user_id, row)

    async def create_receipt(self, draft: DraftReceipt) -> Receipt:
        """Stores a confirmed draft as a new, unsorted receipt."""
        now = self.clock()
        receipt = Receipt.from_draft(draft, created_at=now, updated_at=now)
        self._put_receipt(receipt)
        await self._commit(
            "create receipt", receipt.id,
            self._write_receipt(receipt),
            lambda: self._drop_receipt(receipt.id),
        )
        logger.info(f"Created receipt {receipt.id} from {receipt.merchant}")
        return receipt

    async def update_receipt(self, receipt_id: str, **changes: Any) -> Receipt:
        """
        Applies a partial content edit. The score is recomputed when any
        scoring input changes; folder moves go through assign_folder.

        Raises:
            NotFound: unknown receipt.
            ValidationFailed: protected/unknown fields or invalid values.
        """
        current = self.get_receipt(receipt_id)
        protected = PROTECTED_RECEIPT_FIELDS & changes.keys()
        if protected:
            raise ValidationFailed(f"Fields cannot be edited directly: {sorted(protected)}")
        unknown = changes.keys() - EDITABLE_RECEIPT_FIELDS
        if unknown:
            raise ValidationFailed(f"Unknown receipt fields: {sorted(unknown)}")

        data = current.model_dump()
        data.update(changes)
        data['updated_at'] = self.clock()
        try:
            updated = Receipt.model_validate(data)
            if SCORING_FIELDS & changes.keys():
                updated = updated.model_copy(update={
                    'score': score_receipt(updated.category, updated.merchant, updated.amount, updated.items)
                })
        except ValidationError as e:
            logger.warning(f"Rejected edit to receipt {receipt_id}: {e}")
            raise ValidationFailed(f"Invalid receipt edit: {e}") from e

        self._put_receipt(updated)
        touched = set(changes) | {'score', 'updated_at'}
        await self._commit(
            "update receipt", receipt_id,
            self._write_receipt(updated),
            lambda: self._revert_receipt(updated, current, touched),
        )
        return updated

    async def delete_receipt(self, receipt_id: str) -> None:
        current = self.get_receipt(receipt_id)
        self._drop_receipt(receipt_id)
        await self._commit(
            "delete receipt", receipt_id,
            lambda: self.backend.delete_receipt(self.user_id, receipt_id),
            lambda: self._restore_receipt(current),
        )
        logger.info(f"Deleted receipt {receipt_id}")

    async def assign_folder(self, receipt_id: str, category_id: Optional[str]) -> Receipt:
        """
        Sets or clears a receipt's folder. A non-None category must exist.
        Clearing an already-unsorted receipt is a no-op with no write.

        Raises:
            NotFound: unknown receipt or category.
            PersistFailed: the target category's creation is still unconfirmed.
        """
        current = self.get_receipt(receipt_id)
        if category_id is not None:
            self.get_category(category_id)
            if self._is_unconfirmed_new(category_id):
                logger.warning(f"Refusing to file {receipt_id} under unconfirmed category {category_id}")
                raise PersistFailed("create category", category_id)
        if current.folder_id == category_id and category_id is None:
            return current

        updated = current.model_copy(update={'folder_id': category_id, 'updated_at': self.clock()})
        self._put_receipt(updated)
        operation = "unsort receipt" if category_id is None else "move receipt"
        await self._commit(
            operation, receipt_id,
            self._write_receipt(updated),
            lambda: self._revert_receipt(updated, current, ('folder_id', 'updated_at')),
        )
        logger.debug(f"Receipt {receipt_id} folder -> {category_id}")
        return updated

    # --- categories ---

    def get_category(self, category_id: str) -> Category:
        category = self._categories.get(category_id)
        if category is None:
            raise NotFound("Category", category_id)
        return category

    def list_categories(self, predicate: Optional[CategoryPredicate] = None) -> List[Category]:
        """Categories in creation order, optionally filtered."""
        categories = sorted(self._categories.values(), key=lambda c: c.created_at)
        if predicate is None:
            return categories
        return [c for c in categories if predicate(c)]

    def category_counts(self) -> Dict[str, int]:
        """Number of receipts filed in each category."""
        counts = {category_id: 0 for category_id in self._categories}
        for receipt in self._receipts.values():
            if receipt.folder_id in counts:
                counts[receipt.folder_id] += 1
        return counts

    def _put_category(self, category: Category) -> None:
        self._categories[category.id] = category

    def _drop_category(self, category_id: str) -> None:
        self._categories.pop(category_id, None)

    def _discard_category(self, category_id: str) -> None:
        """Removes a category whose creation never reached storage, unsorting its members."""
        self._drop_category(category_id)
        for receipt in self.receipts_in(category_id):
            self._put_receipt(receipt.model_copy(update={'folder_id': None}))

    def _revert_category(self, written: Category, prior: Category) -> None:
        category = self._categories.get(written.id)
        if category is None:
            return
        restore = {
            name: getattr(prior, name) for name in ('label', 'color', 'updated_at')
            if getattr(category, name) == getattr(written, name)
        }
        if restore:
            self._put_category(category.model_copy(update=restore))

    def _write_category(self, category: Category) -> Callable[[], Awaitable[None]]:
        row = category_to_row(category, self.user_id)
        return lambda: self.backend.upsert_category(self.user_id, row)

    async def create_category(self, label: str, color: str) -> Category:
        now = self.clock()
        category = Category(
            label=validate_label(label), color=validate_color(color),
            created_at=now, updated_at=now,
        )
        self._put_category(category)
        await self._commit(
            "create category", category.id,
            self._write_category(category),
            lambda: self._discard_category(category.id),
        )
        logger.info(f"Created category '{category.label}' ({category.id})")
        return category

    async def update_category(self, category_id: str, label: Optional[str] = None,
                              color: Optional[str] = None) -> Category:
        """Partial update of label and/or color."""
        current = self.get_category(category_id)
        changes: Dict[str, Any] = {}
        if label is not None:
            changes['label'] = validate_label(label)
        if color is not None:
            changes['color'] = validate_color(color)
        if not changes:
            return current

        changes['updated_at'] = self.clock()
        updated = current.model_copy(update=changes)
        self._put_category(updated)
        await self._commit(
            "update category", category_id,
            self._write_category(updated),
            lambda: self._revert_category(updated, current),
        )
        return updated

    async def delete_category(self, category_id: str) -> List[str]:
        """
        Unsorts every member receipt and removes the category, as one unit.

        Returns:
            Ids of the receipts that were moved back to unsorted.
        """
        category = self.get_category(category_id)
        members = self.receipts_in(category_id)
        now = self.clock()

        unsorted = [receipt.model_copy(update={'folder_id': None, 'updated_at': now}) for receipt in members]
        for receipt in unsorted:
            self._put_receipt(receipt)
        self._drop_category(category_id)

        def undo():
            # Members filed elsewhere since the failed delete keep their new folder
            self._put_category(category)
            for written, prior in zip(unsorted, members):
                self._revert_receipt(written, prior, ('folder_id', 'updated_at'))

        await self._commit(
            "delete category", category_id,
            lambda: self.backend.delete_category(self.user_id, category_id, now.isoformat()),
            undo,
        )
        logger.info(f"Deleted category '{category.label}', unsorted {len(members)} receipts")
        return [receipt.id for receipt in members]

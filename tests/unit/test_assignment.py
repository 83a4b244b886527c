import pytest
from datetime import date
from decimal import Decimal

from reseet.errors import NotFound, PersistFailed, ValidationFailed
from reseet.models import DraftReceipt


def _draft(merchant="Staples"):
    return DraftReceipt(merchant=merchant, date=date(2024, 1, 5), amount=Decimal("20"))


class TestMoveAndUnsort:

    @pytest.mark.asyncio
    async def test_move_then_unsort_round_trip(self, repo, service):
        category = await service.add_category("Business", "#558E00")
        receipt = await repo.create_receipt(_draft())

        moved = await service.move_to_category(receipt.id, category.id)
        assert moved.folder_id == category.id

        unsorted = await service.unsort(receipt.id)
        assert unsorted.folder_id is None
        assert repo.get_receipt(receipt.id).folder_id is None

    @pytest.mark.asyncio
    async def test_move_unknown_ids(self, repo, service):
        category = await service.add_category("Business", "#558E00")
        receipt = await repo.create_receipt(_draft())
        with pytest.raises(NotFound):
            await service.move_to_category("missing", category.id)
        with pytest.raises(NotFound):
            await service.move_to_category(receipt.id, "missing")
        assert service.pending_undo is None

    @pytest.mark.asyncio
    async def test_unsort_already_unsorted_skips_write(self, backend, repo, service):
        receipt = await repo.create_receipt(_draft())
        writes = backend.writes

        again = await service.unsort(receipt.id)

        assert again == receipt
        assert backend.writes == writes

    @pytest.mark.asyncio
    async def test_unsort_unknown_receipt(self, service):
        with pytest.raises(NotFound):
            await service.unsort("missing")


class TestUndo:

    @pytest.mark.asyncio
    async def test_undo_within_window(self, repo, service, monotonic):
        category = await service.add_category("Business", "#558E00")
        receipt = await repo.create_receipt(_draft())
        await service.move_to_category(receipt.id, category.id)

        monotonic.advance(4.9)
        assert await service.undo_last_move() == receipt.id
        assert repo.get_receipt(receipt.id).folder_id is None
        assert service.pending_undo is None

    @pytest.mark.asyncio
    async def test_undo_slot_expires(self, repo, service, monotonic):
        category = await service.add_category("Business", "#558E00")
        receipt = await repo.create_receipt(_draft())
        await service.move_to_category(receipt.id, category.id)

        monotonic.advance(5.0)
        assert service.pending_undo is None
        assert await service.undo_last_move() is None
        assert repo.get_receipt(receipt.id).folder_id == category.id

    @pytest.mark.asyncio
    async def test_newer_move_replaces_slot(self, repo, service, monotonic):
        category = await service.add_category("Business", "#558E00")
        first = await repo.create_receipt(_draft("Staples"))
        second = await repo.create_receipt(_draft("Shell"))
        await service.move_to_category(first.id, category.id)
        monotonic.advance(3)
        await service.move_to_category(second.id, category.id)
        monotonic.advance(3)

        assert await service.undo_last_move() == second.id
        assert repo.get_receipt(first.id).folder_id == category.id
        assert await service.undo_last_move() is None

    @pytest.mark.asyncio
    async def test_clear_undo(self, repo, service):
        category = await service.add_category("Business", "#558E00")
        receipt = await repo.create_receipt(_draft())
        await service.move_to_category(receipt.id, category.id)
        service.clear_undo()
        assert await service.undo_last_move() is None

    @pytest.mark.asyncio
    async def test_failed_move_leaves_no_undo(self, backend, repo, service):
        category = await service.add_category("Business", "#558E00")
        receipt = await repo.create_receipt(_draft())
        backend.failing = True
        with pytest.raises(PersistFailed):
            await service.move_to_category(receipt.id, category.id)
        assert service.pending_undo is None


class TestCategoryManagement:

    @pytest.mark.asyncio
    async def test_delete_category_unsorts_members(self, repo, service):
        category = await service.add_category("Business", "#558E00")
        r1 = await repo.create_receipt(_draft("Staples"))
        r2 = await repo.create_receipt(_draft("Shell"))
        await service.move_to_category(r1.id, category.id)
        await service.move_to_category(r2.id, category.id)

        deletion = await service.delete_category(category.id)

        assert deletion.category_id == category.id
        assert sorted(deletion.unsorted_receipt_ids) == sorted([r1.id, r2.id])
        assert deletion.navigate_away is False
        assert {r.id for r in repo.unsorted_receipts()} == {r1.id, r2.id}
        assert category.id not in [c.id for c in repo.list_categories()]
        # The pending undo pointed into the deleted category
        assert service.pending_undo is None

    @pytest.mark.asyncio
    async def test_delete_viewed_category_signals_navigation(self, service):
        category = await service.add_category("Business", "#558E00")
        deletion = await service.delete_category(category.id, viewing_category_id=category.id)
        assert deletion.navigate_away is True
        assert deletion.unsorted_receipt_ids == []

    @pytest.mark.asyncio
    async def test_delete_unknown_category(self, service):
        with pytest.raises(NotFound):
            await service.delete_category("missing")

    @pytest.mark.asyncio
    async def test_rename_or_recolor(self, service):
        category = await service.add_category("Business", "#558E00")
        updated = await service.rename_or_recolor(category.id, color="#000000")
        assert (updated.label, updated.color) == ("Business", "#000000")
        with pytest.raises(ValidationFailed):
            await service.rename_or_recolor(category.id, label="  ")

    @pytest.mark.asyncio
    async def test_add_category_trims_label(self, service):
        category = await service.add_category("  Side gig ", "#abcdef")
        assert category.label == "Side gig"

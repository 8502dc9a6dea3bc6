"""
Tests for categorization write-back (conditional on the committed notes version).
"""
import datetime
from decimal import Decimal

from packages.common.receipt_repository import receipt_repository as repo
from packages.common.schemas.receipt_normalized import LineItem, TaxonomyEntry
from packages.domain.categorization import (
    CategorizationService,
    ItemCategorizer,
    WriteBackStatus,
)

OWNER = "user-1"
TAXONOMY = [TaxonomyEntry(id="g", name="Groceries"), TaxonomyEntry(id="h", name="Health")]
ITEMS = [
    LineItem(name="Mleko", quantity=Decimal("1"), price=Decimal("3.99")),
    LineItem(name="Apap", quantity=Decimal("1"), price=Decimal("12.49")),
]


async def processed_receipt(db, items=ITEMS, receipt_id=None):
    """Commit items onto a placeholder; returns (receipt id, committed notes version)"""
    if receipt_id is None:
        receipt_id = (await repo.create_placeholder(OWNER, db)).id
    version = await repo.mark_processed(receipt_id, "Lidl", datetime.date(2024, 3, 1),
                                        Decimal("16.48"), "PLN", items, db)
    return receipt_id, version


class TestWriteBack:
    def test_categories_written_and_version_bumped(self, run_db, fake_generator):
        service = CategorizationService(ItemCategorizer(fake_generator('["g", "h"]')))

        async def scenario(db):
            receipt_id, version = await processed_receipt(db)
            result = await service.categorize_receipt(receipt_id, ITEMS, TAXONOMY, version, db)
            notes, after = await repo.read_notes(receipt_id, db)
            return result, notes, version, after

        result, notes, before, after = run_db(scenario)
        assert result.write_back == WriteBackStatus.WRITTEN
        assert result.assigned == 2
        assert [item["category_id"] for item in notes["items"]] == ["g", "h"]
        assert notes["items"][0]["price"] == 3.99
        assert after == before + 1

    def test_invalid_ids_stored_as_null(self, run_db, fake_generator):
        service = CategorizationService(ItemCategorizer(fake_generator('["g", "not-a-category"]')))

        async def scenario(db):
            receipt_id, version = await processed_receipt(db)
            await service.categorize_receipt(receipt_id, ITEMS, TAXONOMY, version, db)
            notes, _ = await repo.read_notes(receipt_id, db)
            return notes

        notes = run_db(scenario)
        assert [item["category_id"] for item in notes["items"]] == ["g", None]

    def test_deleted_receipt_ends_quietly(self, run_db, fake_generator):
        service = CategorizationService(ItemCategorizer(fake_generator('["g", "h"]')))

        async def scenario(db):
            receipt_id, version = await processed_receipt(db)
            await repo.delete_receipt(receipt_id, db)
            return await service.categorize_receipt(receipt_id, ITEMS, TAXONOMY, version, db)

        assert run_db(scenario).write_back == WriteBackStatus.RECEIPT_GONE


class TestSupersededReceipt:
    def test_late_job_does_not_overwrite_reprocessed_items(self, run_db, fake_generator):
        service = CategorizationService(ItemCategorizer(fake_generator('["g"]')))
        newer = [
            LineItem(name="Paliwo", price=Decimal("250.00")),
            LineItem(name="Kawa", price=Decimal("9.50")),
        ]

        async def scenario(db):
            receipt_id, old_version = await processed_receipt(db, items=[ITEMS[0]])
            _, new_version = await processed_receipt(db, items=newer, receipt_id=receipt_id)
            result = await service.categorize_receipt(
                receipt_id, [ITEMS[0]], TAXONOMY, old_version, db
            )
            notes, version = await repo.read_notes(receipt_id, db)
            return result, notes, version, new_version

        result, notes, version, new_version = run_db(scenario)
        assert result.write_back == WriteBackStatus.STALE
        assert [item["name"] for item in notes["items"]] == ["Paliwo", "Kawa"]
        assert all(item["category_id"] is None for item in notes["items"])
        assert version == new_version

    def test_job_for_failed_receipt_leaves_notes_alone(self, run_db, fake_generator):
        service = CategorizationService(ItemCategorizer(fake_generator('["g", "h"]')))

        async def scenario(db):
            receipt_id, version = await processed_receipt(db)
            await repo.mark_failed(receipt_id, "Scan failed: boom", db)
            result = await service.categorize_receipt(receipt_id, ITEMS, TAXONOMY, version, db)
            notes, _ = await repo.read_notes(receipt_id, db)
            receipt = await repo.get_receipt(receipt_id, db)
            return result, notes, receipt.status

        result, notes, status = run_db(scenario)
        assert result.write_back == WriteBackStatus.STALE
        assert notes == {"error": "Scan failed: boom"}
        assert status == "failed"

    def test_pending_receipt_at_matching_version_is_refused(self, run_db, fake_generator):
        service = CategorizationService(ItemCategorizer(fake_generator('["g", "h"]')))

        async def scenario(db):
            placeholder = await repo.create_placeholder(OWNER, db)
            result = await service.categorize_receipt(placeholder.id, ITEMS, TAXONOMY, 1, db)
            return result, await repo.read_notes(placeholder.id, db)

        result, (notes, version) = run_db(scenario)
        assert result.write_back == WriteBackStatus.STALE
        assert "items" not in notes
        assert version == 1

    def test_second_job_for_same_version_is_stale(self, run_db, fake_generator):
        service = CategorizationService(ItemCategorizer(fake_generator('["g", "h"]')))

        async def scenario(db):
            receipt_id, version = await processed_receipt(db)
            first = await service.categorize_receipt(receipt_id, ITEMS, TAXONOMY, version, db)
            second = await service.categorize_receipt(receipt_id, ITEMS, TAXONOMY, version, db)
            return first.write_back, second.write_back

        assert run_db(scenario) == (WriteBackStatus.WRITTEN, WriteBackStatus.STALE)

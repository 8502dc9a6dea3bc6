"""
Categorization Service - background enrichment of committed receipts

Flow (runs in the Celery worker, after the scan response has been sent):
1. ItemCategorizer assigns taxonomy ids to the items in one batched LLM call
2. Re-read the receipt's notes + version
3. Replace notes.items with the categorized items
4. Conditional write: only onto a processed receipt still at the version the items were
   committed at

A receipt that was re-processed, failed or otherwise rewritten since the job was queued has
moved past that version; the job's items no longer describe it and are dropped (stale).
The receipt may also have been deleted in the meantime (duplicate cleanup, user action);
that ends the job quietly too.
"""
from typing import List, Sequence

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from packages.common.receipt_repository import ReceiptRepository, receipt_repository
from packages.common.schemas.receipt_normalized import LineItem, TaxonomyEntry
from packages.domain.categorization.item_categorizer import ItemCategorizer
from packages.domain.categorization.schemas import CategorizationResult, WriteBackStatus

logger = structlog.get_logger()


class CategorizationService:
    """
    Usage:
        service = CategorizationService(ItemCategorizer(get_text_generator()))
        result = await service.categorize_receipt(receipt_id, items, taxonomy, notes_version, db)
    """

    def __init__(
        self,
        categorizer: ItemCategorizer,
        repository: ReceiptRepository = receipt_repository,
    ):
        self.categorizer = categorizer
        self.repository = repository

    async def categorize_receipt(
        self,
        receipt_id: str,
        items: Sequence[LineItem],
        taxonomy: Sequence[TaxonomyEntry],
        notes_version: int,
        db: AsyncSession,
    ) -> CategorizationResult:
        """
        Categorize items and patch them into the stored receipt.

        Args:
            notes_version: receipt version the items were committed at
        """
        logger.info("receipt_categorization_started",
                    receipt_id=receipt_id,
                    items=len(items),
                    taxonomy=len(taxonomy),
                    notes_version=notes_version)

        category_ids = await self.categorizer.categorize(items, taxonomy)
        categorized = [
            item.model_copy(update={"category_id": category_id})
            for item, category_id in zip(items, category_ids)
        ]

        status = await self._write_back(receipt_id, categorized, notes_version, db)

        result = CategorizationResult(
            receipt_id=receipt_id,
            items=categorized,
            assigned=sum(1 for i in category_ids if i is not None),
            write_back=status,
        )
        logger.info("receipt_categorization_finished",
                    receipt_id=receipt_id,
                    assigned=result.assigned,
                    write_back=status.value)
        return result

    async def _write_back(
        self,
        receipt_id: str,
        categorized: List[LineItem],
        notes_version: int,
        db: AsyncSession,
    ) -> WriteBackStatus:
        current = await self.repository.read_notes(receipt_id, db)
        if current is None:
            logger.info("categorization_receipt_gone", receipt_id=receipt_id)
            return WriteBackStatus.RECEIPT_GONE

        notes, version = current
        if version != notes_version:
            logger.info("categorization_stale",
                        receipt_id=receipt_id,
                        notes_version=notes_version,
                        current_version=version)
            return WriteBackStatus.STALE

        updated = dict(notes)
        updated["items"] = [item.model_dump(mode="json") for item in categorized]

        if await self.repository.compare_and_swap_notes(receipt_id, notes_version, updated, db):
            return WriteBackStatus.WRITTEN

        # Version matched but the receipt is not processed, or it changed after the read
        logger.info("categorization_write_refused",
                    receipt_id=receipt_id,
                    notes_version=notes_version)
        return WriteBackStatus.STALE


def build_categorization_service(generator=None) -> CategorizationService:
    """Wire a service from the process-wide text generator"""
    from packages.common.llm import get_text_generator

    return CategorizationService(
        ItemCategorizer(generator if generator is not None else get_text_generator())
    )

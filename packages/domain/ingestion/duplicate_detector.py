"""
Duplicate Detector - exact natural-key match against committed receipts

A resubmission is a duplicate only while the earlier receipt still has a transaction;
once the user deletes that transaction the same receipt may be uploaded again.
"""
from datetime import date
from decimal import Decimal
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from packages.common.receipt_repository import ReceiptRepository, receipt_repository

logger = structlog.get_logger()


class DuplicateDetector:

    def __init__(self, repository: ReceiptRepository = receipt_repository):
        self.repository = repository

    async def find_duplicate(
        self,
        owner_id: str,
        vendor: str,
        total: Decimal,
        transaction_date: date,
        db: AsyncSession,
        exclude_id: Optional[str] = None,
    ) -> Optional[str]:
        """
        Return the id of the receipt this submission duplicates, or None.

        Args:
            owner_id: Owner of both receipts
            vendor: Canonical vendor name
            total: Extracted total (compared exactly)
            transaction_date: Extracted date (compared exactly)
            exclude_id: The placeholder being processed, never matched against itself
        """
        existing_id = await self.repository.find_processed_match(
            owner_id, vendor, total, transaction_date, db, exclude_id=exclude_id
        )
        if existing_id is None:
            return None

        if not await self.repository.transaction_exists(existing_id, owner_id, db):
            logger.info("duplicate_candidate_without_transaction",
                        existing_receipt_id=existing_id,
                        owner_id=owner_id)
            return None

        return existing_id

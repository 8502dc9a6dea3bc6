"""
Receipt Repository - database operations for the scan pipeline

Owns every query the ingestion orchestrator, duplicate detector and categorization
worker need. Writes are committed inside each method so a failure in one file's
processing never leaves half-applied state for the next file.

Notes writes are versioned: receipts.version is bumped on every notes change. A
categorization job carries the version its items were committed at and may only write
onto that version of a processed receipt.
"""
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import List, Optional

import structlog
from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from packages.common.models import Category, Receipt, Transaction
from packages.common.schemas.receipt_normalized import (
    LineItem,
    ReceiptNotes,
    ReceiptStatus,
    TaxonomyEntry,
)

logger = structlog.get_logger()

TRANSACTION_SOURCE_OCR = "ocr"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReceiptRepository:
    """
    Repository for receipts, transactions and the category taxonomy.

    All methods take the session explicitly; callers own its lifetime.
    """

    # ---- Receipts ---------------------------------------------------------------------

    async def get_receipt(self, receipt_id: str, db: AsyncSession) -> Optional[Receipt]:
        result = await db.execute(
            select(Receipt)
            .where(Receipt.id == receipt_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def create_placeholder(
        self,
        owner_id: str,
        db: AsyncSession,
        receipt_id: Optional[str] = None,
    ) -> Receipt:
        """Create an empty pending receipt (optionally with a caller-chosen id)"""
        receipt = Receipt(owner_id=owner_id, status=ReceiptStatus.PENDING.value, version=1)
        if receipt_id:
            receipt.id = receipt_id
        db.add(receipt)
        await db.commit()

        logger.info("placeholder_created", receipt_id=receipt.id, owner_id=owner_id)
        return receipt

    async def ensure_placeholder(self, receipt_id: str, owner_id: str, db: AsyncSession) -> Receipt:
        """Return the caller's pre-created placeholder, creating it if it does not exist yet"""
        receipt = await self.get_receipt(receipt_id, db)
        if receipt is not None:
            return receipt

        logger.warning("placeholder_missing_created", receipt_id=receipt_id, owner_id=owner_id)
        return await self.create_placeholder(owner_id, db, receipt_id=receipt_id)

    async def mark_processed(
        self,
        receipt_id: str,
        vendor: str,
        transaction_date: Optional[date],
        total: Decimal,
        currency: str,
        items: List[LineItem],
        db: AsyncSession,
    ) -> Optional[int]:
        """
        Fill a placeholder with extracted fields; notes items start uncategorized.

        Returns the notes version this commit produced. A categorization job may only
        write back onto exactly that version.
        """
        notes = ReceiptNotes(items=[item.model_copy(update={"category_id": None}) for item in items])

        await db.execute(
            update(Receipt)
            .where(Receipt.id == receipt_id)
            .values(
                status=ReceiptStatus.PROCESSED.value,
                vendor=vendor,
                transaction_date=transaction_date,
                total=total,
                currency=currency,
                notes=notes.model_dump(mode="json"),
                version=Receipt.version + 1,
                updated_at=_utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        version = (
            await db.execute(select(Receipt.version).where(Receipt.id == receipt_id))
        ).scalar_one_or_none()
        await db.commit()

        logger.info("receipt_marked_processed",
                    receipt_id=receipt_id,
                    vendor=vendor,
                    total=float(total),
                    items=len(items),
                    version=version)
        return version

    async def mark_failed(self, receipt_id: str, message: str, db: AsyncSession) -> None:
        """Flag a receipt as failed and keep the diagnostic in notes"""
        await db.execute(
            update(Receipt)
            .where(Receipt.id == receipt_id)
            .values(
                status=ReceiptStatus.FAILED.value,
                notes={"error": message},
                version=Receipt.version + 1,
                updated_at=_utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        logger.info("receipt_marked_failed", receipt_id=receipt_id, message=message)

    async def delete_receipt(self, receipt_id: str, db: AsyncSession) -> None:
        await db.execute(
            delete(Receipt)
            .where(Receipt.id == receipt_id)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        logger.info("receipt_deleted", receipt_id=receipt_id)

    async def find_processed_match(
        self,
        owner_id: str,
        vendor: str,
        total: Decimal,
        transaction_date: date,
        db: AsyncSession,
        exclude_id: Optional[str] = None,
    ) -> Optional[str]:
        """Id of a processed receipt with exactly this vendor, total and date"""
        query = (
            select(Receipt.id)
            .where(
                Receipt.owner_id == owner_id,
                Receipt.status == ReceiptStatus.PROCESSED.value,
                Receipt.vendor == vendor,
                Receipt.total == total,
                Receipt.transaction_date == transaction_date,
            )
            .order_by(Receipt.created_at)
        )
        if exclude_id:
            query = query.where(Receipt.id != exclude_id)

        result = await db.execute(query)
        return result.scalars().first()

    # ---- Notes (versioned) ------------------------------------------------------------

    async def read_notes(self, receipt_id: str, db: AsyncSession) -> Optional[tuple]:
        """(notes dict, version) of a receipt, or None if it no longer exists"""
        result = await db.execute(
            select(Receipt.notes, Receipt.version).where(Receipt.id == receipt_id)
        )
        row = result.one_or_none()
        if row is None:
            return None
        return (row.notes or {}), row.version

    async def compare_and_swap_notes(
        self,
        receipt_id: str,
        expected_version: int,
        notes: dict,
        db: AsyncSession,
    ) -> bool:
        """Write notes only onto a processed receipt still at expected_version"""
        result = await db.execute(
            update(Receipt)
            .where(
                Receipt.id == receipt_id,
                Receipt.version == expected_version,
                Receipt.status == ReceiptStatus.PROCESSED.value,
            )
            .values(notes=notes, version=expected_version + 1, updated_at=_utcnow())
            .execution_options(synchronize_session=False)
        )
        await db.commit()

        swapped = result.rowcount == 1
        logger.debug("notes_compare_and_swap",
                     receipt_id=receipt_id,
                     expected_version=expected_version,
                     swapped=swapped)
        return swapped

    # ---- Transactions -----------------------------------------------------------------

    async def transaction_exists(self, receipt_id: str, owner_id: str, db: AsyncSession) -> bool:
        result = await db.execute(
            select(func.count())
            .select_from(Transaction)
            .where(Transaction.receipt_id == receipt_id, Transaction.owner_id == owner_id)
        )
        return result.scalar_one() > 0

    async def replace_transaction(
        self,
        receipt_id: str,
        owner_id: str,
        vendor: str,
        amount: Decimal,
        transaction_date: date,
        db: AsyncSession,
    ) -> Transaction:
        """Delete any transactions already pointing at receipt_id, then insert the new one"""
        stale = await db.execute(
            delete(Transaction)
            .where(Transaction.receipt_id == receipt_id)
            .execution_options(synchronize_session=False)
        )
        if stale.rowcount:
            logger.warning("stale_transactions_removed", receipt_id=receipt_id, count=stale.rowcount)

        transaction = Transaction(
            owner_id=owner_id,
            receipt_id=receipt_id,
            title=f"{vendor} - purchase",
            amount=amount,
            date=transaction_date,
            vendor=vendor,
            category_id=None,
            source=TRANSACTION_SOURCE_OCR,
        )
        db.add(transaction)
        await db.commit()

        logger.info("transaction_created",
                    transaction_id=transaction.id,
                    receipt_id=receipt_id,
                    amount=float(amount))
        return transaction

    # ---- Taxonomy ---------------------------------------------------------------------

    async def load_taxonomy(self, owner_id: str, db: AsyncSession) -> List[TaxonomyEntry]:
        """Owner's categories plus global ones (owner_id NULL)"""
        result = await db.execute(
            select(Category.id, Category.name)
            .where(or_(Category.owner_id == owner_id, Category.owner_id.is_(None)))
            .order_by(Category.name)
        )
        return [TaxonomyEntry(id=row.id, name=row.name) for row in result.all()]

    # ---- Maintenance ------------------------------------------------------------------

    async def fail_stale_placeholders(self, older_than: timedelta, db: AsyncSession) -> int:
        """Mark pending placeholders older than the threshold as failed"""
        cutoff = _utcnow() - older_than
        result = await db.execute(
            update(Receipt)
            .where(Receipt.status == ReceiptStatus.PENDING.value, Receipt.created_at < cutoff)
            .values(
                status=ReceiptStatus.FAILED.value,
                notes={"error": "Processing did not finish; placeholder expired"},
                version=Receipt.version + 1,
                updated_at=_utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        await db.commit()

        logger.info("stale_placeholders_failed", count=result.rowcount, cutoff=cutoff.isoformat())
        return result.rowcount


# Singleton instance
receipt_repository = ReceiptRepository()

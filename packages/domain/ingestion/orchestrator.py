"""
Receipt Ingestion Orchestrator - batch scan of uploaded receipt files

Per-file state machine (files run sequentially, each ends in success, duplicate or error):
1. init      - first file reuses the caller's placeholder, later files get a fresh one
2. validate  - empty / too large / unsupported type
3. ocr       - submit + poll the OCR service
4. extract   - cascades -> ParsedReceipt
5. dedup     - exact vendor+total+date match with a live transaction -> delete own placeholder
6. commit    - receipt processed, stale transactions replaced by one new transaction
7. enrich    - hand items + taxonomy snapshot to the background categorization queue
8. report    - FileResult appended to the batch

A failure in one file is rolled back and reported for that file only; the loop always
moves on to the next file.
"""
import time
from dataclasses import dataclass
from datetime import date
from typing import Callable, List, Optional, Sequence, Tuple

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from packages.common.errors import (
    CRITICAL_KINDS,
    DuplicateReceiptError,
    ErrorKind,
    ReceiptScanError,
)
from packages.common.metrics import OCR_ANALYSIS_SECONDS, record_file_outcome
from packages.common.receipt_repository import ReceiptRepository, receipt_repository
from packages.common.schemas.receipt_normalized import (
    BatchScanResponse,
    FileResult,
    ScanSummary,
    TaxonomyEntry,
)
from packages.domain.categorization.schemas import CategorizationRequest
from packages.domain.ingestion.duplicate_detector import DuplicateDetector
from packages.domain.ingestion.validation import validate_upload
from packages.parsers.extraction import ExtractionEngine
from packages.parsers.ocr.base import OcrProvider

logger = structlog.get_logger()

CategorizationDispatch = Callable[[CategorizationRequest], None]


@dataclass
class UploadedFile:
    """One file part of the multipart request, already read into memory"""
    filename: str
    content_type: Optional[str]
    data: bytes


def batch_status_code(results: Sequence[FileResult], failure_kinds: Sequence[ErrorKind]) -> int:
    """
    200 when any file succeeded or every failure was non-critical;
    400 only when all files failed and at least one failure was critical.
    """
    if any(result.success for result in results):
        return 200
    if any(kind in CRITICAL_KINDS for kind in failure_kinds):
        return 400
    return 200


class ReceiptIngestionOrchestrator:
    """
    Usage:
        orchestrator = ReceiptIngestionOrchestrator(
            ocr_provider=get_ocr_provider(),
            extraction_engine=ExtractionEngine(VendorVerifier(generator)),
            dispatch=queue_receipt_categorization,
        )
        response, status_code = await orchestrator.process_batch(receipt_id, owner_id, files, db)
    """

    def __init__(
        self,
        ocr_provider: OcrProvider,
        extraction_engine: ExtractionEngine,
        repository: ReceiptRepository = receipt_repository,
        detector: Optional[DuplicateDetector] = None,
        dispatch: Optional[CategorizationDispatch] = None,
        max_upload_bytes: int = 10 * 1024 * 1024,
    ):
        self.ocr_provider = ocr_provider
        self.extraction_engine = extraction_engine
        self.repository = repository
        self.detector = detector or DuplicateDetector(repository)
        self.dispatch = dispatch
        self.max_upload_bytes = max_upload_bytes

    async def process_batch(
        self,
        receipt_id: str,
        owner_id: str,
        files: Sequence[UploadedFile],
        db: AsyncSession,
    ) -> Tuple[BatchScanResponse, int]:
        """
        Process every file and build the batch response.

        Exceptions raised here (outside the per-file loop) are unexpected; the caller
        turns them into a 500 and marks receipt_id failed.
        """
        logger.info("batch_scan_started",
                    receipt_id=receipt_id,
                    owner_id=owner_id,
                    files=len(files))

        # Taxonomy snapshot shared by every file in the batch
        taxonomy = await self.repository.load_taxonomy(owner_id, db)

        results: List[FileResult] = []
        failure_kinds: List[ErrorKind] = []

        for index, upload in enumerate(files):
            result, kind = await self._process_file(
                index, upload, receipt_id, owner_id, taxonomy, db
            )
            results.append(result)
            if kind is not None:
                failure_kinds.append(kind)
            record_file_outcome("success" if result.success else kind.value)

        succeeded = sum(1 for r in results if r.success)
        response = BatchScanResponse(
            success=succeeded > 0,
            files_processed=len(results),
            files_succeeded=succeeded,
            files_failed=len(results) - succeeded,
            results=results,
            receipt_id=receipt_id,
        )
        status_code = batch_status_code(results, failure_kinds)

        logger.info("batch_scan_finished",
                    receipt_id=receipt_id,
                    succeeded=succeeded,
                    failed=response.files_failed,
                    status_code=status_code)
        return response, status_code

    async def _process_file(
        self,
        index: int,
        upload: UploadedFile,
        receipt_id: str,
        owner_id: str,
        taxonomy: List[TaxonomyEntry],
        db: AsyncSession,
    ) -> Tuple[FileResult, Optional[ErrorKind]]:
        target_id: Optional[str] = None
        log = logger.bind(file=upload.filename, owner_id=owner_id)

        try:
            if index == 0:
                placeholder = await self.repository.ensure_placeholder(receipt_id, owner_id, db)
            else:
                placeholder = await self.repository.create_placeholder(owner_id, db)
            target_id = placeholder.id
            log = log.bind(receipt_id=target_id)

            summary = await self._scan(target_id, owner_id, upload, taxonomy, db, log)

        except DuplicateReceiptError as e:
            await db.rollback()
            log.info("receipt_duplicate_detected", existing_receipt_id=e.existing_receipt_id)
            await self._discard_placeholder(target_id, db, log)
            return FileResult(
                file=upload.filename,
                success=False,
                error=e.kind.value,
                message=e.message,
            ), e.kind

        except ReceiptScanError as e:
            await db.rollback()
            log.warning("receipt_file_failed", kind=e.kind.value, message=e.message)
            await self._fail_placeholder(target_id, e.message, db, log)
            return FileResult(
                file=upload.filename,
                success=False,
                receipt_id=target_id,
                error=e.kind.value,
                message=e.message,
            ), e.kind

        except Exception as e:
            await db.rollback()
            log.error("receipt_file_crashed", error=str(e), exc_info=True)
            await self._fail_placeholder(target_id, str(e), db, log)
            return FileResult(
                file=upload.filename,
                success=False,
                receipt_id=target_id,
                error=ErrorKind.UNKNOWN.value,
                message=str(e),
            ), ErrorKind.UNKNOWN

        return FileResult(
            file=upload.filename,
            success=True,
            receipt_id=target_id,
            data=summary,
        ), None

    async def _scan(
        self,
        target_id: str,
        owner_id: str,
        upload: UploadedFile,
        taxonomy: List[TaxonomyEntry],
        db: AsyncSession,
        log,
    ) -> ScanSummary:
        media_type = validate_upload(
            upload.filename, upload.content_type, upload.data, self.max_upload_bytes
        )

        started = time.monotonic()
        try:
            analysis = await self.ocr_provider.analyze(upload.data, media_type)
        finally:
            OCR_ANALYSIS_SECONDS.observe(time.monotonic() - started)

        parsed = await self.extraction_engine.extract(analysis)
        vendor = parsed.vendor_or_default
        total = parsed.total_or_zero

        if parsed.date is not None and parsed.total is not None:
            existing_id = await self.detector.find_duplicate(
                owner_id, vendor, parsed.total, parsed.date, db, exclude_id=target_id
            )
            if existing_id:
                raise DuplicateReceiptError(existing_id)

        notes_version = await self.repository.mark_processed(
            target_id, vendor, parsed.date, total, parsed.currency, parsed.items, db
        )
        await self.repository.replace_transaction(
            target_id, owner_id, vendor, total, parsed.date or date.today(), db
        )
        log.info("receipt_committed", vendor=vendor, total=float(total), items=len(parsed.items))

        if parsed.items and notes_version is not None:
            self._dispatch_categorization(
                CategorizationRequest(
                    receipt_id=target_id,
                    owner_id=owner_id,
                    notes_version=notes_version,
                    items=parsed.items,
                    taxonomy=taxonomy,
                ),
                log,
            )

        return ScanSummary(
            vendor=vendor,
            total=total,
            date=parsed.date,
            time=parsed.time,
            currency=parsed.currency,
            items=parsed.items,
        )

    def _dispatch_categorization(self, request: CategorizationRequest, log) -> None:
        if self.dispatch is None:
            log.info("categorization_dispatch_disabled")
            return
        try:
            self.dispatch(request)
        except Exception as e:
            log.error("categorization_dispatch_failed", error=str(e), exc_info=True)

    async def _discard_placeholder(self, target_id: Optional[str], db: AsyncSession, log) -> None:
        if target_id is None:
            return
        try:
            await self.repository.delete_receipt(target_id, db)
        except Exception as e:
            await db.rollback()
            log.error("placeholder_delete_failed", error=str(e), exc_info=True)

    async def _fail_placeholder(
        self,
        target_id: Optional[str],
        message: str,
        db: AsyncSession,
        log,
    ) -> None:
        if target_id is None:
            return
        try:
            await self.repository.mark_failed(target_id, message, db)
        except Exception as e:
            await db.rollback()
            log.error("placeholder_mark_failed_failed", error=str(e), exc_info=True)

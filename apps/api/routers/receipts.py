"""
Receipts API Router
Batch receipt scanning: OCR, extraction, duplicate check, commit, background categorization
"""
from typing import List, Optional

import structlog
from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from apps.api.middleware.owner_session import get_session_owner
from apps.api.tasks import queue_receipt_categorization
from packages.common.config import Settings, get_settings
from packages.common.database import get_db_session
from packages.common.llm import get_text_generator
from packages.common.receipt_repository import receipt_repository
from packages.common.schemas.receipt_normalized import BatchScanResponse
from packages.domain.ingestion import ReceiptIngestionOrchestrator, UploadedFile
from packages.parsers.extraction import ExtractionEngine
from packages.parsers.ocr import get_ocr_provider
from packages.parsers.vendor_verifier import VendorVerifier

logger = structlog.get_logger()
router = APIRouter()


def get_orchestrator(settings: Settings = Depends(get_settings)) -> ReceiptIngestionOrchestrator:
    """Wire the ingestion pipeline from process-wide clients"""
    return ReceiptIngestionOrchestrator(
        ocr_provider=get_ocr_provider(),
        extraction_engine=ExtractionEngine(
            VendorVerifier(get_text_generator()),
            default_currency=settings.default_currency,
        ),
        repository=receipt_repository,
        dispatch=queue_receipt_categorization,
        max_upload_bytes=settings.max_upload_bytes,
    )


@router.post("/scan", response_model=BatchScanResponse)
async def scan_receipts(
    request: Request,
    receiptId: Optional[str] = Form(default=None),
    userId: Optional[str] = Form(default=None),
    files: Optional[List[UploadFile]] = File(default=None),
    db: AsyncSession = Depends(get_db_session),
    orchestrator: ReceiptIngestionOrchestrator = Depends(get_orchestrator),
    settings: Settings = Depends(get_settings),
):
    """
    Scan one or more receipt files

    - **receiptId**: pre-created placeholder receipt, used for the first file
    - **userId**: owner id (must match the authenticated session)
    - **files**: JPEG, PNG, WebP or PDF, up to 10 MiB each

    Returns a per-file breakdown. 200 when any file succeeded or all failures were
    non-critical, 400 when every file failed and one of them failed validation.
    """
    session_owner = get_session_owner(request)
    if not settings.skip_auth_validation and not session_owner:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    if not receiptId or not userId:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing receiptId or userId")

    if not settings.skip_auth_validation and session_owner != userId:
        logger.warning("scan_owner_mismatch", session_owner=session_owner, user_id=userId)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    if not files:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No files provided")

    existing = await receipt_repository.get_receipt(receiptId, db)
    if existing is not None and existing.owner_id != userId:
        logger.warning("scan_receipt_owner_mismatch", receipt_id=receiptId, user_id=userId)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Receipt belongs to another user")

    uploads = [
        UploadedFile(
            filename=upload.filename or f"file-{index + 1}",
            content_type=upload.content_type,
            data=await upload.read(),
        )
        for index, upload in enumerate(files)
    ]

    logger.info("receipt_scan_requested",
                receipt_id=receiptId,
                user_id=userId,
                files=[u.filename for u in uploads])

    try:
        response, status_code = await orchestrator.process_batch(receiptId, userId, uploads, db)
    except Exception as e:
        logger.error("receipt_scan_failed", receipt_id=receiptId, error=str(e), exc_info=True)
        await db.rollback()
        try:
            await receipt_repository.mark_failed(receiptId, f"Scan failed: {e}", db)
        except Exception as mark_error:
            logger.error("receipt_mark_failed_failed", receipt_id=receiptId, error=str(mark_error))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": str(e), "receipt_id": receiptId},
        )

    return JSONResponse(status_code=status_code, content=response.model_dump(mode="json"))

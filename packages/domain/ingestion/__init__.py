"""
Ingestion Module - batch receipt scanning

validate -> OCR -> extract -> dedup -> commit -> background categorization, one file at
a time, each file reported independently.
"""

from packages.domain.ingestion.duplicate_detector import DuplicateDetector
from packages.domain.ingestion.orchestrator import (
    ReceiptIngestionOrchestrator,
    UploadedFile,
    batch_status_code,
)
from packages.domain.ingestion.validation import resolve_media_type, validate_upload

__all__ = [
    'DuplicateDetector',
    'ReceiptIngestionOrchestrator',
    'UploadedFile',
    'batch_status_code',
    'resolve_media_type',
    'validate_upload',
]

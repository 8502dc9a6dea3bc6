"""
Error taxonomy for receipt scanning

Every failure inside one file's processing is reported with a machine-readable kind.
Critical kinds are pre-flight / malformed-input failures: they make the whole batch
report 400 when no file in it succeeded.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Per-file failure kinds"""
    EMPTY_FILE = "empty_file"
    FILE_TOO_LARGE = "file_too_large"
    INVALID_TYPE = "invalid_type"
    AZURE_INVALID_FORMAT = "azure_invalid_format"
    OCR_TIMEOUT = "ocr_timeout"
    MISSING_JOB_REFERENCE = "missing_job_reference"
    DUPLICATE = "duplicate"
    UNKNOWN = "unknown"


CRITICAL_KINDS = frozenset({
    ErrorKind.EMPTY_FILE,
    ErrorKind.FILE_TOO_LARGE,
    ErrorKind.INVALID_TYPE,
    ErrorKind.AZURE_INVALID_FORMAT,
})


class ReceiptScanError(Exception):
    """Base error for a single file's scan"""

    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(self, message: str, kind: Optional[ErrorKind] = None):
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind

    @property
    def critical(self) -> bool:
        return self.kind in CRITICAL_KINDS


class FileValidationError(ReceiptScanError):
    """Rejected before anything was sent to the OCR service"""


class OcrError(ReceiptScanError):
    """OCR protocol failure; carries the vendor error payload when there is one"""

    def __init__(
        self,
        message: str,
        kind: Optional[ErrorKind] = None,
        status_code: Optional[int] = None,
        payload: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, kind)
        self.status_code = status_code
        self.payload = payload


class DuplicateReceiptError(ReceiptScanError):
    """The file is a resubmission of a receipt that still has a transaction"""

    kind = ErrorKind.DUPLICATE

    def __init__(self, existing_receipt_id: str):
        super().__init__(f"Receipt already processed as {existing_receipt_id}")
        self.existing_receipt_id = existing_receipt_id

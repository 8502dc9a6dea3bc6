"""
Receipt normalized schema (Pydantic models)
Canonical shapes shared by extraction, persistence and the scan API
"""
import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer

UNKNOWN_VENDOR = "Unknown Store"
# receipts.vendor / transactions.vendor column width
VENDOR_MAX_LENGTH = 255


class ReceiptStatus(str, Enum):
    """Receipt processing status"""
    PENDING = "pending"
    PROCESSED = "processed"
    FAILED = "failed"


class LineItem(BaseModel):
    """
    Single product/service entry on a receipt.

    price is the vendor-reported line total, never unit price x quantity.
    """
    name: str
    quantity: Optional[Decimal] = Field(None, description="Quantity purchased (display default 1)")
    price: Optional[Decimal] = Field(None, description="Line total as reported by the OCR service")
    category_id: Optional[str] = Field(None, description="Filled by background categorization")

    @field_serializer("quantity", "price", when_used="json")
    def _as_number(self, value: Optional[Decimal]):
        return float(value) if value is not None else None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "name": "Mleko 2% 1L",
                "quantity": 2,
                "price": 7.98,
                "category_id": None,
            }
        }
    )


class ReceiptNotes(BaseModel):
    """JSON payload stored in receipts.notes"""
    items: List[LineItem] = Field(default_factory=list)


class TaxonomyEntry(BaseModel):
    """One category from the taxonomy snapshot"""
    id: str
    name: str


class ParsedReceipt(BaseModel):
    """Canonical extraction result for one document"""
    vendor: Optional[str] = None
    total: Optional[Decimal] = None
    date: Optional[datetime.date] = None
    time: Optional[str] = None
    currency: str
    items: List[LineItem] = Field(default_factory=list)
    ocr_text: str = ""

    @property
    def vendor_or_default(self) -> str:
        return self.vendor or UNKNOWN_VENDOR

    @property
    def total_or_zero(self) -> Decimal:
        return self.total if self.total is not None else Decimal("0")

    @field_serializer("total", when_used="json")
    def _total_as_number(self, value: Optional[Decimal]):
        return float(value) if value is not None else None


class ScanSummary(BaseModel):
    """Extracted fields echoed back per successful file"""
    vendor: str
    total: Decimal
    date: Optional[datetime.date] = None
    time: Optional[str] = None
    currency: str
    items: List[LineItem] = Field(default_factory=list)

    @field_serializer("total", when_used="json")
    def _total_as_number(self, value: Decimal):
        return float(value)


class FileResult(BaseModel):
    """Outcome of one uploaded file"""
    file: str
    success: bool
    receipt_id: Optional[str] = None
    error: Optional[str] = None
    message: Optional[str] = None
    data: Optional[ScanSummary] = None


class BatchScanResponse(BaseModel):
    """Response of the batch scan endpoint"""
    success: bool
    files_processed: int
    files_succeeded: int
    files_failed: int
    results: List[FileResult] = Field(default_factory=list)
    receipt_id: str

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "success": True,
                "files_processed": 2,
                "files_succeeded": 1,
                "files_failed": 1,
                "results": [
                    {
                        "file": "lidl.jpg",
                        "success": True,
                        "receipt_id": "0b6c7c1e-4d44-4b0e-9a53-7f3f3b1f8f0e",
                        "data": {"vendor": "Lidl", "total": 23.45, "date": "2024-03-01",
                                 "currency": "PLN", "items": []},
                    },
                    {
                        "file": "empty.png",
                        "success": False,
                        "error": "empty_file",
                        "message": "File is empty",
                    },
                ],
                "receipt_id": "0b6c7c1e-4d44-4b0e-9a53-7f3f3b1f8f0e",
            }
        }
    )

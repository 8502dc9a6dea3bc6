"""
Data schemas for categorization module
"""
from enum import Enum
from typing import List

from pydantic import BaseModel, ConfigDict, Field

from packages.common.schemas.receipt_normalized import LineItem, TaxonomyEntry


class WriteBackStatus(str, Enum):
    """Outcome of patching categorized items into the stored receipt"""
    WRITTEN = "written"
    RECEIPT_GONE = "receipt_gone"
    STALE = "stale"


class CategorizationRequest(BaseModel):
    """
    Payload of the background categorization task.

    Built by the scan orchestrator after a file commits; the taxonomy is the snapshot
    taken once per batch, not re-read by the worker. notes_version is the receipt version
    the items were committed at; the write-back is refused once the receipt moves past it.
    """
    receipt_id: str
    owner_id: str
    notes_version: int = Field(..., ge=1)
    items: List[LineItem] = Field(default_factory=list)
    taxonomy: List[TaxonomyEntry] = Field(default_factory=list)


class CategorizationResult(BaseModel):
    """Result of one categorization job"""
    receipt_id: str
    items: List[LineItem]
    assigned: int = Field(..., ge=0, description="Items that received a category id")
    write_back: WriteBackStatus

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "receipt_id": "0b6c7c1e-4d44-4b0e-9a53-7f3f3b1f8f0e",
                "items": [{"name": "Mleko 2% 1L", "quantity": 1, "price": 3.99, "category_id": "2"}],
                "assigned": 1,
                "write_back": "written",
            }
        }
    )

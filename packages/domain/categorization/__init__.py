"""
Categorization Module - background line-item categorization

One batched LLM call per receipt assigns a taxonomy id (or null) to every item, then
the result is patched into receipts.notes only while the receipt is still at the
version the items were committed at, so a late job never overwrites newer state.

Example flow:
- ["Mleko 2% 1L", "Bilet ZTM"] + taxonomy snapshot -> LLM -> ["<groceries id>", "<transport id>"]
- notes.items[i].category_id updated, receipts.version bumped
"""

from packages.domain.categorization.categorization_service import (
    CategorizationService,
    build_categorization_service,
)
from packages.domain.categorization.item_categorizer import ItemCategorizer
from packages.domain.categorization.schemas import (
    CategorizationRequest,
    CategorizationResult,
    WriteBackStatus,
)

__all__ = [
    'CategorizationService',
    'build_categorization_service',
    'ItemCategorizer',
    'CategorizationRequest',
    'CategorizationResult',
    'WriteBackStatus',
]

"""
Item Categorizer - one batched text-generation call per receipt

Sends every line item and the whole taxonomy snapshot in a single prompt and expects
back one JSON array of category ids (or null), positionally aligned with the items.

Parsing never raises:
1. strip ```json fences
2. json.loads; on failure pull the first [...] literal out of the text and retry
3. anything still unparseable -> every item gets null
Returned ids are checked against the snapshot; unknown ids become null. The array is
padded with nulls or truncated to the item count.
"""
import json
import re
from typing import Any, List, Optional, Sequence

import structlog

from packages.common.llm import TextGenerator
from packages.common.schemas.receipt_normalized import LineItem, TaxonomyEntry

logger = structlog.get_logger()

_ARRAY_LITERAL_RE = re.compile(r"\[[\s\S]*?\]")


def strip_code_fence(text: str) -> str:
    if "```json" in text:
        return text.split("```json", 1)[1].split("```", 1)[0].strip()
    if "```" in text:
        return text.split("```", 1)[1].split("```", 1)[0].strip()
    return text.strip()


def parse_id_array(text: Optional[str]) -> Optional[List[Any]]:
    """Best-effort extraction of a JSON array from a model response"""
    if not text:
        return None
    body = strip_code_fence(text)

    try:
        data = json.loads(body)
        if isinstance(data, list):
            return data
    except ValueError:
        pass

    for candidate in _ARRAY_LITERAL_RE.findall(body):
        try:
            data = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(data, list):
            return data

    return None


def reconcile_ids(
    raw_ids: Optional[Sequence[Any]],
    item_count: int,
    taxonomy: Sequence[TaxonomyEntry],
) -> List[Optional[str]]:
    """Validate ids against the taxonomy and align the list with the items"""
    valid_ids = {entry.id for entry in taxonomy}
    aligned: List[Optional[str]] = []

    for value in list(raw_ids or [])[:item_count]:
        if isinstance(value, bool) or value is None:
            aligned.append(None)
            continue
        candidate = str(value).strip() if isinstance(value, (str, int)) else None
        aligned.append(candidate if candidate in valid_ids else None)

    aligned.extend([None] * (item_count - len(aligned)))
    return aligned


class ItemCategorizer:
    """
    Assign taxonomy ids to receipt line items.

    Usage:
        categorizer = ItemCategorizer(get_text_generator())
        ids = await categorizer.categorize(items, taxonomy)
    """

    def __init__(self, generator: Optional[TextGenerator]):
        self.generator = generator

    async def categorize(
        self,
        items: Sequence[LineItem],
        taxonomy: Sequence[TaxonomyEntry],
    ) -> List[Optional[str]]:
        """Return one category id (or None) per item, in item order"""
        if not items or not taxonomy or self.generator is None:
            logger.info("categorization_skipped",
                        items=len(items),
                        taxonomy=len(taxonomy),
                        generator_available=self.generator is not None)
            return [None] * len(items)

        prompt = self._build_prompt(items, taxonomy)

        try:
            response = await self.generator.generate(prompt, max_tokens=1024)
        except Exception as e:
            logger.error("categorization_llm_failed", error=str(e), exc_info=True)
            return [None] * len(items)

        raw_ids = parse_id_array(response)
        if raw_ids is None:
            logger.warning("categorization_response_unparseable", response=response[:500])
            return [None] * len(items)

        if len(raw_ids) != len(items):
            logger.warning("categorization_length_mismatch",
                           expected=len(items),
                           received=len(raw_ids))

        ids = reconcile_ids(raw_ids, len(items), taxonomy)
        logger.info("categorization_complete",
                    items=len(items),
                    assigned=sum(1 for i in ids if i is not None))
        return ids

    def _build_prompt(self, items: Sequence[LineItem], taxonomy: Sequence[TaxonomyEntry]) -> str:
        item_lines = "\n".join(f"{index}. {item.name}" for index, item in enumerate(items, start=1))
        category_lines = "\n".join(f'- {entry.name} (id: "{entry.id}")' for entry in taxonomy)

        return f"""You categorize shopping receipt line items into a household budget taxonomy.

CATEGORIES:
{category_lines}

ITEMS:
{item_lines}

INSTRUCTIONS:
- Pick the single best category for every item
- Use null when no category fits
- Answer with ONLY a JSON array of {len(items)} elements, in item order, each an id string from the list above or null

Example for 3 items: ["<id>", null, "<id>"]
"""

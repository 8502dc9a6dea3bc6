"""
Background categorization task

Queued by the scan API (by name) after a receipt commits. Runs the batched LLM
categorization and patches receipts.notes at the version the items were committed at.

Retries with exponential backoff on infrastructure errors (database, broker). A stale
write-back is a normal result, not an error, and is never retried. Text-generation
failures never reach this level: they degrade to null categories inside the categorizer.
"""
import asyncio
from typing import Any, Dict

import structlog
from celery import Task

from packages.common.config import get_settings
from packages.common.database import sessionmanager
from packages.common.llm import AnthropicTextGenerator
from packages.domain.categorization.categorization_service import build_categorization_service
from packages.domain.categorization.schemas import CategorizationRequest
from services.worker.celery_app import app

logger = structlog.get_logger()


class CategorizationTask(Task):
    """Base task for categorization with retry logic"""
    autoretry_for = (Exception,)
    retry_kwargs = {"max_retries": 3}
    retry_backoff = True


async def run_categorization(request: CategorizationRequest) -> Dict[str, Any]:
    """Categorize one receipt's items and write them back; returns the result as a dict"""
    settings = get_settings()
    if not sessionmanager.initialized:
        sessionmanager.init(settings.database_url)

    # A fresh client per run: its connections belong to this task's event loop
    generator = (
        AnthropicTextGenerator(settings.anthropic_api_key, settings.llm_model)
        if settings.anthropic_api_key else None
    )
    service = build_categorization_service(generator=generator)

    async with sessionmanager.session() as db:
        result = await service.categorize_receipt(
            request.receipt_id, request.items, request.taxonomy, request.notes_version, db
        )
    return result.model_dump(mode="json")


@app.task(base=CategorizationTask, name="services.worker.tasks.categorize_receipt.categorize_receipt_task")
def categorize_receipt_task(payload: Dict[str, Any]) -> Dict[str, Any]:
    """
    Args:
        payload: CategorizationRequest as JSON (receipt_id, owner_id, notes_version, items, taxonomy)
    """
    request = CategorizationRequest.model_validate(payload)
    logger.info("categorization_task_started",
                receipt_id=request.receipt_id,
                owner_id=request.owner_id,
                items=len(request.items))

    try:
        return asyncio.run(run_categorization(request))
    except Exception as e:
        logger.error("categorization_task_failed",
                     receipt_id=request.receipt_id,
                     error=str(e),
                     exc_info=True)
        raise

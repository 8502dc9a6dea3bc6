"""Task queue wrappers - API sends task names, never imports worker code."""
import structlog
from celery import Celery

from packages.common.config import get_settings
from packages.domain.categorization.schemas import CategorizationRequest

logger = structlog.get_logger()
settings = get_settings()

celery_app = Celery('receipt_scan')
celery_app.conf.broker_url = settings.celery_broker_url
celery_app.conf.result_backend = settings.celery_result_backend


def queue_receipt_categorization(request: CategorizationRequest) -> str:
    """Queue background categorization of a committed receipt's items."""
    task = celery_app.send_task(
        'services.worker.tasks.categorize_receipt.categorize_receipt_task',
        args=[request.model_dump(mode="json")],
    )
    logger.info("categorization_queued",
                receipt_id=request.receipt_id,
                task_id=task.id,
                items=len(request.items))
    return task.id

"""
Celery worker for receipt background jobs

Queues:
    categorization  LLM item categorization queued by the scan API
    maintenance     periodic stale-placeholder sweep (beat)
"""
from celery import Celery
from celery.schedules import crontab
from celery.signals import worker_process_init
from sqlalchemy.pool import NullPool
import structlog

from packages.common.config import get_settings
from packages.common.database import sessionmanager
from packages.common.log_config import configure_logging

settings = get_settings()
configure_logging(settings.log_level)
logger = structlog.get_logger()

CATEGORIZATION_QUEUE = "categorization"
MAINTENANCE_QUEUE = "maintenance"

app = Celery(
    "receipt_scan_worker",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="Europe/Warsaw",
    enable_utc=True,

    # A categorization is one LLM call plus a few short queries
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_soft_time_limit=90,
    task_time_limit=120,

    result_expires=24 * 3600,
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=200,

    task_routes={
        "services.worker.tasks.categorize_receipt.*": {"queue": CATEGORIZATION_QUEUE},
        "services.worker.tasks.sweep_placeholders.*": {"queue": MAINTENANCE_QUEUE},
    },
    beat_schedule={
        "fail-stale-placeholders": {
            "task": "services.worker.tasks.sweep_placeholders.fail_stale_placeholders_task",
            "schedule": crontab(minute="*/15"),
            "options": {"queue": MAINTENANCE_QUEUE},
        },
    },
)

from services.worker.tasks import categorize_receipt, sweep_placeholders  # noqa: E402,F401


@worker_process_init.connect
def init_worker(**kwargs):
    # Every task runs its own event loop, so no connection may outlive a task
    sessionmanager.init(settings.database_url, poolclass=NullPool)
    logger.info("worker_process_ready", queues=[CATEGORIZATION_QUEUE, MAINTENANCE_QUEUE])


if __name__ == "__main__":
    app.start()

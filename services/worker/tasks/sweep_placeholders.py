"""
Stale placeholder sweep (Celery beat, every 15 minutes)

A scan killed mid-file leaves its placeholder receipt pending forever. Placeholders still
pending after PLACEHOLDER_STALE_AFTER_MINUTES are marked failed so they show up as such;
they are never deleted.
"""
import asyncio
from datetime import timedelta

import structlog

from packages.common.config import get_settings
from packages.common.database import sessionmanager
from packages.common.receipt_repository import receipt_repository
from services.worker.celery_app import app

logger = structlog.get_logger()


async def sweep_stale_placeholders(older_than: timedelta) -> int:
    if not sessionmanager.initialized:
        sessionmanager.init(get_settings().database_url)

    async with sessionmanager.session() as db:
        return await receipt_repository.fail_stale_placeholders(older_than, db)


@app.task(name="services.worker.tasks.sweep_placeholders.fail_stale_placeholders_task")
def fail_stale_placeholders_task() -> int:
    """Returns the number of placeholders marked failed"""
    threshold = timedelta(minutes=get_settings().placeholder_stale_after_minutes)
    count = asyncio.run(sweep_stale_placeholders(threshold))
    logger.info("placeholder_sweep_complete", failed=count)
    return count

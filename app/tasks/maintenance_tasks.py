"""Celery tasks for job housekeeping."""

import logging
from datetime import datetime, timedelta, timezone

from app.tasks.celery_app import celery_app
from app.tasks.processing_tasks import _make_session_factory, _run_async

logger = logging.getLogger(__name__)


async def _fail_stale_jobs_async(older_than_minutes: int) -> int:
    from app.services.job_store import fail_stale_jobs

    session_factory, engine = _make_session_factory()
    try:
        cutoff = datetime.now(timezone.utc) - timedelta(minutes=older_than_minutes)
        async with session_factory() as db:
            count = await fail_stale_jobs(db, cutoff)
            await db.commit()
        return count
    finally:
        await engine.dispose()


@celery_app.task(name="fail_stale_jobs")
def fail_stale_jobs_task():
    """Fail pending/processing jobs that stopped reporting progress.

    A runner that dies mid-job (API restart with the inline runner, lost
    worker) leaves its job active forever and blocks new jobs for the brand.
    """
    from app.core.config import settings

    count = _run_async(_fail_stale_jobs_async(settings.stale_job_timeout_minutes))
    if count:
        logger.warning("Marked %d stale jobs as failed", count)
    return {"status": "ok", "failed": count}

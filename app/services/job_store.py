"""Job store: processing_jobs records and their status transitions."""

import logging
import secrets
import time
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.processing_job import (
    ACTIVE_STATUSES,
    JOB_FAILED,
    JOB_PENDING,
    JOB_PROCESSING,
    TERMINAL_STATUSES,
    ProcessingJob,
)

logger = logging.getLogger(__name__)

_ID_ALPHABET = "abcdefghijklmnopqrstuvwxyz0123456789"


def _random_suffix(length: int = 9) -> str:
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(length))


def new_job_id() -> str:
    """``job_<epoch ms>_<9 random chars>``."""
    return f"job_{int(time.time() * 1000)}_{_random_suffix()}"


def new_session_id() -> str:
    """``bg_<epoch ms>_<9 random chars>``; one per job run."""
    return f"bg_{int(time.time() * 1000)}_{_random_suffix()}"


async def create_job(db: AsyncSession, job: ProcessingJob) -> ProcessingJob:
    db.add(job)
    await db.flush()
    return job


async def update_job(db: AsyncSession, job_id: str, **fields) -> bool:
    """Apply a partial update unless the job is already terminal.

    Returns False when the job is missing or completed/failed; terminal
    rows never change again.
    """
    fields["last_updated"] = datetime.now(timezone.utc)
    result = await db.execute(
        update(ProcessingJob)
        .where(ProcessingJob.id == job_id, ProcessingJob.status.not_in(TERMINAL_STATUSES))
        .values(**fields)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        logger.debug("Ignored update for terminal or missing job %s: %s", job_id, sorted(fields))
        return False
    return True


async def mark_processing(db: AsyncSession, job_id: str, **fields) -> bool:
    """Claim a pending job for a runner.

    Only a ``pending`` row moves to ``processing``, so a job is started at
    most once; a redelivered or duplicate run gets False and must not touch
    the job.
    """
    now = datetime.now(timezone.utc)
    result = await db.execute(
        update(ProcessingJob)
        .where(ProcessingJob.id == job_id, ProcessingJob.status == JOB_PENDING)
        .values(status=JOB_PROCESSING, last_updated=now, **fields)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount > 0


async def fail_stale_jobs(db: AsyncSession, cutoff: datetime) -> int:
    """Fail active jobs with no progress since ``cutoff``. Returns the count."""
    now = datetime.now(timezone.utc)
    result = await db.execute(
        update(ProcessingJob)
        .where(ProcessingJob.status.in_(ACTIVE_STATUSES), ProcessingJob.last_updated < cutoff)
        .values(status=JOB_FAILED, error="Job stopped reporting progress", failed_at=now, last_updated=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


async def get_job(db: AsyncSession, job_id: str) -> ProcessingJob | None:
    return await db.get(ProcessingJob, job_id, populate_existing=True)


async def get_active_job_for_brand(db: AsyncSession, brand_id: str) -> ProcessingJob | None:
    stmt = select(ProcessingJob).where(
        ProcessingJob.brand_id == brand_id,
        ProcessingJob.status.in_(ACTIVE_STATUSES),
    )
    result = await db.execute(stmt)
    return result.scalars().first()


async def get_latest_job_for_brand(db: AsyncSession, user_id: str, brand_id: str) -> ProcessingJob | None:
    stmt = (
        select(ProcessingJob)
        .where(ProcessingJob.user_id == user_id, ProcessingJob.brand_id == brand_id)
        .order_by(ProcessingJob.created_at.desc())
        .limit(1)
    )
    result = await db.execute(stmt)
    return result.scalars().first()

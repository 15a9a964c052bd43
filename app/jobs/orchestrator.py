"""Job Orchestrator: starts jobs and drives them through their lifecycle.

State machine: pending → processing → completed | failed.

  - start_job: validate, reserve credits, create the job record, hand the
    payload to a runner (all before the caller gets a job id)
  - JobOrchestrator.run: process queries one at a time in submission
    order, publish progress, persist results and analytics, then mark
    the job terminal

A failed query is logged and skipped. Only orchestration-level faults
(results or brand analytics cannot be saved) fail the job.
Only a pending job is started, and a run stops as soon as the job stops
accepting progress (failed by the stale sweeper, or claimed by another
delivery of the same task).
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.analysis.aggregator import calculate_cumulative_analytics, calculate_cumulative_competitor_analytics
from app.core.config import settings
from app.core.exceptions import BadRequestError, ConflictError, ForbiddenError, InsufficientCreditsError, NotFoundError
from app.core.metrics import CREDITS_DEDUCTED, PROCESSING_JOBS
from app.jobs.dispatcher import QueryDispatcher
from app.jobs.types import BrandSnapshot, JobPayload, ProcessingResult, QueryItem
from app.models.processing_job import JOB_COMPLETED, JOB_FAILED, JOB_PENDING, ProcessingJob
from app.models.user import User
from app.services import analytics_service, brand_service, credit_service, detailed_results, job_store

if TYPE_CHECKING:
    from app.jobs.runner import JobRunner

logger = logging.getLogger(__name__)


class JobNoLongerActive(Exception):
    """The job record went terminal under a running orchestrator."""


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Boundary operations
# ---------------------------------------------------------------------------


async def start_job(
    db: AsyncSession,
    user: User,
    brand_id: str,
    queries: list[QueryItem],
    runner: JobRunner,
    brand_snapshot: BrandSnapshot | None = None,
) -> ProcessingJob:
    """Reserve credits, create the job and submit it for execution.

    Rejections (bad input, unknown brand, busy brand, insufficient
    credits) happen before any credit or job row is touched.
    """
    queries = [q for q in queries if q.query.strip()]
    if not queries:
        raise BadRequestError("At least one query is required")

    brand = await brand_service.get_owned_brand(db, brand_id, user.id)
    if await job_store.get_active_job_for_brand(db, brand_id) is not None:
        raise ConflictError("A processing job is already running for this brand")

    required = len(queries) * settings.credits_per_query
    if user.credits < required:
        raise InsufficientCreditsError(required_credits=required, available_credits=user.credits)

    if not await credit_service.deduct_credits(db, user.id, required):
        # Balance changed since it was read
        await db.rollback()
        profile = await credit_service.get_profile(db, user.id)
        raise InsufficientCreditsError(required_credits=required, available_credits=profile.credits if profile else 0)

    job = ProcessingJob(
        id=job_store.new_job_id(),
        user_id=user.id,
        brand_id=brand_id,
        status=JOB_PENDING,
        total_queries=len(queries),
        processed_queries=0,
        credits_used=required,
    )
    try:
        await job_store.create_job(db, job)
        await db.commit()
    except IntegrityError as e:
        # Lost the race against another start for the same brand; the
        # rollback also restores the deducted credits.
        await db.rollback()
        raise ConflictError("A processing job is already running for this brand") from e

    CREDITS_DEDUCTED.inc(required)
    PROCESSING_JOBS.labels(status="started").inc()
    logger.info("Job %s created for brand %s: %d queries, %d credits", job.id, brand_id, len(queries), required)

    snapshot = brand_snapshot or BrandSnapshot(
        company_name=brand.company_name,
        domain=brand.domain,
        competitors=list(brand.competitors or []),
    )
    await runner.submit(
        JobPayload(job_id=job.id, user_id=user.id, brand_id=brand_id, brand=snapshot, queries=queries)
    )
    return job


async def get_job_status(db: AsyncSession, job_id: str, requesting_user_id: str) -> ProcessingJob:
    job = await job_store.get_job(db, job_id)
    if job is None:
        raise NotFoundError("Job not found")
    if job.user_id != requesting_user_id:
        raise ForbiddenError("Access denied")
    return job


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


class JobOrchestrator:
    """Runs one job payload to a terminal state. Never raises."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        dispatcher: QueryDispatcher,
        inter_query_delay: float | None = None,
        max_stored_results: int | None = None,
    ):
        self.session_factory = session_factory
        self.dispatcher = dispatcher
        self.inter_query_delay = settings.inter_query_delay_seconds if inter_query_delay is None else inter_query_delay
        self.max_stored_results = max_stored_results or settings.max_stored_results

    async def run(self, payload: JobPayload) -> None:
        job_id = payload.job_id
        log_extra = {"job_id": job_id}
        session_id = job_store.new_session_id()
        session_timestamp = _now().isoformat()

        try:
            started = await self._claim(
                job_id,
                started_at=_now(),
                total_queries=len(payload.queries),
                processed_queries=0,
                processing_session_id=session_id,
            )
            if not started:
                logger.warning("Job %s is missing or already started, not running", job_id, extra=log_extra)
                return

            logger.info("Job %s processing %d queries (session %s)", job_id, len(payload.queries), session_id, extra=log_extra)
            all_results = await self._process_queries(payload, session_id, session_timestamp)
            await self._persist(payload, all_results, session_id, session_timestamp)

            completed = await self._update(
                job_id,
                status=JOB_COMPLETED,
                completed_at=_now(),
                processed_queries=len(payload.queries),
                current_query=None,
                total_results=len(all_results),
            )
            if not completed:
                raise JobNoLongerActive(job_id)
            PROCESSING_JOBS.labels(status=JOB_COMPLETED).inc()
            logger.info("Job %s completed with %d results", job_id, len(all_results), extra=log_extra)
        except JobNoLongerActive:
            logger.warning("Job %s no longer accepts progress, stopping", job_id, extra=log_extra)
        except Exception as e:
            logger.exception("Job %s failed", job_id, extra=log_extra)
            await self._mark_failed(job_id, str(e) or type(e).__name__)

    async def _process_queries(
        self, payload: JobPayload, session_id: str, session_timestamp: str
    ) -> list[dict]:
        all_results: list[dict] = []

        for index, query in enumerate(payload.queries, start=1):
            await self._progress(payload.job_id, current_query=query.query)
            try:
                provider_results = await self.dispatcher.dispatch(query, payload.brand)
                result = ProcessingResult(
                    date=_now().isoformat(),
                    processing_session_id=session_id,
                    processing_session_timestamp=session_timestamp,
                    query=query.query,
                    keyword=query.keyword,
                    category=query.category,
                    results=provider_results,
                )
                all_results.append(result.to_dict())
            except Exception:
                logger.exception("Job %s: query %r failed, skipping", payload.job_id, query.query)

            await self._progress(payload.job_id, processed_queries=index, current_query=query.query)
            await asyncio.sleep(self.inter_query_delay)

        return all_results

    async def _persist(
        self, payload: JobPayload, all_results: list[dict], session_id: str, session_timestamp: str
    ) -> None:
        brand = payload.brand
        competitors = brand_service.parse_competitors(brand.competitors)

        # Required: a failure here fails the job
        async with self.session_factory() as db:
            await brand_service.merge_brand_results(
                db, payload.brand_id, all_results, session_id, self.max_stored_results
            )
            await db.commit()

        # Best-effort audit log
        try:
            async with self.session_factory() as db:
                await detailed_results.save_detailed_results(
                    db, payload.user_id, payload.brand_id, brand.company_name, all_results
                )
                await db.commit()
        except Exception:
            logger.exception("Job %s: could not save detailed results", payload.job_id)

        record = calculate_cumulative_analytics(
            payload.user_id,
            payload.brand_id,
            brand.company_name,
            brand.domain,
            session_id,
            session_timestamp,
            all_results,
            competitors,
        )
        async with self.session_factory() as db:
            await analytics_service.save_brand_analytics(db, record)
            await db.commit()

        if not competitors:
            return
        try:
            competitor_record = calculate_cumulative_competitor_analytics(
                payload.user_id,
                payload.brand_id,
                brand.company_name,
                session_id,
                session_timestamp,
                competitors,
                all_results,
            )
            async with self.session_factory() as db:
                await analytics_service.save_competitor_analytics(db, competitor_record)
                await db.commit()
        except Exception:
            logger.exception("Job %s: could not save competitor analytics", payload.job_id)

    async def _update(self, job_id: str, **fields) -> bool:
        async with self.session_factory() as db:
            applied = await job_store.update_job(db, job_id, **fields)
            await db.commit()
        return applied

    async def _claim(self, job_id: str, **fields) -> bool:
        async with self.session_factory() as db:
            claimed = await job_store.mark_processing(db, job_id, **fields)
            await db.commit()
        return claimed

    async def _progress(self, job_id: str, **fields) -> None:
        if not await self._update(job_id, **fields):
            raise JobNoLongerActive(job_id)

    async def _mark_failed(self, job_id: str, error: str) -> None:
        try:
            await self._update(job_id, status=JOB_FAILED, error=error[:2000], failed_at=_now())
            PROCESSING_JOBS.labels(status=JOB_FAILED).inc()
        except Exception:
            logger.exception("Job %s: could not record failure", job_id)

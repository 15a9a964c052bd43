"""Celery task that executes a processing job on a worker."""

import asyncio
import logging

from app.gateway.rate_limiter import AdaptiveRateLimiter
from app.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)

# One per worker process: jobs run one after another in the process and
# share its per-provider budget.
_rate_limiter = AdaptiveRateLimiter()


def _run_async(coro):
    """Run an async coroutine from sync Celery task context.

    Creates a fresh event loop each time to avoid conflicts with
    the module-level SQLAlchemy engine (which may be bound to a
    different loop created by uvicorn).
    """
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _make_session_factory():
    """Create a fresh async engine + session factory for the worker's loop.

    The module-level engine from app.db.postgres is bound to uvicorn's event loop
    and cannot be reused in a new event loop created by _run_async().
    """
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

    from app.core.config import settings

    kwargs: dict = {"echo": False, "pool_pre_ping": True}
    if settings.postgres_url.startswith("postgresql"):
        kwargs.update(pool_size=5, max_overflow=5)
    engine = create_async_engine(settings.postgres_url, **kwargs)
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False), engine


def build_worker_orchestrator(session_factory):
    from app.jobs.dispatcher import QueryDispatcher
    from app.jobs.orchestrator import JobOrchestrator

    return JobOrchestrator(session_factory, QueryDispatcher.from_settings(_rate_limiter))


async def _process_async(payload_data: dict) -> None:
    from app.jobs.types import JobPayload

    session_factory, engine = _make_session_factory()
    try:
        orchestrator = build_worker_orchestrator(session_factory)
        await orchestrator.run(JobPayload.from_dict(payload_data))
    finally:
        await engine.dispose()


@celery_app.task(name="process_brand_queries", bind=True, acks_late=True)
def process_brand_queries(self, payload_data: dict) -> dict:
    """Run one processing job. The orchestrator records its own failures."""
    job_id = payload_data.get("job_id")
    logger.info("Worker picked up job %s (task %s)", job_id, self.request.id)
    _run_async(_process_async(payload_data))
    return {"job_id": job_id}

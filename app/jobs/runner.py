"""Job Runners: where a started job actually executes.

  - InlineJobRunner: supervised asyncio tasks inside the API process
    (single-process deployments; jobs do not survive a restart)
  - CeleryJobRunner: enqueues onto the Celery broker so any worker can
    pick the job up, surviving API restarts
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Callable

from app.gateway.rate_limiter import AdaptiveRateLimiter
from app.jobs.orchestrator import JobOrchestrator
from app.jobs.types import JobPayload

logger = logging.getLogger(__name__)


class JobRunner(ABC):
    @abstractmethod
    async def submit(self, payload: JobPayload) -> None:
        """Schedule the job and return immediately."""
        ...

    async def shutdown(self, timeout: float = 30.0) -> None:
        return None


class InlineJobRunner(JobRunner):
    """Runs each job as a tracked background task on the current loop."""

    def __init__(self, orchestrator_factory: Callable[[], JobOrchestrator]):
        self._orchestrator_factory = orchestrator_factory
        self._tasks: set[asyncio.Task] = set()

    @property
    def active_count(self) -> int:
        return len(self._tasks)

    async def submit(self, payload: JobPayload) -> None:
        orchestrator = self._orchestrator_factory()
        task = asyncio.create_task(orchestrator.run(payload), name=f"job:{payload.job_id}")
        self._tasks.add(task)
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("Background task %s was cancelled", task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background task %s crashed", task.get_name(), exc_info=exc)

    async def wait_idle(self) -> None:
        """Wait for every submitted job to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self, timeout: float = 30.0) -> None:
        if not self._tasks:
            return
        logger.info("Waiting for %d running jobs to finish", len(self._tasks))
        done, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning("Cancelled %d jobs still running at shutdown", len(pending))


class CeleryJobRunner(JobRunner):
    """Hands jobs to the ``process_brand_queries`` Celery task."""

    async def submit(self, payload: JobPayload) -> None:
        from app.tasks.processing_tasks import process_brand_queries

        result = process_brand_queries.delay(payload.to_dict())
        logger.info("Job %s enqueued as Celery task %s", payload.job_id, result.id)


def build_orchestrator(rate_limiter: AdaptiveRateLimiter) -> JobOrchestrator:
    from app.db.postgres import async_session_factory
    from app.jobs.dispatcher import QueryDispatcher

    return JobOrchestrator(async_session_factory, QueryDispatcher.from_settings(rate_limiter))


def create_job_runner(kind: str) -> JobRunner:
    if kind == "celery":
        return CeleryJobRunner()
    # every inline job draws from one per-provider budget
    rate_limiter = AdaptiveRateLimiter()
    return InlineJobRunner(lambda: build_orchestrator(rate_limiter))

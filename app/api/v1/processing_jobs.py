"""Processing job endpoints: start a batch and poll its status."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.dependencies import get_current_user, get_job_runner
from app.core.rate_limit import limiter
from app.db.postgres import get_db
from app.jobs.orchestrator import get_job_status, start_job
from app.jobs.runner import JobRunner
from app.jobs.types import BrandSnapshot, QueryItem
from app.models.user import User
from app.schemas.job import JobResponse, StartJobRequest, StartJobResponse

router = APIRouter(prefix="/processing-jobs", tags=["processing-jobs"])


@router.post("", response_model=StartJobResponse, status_code=202)
@limiter.limit("5/minute")
async def create_processing_job(
    request: Request,
    body: StartJobRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    runner: JobRunner = Depends(get_job_runner),
):
    """Reserve credits and start processing queries in the background."""
    snapshot = None
    if body.brand_data is not None:
        snapshot = BrandSnapshot(
            company_name=body.brand_data.company_name,
            domain=body.brand_data.domain,
            competitors=[c if isinstance(c, str) else c.model_dump() for c in body.brand_data.competitors],
        )

    job = await start_job(
        db,
        user=user,
        brand_id=body.brand_id,
        queries=[QueryItem(query=q.query, keyword=q.keyword, category=q.category) for q in body.queries],
        runner=runner,
        brand_snapshot=snapshot,
    )
    return StartJobResponse(
        job_id=job.id,
        status=job.status,
        total_queries=job.total_queries,
        credits_used=job.credits_used,
        message=f"Processing {job.total_queries} queries in the background",
    )


@router.get("/{job_id}", response_model=JobResponse)
async def read_processing_job(
    job_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await get_job_status(db, job_id, user.id)

"""Brand endpoints: job index, query deletion and analytics."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.dependencies import get_current_user
from app.core.exceptions import NotFoundError
from app.db.postgres import get_db
from app.models.user import User
from app.schemas.brand import (
    AnalyticsResponse,
    BrandAnalyticsResponse,
    BrandQueriesResponse,
    CompetitorAnalyticsResponse,
    QueryIn,
)
from app.schemas.job import JobResponse
from app.services import analytics_service, brand_service, job_store

router = APIRouter(prefix="/brands", tags=["brands"])


@router.get("/{brand_id}/processing-job", response_model=JobResponse)
async def read_latest_brand_job(
    brand_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Most recent job the caller started for this brand."""
    await brand_service.get_owned_brand(db, brand_id, user.id)
    job = await job_store.get_latest_job_for_brand(db, user.id, brand_id)
    if job is None:
        raise NotFoundError("No processing job for this brand")
    return job


@router.delete("/{brand_id}/queries", response_model=BrandQueriesResponse)
async def delete_brand_query(
    brand_id: str,
    body: QueryIn,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Remove one query by exact (query, keyword, category) match."""
    brand = await brand_service.delete_query(db, brand_id, user.id, body.model_dump())
    return BrandQueriesResponse(
        brand_id=brand.id,
        queries=[QueryIn(**q) for q in brand.queries],
        total_queries=brand.total_queries,
    )


@router.get("/{brand_id}/analytics", response_model=AnalyticsResponse)
async def read_brand_analytics(
    brand_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await brand_service.get_owned_brand(db, brand_id, user.id)
    brand_row = await analytics_service.get_brand_analytics(db, brand_id)
    competitor_row = await analytics_service.get_competitor_analytics(db, brand_id)
    return AnalyticsResponse(
        brand=BrandAnalyticsResponse.model_validate(brand_row) if brand_row else None,
        competitors=CompetitorAnalyticsResponse.model_validate(competitor_row) if competitor_row else None,
    )

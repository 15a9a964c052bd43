from datetime import datetime

from pydantic import BaseModel, Field

from app.schemas.brand import QueryIn


class CompetitorIn(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    domain: str = Field("", max_length=255)
    aliases: list[str] = Field(default_factory=list, max_length=20)


class BrandSnapshotIn(BaseModel):
    """Brand context to process with; defaults to the stored brand."""

    company_name: str = Field(min_length=1, max_length=255)
    domain: str = Field("", max_length=255)
    competitors: list[str | CompetitorIn] = Field(default_factory=list, max_length=50)


class StartJobRequest(BaseModel):
    brand_id: str = Field(min_length=1, max_length=64)
    brand_data: BrandSnapshotIn | None = None
    queries: list[QueryIn] = Field(min_length=1, max_length=500)


class StartJobResponse(BaseModel):
    job_id: str
    status: str
    total_queries: int
    credits_used: int
    message: str


class JobResponse(BaseModel):
    id: str
    user_id: str
    brand_id: str
    status: str
    total_queries: int
    processed_queries: int
    current_query: str | None
    credits_used: int
    total_results: int | None
    processing_session_id: str | None
    error: str | None
    created_at: datetime
    started_at: datetime | None
    completed_at: datetime | None
    failed_at: datetime | None
    last_updated: datetime | None

    model_config = {"from_attributes": True}

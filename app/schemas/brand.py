from datetime import datetime

from pydantic import BaseModel, Field


class QueryIn(BaseModel):
    query: str = Field(min_length=1, max_length=2000)
    keyword: str = Field("", max_length=255)
    category: str = Field("", max_length=255)


class BrandQueriesResponse(BaseModel):
    brand_id: str
    queries: list[QueryIn]
    total_queries: int


class BrandAnalyticsResponse(BaseModel):
    brand_id: str
    brand_name: str
    brand_domain: str
    total_sessions: int
    total_queries_processed: int
    total_provider_answers: int
    total_brand_mentions: int
    total_domain_citations: int
    total_citations: int
    total_competitor_mentions: int
    answers_with_brand_mention: int
    answers_with_domain_citation: int
    brand_visibility_score: float
    provider_stats: dict
    last_session_id: str | None
    last_session_timestamp: str | None
    updated_at: datetime

    model_config = {"from_attributes": True}


class CompetitorAnalyticsResponse(BaseModel):
    brand_id: str
    total_queries_processed: int
    total_provider_answers: int
    competitor_stats: dict
    last_session_id: str | None
    updated_at: datetime

    model_config = {"from_attributes": True}


class AnalyticsResponse(BaseModel):
    brand: BrandAnalyticsResponse | None
    competitors: CompetitorAnalyticsResponse | None

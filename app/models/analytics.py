from datetime import datetime, timezone

from sqlalchemy import DateTime, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, JSONType


class BrandAnalytics(Base):
    """Cumulative brand visibility counters, one row per brand."""

    __tablename__ = "brand_analytics"

    brand_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    brand_name: Mapped[str] = mapped_column(String(255), default="")
    brand_domain: Mapped[str] = mapped_column(String(255), default="")

    total_sessions: Mapped[int] = mapped_column(Integer, default=0)
    total_queries_processed: Mapped[int] = mapped_column(Integer, default=0)
    total_provider_answers: Mapped[int] = mapped_column(Integer, default=0)
    total_brand_mentions: Mapped[int] = mapped_column(Integer, default=0)
    total_domain_citations: Mapped[int] = mapped_column(Integer, default=0)
    total_citations: Mapped[int] = mapped_column(Integer, default=0)
    total_competitor_mentions: Mapped[int] = mapped_column(Integer, default=0)
    answers_with_brand_mention: Mapped[int] = mapped_column(Integer, default=0)
    answers_with_domain_citation: Mapped[int] = mapped_column(Integer, default=0)
    brand_visibility_score: Mapped[float] = mapped_column(Float, default=0.0)
    provider_stats: Mapped[dict] = mapped_column(JSONType, default=dict)

    # Idempotency marker: session already folded into these counters
    last_session_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    last_session_timestamp: Mapped[str | None] = mapped_column(String(40), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))


class CompetitorAnalytics(Base):
    """Cumulative competitor visibility, one row per brand."""

    __tablename__ = "competitor_analytics"

    brand_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    brand_name: Mapped[str] = mapped_column(String(255), default="")
    total_queries_processed: Mapped[int] = mapped_column(Integer, default=0)
    total_provider_answers: Mapped[int] = mapped_column(Integer, default=0)
    competitor_stats: Mapped[dict] = mapped_column(JSONType, default=dict)

    last_session_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    last_session_timestamp: Mapped[str | None] = mapped_column(String(40), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

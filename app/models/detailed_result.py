from datetime import datetime, timezone

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, JSONType


class DetailedQueryResult(Base):
    """Unbounded audit log: one row per query per processing session."""

    __tablename__ = "detailed_query_results"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    brand_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    brand_name: Mapped[str] = mapped_column(String(255), default="")
    processing_session_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    processing_session_timestamp: Mapped[str] = mapped_column(String(40), nullable=False)
    query: Mapped[str] = mapped_column(Text, nullable=False)
    keyword: Mapped[str] = mapped_column(String(255), default="")
    category: Mapped[str] = mapped_column(String(255), default="")
    date: Mapped[str] = mapped_column(String(40), nullable=False)

    chatgpt_result: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    gemini_result: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    perplexity_result: Mapped[dict | None] = mapped_column(JSONType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

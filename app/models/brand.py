import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base, JSONType


class Brand(Base):
    """A tracked company with its queries, competitors and recent results."""

    __tablename__ = "brands"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=lambda: uuid.uuid4().hex)
    user_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    company_name: Mapped[str] = mapped_column(String(255), nullable=False)
    domain: Mapped[str] = mapped_column(String(255), default="")
    competitors: Mapped[list] = mapped_column(JSONType, default=list)  # ["Acme", {"name": ..., "aliases": [...]}]
    queries: Mapped[list] = mapped_column(JSONType, default=list)  # [{"query", "keyword", "category"}]
    total_queries: Mapped[int] = mapped_column(Integer, default=0)

    # Capped, newest-first cache of ProcessingResult dicts
    query_processing_results: Mapped[list] = mapped_column(JSONType, default=list)

    last_processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="brands")  # noqa: F821

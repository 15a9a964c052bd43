"""initial schema: users, brands, processing jobs, results and analytics

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB

revision: str = "0001_initial"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # =========================================================
    # 1. users
    # =========================================================
    op.create_table(
        "users",
        sa.Column("id", sa.String(128), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("display_name", sa.String(255), nullable=True, server_default=""),
        sa.Column("photo_url", sa.String(1024), nullable=True),
        sa.Column("credits", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_admin", sa.Boolean(), nullable=True, server_default="false"),
        sa.Column("is_new_user", sa.Boolean(), nullable=True, server_default="true"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True, server_default=sa.func.now()),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
    )

    # =========================================================
    # 2. brands
    # =========================================================
    op.create_table(
        "brands",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column(
            "user_id", sa.String(128), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
        ),
        sa.Column("company_name", sa.String(255), nullable=False),
        sa.Column("domain", sa.String(255), nullable=True, server_default=""),
        sa.Column("competitors", JSONB(), nullable=True),
        sa.Column("queries", JSONB(), nullable=True),
        sa.Column("total_queries", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("query_processing_results", JSONB(), nullable=True),
        sa.Column("last_processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True, server_default=sa.func.now()),
    )

    # =========================================================
    # 3. processing_jobs
    # =========================================================
    op.create_table(
        "processing_jobs",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column(
            "user_id", sa.String(128), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
        ),
        sa.Column("brand_id", sa.String(64), nullable=False, index=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("total_queries", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("processed_queries", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("current_query", sa.Text(), nullable=True),
        sa.Column("credits_used", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("total_results", sa.Integer(), nullable=True),
        sa.Column("processing_session_id", sa.String(64), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True, server_default=sa.func.now()),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("failed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_updated", sa.DateTime(timezone=True), nullable=True, server_default=sa.func.now()),
    )
    op.create_index("ix_processing_jobs_user_brand", "processing_jobs", ["user_id", "brand_id"])
    op.create_index(
        "uq_processing_jobs_active_brand",
        "processing_jobs",
        ["brand_id"],
        unique=True,
        postgresql_where=sa.text("status IN ('pending', 'processing')"),
    )

    # =========================================================
    # 4. detailed_query_results
    # =========================================================
    op.create_table(
        "detailed_query_results",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(128), nullable=False, index=True),
        sa.Column("brand_id", sa.String(64), nullable=False, index=True),
        sa.Column("brand_name", sa.String(255), nullable=True, server_default=""),
        sa.Column("processing_session_id", sa.String(64), nullable=False, index=True),
        sa.Column("processing_session_timestamp", sa.String(40), nullable=False),
        sa.Column("query", sa.Text(), nullable=False),
        sa.Column("keyword", sa.String(255), nullable=True, server_default=""),
        sa.Column("category", sa.String(255), nullable=True, server_default=""),
        sa.Column("date", sa.String(40), nullable=False),
        sa.Column("chatgpt_result", JSONB(), nullable=True),
        sa.Column("gemini_result", JSONB(), nullable=True),
        sa.Column("perplexity_result", JSONB(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True, server_default=sa.func.now()),
    )

    # =========================================================
    # 5. brand_analytics / competitor_analytics
    # =========================================================
    op.create_table(
        "brand_analytics",
        sa.Column("brand_id", sa.String(64), primary_key=True),
        sa.Column("user_id", sa.String(128), nullable=False, index=True),
        sa.Column("brand_name", sa.String(255), nullable=True, server_default=""),
        sa.Column("brand_domain", sa.String(255), nullable=True, server_default=""),
        sa.Column("total_sessions", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("total_queries_processed", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("total_provider_answers", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("total_brand_mentions", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("total_domain_citations", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("total_citations", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("total_competitor_mentions", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("answers_with_brand_mention", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("answers_with_domain_citation", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("brand_visibility_score", sa.Float(), nullable=True, server_default="0"),
        sa.Column("provider_stats", JSONB(), nullable=True),
        sa.Column("last_session_id", sa.String(64), nullable=True),
        sa.Column("last_session_timestamp", sa.String(40), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True, server_default=sa.func.now()),
    )
    op.create_table(
        "competitor_analytics",
        sa.Column("brand_id", sa.String(64), primary_key=True),
        sa.Column("user_id", sa.String(128), nullable=False, index=True),
        sa.Column("brand_name", sa.String(255), nullable=True, server_default=""),
        sa.Column("total_queries_processed", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("total_provider_answers", sa.Integer(), nullable=True, server_default="0"),
        sa.Column("competitor_stats", JSONB(), nullable=True),
        sa.Column("last_session_id", sa.String(64), nullable=True),
        sa.Column("last_session_timestamp", sa.String(40), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True, server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("competitor_analytics")
    op.drop_table("brand_analytics")
    op.drop_table("detailed_query_results")
    op.drop_index("uq_processing_jobs_active_brand", table_name="processing_jobs")
    op.drop_index("ix_processing_jobs_user_brand", table_name="processing_jobs")
    op.drop_table("processing_jobs")
    op.drop_table("brands")
    op.drop_table("users")

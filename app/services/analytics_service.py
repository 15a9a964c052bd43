"""Analytics store: additive merge of session increments into cumulative rows.

Each row remembers the last session it absorbed; applying the same
session twice is a no-op instead of a double count.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from app.analysis.aggregator import AnalyticsRecord, CompetitorAnalyticsRecord, rate, top_provider
from app.models.analytics import BrandAnalytics, CompetitorAnalytics

logger = logging.getLogger(__name__)

_BRAND_COUNTERS = (
    "total_queries_processed",
    "total_provider_answers",
    "total_brand_mentions",
    "total_domain_citations",
    "total_citations",
    "total_competitor_mentions",
    "answers_with_brand_mention",
    "answers_with_domain_citation",
)

_PROVIDER_COUNTERS = ("queries", "brand_mentions", "domain_citations", "citations", "answers_with_mention")


async def save_brand_analytics(db: AsyncSession, record: AnalyticsRecord) -> bool:
    """Merge a session increment. Returns False if the session was already applied."""
    row = await db.get(BrandAnalytics, record.brand_id, with_for_update=True)
    if row is None:
        row = BrandAnalytics(
            brand_id=record.brand_id,
            user_id=record.user_id,
            total_sessions=0,
            brand_visibility_score=0.0,
            provider_stats={},
            **{name: 0 for name in _BRAND_COUNTERS},
        )
        db.add(row)
    elif row.last_session_id == record.session_id:
        logger.info("Brand analytics for %s already include session %s", record.brand_id, record.session_id)
        return False

    for name in _BRAND_COUNTERS:
        setattr(row, name, (getattr(row, name) or 0) + getattr(record, name))
    row.total_sessions = (row.total_sessions or 0) + 1

    provider_stats = {p: dict(s) for p, s in (row.provider_stats or {}).items()}
    for provider, stats in record.provider_stats.items():
        merged = provider_stats.get(provider, {})
        for name in _PROVIDER_COUNTERS:
            merged[name] = merged.get(name, 0) + getattr(stats, name)
        merged["mention_rate"] = rate(merged["answers_with_mention"], merged["queries"])
        provider_stats[provider] = merged

    row.provider_stats = provider_stats
    row.brand_visibility_score = rate(row.answers_with_brand_mention, row.total_provider_answers)
    row.brand_name = record.brand_name
    row.brand_domain = record.brand_domain
    row.last_session_id = record.session_id
    row.last_session_timestamp = record.session_timestamp
    row.updated_at = datetime.now(timezone.utc)
    await db.flush()
    return True


async def save_competitor_analytics(db: AsyncSession, record: CompetitorAnalyticsRecord) -> bool:
    """Merge a competitor session increment. Returns False if already applied."""
    row = await db.get(CompetitorAnalytics, record.brand_id, with_for_update=True)
    if row is None:
        row = CompetitorAnalytics(
            brand_id=record.brand_id,
            user_id=record.user_id,
            total_queries_processed=0,
            total_provider_answers=0,
            competitor_stats={},
        )
        db.add(row)
    elif row.last_session_id == record.session_id:
        logger.info("Competitor analytics for %s already include session %s", record.brand_id, record.session_id)
        return False

    row.total_queries_processed = (row.total_queries_processed or 0) + record.total_queries_processed
    row.total_provider_answers = (row.total_provider_answers or 0) + record.total_provider_answers

    competitor_stats = {name: dict(s) for name, s in (row.competitor_stats or {}).items()}
    for name, stats in record.competitor_stats.items():
        merged = competitor_stats.get(name, {})
        mentions = dict(merged.get("provider_mentions") or {})
        for provider, count in stats.provider_mentions.items():
            mentions[provider] = mentions.get(provider, 0) + count
        merged["provider_mentions"] = mentions
        merged["total_mentions"] = merged.get("total_mentions", 0) + stats.total_mentions
        merged["answers_with_mention"] = merged.get("answers_with_mention", 0) + stats.answers_with_mention
        merged["domain"] = stats.domain or merged.get("domain", "")
        competitor_stats[name] = merged

    # The denominator moved, so every competitor's score is recomputed
    for merged in competitor_stats.values():
        merged["visibility_score"] = rate(merged.get("answers_with_mention", 0), row.total_provider_answers)
        merged["top_provider"] = top_provider(merged.get("provider_mentions") or {})

    row.competitor_stats = competitor_stats
    row.brand_name = record.brand_name
    row.last_session_id = record.session_id
    row.last_session_timestamp = record.session_timestamp
    row.updated_at = datetime.now(timezone.utc)
    await db.flush()
    return True


async def get_brand_analytics(db: AsyncSession, brand_id: str) -> BrandAnalytics | None:
    return await db.get(BrandAnalytics, brand_id)


async def get_competitor_analytics(db: AsyncSession, brand_id: str) -> CompetitorAnalytics | None:
    return await db.get(CompetitorAnalytics, brand_id)

"""Analytics Aggregator: folds one session's results into analytics records.

The records produced here are session increments. They are additive:
stores merge them into cumulative rows and recompute the rates from the
merged counters (see app.services.analytics_service).
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

from app.analysis.mention_analyzer import analyze_brand_mentions, count_competitor_mentions
from app.analysis.types import Competitor


def rate(part: int, whole: int) -> float:
    """Percentage rounded to 2 places; 0 when there is nothing to measure."""
    if whole <= 0:
        return 0.0
    return round(part / whole * 100, 2)


def top_provider(provider_mentions: dict[str, int]) -> str | None:
    """Provider with the most mentions; ties go to the first seen."""
    best, best_count = None, 0
    for provider, count in provider_mentions.items():
        if count > best_count:
            best, best_count = provider, count
    return best


# ---------------------------------------------------------------------------
# Brand analytics
# ---------------------------------------------------------------------------


@dataclass
class ProviderStats:
    queries: int = 0  # answers returned by this provider
    brand_mentions: int = 0
    domain_citations: int = 0
    citations: int = 0
    answers_with_mention: int = 0

    @property
    def mention_rate(self) -> float:
        return rate(self.answers_with_mention, self.queries)

    def to_dict(self) -> dict[str, Any]:
        return {**asdict(self), "mention_rate": self.mention_rate}


@dataclass
class AnalyticsRecord:
    user_id: str
    brand_id: str
    brand_name: str
    brand_domain: str
    session_id: str
    session_timestamp: str
    total_queries_processed: int = 0
    total_provider_answers: int = 0
    total_brand_mentions: int = 0
    total_domain_citations: int = 0
    total_citations: int = 0
    total_competitor_mentions: int = 0
    answers_with_brand_mention: int = 0
    answers_with_domain_citation: int = 0
    provider_stats: dict[str, ProviderStats] = field(default_factory=dict)

    @property
    def brand_visibility_score(self) -> float:
        """Percent of (query, provider) answers that mention the brand."""
        return rate(self.answers_with_brand_mention, self.total_provider_answers)


def calculate_cumulative_analytics(
    user_id: str,
    brand_id: str,
    brand_name: str,
    domain: str,
    session_id: str,
    session_timestamp: str,
    results: list[dict[str, Any]],
    competitors: list[Competitor] | None = None,
) -> AnalyticsRecord:
    """Build the brand analytics increment for one completed session.

    ``results`` are ProcessingResult dicts; each carries a ``results``
    map of provider key → sub-result.
    """
    record = AnalyticsRecord(
        user_id=user_id,
        brand_id=brand_id,
        brand_name=brand_name,
        brand_domain=domain,
        session_id=session_id,
        session_timestamp=session_timestamp,
        total_queries_processed=len(results),
    )

    for result in results:
        analysis = analyze_brand_mentions(brand_name, domain, result.get("results") or {}, competitors)
        totals = analysis.totals
        record.total_provider_answers += len(analysis.providers)
        record.total_brand_mentions += totals.total_brand_mentions
        record.total_domain_citations += totals.total_domain_citations
        record.total_citations += totals.total_citations
        record.total_competitor_mentions += totals.total_competitor_mentions
        record.answers_with_brand_mention += totals.providers_with_brand_mention
        record.answers_with_domain_citation += totals.providers_with_domain_citation

        for provider, pa in analysis.providers.items():
            stats = record.provider_stats.setdefault(provider, ProviderStats())
            stats.queries += 1
            stats.brand_mentions += pa.brand_mention_count
            stats.domain_citations += pa.domain_citation_count
            stats.citations += pa.citation_count
            stats.answers_with_mention += int(pa.brand_mentioned)

    return record


# ---------------------------------------------------------------------------
# Competitor analytics
# ---------------------------------------------------------------------------


@dataclass
class CompetitorStats:
    domain: str = ""
    total_mentions: int = 0
    answers_with_mention: int = 0
    provider_mentions: dict[str, int] = field(default_factory=dict)
    visibility_score: float = 0.0
    top_provider: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class CompetitorAnalyticsRecord:
    user_id: str
    brand_id: str
    brand_name: str
    session_id: str
    session_timestamp: str
    total_queries_processed: int = 0
    total_provider_answers: int = 0
    competitor_stats: dict[str, CompetitorStats] = field(default_factory=dict)


def calculate_cumulative_competitor_analytics(
    user_id: str,
    brand_id: str,
    brand_name: str,
    session_id: str,
    session_timestamp: str,
    competitors: list[Competitor],
    results: list[dict[str, Any]],
) -> CompetitorAnalyticsRecord:
    """Build the competitor analytics increment for one completed session."""
    record = CompetitorAnalyticsRecord(
        user_id=user_id,
        brand_id=brand_id,
        brand_name=brand_name,
        session_id=session_id,
        session_timestamp=session_timestamp,
        total_queries_processed=len(results),
        competitor_stats={c.name: CompetitorStats(domain=c.domain) for c in competitors},
    )

    for result in results:
        for provider, sub in (result.get("results") or {}).items():
            text = (sub or {}).get("response") or ""
            if not text:
                continue
            record.total_provider_answers += 1
            for competitor in competitors:
                mentions = count_competitor_mentions(text, [competitor])
                if not mentions:
                    continue
                stats = record.competitor_stats[competitor.name]
                stats.total_mentions += mentions
                stats.answers_with_mention += 1
                stats.provider_mentions[provider] = stats.provider_mentions.get(provider, 0) + mentions

    for stats in record.competitor_stats.values():
        stats.visibility_score = rate(stats.answers_with_mention, record.total_provider_answers)
        stats.top_provider = top_provider(stats.provider_mentions)

    return record

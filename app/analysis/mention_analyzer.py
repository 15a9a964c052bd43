"""Brand / competitor mention analysis over provider answers.

All matching is case-insensitive substring matching. Counting escapes
regex metacharacters in names before building the search pattern.
"""

from __future__ import annotations

import re
from typing import Any, Iterable

from app.analysis.citation_extractor import extract_domain
from app.analysis.types import (
    BrandMentionAnalysis,
    Citation,
    Competitor,
    ProviderAnalysis,
)

CitationLike = Citation | dict[str, Any]


def _clean_domain(domain: str) -> str:
    """``https://www.Example.com/`` → ``example.com``."""
    domain = (domain or "").strip().lower()
    domain = re.sub(r"^https?://", "", domain)
    if domain.startswith("www."):
        domain = domain[4:]
    return domain.split("/", 1)[0]


def _citation_fields(citation: CitationLike) -> tuple[str, str]:
    if isinstance(citation, Citation):
        return citation.url, citation.text
    return citation.get("url") or "", citation.get("text") or citation.get("title") or ""


def _count_occurrences(text: str, term: str) -> int:
    if not text or not term:
        return 0
    return len(re.findall(re.escape(term), text, flags=re.IGNORECASE))


def _url_matches_domain(url: str, domain: str) -> bool:
    host = extract_domain(url)
    return bool(host) and (host == domain or host.endswith("." + domain))


# ---------------------------------------------------------------------------
# Brand
# ---------------------------------------------------------------------------


def is_brand_mentioned(text: str, brand_name: str) -> bool:
    if not text or not brand_name:
        return False
    return brand_name.lower() in text.lower()


def count_brand_mentions(text: str, brand_name: str) -> int:
    return _count_occurrences(text, brand_name)


def is_domain_cited(text: str, domain: str) -> bool:
    """True only for scheme-qualified references to the domain."""
    domain = _clean_domain(domain)
    if not text or not domain:
        return False
    lowered = text.lower()
    return f"https://{domain}" in lowered or f"https://www.{domain}" in lowered


def count_domain_citations(citations: Iterable[CitationLike], domain: str) -> int:
    domain = _clean_domain(domain)
    if not domain:
        return 0
    return sum(1 for c in citations if _url_matches_domain(_citation_fields(c)[0], domain))


# ---------------------------------------------------------------------------
# Competitors
# ---------------------------------------------------------------------------


def match_competitors_in_text(text: str, competitors: Iterable[Competitor]) -> list[str]:
    """Names of competitors found by name, alias or domain. One entry per competitor."""
    if not text:
        return []
    lowered = text.lower()
    matched: list[str] = []
    for competitor in competitors:
        if competitor.name in matched:
            continue
        if any(term.lower() in lowered for term in competitor.search_terms()):
            matched.append(competitor.name)
    return matched


def count_competitor_mentions(text: str, competitors: Iterable[Competitor]) -> int:
    """Sum of all matched occurrences across every competitor's terms."""
    if not text:
        return 0
    return sum(_count_occurrences(text, term) for c in competitors for term in c.search_terms())


def _citation_matches_competitor(citation: CitationLike, competitor: Competitor) -> bool:
    url, label = _citation_fields(citation)
    domain = _clean_domain(competitor.domain)
    if domain and _url_matches_domain(url, domain):
        return True
    name = competitor.name.lower()
    return name in url.lower() or name in label.lower()


def are_competitors_cited(citations: Iterable[CitationLike], competitors: Iterable[Competitor]) -> bool:
    return count_competitor_citations(citations, competitors) > 0


def count_competitor_citations(citations: Iterable[CitationLike], competitors: Iterable[Competitor]) -> int:
    competitors = list(competitors)
    return sum(1 for c in citations if any(_citation_matches_competitor(c, comp) for comp in competitors))


# ---------------------------------------------------------------------------
# Per-query analysis
# ---------------------------------------------------------------------------


def analyze_provider_answer(
    text: str,
    citations: list[CitationLike],
    brand_name: str,
    brand_domain: str,
    competitors: list[Competitor],
) -> ProviderAnalysis:
    domain_citation_count = count_domain_citations(citations, brand_domain)
    competitor_citation_count = count_competitor_citations(citations, competitors)
    return ProviderAnalysis(
        brand_mentioned=is_brand_mentioned(text, brand_name),
        brand_mention_count=count_brand_mentions(text, brand_name),
        domain_cited=is_domain_cited(text, brand_domain) or domain_citation_count > 0,
        domain_citation_count=domain_citation_count,
        citation_count=len(citations),
        competitors_mentioned=match_competitors_in_text(text, competitors),
        competitor_mention_count=count_competitor_mentions(text, competitors),
        competitors_cited=competitor_citation_count > 0,
        competitor_citation_count=competitor_citation_count,
    )


def analyze_brand_mentions(
    brand_name: str,
    brand_domain: str,
    provider_results: dict[str, dict[str, Any]],
    competitors: list[Competitor] | None = None,
) -> BrandMentionAnalysis:
    """Analyze one query's answers across all providers.

    ``provider_results`` maps provider key → stored sub-result
    (``response``, ``citations``, ``error``...). Providers that returned
    no answer text are left out of the breakdown and the totals.
    """
    competitors = competitors or []
    analysis = BrandMentionAnalysis(brand_name=brand_name, brand_domain=brand_domain)
    totals = analysis.totals

    for provider_key, result in provider_results.items():
        text = (result or {}).get("response") or ""
        if not text:
            continue
        citations = result.get("citations") or []
        pa = analyze_provider_answer(text, citations, brand_name, brand_domain, competitors)
        analysis.providers[provider_key] = pa

        totals.total_brand_mentions += pa.brand_mention_count
        totals.total_domain_citations += pa.domain_citation_count
        totals.total_citations += pa.citation_count
        totals.total_competitor_mentions += pa.competitor_mention_count
        totals.providers_with_brand_mention += int(pa.brand_mentioned)
        totals.providers_with_domain_citation += int(pa.domain_cited)
        totals.providers_with_competitor_mention += int(bool(pa.competitors_mentioned))

    return analysis


"""Core types and DTOs for mention / citation analysis."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


@dataclass
class Citation:
    """A URL + label pair claimed as a source by a provider answer."""

    url: str
    text: str
    source: str  # provider value that produced it

    def to_dict(self) -> dict[str, str]:
        return {"url": self.url, "text": self.text, "source": self.source}


@dataclass
class Competitor:
    """A competing brand tracked alongside the user's own."""

    name: str
    domain: str = ""
    aliases: list[str] = field(default_factory=list)

    @classmethod
    def from_value(cls, value: Any) -> Competitor | None:
        """Accept a bare name or a ``{"name", "domain", "aliases"}`` dict."""
        if isinstance(value, str):
            name = value.strip()
            return cls(name=name) if name else None
        if isinstance(value, dict):
            name = (value.get("name") or "").strip()
            if not name:
                return None
            aliases = [a for a in value.get("aliases") or [] if isinstance(a, str) and a.strip()]
            return cls(name=name, domain=(value.get("domain") or "").strip(), aliases=aliases)
        return None

    def search_terms(self) -> list[str]:
        """Name, aliases and domain, case-insensitively de-duplicated."""
        terms: list[str] = []
        seen: set[str] = set()
        for term in [self.name, *self.aliases, self.domain]:
            key = term.strip().lower()
            if key and key not in seen:
                seen.add(key)
                terms.append(term.strip())
        return terms


# ---------------------------------------------------------------------------
# Per-query analysis results
# ---------------------------------------------------------------------------


@dataclass
class ProviderAnalysis:
    """Mention / citation breakdown for one provider's answer."""

    brand_mentioned: bool = False
    brand_mention_count: int = 0
    domain_cited: bool = False
    domain_citation_count: int = 0
    citation_count: int = 0
    competitors_mentioned: list[str] = field(default_factory=list)
    competitor_mention_count: int = 0
    competitors_cited: bool = False
    competitor_citation_count: int = 0


@dataclass
class MentionTotals:
    """Cross-provider totals for one query."""

    total_brand_mentions: int = 0
    total_domain_citations: int = 0
    total_citations: int = 0
    total_competitor_mentions: int = 0
    providers_with_brand_mention: int = 0
    providers_with_domain_citation: int = 0
    providers_with_competitor_mention: int = 0


@dataclass
class BrandMentionAnalysis:
    brand_name: str
    brand_domain: str
    providers: dict[str, ProviderAnalysis] = field(default_factory=dict)
    totals: MentionTotals = field(default_factory=MentionTotals)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

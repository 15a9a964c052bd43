"""Core types and DTOs for background query processing."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from app.gateway.types import ProviderResult


@dataclass
class QueryItem:
    """A tracked prompt, identified by its ``(query, keyword, category)`` tuple."""

    query: str
    keyword: str = ""
    category: str = ""

    def to_dict(self) -> dict[str, str]:
        return {"query": self.query, "keyword": self.keyword, "category": self.category}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> QueryItem:
        return cls(
            query=data.get("query") or "",
            keyword=data.get("keyword") or "",
            category=data.get("category") or "",
        )


@dataclass
class BrandSnapshot:
    """Brand context captured when the job was started."""

    company_name: str
    domain: str = ""
    competitors: list[Any] = field(default_factory=list)  # names or {name, domain, aliases}

    def to_dict(self) -> dict[str, Any]:
        return {"company_name": self.company_name, "domain": self.domain, "competitors": list(self.competitors)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BrandSnapshot:
        return cls(
            company_name=data.get("company_name") or "",
            domain=data.get("domain") or "",
            competitors=list(data.get("competitors") or []),
        )


@dataclass
class JobPayload:
    """Everything a runner needs to execute a job; JSON-serializable."""

    job_id: str
    user_id: str
    brand_id: str
    brand: BrandSnapshot
    queries: list[QueryItem]

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "user_id": self.user_id,
            "brand_id": self.brand_id,
            "brand": self.brand.to_dict(),
            "queries": [q.to_dict() for q in self.queries],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JobPayload:
        return cls(
            job_id=data["job_id"],
            user_id=data["user_id"],
            brand_id=data["brand_id"],
            brand=BrandSnapshot.from_dict(data.get("brand") or {}),
            queries=[QueryItem.from_dict(q) for q in data.get("queries") or []],
        )


@dataclass
class ProcessingResult:
    """One query's answers from every provider within one session."""

    date: str
    processing_session_id: str
    processing_session_timestamp: str
    query: str
    keyword: str
    category: str
    results: dict[str, ProviderResult] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date,
            "processingSessionId": self.processing_session_id,
            "processingSessionTimestamp": self.processing_session_timestamp,
            "query": self.query,
            "keyword": self.keyword,
            "category": self.category,
            "results": {provider: result.to_dict() for provider, result in self.results.items()},
        }

"""Query Dispatcher: fans one query out to every provider.

Provider calls for a query run concurrently. A failing provider never
affects the others, and every provider always gets a sub-result
(an error sub-result if it could not answer).
"""

from __future__ import annotations

import asyncio
import logging
import time

from app.analysis.citation_extractor import extract_citations
from app.core.metrics import PROVIDER_CALL_DURATION, PROVIDER_CALLS
from app.gateway.adapters import BaseProviderAdapter, build_default_adapters
from app.gateway.normalizer import error_result, to_provider_result
from app.gateway.rate_limiter import AdaptiveRateLimiter
from app.gateway.types import ProviderKind, ProviderRequest, ProviderResult
from app.jobs.types import BrandSnapshot, QueryItem

logger = logging.getLogger(__name__)


def build_context(query: QueryItem, brand: BrandSnapshot) -> str:
    """System prompt framing the query for the providers."""
    return (
        f"This query is related to {brand.company_name} in the {query.category or 'general'} category. "
        f"Topic: {query.keyword or query.query}."
    )


class QueryDispatcher:
    """Sends one query to each configured provider adapter."""

    def __init__(self, adapters: dict[ProviderKind, BaseProviderAdapter]):
        self.adapters = adapters

    @classmethod
    def from_settings(cls, rate_limiter: AdaptiveRateLimiter | None = None) -> QueryDispatcher:
        return cls(build_default_adapters(rate_limiter or AdaptiveRateLimiter()))

    async def dispatch(self, query: QueryItem, brand: BrandSnapshot) -> dict[str, ProviderResult]:
        """Return ``{provider value: sub-result}`` for every ProviderKind."""
        context = build_context(query, brand)
        providers = list(ProviderKind)
        outcomes = await asyncio.gather(
            *(self._call_provider(kind, query.query, context) for kind in providers),
            return_exceptions=True,
        )

        results: dict[str, ProviderResult] = {}
        for kind, outcome in zip(providers, outcomes):
            if isinstance(outcome, BaseException):
                logger.error("Provider %s crashed on query %r: %r", kind.value, query.query, outcome)
                PROVIDER_CALLS.labels(provider=kind.value, status="error").inc()
                outcome = error_result(f"{kind.value} call failed: {type(outcome).__name__}")
            results[kind.value] = outcome
        return results

    async def _call_provider(self, kind: ProviderKind, prompt: str, context: str) -> ProviderResult:
        adapter = self.adapters.get(kind)
        if adapter is None:
            PROVIDER_CALLS.labels(provider=kind.value, status="error").inc()
            return error_result(f"No adapter configured for {kind.value}")

        start = time.monotonic()
        envelope = await adapter.execute(ProviderRequest(provider=kind, user_prompt=prompt, system_prompt=context))
        PROVIDER_CALL_DURATION.labels(provider=kind.value).observe(time.monotonic() - start)
        PROVIDER_CALLS.labels(provider=kind.value, status=envelope.status.value).inc()

        if not envelope.ok:
            return to_provider_result(envelope)

        citations = extract_citations(kind, envelope.content, (envelope.data or {}).get("citations"))
        return to_provider_result(envelope, citations)

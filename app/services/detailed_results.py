"""Detailed results store: unbounded per-session audit log."""

import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.gateway.types import ProviderKind
from app.models.detailed_result import DetailedQueryResult

logger = logging.getLogger(__name__)


def _audit_payload(sub: dict[str, Any] | None) -> dict[str, Any] | None:
    """Provider sub-result with the citation list collapsed to a count."""
    if sub is None:
        return None
    payload = {k: v for k, v in sub.items() if k != "citations"}
    payload["citationCount"] = len(sub.get("citations") or [])
    return payload


async def save_detailed_results(
    db: AsyncSession,
    user_id: str,
    brand_id: str,
    brand_name: str,
    results: list[dict[str, Any]],
) -> int:
    """Append one audit row per ProcessingResult. Returns rows written."""
    rows = []
    for result in results:
        providers = result.get("results") or {}
        rows.append(
            DetailedQueryResult(
                user_id=user_id,
                brand_id=brand_id,
                brand_name=brand_name,
                processing_session_id=result["processingSessionId"],
                processing_session_timestamp=result["processingSessionTimestamp"],
                query=result.get("query") or "",
                keyword=result.get("keyword") or "",
                category=result.get("category") or "",
                date=result["date"],
                chatgpt_result=_audit_payload(providers.get(ProviderKind.CHATGPT.value)),
                gemini_result=_audit_payload(providers.get(ProviderKind.GEMINI.value)),
                perplexity_result=_audit_payload(providers.get(ProviderKind.PERPLEXITY.value)),
            )
        )

    db.add_all(rows)
    await db.flush()
    logger.info("Saved %d detailed results for brand %s", len(rows), brand_id)
    return len(rows)

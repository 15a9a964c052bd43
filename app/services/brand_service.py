"""Brand store: brand documents and their capped result cache."""

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.analysis.types import Competitor
from app.core.config import settings
from app.core.exceptions import ForbiddenError, NotFoundError
from app.models.brand import Brand

logger = logging.getLogger(__name__)


def query_key(item: dict[str, Any]) -> tuple[str, str, str]:
    """The ``(query, keyword, category)`` tuple identifying a query."""
    return (item.get("query") or "", item.get("keyword") or "", item.get("category") or "")


def parse_competitors(values: list[Any] | None) -> list[Competitor]:
    competitors: list[Competitor] = []
    seen: set[str] = set()
    for value in values or []:
        competitor = Competitor.from_value(value)
        if competitor and competitor.name.lower() not in seen:
            seen.add(competitor.name.lower())
            competitors.append(competitor)
    return competitors


async def get_brand(db: AsyncSession, brand_id: str) -> Brand | None:
    return await db.get(Brand, brand_id)


async def get_owned_brand(db: AsyncSession, brand_id: str, user_id: str) -> Brand:
    brand = await get_brand(db, brand_id)
    if brand is None:
        raise NotFoundError("Brand not found")
    if brand.user_id != user_id:
        raise ForbiddenError("Access denied")
    return brand


def merge_results(
    existing: list[dict[str, Any]],
    new_results: list[dict[str, Any]],
    session_id: str,
    max_stored: int,
) -> list[dict[str, Any]]:
    """Replace-by-session, append, then keep the newest ``max_stored`` by date.

    Stored results from this session, and stored results for any query
    re-run in this session, are superseded by the new ones.
    """
    rerun = {query_key(r) for r in new_results}
    kept = [
        r
        for r in existing
        if r.get("processingSessionId") != session_id and query_key(r) not in rerun
    ]
    merged = kept + list(new_results)
    merged.sort(key=lambda r: r.get("date") or "", reverse=True)
    return merged[:max_stored]


async def merge_brand_results(
    db: AsyncSession,
    brand_id: str,
    results: list[dict[str, Any]],
    session_id: str,
    max_stored: int | None = None,
) -> Brand:
    """Fold a session's results into the brand's cache. Raises if the brand is gone."""
    brand = await get_brand(db, brand_id)
    if brand is None:
        raise NotFoundError(f"Brand {brand_id} not found")

    brand.query_processing_results = merge_results(
        brand.query_processing_results or [],
        results,
        session_id,
        max_stored or settings.max_stored_results,
    )
    brand.last_processed_at = datetime.now(timezone.utc)
    await db.flush()

    logger.info(
        "Merged %d results into brand %s (%d stored)",
        len(results),
        brand_id,
        len(brand.query_processing_results),
    )
    return brand


async def delete_query(db: AsyncSession, brand_id: str, user_id: str, query: dict[str, Any]) -> Brand:
    """Remove one query by exact ``(query, keyword, category)`` match."""
    brand = await get_owned_brand(db, brand_id, user_id)

    target = query_key(query)
    remaining = [q for q in brand.queries or [] if query_key(q) != target]
    if len(remaining) == len(brand.queries or []):
        raise NotFoundError("Query not found")

    brand.queries = remaining
    brand.total_queries = len(remaining)
    await db.flush()
    return brand

"""Response Normalizer: turns a ProviderResponse envelope into the
per-provider sub-result persisted with each ProcessingResult.

  - Success: cleaned answer text, response time, extracted citations,
    token count, and the provider's search flags
  - Error: empty response plus the sanitized error message
"""

from __future__ import annotations

from datetime import datetime, timezone

from app.analysis.types import Citation
from app.gateway.types import ProviderKind, ProviderResponse, ProviderResult


def clean_text(text: str) -> str:
    """Trim and collapse runs of 3+ blank lines."""
    text = (text or "").strip()
    while "\n\n\n" in text:
        text = text.replace("\n\n\n", "\n\n")
    return text


def to_provider_result(envelope: ProviderResponse, citations: list[Citation] | None = None) -> ProviderResult:
    timestamp = envelope.timestamp.isoformat()

    if not envelope.ok:
        return ProviderResult(
            response="",
            timestamp=timestamp,
            error=envelope.error or "Unknown provider error",
            response_time=envelope.response_time_ms,
        )

    data = envelope.data or {}
    result = ProviderResult(
        response=clean_text(data.get("content", "")),
        timestamp=timestamp,
        response_time=envelope.response_time_ms,
        citations=[c.to_dict() for c in citations or []],
        token_count=data.get("token_count") or None,
    )
    if envelope.provider == ProviderKind.GEMINI:
        result.web_search_used = bool(data.get("web_search_used"))
    if envelope.provider == ProviderKind.PERPLEXITY:
        result.real_time_data = bool(data.get("real_time_data"))
    return result


def error_result(message: str) -> ProviderResult:
    """Sub-result for a provider that could not be called at all."""
    return ProviderResult(
        response="",
        timestamp=datetime.now(timezone.utc).isoformat(),
        error=message,
    )

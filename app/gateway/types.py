"""Core types and DTOs for the provider gateway."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class ProviderKind(str, Enum):
    """Supported AI answer providers. Values double as result keys."""

    CHATGPT = "chatgpt"  # chat-completion (Azure OpenAI)
    GEMINI = "gemini"  # search / AI overview (Gemini + Google Search grounding)
    PERPLEXITY = "perplexity"  # answer engine with citations


class EnvelopeStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


# ---------------------------------------------------------------------------
# Provider Request: input to an adapter
# ---------------------------------------------------------------------------


@dataclass
class ProviderRequest:
    """A single prompt to send to one provider."""

    provider: ProviderKind = ProviderKind.CHATGPT
    user_prompt: str = ""
    system_prompt: str = ""
    model: str = ""  # empty → adapter default
    temperature: float = 0.2
    max_tokens: int = 1500


# ---------------------------------------------------------------------------
# Provider Response: the common envelope every adapter returns
# ---------------------------------------------------------------------------


@dataclass
class ProviderResponse:
    """Normalized envelope: same shape regardless of provider.

    ``data`` (on success) always carries ``content``, ``model``,
    ``citations`` (list of ``{"url", "title"}``), ``token_count``,
    ``web_search_used`` and ``real_time_data``.
    """

    provider: ProviderKind
    request_id: str
    status: EnvelopeStatus
    data: dict[str, Any] | None = None
    error: str | None = None
    response_time_ms: int = 0
    cost: float = 0.0
    retry_count: int = 0
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def ok(self) -> bool:
        return self.status == EnvelopeStatus.SUCCESS

    @property
    def content(self) -> str:
        if not self.data:
            return ""
        return self.data.get("content") or ""


# ---------------------------------------------------------------------------
# Provider Result: the per-provider sub-record stored in a ProcessingResult
# ---------------------------------------------------------------------------


@dataclass
class ProviderResult:
    """One provider's answer to one query, as persisted.

    Optional fields are omitted from ``to_dict`` when unset rather than
    written as nulls.
    """

    response: str
    timestamp: str
    error: str | None = None
    response_time: int | None = None
    citations: list[dict[str, str]] | None = None
    token_count: int | None = None
    web_search_used: bool | None = None
    real_time_data: bool | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"response": self.response, "timestamp": self.timestamp}
        if self.error is not None:
            data["error"] = self.error
        if self.response_time is not None:
            data["responseTime"] = self.response_time
        if self.citations is not None:
            data["citations"] = self.citations
        if self.token_count is not None:
            data["tokenCount"] = self.token_count
        if self.web_search_used is not None:
            data["webSearchUsed"] = self.web_search_used
        if self.real_time_data is not None:
            data["realTimeData"] = self.real_time_data
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProviderResult:
        return cls(
            response=data.get("response") or "",
            timestamp=data.get("timestamp") or "",
            error=data.get("error"),
            response_time=data.get("responseTime"),
            citations=data.get("citations"),
            token_count=data.get("tokenCount"),
            web_search_used=data.get("webSearchUsed"),
            real_time_data=data.get("realTimeData"),
        )


# ---------------------------------------------------------------------------
# Provider config
# ---------------------------------------------------------------------------


@dataclass
class ProviderConfig:
    """Rate limit, timeout and retry policy for a provider."""

    provider: ProviderKind
    rpm_limit: int = 60  # Requests per minute
    max_concurrent: int = 5  # Max concurrent requests
    timeout_seconds: float = 60.0  # Request timeout
    max_retries: int = 3  # Retries after the first attempt
    base_retry_delay: float = 1.0  # Base delay for exponential backoff (seconds)
    max_retry_delay: float = 30.0  # Cap on retry delay


DEFAULT_PROVIDER_CONFIGS: dict[ProviderKind, ProviderConfig] = {
    ProviderKind.CHATGPT: ProviderConfig(
        provider=ProviderKind.CHATGPT,
        rpm_limit=60,
        max_concurrent=5,
        timeout_seconds=60,
        max_retries=3,
    ),
    ProviderKind.GEMINI: ProviderConfig(
        provider=ProviderKind.GEMINI,
        rpm_limit=30,
        max_concurrent=3,
        timeout_seconds=60,
        max_retries=2,
        base_retry_delay=2.0,
    ),
    ProviderKind.PERPLEXITY: ProviderConfig(
        provider=ProviderKind.PERPLEXITY,
        rpm_limit=20,
        max_concurrent=3,
        timeout_seconds=90,
        max_retries=3,
    ),
}

"""Provider Adapters: protocol-level handling for each AI answer provider.

Each adapter turns a ProviderRequest into the provider's HTTP protocol,
sends it with rate limiting and retries, and returns a ProviderResponse
envelope. ``execute`` never raises: every failure becomes an error
envelope with a sanitized message.

Provider-specific behaviors:
  - Azure OpenAI: deployment × api-version combinations, On Your Data citations
  - Gemini: model × API version (v1beta, v1) combinations, Google Search
    grounding, finishReason SAFETY → error
  - Perplexity: OpenAI-compatible with native citations and search_results
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from abc import ABC, abstractmethod
from typing import Any

import httpx

from app.core.config import (
    azure_api_version_candidates,
    azure_deployment_candidates,
    gemini_model_candidates,
    settings,
)
from app.core.logging import redact_secrets
from app.gateway.rate_limiter import AdaptiveRateLimiter
from app.gateway.retry import UNAVAILABLE_STATUS_CODES, calculate_backoff, is_retryable_status
from app.gateway.types import (
    DEFAULT_PROVIDER_CONFIGS,
    EnvelopeStatus,
    ProviderConfig,
    ProviderKind,
    ProviderRequest,
    ProviderResponse,
)

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    """A failed provider call. ``retryable`` marks transient failures."""

    def __init__(self, message: str, status_code: int = 0, retryable: bool = False):
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable

    @property
    def unavailable(self) -> bool:
        return self.status_code in UNAVAILABLE_STATUS_CODES


class BaseProviderAdapter(ABC):
    """Base class for all provider adapters.

    Subclasses implement the protocol hooks (``build_payload``,
    ``validate_request``, ``send``, ``transform_response``) and may
    override ``targets`` to list the model / endpoint combinations to
    try in priority order.
    """

    provider: ProviderKind
    display_name: str = "Provider"
    flat_cost: float = 0.0  # USD per request when the response carries no usage

    def __init__(
        self,
        api_key: str,
        config: ProviderConfig | None = None,
        rate_limiter: AdaptiveRateLimiter | None = None,
    ):
        self.api_key = api_key or ""
        self.config = config or DEFAULT_PROVIDER_CONFIGS[self.provider]
        self.rate_limiter = rate_limiter

    # -- protocol hooks --------------------------------------------------

    @abstractmethod
    def build_payload(self, request: ProviderRequest) -> dict[str, Any]: ...

    @abstractmethod
    def validate_request(self, payload: dict[str, Any]) -> bool: ...

    @abstractmethod
    async def send(self, payload: dict[str, Any], target: Any) -> dict[str, Any]:
        """POST the payload to ``target``; return the decoded JSON body."""
        ...

    @abstractmethod
    def transform_response(self, raw: dict[str, Any], target: Any) -> dict[str, Any]: ...

    def calculate_cost(self, data: dict[str, Any]) -> float:
        return 0.0

    def targets(self, request: ProviderRequest) -> list[Any]:
        return [None]

    def is_configured(self) -> bool:
        return bool(self.api_key.strip())

    # -- execution -------------------------------------------------------

    async def execute(self, request: ProviderRequest) -> ProviderResponse:
        start = time.monotonic()
        request_id = f"{self.provider.value}-{uuid.uuid4().hex[:12]}"

        try:
            if not self.is_configured():
                raise ProviderError(f"{self.display_name} API key is not configured")

            payload = self.build_payload(request)
            if not self.validate_request(payload):
                raise ProviderError("Invalid request format")

            data, retries = await self._execute_targets(payload, request)
        except ProviderError as e:
            message = self._sanitize(str(e))
            logger.warning("%s request %s failed: %s", self.display_name, request_id, message)
            return ProviderResponse(
                provider=self.provider,
                request_id=request_id,
                status=EnvelopeStatus.ERROR,
                error=message,
                response_time_ms=int((time.monotonic() - start) * 1000),
            )

        return ProviderResponse(
            provider=self.provider,
            request_id=request_id,
            status=EnvelopeStatus.SUCCESS,
            data=data,
            response_time_ms=int((time.monotonic() - start) * 1000),
            cost=self.calculate_cost(data),
            retry_count=retries,
        )

    async def _execute_targets(self, payload: dict[str, Any], request: ProviderRequest) -> tuple[dict[str, Any], int]:
        """Try each target in order; stop at the first that answers."""
        last_error: ProviderError | None = None

        for target in self.targets(request):
            try:
                raw, retries = await self._call_with_retry(payload, target)
            except ProviderError as e:
                if not e.unavailable:
                    raise
                logger.info("%s target %s unavailable: %s", self.display_name, target, self._sanitize(str(e)))
                last_error = e
                continue

            try:
                return self.transform_response(raw, target), retries
            except (KeyError, IndexError, TypeError, AttributeError) as e:
                raise ProviderError(f"Unexpected {self.display_name} response format: {e!r}") from e

        raise last_error or ProviderError(f"No working {self.display_name} combination found")

    async def _call_with_retry(self, payload: dict[str, Any], target: Any) -> tuple[dict[str, Any], int]:
        attempt = 0
        while True:
            await self._acquire_slot()
            try:
                return await self.send(payload, target), attempt
            except ProviderError as e:
                if not e.retryable or attempt >= self.config.max_retries:
                    raise
                delay = calculate_backoff(attempt, self.config.base_retry_delay, self.config.max_retry_delay)
                logger.info(
                    "%s attempt %d failed (%s), retrying in %.1fs",
                    self.display_name,
                    attempt + 1,
                    self._sanitize(str(e)),
                    delay,
                )
            finally:
                self._release_slot()
            await asyncio.sleep(delay)
            attempt += 1

    async def _acquire_slot(self) -> None:
        if self.rate_limiter is None:
            return
        if not await self.rate_limiter.acquire_blocking(self.provider, timeout=self.config.timeout_seconds):
            raise ProviderError(f"{self.display_name} rate limit wait exceeded")

    def _release_slot(self) -> None:
        if self.rate_limiter is not None:
            self.rate_limiter.release(self.provider)

    async def _post_json(
        self,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str] | None = None,
        params: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        timeout = self.config.timeout_seconds
        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                resp = await client.post(
                    url,
                    json=payload,
                    headers={"Content-Type": "application/json", **(headers or {})},
                    params=params,
                )
        except httpx.TimeoutException as e:
            raise ProviderError(f"{self.display_name} timeout after {timeout}s", retryable=True) from e
        except httpx.TransportError as e:
            raise ProviderError(f"{self.display_name} connection error: {e}", retryable=True) from e

        if resp.status_code >= 400:
            raise ProviderError(
                f"{self.display_name} API error {resp.status_code}: {self._error_detail(resp)}",
                status_code=resp.status_code,
                retryable=is_retryable_status(resp.status_code),
            )

        try:
            return resp.json()
        except ValueError as e:
            raise ProviderError(f"{self.display_name} returned a non-JSON response") from e

    @staticmethod
    def _error_detail(resp: httpx.Response) -> str:
        try:
            body = resp.json()
        except ValueError:
            return resp.text[:200] or resp.reason_phrase
        error = body.get("error") if isinstance(body, dict) else None
        if isinstance(error, dict):
            return str(error.get("message") or error)[:200]
        if error:
            return str(error)[:200]
        return str(body)[:200]

    def _sanitize(self, message: str) -> str:
        return redact_secrets(message, [self.api_key] if self.api_key else [])

    @staticmethod
    def _chat_messages(request: ProviderRequest) -> list[dict[str, str]]:
        messages = []
        if request.system_prompt:
            messages.append({"role": "system", "content": request.system_prompt})
        messages.append({"role": "user", "content": request.user_prompt})
        return messages

    @staticmethod
    def _valid_chat_messages(payload: dict[str, Any]) -> bool:
        messages = payload.get("messages")
        if not isinstance(messages, list) or not messages:
            return False
        last = messages[-1]
        return isinstance(last, dict) and last.get("role") == "user" and bool((last.get("content") or "").strip())


def _token_cost(
    pricing: dict[str, dict[str, float]], model: str, default: str, data: dict[str, Any], flat: float
) -> float:
    """Price from token usage; ``flat`` per request when no usage came back."""
    input_tokens = data.get("input_tokens") or 0
    output_tokens = data.get("output_tokens") or 0
    if input_tokens + output_tokens == 0:
        return flat
    prices = pricing.get(model, pricing[default])
    return round(
        (input_tokens * prices["input"] + output_tokens * prices["output"]) / 1_000_000,
        6,
    )


# ---------------------------------------------------------------------------
# Azure OpenAI Adapter (chat-completion)
# ---------------------------------------------------------------------------

# Pricing per 1M tokens
_AZURE_PRICING = {
    "gpt-4o": {"input": 2.50, "output": 10.00},
    "gpt-4o-mini": {"input": 0.15, "output": 0.60},
    "gpt-35-turbo": {"input": 0.50, "output": 1.50},
}


class AzureOpenAIAdapter(BaseProviderAdapter):
    """Azure OpenAI chat completions, trying deployment × api-version pairs."""

    provider = ProviderKind.CHATGPT
    display_name = "Azure OpenAI"
    flat_cost = 0.0005

    def __init__(
        self,
        api_key: str,
        endpoint: str,
        deployments: list[str],
        api_versions: list[str],
        **kwargs,
    ):
        super().__init__(api_key=api_key, **kwargs)
        self.endpoint = endpoint.rstrip("/")
        self.deployments = deployments
        self.api_versions = api_versions

    def is_configured(self) -> bool:
        return super().is_configured() and bool(self.endpoint) and bool(self.deployments)

    def targets(self, request: ProviderRequest) -> list[tuple[str, str]]:
        deployments = [request.model] if request.model else self.deployments
        return [(d, v) for d in deployments for v in self.api_versions]

    def build_payload(self, request: ProviderRequest) -> dict[str, Any]:
        return {
            "messages": self._chat_messages(request),
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
        }

    def validate_request(self, payload: dict[str, Any]) -> bool:
        return self._valid_chat_messages(payload)

    async def send(self, payload: dict[str, Any], target: tuple[str, str]) -> dict[str, Any]:
        deployment, api_version = target
        return await self._post_json(
            f"{self.endpoint}/openai/deployments/{deployment}/chat/completions",
            payload,
            headers={"api-key": self.api_key},
            params={"api-version": api_version},
        )

    def transform_response(self, raw: dict[str, Any], target: tuple[str, str]) -> dict[str, Any]:
        choice = raw["choices"][0]
        message = choice["message"]
        context = message.get("context") or {}
        citations = [
            {"url": c["url"], "title": c.get("title") or c["url"]}
            for c in context.get("citations") or []
            if c.get("url")
        ]
        usage = raw.get("usage") or {}
        return {
            "content": message.get("content") or "",
            "model": raw.get("model") or target[0],
            "citations": citations,
            "input_tokens": usage.get("prompt_tokens", 0),
            "output_tokens": usage.get("completion_tokens", 0),
            "token_count": usage.get("total_tokens")
            or usage.get("prompt_tokens", 0) + usage.get("completion_tokens", 0),
            "finish_reason": choice.get("finish_reason", ""),
            "web_search_used": bool(citations),
            "real_time_data": False,
        }

    def calculate_cost(self, data: dict[str, Any]) -> float:
        return _token_cost(_AZURE_PRICING, data.get("model", ""), "gpt-4o-mini", data, self.flat_cost)


# ---------------------------------------------------------------------------
# Gemini Adapter (Google AI generateContent + Search grounding)
# ---------------------------------------------------------------------------

_GEMINI_PRICING = {
    "gemini-1.5-flash": {"input": 0.075, "output": 0.30},
    "gemini-1.5-pro": {"input": 1.25, "output": 5.00},
    "gemini-2.0-flash": {"input": 0.10, "output": 0.40},
}

GEMINI_API_VERSIONS = ("v1beta", "v1")


class GeminiSearchAdapter(BaseProviderAdapter):
    """Gemini generateContent with the google_search grounding tool.

    Grounding is only offered on v1beta; the v1 fallback sends a plain
    generation request.
    """

    provider = ProviderKind.GEMINI
    display_name = "Gemini"
    flat_cost = 0.0005
    base_url = "https://generativelanguage.googleapis.com"

    def __init__(self, api_key: str, models: list[str], **kwargs):
        super().__init__(api_key=api_key, **kwargs)
        self.models = models

    def targets(self, request: ProviderRequest) -> list[tuple[str, str]]:
        combos: list[tuple[str, str]] = []
        for model in [request.model] if request.model else self.models:
            for version in GEMINI_API_VERSIONS:
                for variant in (model, model.removeprefix("gemini-")):
                    if (version, variant) not in combos:
                        combos.append((version, variant))
        return combos

    def build_payload(self, request: ProviderRequest) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": request.user_prompt}]}],
            "generationConfig": {
                "temperature": request.temperature,
                "maxOutputTokens": request.max_tokens,
            },
            "tools": [{"google_search": {}}],
        }
        if request.system_prompt:
            payload["systemInstruction"] = {"parts": [{"text": request.system_prompt}]}
        return payload

    def validate_request(self, payload: dict[str, Any]) -> bool:
        contents = payload.get("contents")
        if not isinstance(contents, list) or not contents:
            return False
        parts = contents[0].get("parts") if isinstance(contents[0], dict) else None
        return isinstance(parts, list) and any((p.get("text") or "").strip() for p in parts)

    async def send(self, payload: dict[str, Any], target: tuple[str, str]) -> dict[str, Any]:
        version, model = target
        if version != "v1beta":
            payload = {k: v for k, v in payload.items() if k != "tools"}
        return await self._post_json(
            f"{self.base_url}/{version}/models/{model}:generateContent",
            payload,
            params={"key": self.api_key},
        )

    def transform_response(self, raw: dict[str, Any], target: tuple[str, str]) -> dict[str, Any]:
        candidates = raw.get("candidates") or []
        if not candidates:
            block_reason = (raw.get("promptFeedback") or {}).get("blockReason")
            if block_reason:
                raise ProviderError(f"Gemini blocked the prompt: {block_reason}")
            raise ProviderError("Gemini returned no candidates")

        candidate = candidates[0]
        finish_reason = candidate.get("finishReason", "")
        if finish_reason == "SAFETY":
            raise ProviderError("Gemini safety filter triggered")

        parts = (candidate.get("content") or {}).get("parts") or []
        text = "".join(p.get("text", "") for p in parts if "text" in p)

        grounding = candidate.get("groundingMetadata") or {}
        citations = []
        for chunk in grounding.get("groundingChunks") or []:
            web = chunk.get("web") or {}
            if web.get("uri"):
                citations.append({"url": web["uri"], "title": web.get("title") or web["uri"]})

        usage = raw.get("usageMetadata") or {}
        return {
            "content": text,
            "model": target[1],
            "api_version": target[0],
            "citations": citations,
            "input_tokens": usage.get("promptTokenCount", 0),
            "output_tokens": usage.get("candidatesTokenCount", 0),
            "token_count": usage.get("totalTokenCount", 0),
            "finish_reason": finish_reason,
            "web_search_used": bool(grounding.get("webSearchQueries") or citations),
            "real_time_data": False,
        }

    def calculate_cost(self, data: dict[str, Any]) -> float:
        model = data.get("model", "")
        if not model.startswith("gemini-"):
            model = f"gemini-{model}"
        return _token_cost(_GEMINI_PRICING, model, "gemini-1.5-flash", data, self.flat_cost)


# ---------------------------------------------------------------------------
# Perplexity Adapter
# ---------------------------------------------------------------------------

_PERPLEXITY_PRICING = {
    "sonar": {"input": 1.00, "output": 1.00},
    "sonar-pro": {"input": 3.00, "output": 15.00},
}


class PerplexityAdapter(BaseProviderAdapter):
    """Perplexity adapter (OpenAI-compatible) with native citations."""

    provider = ProviderKind.PERPLEXITY
    display_name = "Perplexity"
    flat_cost = 0.005
    api_url = "https://api.perplexity.ai/chat/completions"

    def __init__(self, api_key: str, model: str = "sonar", **kwargs):
        super().__init__(api_key=api_key, **kwargs)
        self.model = model

    def build_payload(self, request: ProviderRequest) -> dict[str, Any]:
        return {
            "model": request.model or self.model,
            "messages": self._chat_messages(request),
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
        }

    def validate_request(self, payload: dict[str, Any]) -> bool:
        return bool(payload.get("model")) and self._valid_chat_messages(payload)

    async def send(self, payload: dict[str, Any], target: Any) -> dict[str, Any]:
        return await self._post_json(self.api_url, payload, headers={"Authorization": f"Bearer {self.api_key}"})

    def transform_response(self, raw: dict[str, Any], target: Any) -> dict[str, Any]:
        choice = raw["choices"][0]

        # search_results carry titles; plain citations are bare URLs
        citations: list[dict[str, str]] = []
        seen: set[str] = set()
        for item in raw.get("search_results") or []:
            url = item.get("url")
            if url and url not in seen:
                seen.add(url)
                citations.append({"url": url, "title": item.get("title") or url})
        for url in raw.get("citations") or []:
            if isinstance(url, str) and url not in seen:
                seen.add(url)
                citations.append({"url": url, "title": url})

        usage = raw.get("usage") or {}
        return {
            "content": choice["message"].get("content") or "",
            "model": raw.get("model") or self.model,
            "citations": citations,
            "input_tokens": usage.get("prompt_tokens", 0),
            "output_tokens": usage.get("completion_tokens", 0),
            "token_count": usage.get("total_tokens")
            or usage.get("prompt_tokens", 0) + usage.get("completion_tokens", 0),
            "finish_reason": choice.get("finish_reason", ""),
            "web_search_used": True,
            "real_time_data": True,
        }

    def calculate_cost(self, data: dict[str, Any]) -> float:
        return _token_cost(_PERPLEXITY_PRICING, data.get("model", ""), "sonar", data, self.flat_cost)


# ---------------------------------------------------------------------------
# Adapter Registry
# ---------------------------------------------------------------------------

ADAPTER_REGISTRY: dict[ProviderKind, type[BaseProviderAdapter]] = {
    ProviderKind.CHATGPT: AzureOpenAIAdapter,
    ProviderKind.GEMINI: GeminiSearchAdapter,
    ProviderKind.PERPLEXITY: PerplexityAdapter,
}


def get_adapter(provider: ProviderKind, **kwargs) -> BaseProviderAdapter:
    """Create an adapter instance for the given provider."""
    adapter_cls = ADAPTER_REGISTRY.get(provider)
    if adapter_cls is None:
        raise ValueError(f"No adapter registered for provider: {provider}")
    return adapter_cls(**kwargs)


def build_default_adapters(rate_limiter: AdaptiveRateLimiter | None = None) -> dict[ProviderKind, BaseProviderAdapter]:
    """Adapters for every provider, configured from settings."""
    return {
        ProviderKind.CHATGPT: get_adapter(
            ProviderKind.CHATGPT,
            api_key=settings.azure_openai_api_key,
            endpoint=settings.azure_openai_endpoint,
            deployments=azure_deployment_candidates(),
            api_versions=azure_api_version_candidates(),
            rate_limiter=rate_limiter,
        ),
        ProviderKind.GEMINI: get_adapter(
            ProviderKind.GEMINI,
            api_key=settings.gemini_api_key,
            models=gemini_model_candidates(),
            rate_limiter=rate_limiter,
        ),
        ProviderKind.PERPLEXITY: get_adapter(
            ProviderKind.PERPLEXITY,
            api_key=settings.perplexity_api_key,
            model=settings.perplexity_model,
            rate_limiter=rate_limiter,
        ),
    }

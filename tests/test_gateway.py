"""Tests for the provider gateway.

Covers:
  - Gateway types and DTOs
  - Adaptive Rate Limiter
  - Retry policy
  - Provider Adapters (mocked HTTP)
  - Response Normalizer
"""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from app.analysis.types import Citation
from app.gateway.adapters import (
    ADAPTER_REGISTRY,
    AzureOpenAIAdapter,
    GeminiSearchAdapter,
    PerplexityAdapter,
    build_default_adapters,
    get_adapter,
)
from app.gateway.normalizer import clean_text, error_result, to_provider_result
from app.gateway.rate_limiter import AdaptiveRateLimiter
from app.gateway.retry import calculate_backoff, is_retryable_status
from app.gateway.types import (
    DEFAULT_PROVIDER_CONFIGS,
    EnvelopeStatus,
    ProviderConfig,
    ProviderKind,
    ProviderRequest,
    ProviderResponse,
    ProviderResult,
)


# ==========================================================================
# Test: Gateway Types
# ==========================================================================


class TestGatewayTypes:
    def test_provider_request_defaults(self):
        req = ProviderRequest(user_prompt="Hello")
        assert req.provider == ProviderKind.CHATGPT
        assert req.temperature == 0.2
        assert req.max_tokens == 1500
        assert req.model == ""

    def test_provider_values_are_result_keys(self):
        assert [p.value for p in ProviderKind] == ["chatgpt", "gemini", "perplexity"]

    def test_response_content(self):
        ok = ProviderResponse(
            provider=ProviderKind.GEMINI,
            request_id="r1",
            status=EnvelopeStatus.SUCCESS,
            data={"content": "hi"},
        )
        failed = ProviderResponse(provider=ProviderKind.GEMINI, request_id="r2", status=EnvelopeStatus.ERROR)
        assert ok.ok and ok.content == "hi"
        assert not failed.ok and failed.content == ""

    def test_provider_result_omits_unset_fields(self):
        result = ProviderResult(response="", timestamp="t", error="boom")
        assert result.to_dict() == {"response": "", "timestamp": "t", "error": "boom"}

    def test_provider_result_camel_case_round_trip(self):
        result = ProviderResult(
            response="text",
            timestamp="t",
            response_time=12,
            citations=[{"url": "https://a.com", "text": "a", "source": "perplexity"}],
            token_count=40,
            real_time_data=True,
        )
        data = result.to_dict()
        assert data["responseTime"] == 12
        assert data["tokenCount"] == 40
        assert data["realTimeData"] is True
        assert "webSearchUsed" not in data
        assert ProviderResult.from_dict(data) == result

    def test_default_provider_configs(self):
        assert set(DEFAULT_PROVIDER_CONFIGS) == set(ProviderKind)
        assert DEFAULT_PROVIDER_CONFIGS[ProviderKind.PERPLEXITY].timeout_seconds == 90


# ==========================================================================
# Test: Adaptive Rate Limiter
# ==========================================================================


class TestRateLimiter:
    """Test per-provider RPM and concurrency limiting."""

    @pytest.fixture
    def limiter(self):
        configs = {
            ProviderKind.CHATGPT: ProviderConfig(
                provider=ProviderKind.CHATGPT,
                rpm_limit=5,
                max_concurrent=10,  # High enough to not interfere with RPM tests
            ),
        }
        return AdaptiveRateLimiter(configs)

    @pytest.mark.asyncio
    async def test_acquire_under_limit(self, limiter):
        assert await limiter.acquire(ProviderKind.CHATGPT) == 0.0

    @pytest.mark.asyncio
    async def test_acquire_at_rpm_limit(self, limiter):
        for _ in range(5):
            assert await limiter.acquire(ProviderKind.CHATGPT) == 0.0
            limiter.release(ProviderKind.CHATGPT)

        assert await limiter.acquire(ProviderKind.CHATGPT) > 0

    @pytest.mark.asyncio
    async def test_release_decrements_active(self, limiter):
        await limiter.acquire(ProviderKind.CHATGPT)
        assert limiter.in_flight(ProviderKind.CHATGPT) == 1

        limiter.release(ProviderKind.CHATGPT)
        assert limiter.in_flight(ProviderKind.CHATGPT) == 0

    @pytest.mark.asyncio
    async def test_acquire_concurrent_limit(self):
        limiter = AdaptiveRateLimiter(
            {ProviderKind.GEMINI: ProviderConfig(provider=ProviderKind.GEMINI, rpm_limit=100, max_concurrent=2)}
        )
        for _ in range(2):
            await limiter.acquire(ProviderKind.GEMINI)

        assert await limiter.acquire(ProviderKind.GEMINI) > 0

    @pytest.mark.asyncio
    async def test_acquire_blocking_times_out(self):
        limiter = AdaptiveRateLimiter(
            {ProviderKind.GEMINI: ProviderConfig(provider=ProviderKind.GEMINI, rpm_limit=1, max_concurrent=5)}
        )
        assert await limiter.acquire_blocking(ProviderKind.GEMINI, timeout=1.0) is True
        assert await limiter.acquire_blocking(ProviderKind.GEMINI, timeout=0.05) is False

    @pytest.mark.asyncio
    async def test_unknown_provider_creates_default(self, limiter):
        assert await limiter.acquire(ProviderKind.PERPLEXITY) == 0.0
        assert limiter.in_flight(ProviderKind.PERPLEXITY) == 1


# ==========================================================================
# Test: Retry policy
# ==========================================================================


class TestRetryPolicy:
    @pytest.mark.parametrize("status", [408, 429, 500, 502, 503, 504, 599])
    def test_retryable(self, status):
        assert is_retryable_status(status)

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 422])
    def test_not_retryable(self, status):
        assert not is_retryable_status(status)

    def test_backoff_grows_and_is_capped(self):
        assert 1.0 <= calculate_backoff(0, 1.0, 30.0) <= 1.5
        assert 4.0 <= calculate_backoff(2, 1.0, 30.0) <= 4.5
        assert calculate_backoff(10, 1.0, 30.0) == 30.0


# ==========================================================================
# Test: Provider Adapters (mocked HTTP)
# ==========================================================================


def _make_httpx_response(status_code: int, json_data: dict | None = None, text: str = "") -> httpx.Response:
    """Create a proper httpx.Response with request set (needed for raise_for_status)."""
    request = httpx.Request("POST", "https://example.com")
    if json_data is not None:
        return httpx.Response(status_code, json=json_data, request=request)
    return httpx.Response(status_code, text=text, request=request)


def _mock_chat_response(text="Hello world", model="gpt-4o-mini", input_tokens=10, output_tokens=20, **extra):
    message = {"content": text, **extra.pop("message_extra", {})}
    return _make_httpx_response(
        200,
        json_data={
            "choices": [{"message": message, "finish_reason": "stop"}],
            "model": model,
            "usage": {"prompt_tokens": input_tokens, "completion_tokens": output_tokens},
            **extra,
        },
    )


def _mock_gemini_response(text="Hello world", finish_reason="STOP", grounding=None):
    candidate = {"content": {"parts": [{"text": text}]}, "finishReason": finish_reason}
    if grounding is not None:
        candidate["groundingMetadata"] = grounding
    return _make_httpx_response(
        200,
        json_data={
            "candidates": [candidate],
            "usageMetadata": {"promptTokenCount": 5, "candidatesTokenCount": 15, "totalTokenCount": 20},
        },
    )


def _mock_client(mock_client_cls, *, responses=None, side_effect=None) -> AsyncMock:
    mock_client = AsyncMock()
    if side_effect is not None:
        mock_client.post.side_effect = side_effect
    else:
        mock_client.post.side_effect = responses
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=None)
    mock_client_cls.return_value = mock_client
    return mock_client


def _azure(**kwargs) -> AzureOpenAIAdapter:
    defaults = {
        "api_key": "azure-secret",
        "endpoint": "https://acme.openai.azure.com/",
        "deployments": ["gpt-4o-mini", "gpt-4o"],
        "api_versions": ["2024-02-01"],
    }
    return AzureOpenAIAdapter(**{**defaults, **kwargs})


REQUEST = ProviderRequest(user_prompt="best crm for startups", system_prompt="Context")


class TestAzureOpenAIAdapter:
    @pytest.mark.asyncio
    async def test_success(self):
        adapter = _azure()

        with patch("app.gateway.adapters.httpx.AsyncClient") as mock_client_cls:
            client = _mock_client(mock_client_cls, responses=[_mock_chat_response()])
            resp = await adapter.execute(REQUEST)

        assert resp.status == EnvelopeStatus.SUCCESS
        assert resp.content == "Hello world"
        assert resp.data["token_count"] == 30
        assert resp.cost > 0
        assert resp.retry_count == 0
        assert resp.request_id.startswith("chatgpt-")

        args, kwargs = client.post.call_args
        assert args[0] == "https://acme.openai.azure.com/openai/deployments/gpt-4o-mini/chat/completions"
        assert kwargs["params"] == {"api-version": "2024-02-01"}
        assert kwargs["headers"]["api-key"] == "azure-secret"
        assert kwargs["json"]["messages"][0] == {"role": "system", "content": "Context"}

    @pytest.mark.asyncio
    async def test_falls_back_to_next_deployment_on_404(self):
        adapter = _azure()

        with patch("app.gateway.adapters.httpx.AsyncClient") as mock_client_cls:
            client = _mock_client(
                mock_client_cls,
                responses=[
                    _make_httpx_response(404, json_data={"error": {"message": "DeploymentNotFound"}}),
                    _mock_chat_response(model="gpt-4o"),
                ],
            )
            resp = await adapter.execute(REQUEST)

        assert resp.ok
        assert client.post.call_count == 2
        assert "/deployments/gpt-4o/" in client.post.call_args.args[0]

    @pytest.mark.asyncio
    async def test_all_combinations_unavailable(self):
        adapter = _azure(deployments=["a"], api_versions=["v1", "v2"])

        with patch("app.gateway.adapters.httpx.AsyncClient") as mock_client_cls:
            client = _mock_client(
                mock_client_cls,
                responses=[_make_httpx_response(404, text="nope"), _make_httpx_response(400, text="bad version")],
            )
            resp = await adapter.execute(REQUEST)

        assert resp.status == EnvelopeStatus.ERROR
        assert "Azure OpenAI API error 400" in resp.error
        assert client.post.call_count == 2

    @pytest.mark.asyncio
    async def test_on_your_data_citations(self):
        adapter = _azure()
        context = {"citations": [{"url": "https://acme.com/docs", "title": "Docs"}, {"title": "no url"}]}

        with patch("app.gateway.adapters.httpx.AsyncClient") as mock_client_cls:
            _mock_client(mock_client_cls, responses=[_mock_chat_response(message_extra={"context": context})])
            resp = await adapter.execute(REQUEST)

        assert resp.data["citations"] == [{"url": "https://acme.com/docs", "title": "Docs"}]

    @pytest.mark.asyncio
    async def test_missing_key_fails_without_http(self):
        adapter = _azure(api_key="")

        with patch("app.gateway.adapters.httpx.AsyncClient") as mock_client_cls:
            client = _mock_client(mock_client_cls, responses=[])
            resp = await adapter.execute(REQUEST)

        assert resp.status == EnvelopeStatus.ERROR
        assert resp.error == "Azure OpenAI API key is not configured"
        client.post.assert_not_called()

    @pytest.mark.asyncio
    async def test_invalid_request_format(self):
        adapter = _azure()

        with patch("app.gateway.adapters.httpx.AsyncClient") as mock_client_cls:
            client = _mock_client(mock_client_cls, responses=[])
            resp = await adapter.execute(ProviderRequest(user_prompt="   "))

        assert resp.error == "Invalid request format"
        client.post.assert_not_called()

    @pytest.mark.asyncio
    async def test_auth_error_is_not_retried(self):
        adapter = _azure()

        with patch("app.gateway.adapters.httpx.AsyncClient") as mock_client_cls:
            client = _mock_client(
                mock_client_cls, responses=[_make_httpx_response(401, json_data={"error": {"message": "bad key"}})]
            )
            resp = await adapter.execute(REQUEST)

        assert resp.error == "Azure OpenAI API error 401: bad key"
        assert client.post.call_count == 1


class TestCostEstimates:
    def test_gemini_without_usage_uses_flat_estimate(self):
        adapter = GeminiSearchAdapter(api_key="k", models=["gemini-2.0-flash"])
        assert adapter.calculate_cost({"content": "hi", "model": "gemini-2.0-flash"}) == 0.0005

    def test_every_adapter_has_a_flat_estimate(self):
        adapters = build_default_adapters(AdaptiveRateLimiter())
        for adapter in adapters.values():
            assert adapter.calculate_cost({"content": "hi", "input_tokens": 0, "output_tokens": 0}) > 0

    def test_token_usage_priced_per_million(self):
        adapter = PerplexityAdapter(api_key="k")
        cost = adapter.calculate_cost({"model": "sonar", "input_tokens": 500_000, "output_tokens": 500_000})
        assert cost == 1.0


class TestGeminiSearchAdapter:
    def test_targets_cover_versions_and_prefixless_names(self):
        adapter = GeminiSearchAdapter(api_key="k", models=["gemini-1.5-flash"])
        assert adapter.targets(REQUEST) == [
            ("v1beta", "gemini-1.5-flash"),
            ("v1beta", "1.5-flash"),
            ("v1", "gemini-1.5-flash"),
            ("v1", "1.5-flash"),
        ]

    @pytest.mark.asyncio
    async def test_success_with_grounding(self):
        adapter = GeminiSearchAdapter(api_key="gemini-secret", models=["gemini-1.5-flash"])
        grounding = {
            "webSearchQueries": ["best crm"],
            "groundingChunks": [
                {"web": {"uri": "https://acme.com/crm", "title": "acme.com"}},
                {"web": {}},
            ],
        }

        with patch("app.gateway.adapters.httpx.AsyncClient") as mock_client_cls:
            client = _mock_client(mock_client_cls, responses=[_mock_gemini_response(grounding=grounding)])
            resp = await adapter.execute(REQUEST)

        assert resp.ok
        assert resp.data["citations"] == [{"url": "https://acme.com/crm", "title": "acme.com"}]
        assert resp.data["web_search_used"] is True
        assert resp.data["token_count"] == 20

        args, kwargs = client.post.call_args
        assert args[0] == "https://generativelanguage.googleapis.com/v1beta/models/gemini-1.5-flash:generateContent"
        assert kwargs["params"] == {"key": "gemini-secret"}
        assert kwargs["json"]["tools"] == [{"google_search": {}}]
        assert kwargs["json"]["systemInstruction"] == {"parts": [{"text": "Context"}]}

    @pytest.mark.asyncio
    async def test_v1_fallback_drops_search_tool(self):
        adapter = GeminiSearchAdapter(api_key="k", models=["gemini-1.5-flash"])

        with patch("app.gateway.adapters.httpx.AsyncClient") as mock_client_cls:
            client = _mock_client(
                mock_client_cls,
                responses=[
                    _make_httpx_response(404, text="not found"),
                    _make_httpx_response(404, text="not found"),
                    _mock_gemini_response(),
                ],
            )
            resp = await adapter.execute(REQUEST)

        assert resp.ok
        assert resp.data["api_version"] == "v1"
        args, kwargs = client.post.call_args
        assert "/v1/models/gemini-1.5-flash:generateContent" in args[0]
        assert "tools" not in kwargs["json"]

    @pytest.mark.asyncio
    async def test_safety_block_is_an_error(self):
        adapter = GeminiSearchAdapter(api_key="k", models=["gemini-1.5-flash"])

        with patch("app.gateway.adapters.httpx.AsyncClient") as mock_client_cls:
            _mock_client(mock_client_cls, responses=[_mock_gemini_response(text="", finish_reason="SAFETY")])
            resp = await adapter.execute(REQUEST)

        assert resp.status == EnvelopeStatus.ERROR
        assert resp.error == "Gemini safety filter triggered"

    @pytest.mark.asyncio
    async def test_api_key_never_leaks_into_error(self):
        adapter = GeminiSearchAdapter(api_key="gemini-secret-123", models=["gemini-1.5-flash"])
        body = {"error": {"message": "API key gemini-secret-123 not valid. Please pass a valid API key."}}

        with patch("app.gateway.adapters.httpx.AsyncClient") as mock_client_cls:
            _mock_client(mock_client_cls, responses=[_make_httpx_response(403, json_data=body)])
            resp = await adapter.execute(REQUEST)

        assert resp.status == EnvelopeStatus.ERROR
        assert "gemini-secret-123" not in resp.error
        assert "[REDACTED]" in resp.error


class TestPerplexityAdapter:
    @pytest.mark.asyncio
    async def test_success_merges_search_results_and_citations(self):
        adapter = PerplexityAdapter(api_key="pplx-secret")
        response = _mock_chat_response(
            text="Acme [1] and Globex [2]",
            model="sonar",
            search_results=[{"url": "https://acme.com", "title": "Acme"}],
            citations=["https://acme.com", "https://globex.com"],
        )

        with patch("app.gateway.adapters.httpx.AsyncClient") as mock_client_cls:
            client = _mock_client(mock_client_cls, responses=[response])
            resp = await adapter.execute(REQUEST)

        assert resp.ok
        assert resp.data["citations"] == [
            {"url": "https://acme.com", "title": "Acme"},
            {"url": "https://globex.com", "title": "https://globex.com"},
        ]
        assert resp.data["real_time_data"] is True
        kwargs = client.post.call_args.kwargs
        assert kwargs["headers"]["Authorization"] == "Bearer pplx-secret"
        assert kwargs["json"]["model"] == "sonar"

    @pytest.mark.asyncio
    async def test_rate_limited_then_recovers(self):
        adapter = PerplexityAdapter(api_key="pplx-secret")

        with (
            patch("app.gateway.adapters.httpx.AsyncClient") as mock_client_cls,
            patch("app.gateway.adapters.asyncio.sleep", new_callable=AsyncMock) as mock_sleep,
        ):
            client = _mock_client(
                mock_client_cls,
                responses=[_make_httpx_response(429, text="rate limited"), _mock_chat_response(model="sonar")],
            )
            resp = await adapter.execute(REQUEST)

        assert resp.ok
        assert resp.retry_count == 1
        assert client.post.call_count == 2
        mock_sleep.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_timeout_exhausts_retries(self):
        config = ProviderConfig(provider=ProviderKind.PERPLEXITY, timeout_seconds=5.0, max_retries=1)
        adapter = PerplexityAdapter(api_key="pplx-secret", config=config)

        with (
            patch("app.gateway.adapters.httpx.AsyncClient") as mock_client_cls,
            patch("app.gateway.adapters.asyncio.sleep", new_callable=AsyncMock),
        ):
            client = _mock_client(mock_client_cls, side_effect=httpx.TimeoutException("timeout"))
            resp = await adapter.execute(REQUEST)

        assert resp.status == EnvelopeStatus.ERROR
        assert resp.error == "Perplexity timeout after 5.0s"
        assert client.post.call_count == 2

    @pytest.mark.asyncio
    async def test_rate_limiter_slot_released_after_call(self):
        limiter = AdaptiveRateLimiter()
        adapter = PerplexityAdapter(api_key="pplx-secret", rate_limiter=limiter)

        with patch("app.gateway.adapters.httpx.AsyncClient") as mock_client_cls:
            _mock_client(mock_client_cls, responses=[_mock_chat_response(model="sonar")])
            await adapter.execute(REQUEST)

        assert limiter.in_flight(ProviderKind.PERPLEXITY) == 0
        assert limiter._get_bucket(ProviderKind.PERPLEXITY).current_rpm == 1


class TestAdapterRegistry:
    def test_registry_covers_every_provider(self):
        assert set(ADAPTER_REGISTRY) == set(ProviderKind)

    def test_get_adapter(self):
        adapter = get_adapter(ProviderKind.PERPLEXITY, api_key="k", model="sonar-pro")
        assert isinstance(adapter, PerplexityAdapter)
        assert adapter.model == "sonar-pro"

    def test_get_adapter_unknown(self):
        with pytest.raises(ValueError):
            get_adapter("unknown", api_key="k")

    def test_build_default_adapters_share_rate_limiter(self):
        limiter = AdaptiveRateLimiter()
        adapters = build_default_adapters(limiter)
        assert set(adapters) == set(ProviderKind)
        assert all(a.rate_limiter is limiter for a in adapters.values())


# ==========================================================================
# Test: Response Normalizer
# ==========================================================================


class TestNormalizer:
    def _envelope(self, provider, **kwargs):
        return ProviderResponse(
            provider=provider,
            request_id="r",
            timestamp=datetime(2026, 1, 1, tzinfo=timezone.utc),
            response_time_ms=120,
            **kwargs,
        )

    def test_clean_text(self):
        assert clean_text("  a\n\n\n\n\nb  ") == "a\n\nb"
        assert clean_text(None) == ""

    def test_success_result(self):
        envelope = self._envelope(
            ProviderKind.PERPLEXITY,
            status=EnvelopeStatus.SUCCESS,
            data={"content": " answer ", "token_count": 42, "real_time_data": True},
        )
        citations = [Citation(url="https://a.com", text="a", source="perplexity")]

        result = to_provider_result(envelope, citations)

        assert result.response == "answer"
        assert result.timestamp == "2026-01-01T00:00:00+00:00"
        assert result.response_time == 120
        assert result.token_count == 42
        assert result.real_time_data is True
        assert result.web_search_used is None
        assert result.citations == [{"url": "https://a.com", "text": "a", "source": "perplexity"}]

    def test_gemini_sets_web_search_flag(self):
        envelope = self._envelope(
            ProviderKind.GEMINI, status=EnvelopeStatus.SUCCESS, data={"content": "x", "web_search_used": True}
        )
        result = to_provider_result(envelope)
        assert result.web_search_used is True
        assert result.token_count is None
        assert result.citations == []

    def test_error_result(self):
        envelope = self._envelope(ProviderKind.CHATGPT, status=EnvelopeStatus.ERROR, error="Azure OpenAI timeout")
        result = to_provider_result(envelope)
        assert result.to_dict() == {
            "response": "",
            "timestamp": "2026-01-01T00:00:00+00:00",
            "error": "Azure OpenAI timeout",
            "responseTime": 120,
        }

    def test_error_result_helper(self):
        result = error_result("No adapter configured for gemini")
        assert result.response == ""
        assert result.error == "No adapter configured for gemini"

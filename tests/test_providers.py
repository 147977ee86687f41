"""Tests for the provider adapters and registry."""

from __future__ import annotations

import json

import httpx
import pytest

from duet.errors import ConfigIncomplete, TransportError
from duet.providers.base import error_from_response, short_error_reason
from duet.providers.gemini import GEMINI_API_BASE, GeminiProvider
from duet.providers.openai import OpenAIProvider
from duet.providers.registry import (
    DEFAULT_MODELS,
    fetch_models,
    get_provider,
    provider_for_settings,
)
from duet.schemas.messages import Message, Role
from duet.schemas.settings import ChatSettings, ProviderConfig, ProviderKind
from duet.streaming.decoder import JSONObjectStreamDecoder, SSEFrameDecoder
from duet.streaming.extractor import GeminiDeltaExtractor, OpenAIDeltaExtractor

# ── Factories ────────────────────────────────────────────────────


def _openai_config(**overrides) -> ProviderConfig:
    defaults = {
        "provider": ProviderKind.OPENAI,
        "endpoint_url": "https://api.example.com/",
        "api_key": "sk-test",
        "model_id": "gpt-4o",
    }
    defaults.update(overrides)
    return ProviderConfig(**defaults)


def _gemini_config() -> ProviderConfig:
    return ProviderConfig(provider=ProviderKind.GEMINI, api_key="g-key", model_id="gemini-pro")


HISTORY = [
    Message(role=Role.USER, content="Hi"),
    Message(role=Role.ASSISTANT, content="Hello!"),
    Message(role=Role.USER, content="How are you?"),
]


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


# ── OpenAI ───────────────────────────────────────────────────────


class TestOpenAIProvider:
    @pytest.mark.asyncio
    async def test_request_shape(self):
        provider = OpenAIProvider(_openai_config())
        async with _client(lambda r: httpx.Response(200)) as client:
            request = provider.build_request(client, HISTORY, "Be brief.")

        assert request.method == "POST"
        assert str(request.url) == "https://api.example.com/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer sk-test"
        body = json.loads(request.content)
        assert body["model"] == "gpt-4o"
        assert body["stream"] is True
        assert body["messages"][0] == {"role": "system", "content": "Be brief."}
        assert body["messages"][1:] == [m.to_openai() for m in HISTORY]

    @pytest.mark.asyncio
    async def test_no_system_message_without_prompt(self):
        provider = OpenAIProvider(_openai_config())
        async with _client(lambda r: httpx.Response(200)) as client:
            request = provider.build_request(client, HISTORY[:1])
        assert json.loads(request.content)["messages"] == [{"role": "user", "content": "Hi"}]

    def test_decoder_and_extractor(self):
        provider = OpenAIProvider(_openai_config())
        assert isinstance(provider.new_decoder(), SSEFrameDecoder)
        assert isinstance(provider.extractor, OpenAIDeltaExtractor)
        assert provider.provider_id == "openai"
        assert provider.model_id == "gpt-4o"

    @pytest.mark.asyncio
    async def test_list_models(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/v1/models"
            return httpx.Response(200, json={"data": [{"id": "gpt-4o"}, {"id": "o1"}, {}]})

        async with _client(handler) as client:
            models = await OpenAIProvider(_openai_config()).list_models(client)
        assert models == {"gpt-4o": "gpt-4o", "o1": "o1"}

    @pytest.mark.asyncio
    async def test_list_models_empty_raises(self):
        async with _client(lambda r: httpx.Response(200, json={"data": []})) as client:
            with pytest.raises(TransportError, match="no usable models"):
                await OpenAIProvider(_openai_config()).list_models(client)

    @pytest.mark.asyncio
    async def test_list_models_error_status(self):
        def handler(request):
            return httpx.Response(401, json={"error": {"message": "bad key"}})

        async with _client(handler) as client:
            with pytest.raises(TransportError) as exc:
                await OpenAIProvider(_openai_config()).list_models(client)
        assert exc.value.status_code == 401
        assert "bad key" in str(exc.value)

    @pytest.mark.asyncio
    async def test_list_models_network_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with _client(handler) as client:
            with pytest.raises(TransportError, match="connection error"):
                await OpenAIProvider(_openai_config()).list_models(client)


# ── Gemini ───────────────────────────────────────────────────────


class TestGeminiProvider:
    @pytest.mark.asyncio
    async def test_request_shape(self):
        provider = GeminiProvider(_gemini_config())
        async with _client(lambda r: httpx.Response(200)) as client:
            request = provider.build_request(client, HISTORY, "Be brief.")

        assert request.url.path == "/v1beta/models/gemini-pro:streamGenerateContent"
        assert request.url.params["key"] == "g-key"
        assert "alt" not in request.url.params
        body = json.loads(request.content)
        assert [c["role"] for c in body["contents"]] == ["user", "model", "user"]
        assert body["contents"][1]["parts"] == [{"text": "Hello!"}]
        assert body["system_instruction"] == {"parts": [{"text": "Be brief."}]}

    @pytest.mark.asyncio
    async def test_sse_mode(self):
        provider = GeminiProvider(_gemini_config(), use_sse=True)
        async with _client(lambda r: httpx.Response(200)) as client:
            request = provider.build_request(client, HISTORY)
        assert request.url.params["alt"] == "sse"
        assert "system_instruction" not in json.loads(request.content)
        decoder = provider.new_decoder()
        assert isinstance(decoder, SSEFrameDecoder)
        # No sentinel in Gemini SSE
        assert decoder.feed(b"data: [DONE]\n")[0].payload == "[DONE]"

    def test_default_decoder_and_extractor(self):
        provider = GeminiProvider(_gemini_config())
        assert isinstance(provider.new_decoder(), JSONObjectStreamDecoder)
        assert isinstance(provider.extractor, GeminiDeltaExtractor)

    @pytest.mark.asyncio
    async def test_list_models_filters(self):
        payload = {"models": [
            {"name": "models/gemini-pro", "displayName": "Gemini Pro",
             "supportedGenerationMethods": ["generateContent", "countTokens"]},
            {"name": "models/embedding-001",
             "supportedGenerationMethods": ["embedContent"]},
            {"name": "models/gemini-embed", "supportedGenerationMethods": ["embedContent"]},
            {"name": "models/gemini-flash", "supportedGenerationMethods": ["generateContent"]},
        ]}

        def handler(request: httpx.Request) -> httpx.Response:
            assert str(request.url).startswith(f"{GEMINI_API_BASE}/models")
            assert request.url.params["key"] == "g-key"
            return httpx.Response(200, json=payload)

        async with _client(handler) as client:
            models = await GeminiProvider(_gemini_config()).list_models(client)
        assert models == {"gemini-pro": "Gemini Pro", "gemini-flash": "gemini-flash"}


# ── Error helpers ────────────────────────────────────────────────


class TestErrorHelpers:
    def test_error_from_response_with_message(self):
        response = httpx.Response(429)
        error = error_from_response(response, b'{"error": {"message": "slow down"}}')
        assert str(error) == "HTTP Error: 429 Too Many Requests: slow down"
        assert error.status_code == 429

    def test_error_from_response_plain_body(self):
        error = error_from_response(httpx.Response(500), b"<html>oops</html>")
        assert str(error) == "HTTP Error: 500 Internal Server Error"

    def test_short_error_reason(self):
        request = httpx.Request("GET", "https://x.test")
        assert short_error_reason(httpx.ReadTimeout("t", request=request)) == "timeout"
        assert short_error_reason(httpx.ConnectError("c", request=request)) == "connection error"
        assert short_error_reason(ValueError("x" * 200)) == "x" * 80


# ── Registry ─────────────────────────────────────────────────────


class TestRegistry:
    def test_get_provider(self):
        assert isinstance(get_provider(_openai_config()), OpenAIProvider)
        gemini = get_provider(_gemini_config(), use_sse=True)
        assert isinstance(gemini, GeminiProvider)
        assert gemini.use_sse

    def test_provider_for_settings_honors_gemini_sse(self):
        settings = ChatSettings(api_type="gemini", gemini_sse=True)
        provider = provider_for_settings(settings, _gemini_config())
        assert provider.use_sse

    def test_default_models(self):
        assert "gpt-3.5-turbo" in DEFAULT_MODELS[ProviderKind.OPENAI]
        assert "gemini-pro" in DEFAULT_MODELS[ProviderKind.GEMINI]

    @pytest.mark.asyncio
    async def test_fetch_models_without_model(self):
        settings = ChatSettings(
            api_type="openai", openai_api_key="k", openai_api_url="https://api.example.com",
        )
        handler = lambda r: httpx.Response(200, json={"data": [{"id": "m1"}]})  # noqa: E731
        async with _client(handler) as client:
            assert await fetch_models(settings, client=client) == {"m1": "m1"}

    @pytest.mark.asyncio
    async def test_fetch_models_requires_key(self):
        with pytest.raises(ConfigIncomplete) as exc:
            await fetch_models(ChatSettings(api_type="gemini"))
        assert exc.value.missing == ["geminiApiKey"]

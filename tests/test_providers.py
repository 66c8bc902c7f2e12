"""Tests for backend providers and response normalization."""

import json
from types import SimpleNamespace

import httpx
import pytest

from deconstructor.errors import BackendError
from deconstructor.llm.base import UNEXPECTED_FORMAT, extract_content
from deconstructor.llm.offline import OfflineProvider
from deconstructor.llm.ollama import OllamaProvider
from deconstructor.llm.providers import create_provider
from deconstructor.llm.remote import ChatCompletionsProvider

MESSAGES = [{"role": "user", "content": "hello"}]


class TestExtractContent:
    @pytest.mark.parametrize(
        "response",
        [
            "text",
            {"content": "text"},
            SimpleNamespace(content="text"),
            {"content": [{"type": "text", "text": "te"}, {"type": "text", "text": "xt"}]},
            {"message": {"role": "assistant", "content": "text"}},
            SimpleNamespace(lc_kwargs={"content": "text"}),
            {"choices": [{"message": {"content": "text"}}]},
        ],
    )
    def test_recognized_shapes(self, response):
        assert extract_content(response) == "text"

    @pytest.mark.parametrize("response", [None, 42, {"weird": 1}, {"choices": []}, {"content": 5}])
    def test_unknown_shapes_yield_sentinel(self, response):
        assert extract_content(response) == UNEXPECTED_FORMAT


def ollama_with(handler, **kwargs):
    return OllamaProvider(host="http://ollama:11434", model="test-model", transport=httpx.MockTransport(handler), **kwargs)


class TestOllamaProvider:
    @pytest.mark.asyncio
    async def test_invoke_posts_chat_request(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"message": {"role": "assistant", "content": "hi"}})

        async with ollama_with(handler, temperature=0.2, max_tokens=64) as provider:
            content = await provider.invoke(MESSAGES)

        assert content == "hi"
        assert seen["path"] == "/api/chat"
        assert seen["body"]["stream"] is False
        assert seen["body"]["model"] == "test-model"
        assert seen["body"]["options"] == {"temperature": 0.2, "num_predict": 64}

    @pytest.mark.asyncio
    async def test_http_error_becomes_backend_error(self):
        async with ollama_with(lambda request: httpx.Response(500, text="oops")) as provider:
            with pytest.raises(BackendError) as excinfo:
                await provider.invoke(MESSAGES)

        assert excinfo.value.status_code == 500

    @pytest.mark.asyncio
    async def test_transport_error_becomes_backend_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with ollama_with(handler) as provider:
            with pytest.raises(BackendError):
                await provider.invoke(MESSAGES)

    @pytest.mark.asyncio
    async def test_plain_text_body_is_returned(self):
        async with ollama_with(lambda request: httpx.Response(200, text="plain words")) as provider:
            assert await provider.invoke(MESSAGES) == "plain words"

    @pytest.mark.asyncio
    async def test_unknown_body_yields_sentinel(self):
        async with ollama_with(lambda request: httpx.Response(200, json={"weird": 1})) as provider:
            assert await provider.invoke(MESSAGES) == UNEXPECTED_FORMAT

    @pytest.mark.asyncio
    async def test_health_check_accepts_latest_tag(self):
        def handler(request):
            assert request.url.path == "/api/tags"
            return httpx.Response(200, json={"models": [{"name": "test-model:latest"}]})

        async with ollama_with(handler) as provider:
            assert await provider.health_check() is True

    @pytest.mark.asyncio
    async def test_health_check_missing_model(self):
        async with ollama_with(lambda request: httpx.Response(200, json={"models": []})) as provider:
            assert await provider.health_check() is False


class TestChatCompletionsProvider:
    @pytest.mark.asyncio
    async def test_invoke_sends_bearer_token(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["auth"] = request.headers["Authorization"]
            return httpx.Response(200, json={"choices": [{"message": {"content": "done"}}]})

        provider = ChatCompletionsProvider(
            base_url="https://api.example.com/v1",
            model="m",
            api_key="secret",
            transport=httpx.MockTransport(handler),
        )
        async with provider:
            assert await provider.invoke(MESSAGES) == "done"

        assert seen["path"] == "/v1/chat/completions"
        assert seen["auth"] == "Bearer secret"

    @pytest.mark.asyncio
    async def test_missing_api_key_fails_without_request(self):
        def handler(request):
            raise AssertionError("no request expected")

        provider = ChatCompletionsProvider(
            base_url="https://api.example.com/v1", model="m", transport=httpx.MockTransport(handler)
        )
        async with provider:
            with pytest.raises(BackendError):
                await provider.invoke(MESSAGES)
            assert await provider.health_check() is False

    def test_is_concurrent(self):
        assert ChatCompletionsProvider(base_url="https://x", model="m").supports_concurrency


@pytest.mark.asyncio
async def test_offline_provider_always_fails():
    with pytest.raises(BackendError):
        await OfflineProvider().invoke(MESSAGES)


class TestCreateProvider:
    def test_ollama_is_sequential(self):
        provider = create_provider({"llm_provider": "ollama", "ollama_model": "m"})

        assert isinstance(provider, OllamaProvider)
        assert not provider.supports_concurrency

    def test_openai(self):
        provider = create_provider({"llm_provider": "OpenAI", "llm_api_key": "k", "llm_model": "m"})
        assert isinstance(provider, ChatCompletionsProvider)

    def test_offline(self):
        assert isinstance(create_provider({"llm_provider": "offline"}), OfflineProvider)

    def test_unknown_provider(self):
        with pytest.raises(ValueError):
            create_provider({"llm_provider": "carrier-pigeon"})

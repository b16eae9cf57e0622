"""
Tests for OpenRouterTextGenerator with a mocked httpx client.
"""

from unittest.mock import AsyncMock

import httpx
import pytest

from listing_enhancer.ai.openrouter import OpenRouterTextGenerator
from listing_enhancer.core.exceptions import ProviderError
from listing_enhancer.core.interfaces import GenerationOptions

URL = "https://openrouter.ai/api/v1/chat/completions"


def _response(status_code: int, **kwargs) -> httpx.Response:
    return httpx.Response(status_code, request=httpx.Request("POST", URL), **kwargs)


def _completion(content) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


@pytest.fixture
def client():
    mock = AsyncMock(spec=httpx.AsyncClient)
    mock.post.return_value = _response(200, json=_completion('{"title": "Oak Chair"}'))
    return mock


@pytest.fixture
def generator(client):
    return OpenRouterTextGenerator(
        api_key="sk-or-test",
        site_url="https://shop.test",
        app_title="Listing Enhancer",
        client=client,
    )


class TestGenerate:

    @pytest.mark.asyncio
    async def test_returns_message_content(self, generator):
        assert await generator.generate("sys", "user", "openai/gpt-4o") == '{"title": "Oak Chair"}'

    @pytest.mark.asyncio
    async def test_request_payload_and_headers(self, generator, client):
        await generator.generate(
            "sys", "user", "openai/gpt-4o", GenerationOptions(json_mode=True, temperature=0.7)
        )

        args, kwargs = client.post.call_args
        assert args[0] == URL
        assert kwargs["headers"]["Authorization"] == "Bearer sk-or-test"
        assert kwargs["headers"]["HTTP-Referer"] == "https://shop.test"
        assert kwargs["headers"]["X-Title"] == "Listing Enhancer"
        payload = kwargs["json"]
        assert payload["model"] == "openai/gpt-4o"
        assert payload["messages"][0] == {"role": "system", "content": "sys"}
        assert payload["temperature"] == 0.7
        assert payload["max_tokens"] == 2000
        assert payload["response_format"] == {"type": "json_object"}

    @pytest.mark.asyncio
    async def test_plain_mode_has_no_response_format(self, generator, client):
        await generator.generate("sys", "user", "openai/gpt-4o")
        assert "response_format" not in client.post.call_args[1]["json"]

    @pytest.mark.asyncio
    async def test_missing_api_key_not_retryable(self, client):
        generator = OpenRouterTextGenerator(api_key="", client=client)
        with pytest.raises(ProviderError) as exc_info:
            await generator.generate("sys", "user", "openai/gpt-4o")
        assert exc_info.value.retryable is False
        client.post.assert_not_called()


class TestErrorMapping:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [401, 403])
    async def test_auth_errors_not_retryable(self, generator, client, status):
        client.post.return_value = _response(status, json={"error": {"message": "bad key"}})
        with pytest.raises(ProviderError) as exc_info:
            await generator.generate("sys", "user", "openai/gpt-4o")
        assert exc_info.value.retryable is False
        assert exc_info.value.status_code == status

    @pytest.mark.asyncio
    async def test_rate_limit_retryable(self, generator, client):
        client.post.return_value = _response(429, text="slow down")
        with pytest.raises(ProviderError) as exc_info:
            await generator.generate("sys", "user", "openai/gpt-4o")
        assert exc_info.value.retryable is True
        assert exc_info.value.model_id == "openai/gpt-4o"

    @pytest.mark.asyncio
    async def test_server_error_uses_error_message(self, generator, client):
        client.post.return_value = _response(502, json={"error": {"message": "upstream unavailable"}})
        with pytest.raises(ProviderError, match="upstream unavailable"):
            await generator.generate("sys", "user", "openai/gpt-4o")

    @pytest.mark.asyncio
    async def test_transport_error(self, generator, client):
        client.post.side_effect = httpx.ConnectError("connection refused")
        with pytest.raises(ProviderError, match="ConnectError"):
            await generator.generate("sys", "user", "openai/gpt-4o")

    @pytest.mark.asyncio
    async def test_malformed_body(self, generator, client):
        client.post.return_value = _response(200, json={"id": "gen-1"})
        with pytest.raises(ProviderError, match="Malformed completion"):
            await generator.generate("sys", "user", "openai/gpt-4o")

    @pytest.mark.asyncio
    async def test_empty_content(self, generator, client):
        client.post.return_value = _response(200, json=_completion("   "))
        with pytest.raises(ProviderError, match="Empty completion"):
            await generator.generate("sys", "user", "openai/gpt-4o")

    @pytest.mark.asyncio
    async def test_non_json_body(self, generator, client):
        client.post.return_value = _response(200, text="<html>oops</html>")
        with pytest.raises(ProviderError, match="non-JSON"):
            await generator.generate("sys", "user", "openai/gpt-4o")


class TestLifecycle:

    @pytest.mark.asyncio
    async def test_context_manager_closes_client(self, client):
        async with OpenRouterTextGenerator(api_key="sk-or-test", client=client) as generator:
            await generator.generate("sys", "user", "openai/gpt-4o")
        client.aclose.assert_awaited_once()

from __future__ import annotations

from http import HTTPStatus

import pytest
from conftest import FakeResponse

from alias_router.core.exceptions import ProviderError
from alias_router.providers.base import ProviderRequest
from alias_router.providers.openai_compatible import OpenAICompatibleProvider
from alias_router.providers.pricing import CostEstimator


def _adapter(catalog, settings, provider_id) -> OpenAICompatibleProvider:
    return OpenAICompatibleProvider(catalog.get(provider_id), CostEstimator(catalog), settings)


@pytest.mark.asyncio
async def test_openrouter_sends_referer_header(catalog, settings, http_stub):
    adapter = _adapter(catalog, settings, "openrouter")
    http_stub.queue(
        FakeResponse(
            HTTPStatus.OK,
            {
                "choices": [{"message": {"role": "assistant", "content": "Hello"}}],
                "usage": {"prompt_tokens": 5, "completion_tokens": 7},
            },
        )
    )

    result = await adapter.invoke("openai/gpt-4o-mini", "or-key", ProviderRequest(prompt="Hi"))

    assert result.content == "Hello"
    assert result.usage.total_tokens == 12
    call = http_stub.calls[0]
    assert call["url"] == "https://openrouter.ai/api/v1/chat/completions"
    assert call["headers"]["HTTP-Referer"] == "http://localhost:3000"
    assert call["headers"]["Authorization"] == "Bearer or-key"


@pytest.mark.asyncio
async def test_zhipu_uses_configured_chat_path(catalog, settings, http_stub):
    adapter = _adapter(catalog, settings, "zhipu")
    http_stub.queue(FakeResponse(HTTPStatus.OK, {"choices": [], "usage": {}}))

    result = await adapter.invoke("glm-4-plus", "zp-key", ProviderRequest(prompt="Hi"))

    assert result.content is None
    assert http_stub.calls[0]["url"] == "https://open.bigmodel.cn/api/paas/v4/chat/completions"


@pytest.mark.asyncio
async def test_probe_without_verify_path_sends_minimal_chat(catalog, settings, http_stub):
    adapter = _adapter(catalog, settings, "zhipu")
    http_stub.queue(FakeResponse(HTTPStatus.OK, {"choices": []}))

    result = await adapter.verify_key("zp-key")

    assert result.valid is True
    call = http_stub.calls[0]
    assert call["method"] == "POST"
    assert call["json"]["model"] == "glm-4-air"
    assert call["json"]["max_tokens"] == 1


@pytest.mark.asyncio
async def test_probe_with_verify_path_uses_get(catalog, settings, http_stub):
    adapter = _adapter(catalog, settings, "groq")
    http_stub.queue(FakeResponse(HTTPStatus.UNAUTHORIZED, {"error": {"message": "Invalid API Key"}}))

    result = await adapter.verify_key("gq-key")

    assert result.valid is False
    assert result.error == "Groq API error: HTTP 401: Invalid API Key"
    assert http_stub.calls[0]["url"] == "https://api.groq.com/openai/v1/models"


@pytest.mark.asyncio
async def test_non_json_success_body_is_not_retryable(catalog, settings, http_stub):
    adapter = _adapter(catalog, settings, "mistral")
    http_stub.queue(FakeResponse(HTTPStatus.OK, text="<html>maintenance</html>"))

    with pytest.raises(ProviderError) as excinfo:
        await adapter.invoke("mistral-small-latest", "ms-key", ProviderRequest(prompt="Hi"))

    assert excinfo.value.retryable is False
    assert excinfo.value.message == "Unexpected response format"

from __future__ import annotations

from http import HTTPStatus

import pytest
from conftest import FakeResponse

from alias_router.core.exceptions import ProviderError
from alias_router.providers.base import ProviderRequest
from alias_router.providers.gemini import GeminiProvider
from alias_router.providers.pricing import CostEstimator

TEMPERATURE = 0.3
MAX_OUTPUT_TOKENS = 256


@pytest.fixture
def adapter(catalog, settings) -> GeminiProvider:
    return GeminiProvider(catalog.get("google"), CostEstimator(catalog), settings)


@pytest.mark.asyncio
async def test_gemini_adapter_success(adapter, http_stub):
    http_stub.queue(
        FakeResponse(
            HTTPStatus.OK,
            {
                "candidates": [
                    {
                        "content": {"parts": [{"text": "Hello from Gemini"}]},
                        "finishReason": "STOP",
                    }
                ],
                "usageMetadata": {
                    "promptTokenCount": 10,
                    "candidatesTokenCount": 15,
                    "totalTokenCount": 25,
                },
            },
        )
    )
    request = ProviderRequest(
        input_data={
            "messages": [
                {"role": "system", "content": "You are concise."},
                {"role": "user", "content": "Hi"},
                {"role": "assistant", "content": "Hello"},
                {"role": "user", "content": [{"type": "text", "text": "How are you?"}]},
            ]
        },
        temperature=TEMPERATURE,
        max_tokens=MAX_OUTPUT_TOKENS,
    )

    result = await adapter.invoke("models/gemini-1.5-flash", "gemini-key", request)

    assert result.content == "Hello from Gemini"
    assert result.usage.input_tokens == 10
    assert result.usage.output_tokens == 15
    assert result.usage.total_tokens == 25

    call = http_stub.calls[0]
    assert call["url"] == (
        "https://generativelanguage.googleapis.com/v1beta/models/gemini-1.5-flash:generateContent"
    )
    assert call["headers"]["x-goog-api-key"] == "gemini-key"
    payload = call["json"]
    assert payload["systemInstruction"] == {"parts": [{"text": "You are concise."}]}
    assert [item["role"] for item in payload["contents"]] == ["user", "model", "user"]
    assert payload["contents"][2]["parts"] == [{"text": "How are you?"}]
    assert payload["generationConfig"] == {
        "temperature": TEMPERATURE,
        "maxOutputTokens": MAX_OUTPUT_TOKENS,
    }


@pytest.mark.asyncio
async def test_gemini_adapter_surfaces_status_and_message(adapter, http_stub):
    http_stub.queue(
        FakeResponse(
            HTTPStatus.FORBIDDEN,
            {"error": {"status": "PERMISSION_DENIED", "message": "API key not valid"}},
        )
    )

    with pytest.raises(ProviderError) as excinfo:
        await adapter.invoke("gemini-1.5-flash", "gemini-key", ProviderRequest(prompt="Hi"))

    assert excinfo.value.http_status == HTTPStatus.FORBIDDEN
    assert excinfo.value.retryable is False
    assert excinfo.value.message == (
        "Google API error: HTTP 403: PERMISSION_DENIED - API key not valid"
    )


@pytest.mark.asyncio
async def test_gemini_adapter_missing_candidates_returns_empty_content(adapter, http_stub):
    http_stub.queue(FakeResponse(HTTPStatus.OK, {"candidates": []}))

    result = await adapter.invoke("gemini-1.5-flash", "gemini-key", ProviderRequest(prompt="Hi"))

    assert result.content is None
    assert result.usage.total_tokens == 0

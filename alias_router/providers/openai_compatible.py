"""Adapter for vendors exposing an OpenAI-compatible chat completions API."""

from __future__ import annotations

from typing import Any

from alias_router.core.exceptions import ProviderError

from .base import ProviderAdapter, ProviderRequest, ProviderResult, as_messages

DEFAULT_MAX_TOKENS = 1000
DEFAULT_TEMPERATURE = 0.7


class OpenAICompatibleProvider(ProviderAdapter):
    """Mistral, Groq, Zhipu, OpenRouter and other chat/completions clones."""

    async def invoke(self, model: str, api_key: str, request: ProviderRequest) -> ProviderResult:
        return await self._chat(model, api_key, request)

    async def _probe(self, api_key: str) -> None:
        if "verify" in self._config.paths:
            await self._send("GET", self._url("verify", ""), headers=self._headers(api_key))
            return

        model = self._config.models.get("verification") or self._config.models.get("default")
        if not model:
            raise ProviderError(self.provider_id, message="Verification model not configured")
        await self._send(
            "POST",
            self._url("chat", "/v1/chat/completions"),
            headers=self._headers(api_key),
            payload={
                "model": model,
                "messages": [{"role": "user", "content": "healthcheck"}],
                "max_tokens": 1,
            },
        )

    def _build_payload(self, model: str, request: ProviderRequest) -> dict[str, Any]:
        return {
            "model": model,
            "messages": as_messages(request),
            "max_tokens": request.max_tokens or DEFAULT_MAX_TOKENS,
            "temperature": (
                request.temperature if request.temperature is not None else DEFAULT_TEMPERATURE
            ),
        }

    async def _chat(self, model: str, api_key: str, request: ProviderRequest) -> ProviderResult:
        data = await self._send(
            "POST",
            self._url("chat", "/v1/chat/completions"),
            headers=self._headers(api_key),
            payload=self._build_payload(model, request),
        )
        if not isinstance(data, dict):
            raise ProviderError(
                self.provider_id, message="Unexpected response format", retryable=False
            )

        choices = data.get("choices") or []
        content = None
        if choices and isinstance(choices[0], dict):
            content = (choices[0].get("message") or {}).get("content")

        usage = data.get("usage") or {}
        return ProviderResult(
            content=content,
            usage=self._token_usage(
                model,
                int(usage.get("prompt_tokens") or 0),
                int(usage.get("completion_tokens") or 0),
                int(usage["total_tokens"]) if usage.get("total_tokens") is not None else None,
            ),
        )

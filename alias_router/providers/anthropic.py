"""Anthropic Messages API adapter."""

from __future__ import annotations

from typing import Any

from alias_router.core.exceptions import ProviderError

from .base import ProviderAdapter, ProviderRequest, ProviderResult, as_messages

ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_MAX_TOKENS = 1000


class AnthropicProvider(ProviderAdapter):
    def _headers(self, api_key: str) -> dict[str, str]:
        return {
            "x-api-key": api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "Content-Type": "application/json",
            **self._config.headers,
        }

    async def invoke(self, model: str, api_key: str, request: ProviderRequest) -> ProviderResult:
        data = await self._send(
            "POST",
            self._url("messages", "/v1/messages"),
            headers=self._headers(api_key),
            payload=self._build_payload(model, request),
        )
        if not isinstance(data, dict):
            raise ProviderError(
                self.provider_id, message="Unexpected response format", retryable=False
            )

        text_parts = [
            block.get("text", "")
            for block in data.get("content") or []
            if isinstance(block, dict) and block.get("type", "text") == "text"
        ]
        usage = data.get("usage") or {}
        return ProviderResult(
            content="".join(text_parts) if text_parts else None,
            usage=self._token_usage(
                model,
                int(usage.get("input_tokens") or 0),
                int(usage.get("output_tokens") or 0),
            ),
        )

    async def _probe(self, api_key: str) -> None:
        model = self._config.models.get("verification") or self._config.models.get("default")
        if not model:
            raise ProviderError(self.provider_id, message="Verification model not configured")
        await self._send(
            "POST",
            self._url("messages", "/v1/messages"),
            headers=self._headers(api_key),
            payload={
                "model": model,
                "max_tokens": 1,
                "messages": [{"role": "user", "content": "test"}],
            },
        )

    def _build_payload(self, model: str, request: ProviderRequest) -> dict[str, Any]:
        system_parts: list[str] = []
        messages: list[dict[str, Any]] = []
        for message in as_messages(request):
            if message.get("role") == "system":
                if isinstance(message.get("content"), str):
                    system_parts.append(message["content"])
                continue
            messages.append(message)

        payload: dict[str, Any] = {
            "model": model,
            "max_tokens": request.max_tokens or DEFAULT_MAX_TOKENS,
            "messages": messages,
        }
        if system_parts:
            payload["system"] = "\n\n".join(system_parts)
        if request.temperature is not None:
            payload["temperature"] = request.temperature
        return payload

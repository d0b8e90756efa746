"""Gemini provider adapter."""

from __future__ import annotations

from typing import Any

from alias_router.core.exceptions import ProviderError

from .base import ProviderAdapter, ProviderRequest, ProviderResult, as_messages

DEFAULT_MAX_OUTPUT_TOKENS = 1000
DEFAULT_TEMPERATURE = 0.7


class GeminiProvider(ProviderAdapter):
    def _headers(self, api_key: str) -> dict[str, str]:
        return {
            "x-goog-api-key": api_key,
            "Content-Type": "application/json",
        }

    async def invoke(self, model: str, api_key: str, request: ProviderRequest) -> ProviderResult:
        model_slug = model.removeprefix("models/")
        data = await self._send(
            "POST",
            self._url("generate", "/v1beta/models/{model}:generateContent", model=model_slug),
            headers=self._headers(api_key),
            payload=self._build_payload(request),
        )
        if not isinstance(data, dict):
            raise ProviderError(
                self.provider_id, message="Unexpected response format", retryable=False
            )

        candidate = self._select_candidate(data.get("candidates", []))
        content = None
        if candidate:
            parts = candidate.get("content", {}).get("parts", [])
            content = "".join(part.get("text", "") for part in parts if isinstance(part, dict))

        usage = data.get("usageMetadata") or {}
        prompt = usage.get("promptTokenCount")
        completion = usage.get("candidatesTokenCount")
        total = usage.get("totalTokenCount")
        return ProviderResult(
            content=content,
            usage=self._token_usage(
                model,
                prompt if isinstance(prompt, int) else 0,
                completion if isinstance(completion, int) else 0,
                total if isinstance(total, int) else None,
            ),
        )

    async def _probe(self, api_key: str) -> None:
        await self._send(
            "GET", self._url("verify", "/v1beta/models"), headers=self._headers(api_key)
        )

    def _build_payload(self, request: ProviderRequest) -> dict[str, Any]:
        contents: list[dict[str, Any]] = []
        system_parts: list[dict[str, str]] = []

        for message in as_messages(request):
            text = self._extract_text(message.get("content"))
            if not text:
                continue

            role = message.get("role")
            if role == "system":
                system_parts.append({"text": text})
                continue

            mapped_role = "model" if role == "assistant" else "user"
            contents.append({"role": mapped_role, "parts": [{"text": text}]})

        payload: dict[str, Any] = {"contents": contents}
        if system_parts:
            payload["systemInstruction"] = {"parts": system_parts}

        payload["generationConfig"] = {
            "temperature": (
                request.temperature if request.temperature is not None else DEFAULT_TEMPERATURE
            ),
            "maxOutputTokens": request.max_tokens or DEFAULT_MAX_OUTPUT_TOKENS,
        }
        return payload

    def _extract_text(self, content: Any) -> str:
        if content is None:
            return ""
        if isinstance(content, str):
            return content
        if isinstance(content, list):
            pieces: list[str] = []
            for item in content:
                if isinstance(item, dict):
                    if isinstance(item.get("text"), str):
                        pieces.append(item["text"])
                    elif isinstance(item.get("content"), str):
                        pieces.append(item["content"])
                elif isinstance(item, str):
                    pieces.append(item)
            return "".join(pieces)
        if isinstance(content, dict):
            value = content.get("text") or content.get("content")
            return value if isinstance(value, str) else ""
        return str(content)

    def _select_candidate(self, candidates: Any) -> dict[str, Any] | None:
        if not isinstance(candidates, list):
            return None
        for candidate in candidates:
            if isinstance(candidate, dict):
                return candidate
        return None

"""OpenAI provider adapter."""

from __future__ import annotations

from typing import Any

from alias_router.core.exceptions import ProviderError

from .base import ProviderRequest, ProviderResult
from .openai_compatible import OpenAICompatibleProvider


class OpenAIProvider(OpenAICompatibleProvider):
    """Chat completions, embeddings and image generation."""

    async def invoke(self, model: str, api_key: str, request: ProviderRequest) -> ProviderResult:
        if request.modality == "image":
            if request.capability == "caption":
                return await self._caption(model, api_key, request)
            if request.capability != "generate":
                raise ProviderError(
                    self.provider_id,
                    message=f"Image capability '{request.capability}' is not supported",
                    retryable=False,
                )
            return await self._generate_image(model, api_key, request)
        if request.capability == "embedding":
            return await self._embed(model, api_key, request)
        return await self._chat(model, api_key, request)

    async def _probe(self, api_key: str) -> None:
        await self._send("GET", self._url("verify", "/v1/models"), headers=self._headers(api_key))

    async def _generate_image(
        self, model: str, api_key: str, request: ProviderRequest
    ) -> ProviderResult:
        options = request.input_data or {}
        count = int(options.get("n") or 1)
        payload: dict[str, Any] = {
            "model": model,
            "prompt": request.prompt or "",
            "n": count,
            "size": options.get("size") or "1024x1024",
        }
        data = await self._send(
            "POST",
            self._url("images", "/v1/images/generations"),
            headers=self._headers(api_key),
            payload=payload,
        )
        if not isinstance(data, dict) or not isinstance(data.get("data"), list):
            raise ProviderError(
                self.provider_id, message="Unexpected response format", retryable=False
            )
        return ProviderResult(data=data["data"], usage=self._request_usage(model, count))

    async def _caption(self, model: str, api_key: str, request: ProviderRequest) -> ProviderResult:
        image_url = (request.input_data or {}).get("image_url")
        if not image_url:
            raise ProviderError(
                self.provider_id, message="Captioning needs input_data.image_url", retryable=False
            )
        message = {
            "role": "user",
            "content": [
                {"type": "text", "text": request.prompt or "Describe this image."},
                {"type": "image_url", "image_url": {"url": image_url}},
            ],
        }
        return await self._chat(
            model, api_key, request.model_copy(update={"input_data": {"messages": [message]}})
        )

    async def _embed(self, model: str, api_key: str, request: ProviderRequest) -> ProviderResult:
        data = await self._send(
            "POST",
            self._url("embeddings", "/v1/embeddings"),
            headers=self._headers(api_key),
            payload={"model": model, "input": request.prompt or ""},
        )
        if not isinstance(data, dict):
            raise ProviderError(
                self.provider_id, message="Unexpected response format", retryable=False
            )
        vectors = [
            item.get("embedding") for item in data.get("data") or [] if isinstance(item, dict)
        ]
        usage = data.get("usage") or {}
        prompt_tokens = int(usage.get("prompt_tokens") or 0)
        total_tokens = int(usage.get("total_tokens") or prompt_tokens)
        return ProviderResult(
            data=vectors,
            usage=self._token_usage(model, prompt_tokens, 0, total_tokens),
        )

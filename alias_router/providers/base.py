"""Provider adapter interfaces."""

from __future__ import annotations

import asyncio
import logging
from http import HTTPStatus
from typing import Any

import httpx
from pydantic import BaseModel, Field

from alias_router.core.config import ProviderModel, Settings
from alias_router.core.exceptions import ProviderError, ProviderTimeout

from .pricing import CostEstimator
from .utils import extract_error_detail

logger = logging.getLogger("alias_router.providers")

RATE_LIMIT_BACKOFF_SECONDS = 1.0


class ProviderRequest(BaseModel):
    modality: str = "text"
    capability: str = "chat"
    prompt: str | None = None
    input_data: dict[str, Any] | None = None
    temperature: float | None = None
    max_tokens: int | None = None


class Usage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    cost_estimate_usd: float = 0.0


class ProviderResult(BaseModel):
    content: str | None = None
    data: Any = None
    usage: Usage = Field(default_factory=Usage)


class VerificationResult(BaseModel):
    valid: bool
    error: str | None = None


class ProviderAdapter:
    """Uniform call contract implemented once per vendor."""

    def __init__(
        self,
        config: ProviderModel,
        pricing: CostEstimator,
        settings: Settings | None = None,
    ) -> None:
        self._config = config
        self._pricing = pricing
        self._settings = settings or Settings()
        self.provider_id = config.id
        self._base_url = config.base_url.rstrip("/")

    @property
    def config(self) -> ProviderModel:
        return self._config

    async def invoke(self, model: str, api_key: str, request: ProviderRequest) -> ProviderResult:
        raise NotImplementedError

    async def verify_key(self, api_key: str) -> VerificationResult:
        """Run a lightweight probe call; failures are reported, not raised."""
        try:
            await self._probe(api_key)
        except ProviderError as exc:
            return VerificationResult(valid=False, error=exc.message)
        return VerificationResult(valid=True)

    async def _probe(self, api_key: str) -> None:
        raise NotImplementedError

    def _headers(self, api_key: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            **self._config.headers,
        }

    def _url(self, name: str, default: str, **params: str) -> str:
        return f"{self._base_url}{self._config.path(name, default).format(**params)}"

    async def _send(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str],
        payload: dict[str, Any] | None = None,
    ) -> Any:
        """Issue one HTTP call, retrying a single 429 after a short backoff."""
        attempt = 0
        while True:
            attempt += 1
            try:
                async with httpx.AsyncClient(timeout=self._config.timeout_seconds) as client:
                    if method == "GET":
                        response = await client.get(url, headers=headers)
                    else:
                        response = await client.post(url, json=payload, headers=headers)
            except httpx.TimeoutException as exc:
                raise ProviderTimeout(
                    self.provider_id,
                    message=f"{self._config.name} did not respond within "
                    f"{self._config.timeout_seconds:g}s",
                ) from exc
            except httpx.RequestError as exc:
                raise ProviderError(
                    self.provider_id, message=f"{self._config.name} request failed: {exc}"
                ) from exc

            if response.status_code == HTTPStatus.TOO_MANY_REQUESTS and attempt == 1:
                logger.info(
                    "Provider rate limited, retrying",
                    extra={"event": "provider_retry", "provider": self.provider_id},
                )
                await asyncio.sleep(RATE_LIMIT_BACKOFF_SECONDS)
                continue

            if response.is_error:
                message = f"{self._config.name} API error: HTTP {response.status_code}"
                detail = extract_error_detail(response)
                if detail:
                    message = f"{message}: {detail}"
                raise ProviderError(
                    self.provider_id, message=message, http_status=response.status_code
                )

            try:
                return response.json()
            except ValueError as exc:
                raise ProviderError(
                    self.provider_id,
                    message="Unexpected response format",
                    http_status=response.status_code,
                    retryable=False,
                ) from exc

    def _token_usage(
        self, model: str, input_tokens: int, output_tokens: int, total: int | None = None
    ) -> Usage:
        total_tokens = total if total is not None else input_tokens + output_tokens
        return Usage(
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            total_tokens=total_tokens,
            cost_estimate_usd=self._pricing.estimate(self.provider_id, model, tokens=total_tokens),
        )

    def _request_usage(self, model: str, count: int = 1) -> Usage:
        return Usage(
            cost_estimate_usd=self._pricing.estimate(self.provider_id, model, requests=count)
        )


def as_messages(request: ProviderRequest) -> list[dict[str, Any]]:
    """Return chat messages from ``input_data`` or wrap the prompt as one user turn."""
    messages = (request.input_data or {}).get("messages")
    if isinstance(messages, list) and messages:
        return messages
    return [{"role": "user", "content": request.prompt or ""}]


__all__ = [
    "ProviderAdapter",
    "ProviderRequest",
    "ProviderResult",
    "Usage",
    "VerificationResult",
    "as_messages",
]

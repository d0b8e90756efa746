"""Replicate adapter for asynchronous prediction jobs."""

from __future__ import annotations

import asyncio
import time
from typing import Any

from alias_router.core.exceptions import ProviderError, ProviderTimeout

from .base import ProviderAdapter, ProviderRequest, ProviderResult

PENDING_STATUSES = {"starting", "processing"}


class ReplicateProvider(ProviderAdapter):
    """Create a prediction, then poll until it reaches a terminal state.

    Polling is bounded by ``Settings.replicate_max_wait_seconds``; a job still
    pending past that ceiling raises ``ProviderTimeout``.
    """

    async def invoke(self, model: str, api_key: str, request: ProviderRequest) -> ProviderResult:
        payload: dict[str, Any] = {
            "version": model,
            "input": {"prompt": request.prompt or "", **(request.input_data or {})},
        }
        prediction = await self._send(
            "POST",
            self._url("predictions", "/v1/predictions"),
            headers=self._headers(api_key),
            payload=payload,
        )
        result = await self._wait(prediction, api_key)

        if result.get("status") != "succeeded":
            raise ProviderError(
                self.provider_id,
                message=result.get("error") or f"Replicate prediction {result.get('status')}",
                retryable=False,
            )

        return ProviderResult(data=result.get("output"), usage=self._request_usage(model))

    async def _wait(self, prediction: Any, api_key: str) -> dict[str, Any]:
        if not isinstance(prediction, dict) or not prediction.get("id"):
            raise ProviderError(
                self.provider_id, message="Unexpected response format", retryable=False
            )

        deadline = time.monotonic() + self._settings.replicate_max_wait_seconds
        result = prediction
        while result.get("status") in PENDING_STATUSES:
            if time.monotonic() >= deadline:
                raise ProviderTimeout(
                    self.provider_id,
                    message=f"Replicate prediction {prediction['id']} still "
                    f"{result.get('status')} after "
                    f"{self._settings.replicate_max_wait_seconds:g}s",
                )
            await asyncio.sleep(self._settings.replicate_poll_interval_seconds)
            polled = await self._send(
                "GET",
                self._url("predictions", "/v1/predictions") + f"/{prediction['id']}",
                headers=self._headers(api_key),
            )
            if not isinstance(polled, dict):
                raise ProviderError(
                    self.provider_id, message="Unexpected response format", retryable=False
                )
            result = polled
        return result

    async def _probe(self, api_key: str) -> None:
        await self._send("GET", self._url("verify", "/v1/account"), headers=self._headers(api_key))

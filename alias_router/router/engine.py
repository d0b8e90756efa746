"""Alias invocation: walk the fallback chain until one provider succeeds."""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Dict, List

from pydantic import BaseModel, Field

from alias_router.core.exceptions import (
    AllProvidersExhausted,
    BudgetBlocked,
    KeyMissing,
    LinkBlocked,
    ProviderError,
    ProviderTimeout,
    RateLimited,
    ScopeBlocked,
    UnknownProviderError,
)
from alias_router.logging import reset_request_id, set_request_id
from alias_router.providers.base import ProviderRequest, Usage
from alias_router.storage.models import ModelAlias, ProviderKey
from alias_router.telemetry.call_log import CallLogWriter
from alias_router.telemetry.events import EventLog
from alias_router.vault.keys import CredentialVault

from .aliases import AliasResolver, ChainLink
from .ledger import BudgetLedger
from .registry import ProviderRegistry

logger = logging.getLogger("alias_router.router")


class InvokeOptions(BaseModel):
    temperature: float | None = Field(default=None, ge=0, le=2)
    max_tokens: int | None = Field(default=None, ge=1, le=8000)


class InvokeRequest(BaseModel):
    workspace_id: int
    user_id: int
    alias_name: str
    capability: str | None = None
    prompt: str | None = None
    input_data: Dict[str, Any] | None = None
    options: InvokeOptions = Field(default_factory=InvokeOptions)


class InvokeResponse(BaseModel):
    content: str | None = None
    data: Any = None
    provider_used: str
    model_used: str
    usage: Usage
    latency_ms: int
    fallback_used: bool
    fallback_reason: str | None = None
    request_id: str


class RoutingEngine:
    """Resolve an alias and try its chain links strictly in order.

    Link-level failures (no key, budget, scope, rate limit, provider error)
    demote the link and move on. Alias, vault and storage errors propagate
    immediately. One call-log row is written per logical request: the
    success row, or a single error row once the chain is exhausted.
    """

    def __init__(
        self,
        *,
        aliases: AliasResolver,
        vault: CredentialVault,
        ledger: BudgetLedger,
        registry: ProviderRegistry,
        call_log: CallLogWriter,
        events: EventLog | None = None,
    ) -> None:
        self._aliases = aliases
        self._vault = vault
        self._ledger = ledger
        self._registry = registry
        self._call_log = call_log
        self._events = events

    async def invoke(self, request: InvokeRequest) -> InvokeResponse:
        request_id = f"req_{uuid.uuid4().hex}"
        token = set_request_id(request_id)
        try:
            return await self._invoke(request, request_id)
        finally:
            reset_request_id(token)

    async def _invoke(self, request: InvokeRequest, request_id: str) -> InvokeResponse:
        started = time.perf_counter()
        alias = self._aliases.resolve(request.workspace_id, request.alias_name)
        capability = self._aliases.capability_for(alias, request.capability)
        chain = self._aliases.build_chain(alias)
        provider_request = ProviderRequest(
            modality=alias.modality,
            capability=capability,
            prompt=request.prompt,
            input_data=request.input_data,
            temperature=request.options.temperature,
            max_tokens=request.options.max_tokens,
        )

        attempts: List[Dict[str, str]] = []
        last_reason: str | None = None
        for index, link in enumerate(chain):
            if attempts:
                self._switched(alias, attempts[-1], link, index)
            try:
                adapter = self._registry.get_adapter(link.provider)
                key = self._admit(request.workspace_id, link, alias.modality)
                api_key = self._vault.decrypt(key)
                result = await adapter.invoke(link.model, api_key, provider_request)
            except (LinkBlocked, ProviderError, UnknownProviderError) as exc:
                reason = exc.message
                attempts.append(
                    {
                        "provider": link.provider,
                        "model": link.model,
                        "reason": reason,
                        "code": _reason_code(exc),
                    }
                )
                self._failed(alias, link, reason, index)
                last_reason = reason
                continue

            latency_ms = int((time.perf_counter() - started) * 1000)
            self._call_log.record(
                user_id=request.user_id,
                workspace_id=request.workspace_id,
                alias_name=alias.alias_name,
                provider_name=link.provider,
                model_name=link.model,
                modality=alias.modality,
                capability=provider_request.capability,
                request_id=request_id,
                input_tokens=result.usage.input_tokens,
                output_tokens=result.usage.output_tokens,
                total_tokens=result.usage.total_tokens,
                input_characters=len(request.prompt or ""),
                output_characters=len(result.content or ""),
                cost_estimate_usd=result.usage.cost_estimate_usd,
                latency_ms=latency_ms,
                status="success",
                fallback_used=index > 0,
                fallback_reason=last_reason if index > 0 else None,
                provider_of_record=link.provider,
                request_metadata={
                    "options": request.options.model_dump(exclude_none=True),
                    "chain_position": index,
                    "skipped": attempts,
                },
            )
            self._ledger.apply_usage(key.id, result.usage)
            logger.info(
                "Alias invoked",
                extra={
                    "event": "alias_invoked",
                    "alias_name": alias.alias_name,
                    "provider": link.provider,
                    "model": link.model,
                    "latency_ms": latency_ms,
                    "fallback_used": index > 0,
                },
            )
            return InvokeResponse(
                content=result.content,
                data=result.data,
                provider_used=link.provider,
                model_used=link.model,
                usage=result.usage,
                latency_ms=latency_ms,
                fallback_used=index > 0,
                fallback_reason=last_reason if index > 0 else None,
                request_id=request_id,
            )

        self._exhausted(request, alias, chain, provider_request, request_id, attempts, started)
        raise AllProvidersExhausted(last_reason, attempts)

    def _admit(self, workspace_id: int, link: ChainLink, modality: str) -> ProviderKey:
        """Return the usable key for a link or raise the reason it is blocked."""
        key = self._vault.find_active_key(workspace_id, link.provider)
        if key is None:
            raise KeyMissing(link.provider)

        budget = self._ledger.check_budget(key.id)
        if not budget.allowed:
            raise BudgetBlocked(link.provider, budget.reason)
        if budget.status == "warning":
            logger.warning(
                budget.reason,
                extra={
                    "event": "budget_warning",
                    "provider": link.provider,
                    "usage_percent": budget.usage_percent,
                },
            )

        if not (key.scopes or {}).get(modality):
            raise ScopeBlocked(link.provider, modality)

        if not self._ledger.acquire_rate_slot(key.id, key.rate_limit_per_minute):
            raise RateLimited(link.provider, key.rate_limit_per_minute)
        return key

    def _failed(self, alias: ModelAlias, link: ChainLink, reason: str, index: int) -> None:
        logger.warning(
            "Provider failed",
            extra={
                "event": "provider_fail",
                "alias_name": alias.alias_name,
                "provider_from": link.provider,
                "model": link.model,
                "error_message": reason,
                "attempt": index + 1,
            },
        )
        self._record_event(
            "provider_fail",
            "WARNING",
            alias_name=alias.alias_name,
            provider_from=link.provider,
            model=link.model,
            message=reason,
            meta={"attempt": index + 1},
        )

    def _switched(
        self, alias: ModelAlias, previous: Dict[str, str], link: ChainLink, index: int
    ) -> None:
        logger.info(
            "Provider switched",
            extra={
                "event": "provider_switched",
                "alias_name": alias.alias_name,
                "provider_from": previous["provider"],
                "provider_to": link.provider,
                "model": link.model,
                "reason": previous["reason"],
                "attempt": index + 1,
            },
        )
        self._record_event(
            "provider_switched",
            "INFO",
            alias_name=alias.alias_name,
            provider_from=previous["provider"],
            provider_to=link.provider,
            model=link.model,
            message=previous["reason"],
            meta={"attempt": index + 1},
        )

    def _exhausted(
        self,
        request: InvokeRequest,
        alias: ModelAlias,
        chain: List[ChainLink],
        provider_request: ProviderRequest,
        request_id: str,
        attempts: List[Dict[str, str]],
        started: float,
    ) -> None:
        primary = chain[0]
        last_reason = attempts[-1]["reason"] if attempts else None
        self._call_log.record(
            user_id=request.user_id,
            workspace_id=request.workspace_id,
            alias_name=alias.alias_name,
            provider_name=primary.provider,
            model_name=primary.model,
            modality=alias.modality,
            capability=provider_request.capability,
            request_id=request_id,
            input_characters=len(request.prompt or ""),
            latency_ms=int((time.perf_counter() - started) * 1000),
            status="error",
            error_code="all_providers_exhausted",
            error_message=last_reason,
            fallback_used=len(chain) > 1,
            fallback_reason=last_reason,
            provider_of_record=primary.provider,
            request_metadata={
                "options": request.options.model_dump(exclude_none=True),
                "attempts": attempts,
            },
        )
        logger.error(
            "All providers exhausted",
            extra={
                "event": "request_error",
                "alias_name": alias.alias_name,
                "provider_from": attempts[-1]["provider"] if attempts else None,
                "error_message": last_reason,
            },
        )
        self._record_event(
            "request_error",
            "ERROR",
            alias_name=alias.alias_name,
            provider_from=attempts[-1]["provider"] if attempts else None,
            message=last_reason,
            meta={"attempts": len(attempts)},
        )

    def _record_event(self, kind: str, level: str, **kwargs: Any) -> None:
        if self._events is not None:
            self._events.record(kind, level, **kwargs)


def _reason_code(exc: Exception) -> str:
    if isinstance(exc, LinkBlocked):
        return exc.reason_code
    if isinstance(exc, UnknownProviderError):
        return "unknown_provider"
    if isinstance(exc, ProviderError):
        return "provider_timeout" if isinstance(exc, ProviderTimeout) else "provider_error"
    return "error"


__all__ = ["InvokeOptions", "InvokeRequest", "InvokeResponse", "RoutingEngine"]

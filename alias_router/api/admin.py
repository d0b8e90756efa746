"""Admin endpoints for keys, aliases, usage and routing events."""

from __future__ import annotations

from typing import Any, Dict, Literal

from fastapi import APIRouter, status
from pydantic import BaseModel, Field

from alias_router.router.aliases import AliasDefinition, AliasUpdate
from alias_router.storage.models import ModelAlias, ProviderKey
from alias_router.vault.keys import KeyLimits

from .dependencies import CallerDep, ServicesDep

router = APIRouter(prefix="/admin")


class KeyCreate(BaseModel):
    provider: str
    label: str = Field(min_length=1, max_length=200)
    api_key: str = Field(min_length=1)
    scopes: Dict[str, bool] | None = None
    limits: KeyLimits = Field(default_factory=KeyLimits)
    data_residency: Literal["us", "eu", "global"] = "global"
    zero_retention_mode: bool = False


def _key_view(key: ProviderKey) -> Dict[str, Any]:
    return {
        "id": key.id,
        "provider_name": key.provider_name,
        "key_label": key.key_label,
        "api_key_preview": f"••••{key.key_last_four}",
        "status": key.status,
        "verification_error": key.verification_error,
        "last_verified_at": key.last_verified_at.isoformat() if key.last_verified_at else None,
    }


def _alias_view(alias: ModelAlias) -> Dict[str, Any]:
    return {
        "id": alias.id,
        "alias_name": alias.alias_name,
        "display_name": alias.display_name,
        "modality": alias.modality,
        "capability": alias.capability,
        "primary_provider": alias.primary_provider,
        "primary_model": alias.primary_model,
        "fallback_chain": alias.fallback_chain,
        "routing_preference": alias.routing_preference,
        "allow_aggregators": alias.allow_aggregators,
        "is_active": alias.is_active,
    }


@router.get("/providers")
def list_providers(services: ServicesDep) -> dict:
    return {
        "providers": [
            {
                "id": provider.id,
                "name": provider.name,
                "tier": provider.tier,
                "is_aggregator": services.registry.is_aggregator(provider.id),
                "supported_modalities": provider.supported_modalities,
                "default_model": provider.models.get("default"),
            }
            for provider in services.registry.providers()
        ]
    }


@router.get("/keys")
def list_keys(services: ServicesDep, caller: CallerDep) -> dict:
    return {"keys": services.vault.list_keys(caller.user_id, caller.workspace_id)}


@router.post("/keys", status_code=status.HTTP_201_CREATED)
async def add_key(body: KeyCreate, services: ServicesDep, caller: CallerDep) -> dict:
    key = await services.vault.add_key(
        caller.user_id,
        caller.workspace_id,
        body.provider,
        body.label,
        body.api_key,
        scopes=body.scopes,
        limits=body.limits,
        data_residency=body.data_residency,
        zero_retention_mode=body.zero_retention_mode,
    )
    return {"key": _key_view(key)}


@router.post("/keys/{key_id}/verify")
async def verify_key(key_id: int, services: ServicesDep, caller: CallerDep) -> dict:
    key = await services.vault.verify_key(key_id, caller.user_id)
    return {"key": _key_view(key)}


@router.delete("/keys/{key_id}")
def revoke_key(key_id: int, services: ServicesDep, caller: CallerDep) -> dict:
    key = services.vault.revoke_key(key_id, caller.user_id)
    return {"key": _key_view(key)}


@router.get("/aliases")
def list_aliases(services: ServicesDep, caller: CallerDep) -> dict:
    aliases = services.aliases.list_aliases(caller.workspace_id)
    return {"aliases": [_alias_view(alias) for alias in aliases]}


@router.post("/aliases", status_code=status.HTTP_201_CREATED)
def create_alias(body: AliasDefinition, services: ServicesDep, caller: CallerDep) -> dict:
    alias = services.aliases.create_alias(caller.user_id, caller.workspace_id, body)
    return {"alias": _alias_view(alias)}


@router.post("/aliases/defaults")
def setup_default_aliases(services: ServicesDep, caller: CallerDep) -> dict:
    created = services.aliases.setup_default_aliases(caller.user_id, caller.workspace_id)
    return {"created": [_alias_view(alias) for alias in created]}


@router.patch("/aliases/{alias_id}")
def update_alias(
    alias_id: int, body: AliasUpdate, services: ServicesDep, caller: CallerDep
) -> dict:
    alias = services.aliases.update_alias(alias_id, caller.user_id, body)
    return {"alias": _alias_view(alias)}


@router.delete("/aliases/{alias_id}")
def deactivate_alias(alias_id: int, services: ServicesDep, caller: CallerDep) -> dict:
    alias = services.aliases.deactivate_alias(alias_id, caller.user_id)
    return {"alias": _alias_view(alias)}


@router.get("/usage")
def usage_summary(
    services: ServicesDep,
    caller: CallerDep,
    timeframe: Literal["day", "week", "month"] = "month",
) -> dict:
    return services.call_log.usage_summary(caller.user_id, caller.workspace_id, timeframe)


@router.get("/events")
def list_events(services: ServicesDep, limit: int = 25) -> dict:
    """Return recent routing events for the admin dashboard."""
    limit_value = max(1, min(limit, 100))
    return {"events": services.events.list_recent(limit=limit_value)}

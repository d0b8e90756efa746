"""Model alias catalog and fallback chain construction."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Literal

from pydantic import BaseModel, Field

from alias_router.core.exceptions import (
    AccessDenied,
    AliasNotFound,
    AliasValidationError,
    NotFound,
)
from alias_router.storage.database import Datastore
from alias_router.storage.models import ModelAlias

from .registry import ProviderRegistry

logger = logging.getLogger("alias_router.aliases")

ALIASES = ModelAlias.__tablename__

Modality = Literal["text", "image", "audio", "video"]
RoutingPreference = Literal["quality", "speed", "cost"]

MODALITY_CAPABILITIES: Dict[str, frozenset[str]] = {
    "text": frozenset({"chat", "completion", "embedding"}),
    "image": frozenset({"generate", "edit", "variation", "caption"}),
    "audio": frozenset({"stt", "tts"}),
    "video": frozenset({"generate", "caption"}),
}


class ChainLink(BaseModel):
    provider: str
    model: str
    priority: int = 0


class AliasDefinition(BaseModel):
    alias_name: str = Field(min_length=1, max_length=100)
    display_name: str | None = None
    modality: Modality
    capability: str
    primary_provider: str
    primary_model: str
    fallback_chain: List[ChainLink] = Field(default_factory=list)
    routing_preference: RoutingPreference = "quality"
    allow_aggregators: bool = False


class AliasUpdate(BaseModel):
    display_name: str | None = None
    capability: str | None = None
    primary_provider: str | None = None
    primary_model: str | None = None
    fallback_chain: List[ChainLink] | None = None
    routing_preference: RoutingPreference | None = None
    allow_aggregators: bool | None = None
    is_active: bool | None = None


DEFAULT_ALIASES: tuple[AliasDefinition, ...] = (
    AliasDefinition(
        alias_name="default-writer",
        display_name="Default Writer",
        modality="text",
        capability="chat",
        primary_provider="openai",
        primary_model="gpt-4",
        fallback_chain=[
            ChainLink(provider="anthropic", model="claude-3-5-sonnet-20241022", priority=1),
            ChainLink(provider="zhipu", model="glm-4-plus", priority=2),
        ],
        routing_preference="quality",
    ),
    AliasDefinition(
        alias_name="fast-drafts",
        display_name="Fast Drafts",
        modality="text",
        capability="chat",
        primary_provider="openai",
        primary_model="gpt-4o-mini",
        fallback_chain=[ChainLink(provider="google", model="gemini-1.5-flash", priority=1)],
        routing_preference="speed",
        allow_aggregators=True,
    ),
    AliasDefinition(
        alias_name="image-hero",
        display_name="Hero Images",
        modality="image",
        capability="generate",
        primary_provider="openai",
        primary_model="dall-e-3",
        fallback_chain=[ChainLink(provider="replicate", model="stability-ai/sdxl", priority=1)],
        routing_preference="quality",
        allow_aggregators=True,
    ),
)


def build_chain(alias: ModelAlias) -> List[ChainLink]:
    """Primary link first, then fallbacks by ascending priority.

    ``sorted`` is stable, so links sharing a priority keep their list order.
    """
    fallbacks = [ChainLink(**link) for link in alias.fallback_chain or []]
    return [
        ChainLink(provider=alias.primary_provider, model=alias.primary_model, priority=0),
        *sorted(fallbacks, key=lambda link: link.priority),
    ]


class AliasResolver:
    def __init__(self, store: Datastore, registry: ProviderRegistry) -> None:
        self._store = store
        self._registry = registry

    def resolve(self, workspace_id: int, alias_name: str) -> ModelAlias:
        alias = self._store.find_one(
            ALIASES,
            {"workspace_id": workspace_id, "alias_name": alias_name, "is_active": True},
        )
        if alias is None:
            raise AliasNotFound(alias_name)
        return alias

    def build_chain(self, alias: ModelAlias) -> List[ChainLink]:
        return build_chain(alias)

    def capability_for(self, alias: ModelAlias, requested: str | None = None) -> str:
        """The capability a call runs with; an override must suit the alias modality."""
        capability = requested or alias.capability
        if capability not in MODALITY_CAPABILITIES.get(alias.modality, ()):
            raise AliasValidationError(
                f"Capability '{capability}' is not valid for {alias.modality} "
                f"alias '{alias.alias_name}'"
            )
        return capability

    def list_aliases(self, workspace_id: int) -> List[ModelAlias]:
        return self._store.find_many(
            ALIASES, {"workspace_id": workspace_id, "is_active": True}, order_by="alias_name"
        )

    def create_alias(
        self, user_id: int, workspace_id: int, definition: AliasDefinition
    ) -> ModelAlias:
        self._validate(
            definition.modality,
            definition.capability,
            definition.primary_provider,
            definition.fallback_chain,
            definition.allow_aggregators,
        )
        self._ensure_name_free(workspace_id, definition.alias_name)

        values = definition.model_dump()
        values["display_name"] = definition.display_name or definition.alias_name
        values["fallback_chain"] = [link.model_dump() for link in definition.fallback_chain]
        alias = self._store.create(
            ALIASES, {**values, "user_id": user_id, "workspace_id": workspace_id}
        )
        logger.info(
            "Alias created",
            extra={"event": "alias_created", "alias_name": alias.alias_name, "alias_id": alias.id},
        )
        return alias

    def update_alias(self, alias_id: int, caller_user_id: int, changes: AliasUpdate) -> ModelAlias:
        alias = self._owned(alias_id, caller_user_id)
        # A null leaves the column unchanged.
        values: Dict[str, Any] = changes.model_dump(exclude_unset=True, exclude_none=True)
        if changes.fallback_chain is not None:
            values["fallback_chain"] = [link.model_dump() for link in changes.fallback_chain]
        if values.get("is_active") and not alias.is_active:
            self._ensure_name_free(alias.workspace_id, alias.alias_name, exclude_id=alias.id)

        merged_chain = (
            changes.fallback_chain
            if changes.fallback_chain is not None
            else [ChainLink(**link) for link in alias.fallback_chain or []]
        )
        self._validate(
            alias.modality,
            values.get("capability") or alias.capability,
            values.get("primary_provider") or alias.primary_provider,
            merged_chain,
            values.get("allow_aggregators", alias.allow_aggregators),
        )
        return self._store.update(ALIASES, alias.id, values)

    def deactivate_alias(self, alias_id: int, caller_user_id: int) -> ModelAlias:
        alias = self._owned(alias_id, caller_user_id)
        logger.info(
            "Alias deactivated",
            extra={"event": "alias_deactivated", "alias_name": alias.alias_name},
        )
        return self._store.update(ALIASES, alias.id, {"is_active": False})

    def setup_default_aliases(self, user_id: int, workspace_id: int) -> List[ModelAlias]:
        """Seed the starter aliases, leaving any existing alias of the same name alone."""
        created: List[ModelAlias] = []
        for definition in DEFAULT_ALIASES:
            existing = self._store.find_one(
                ALIASES,
                {
                    "workspace_id": workspace_id,
                    "alias_name": definition.alias_name,
                    "is_active": True,
                },
            )
            if existing is None:
                created.append(self.create_alias(user_id, workspace_id, definition))
        return created

    def _ensure_name_free(
        self, workspace_id: int, alias_name: str, *, exclude_id: int | None = None
    ) -> None:
        active = self._store.find_many(
            ALIASES, {"workspace_id": workspace_id, "alias_name": alias_name, "is_active": True}
        )
        if any(row.id != exclude_id for row in active):
            raise AliasValidationError(f"Alias '{alias_name}' already exists in this workspace")

    def _owned(self, alias_id: int, caller_user_id: int) -> ModelAlias:
        alias = self._store.find_by_id(ALIASES, alias_id)
        if alias is None:
            raise NotFound(f"Alias {alias_id} not found")
        if alias.user_id != caller_user_id:
            raise AccessDenied("Access denied")
        return alias

    def _validate(
        self,
        modality: str,
        capability: str,
        primary_provider: str,
        fallback_chain: List[ChainLink],
        allow_aggregators: bool,
    ) -> None:
        allowed = MODALITY_CAPABILITIES.get(modality)
        if allowed is None:
            raise AliasValidationError(f"Unknown modality '{modality}'")
        if capability not in allowed:
            raise AliasValidationError(
                f"Capability '{capability}' is not valid for {modality}; "
                f"expected one of {', '.join(sorted(allowed))}"
            )

        for provider in [primary_provider, *(link.provider for link in fallback_chain)]:
            if not self._registry.has(provider):
                raise AliasValidationError(f"Unknown provider '{provider}'")
            if self._registry.is_aggregator(provider) and not allow_aggregators:
                raise AliasValidationError(
                    f"Provider '{provider}' is an aggregator; enable allow_aggregators to use it"
                )


__all__ = [
    "AliasDefinition",
    "AliasResolver",
    "AliasUpdate",
    "ChainLink",
    "DEFAULT_ALIASES",
    "MODALITY_CAPABILITIES",
    "build_chain",
]

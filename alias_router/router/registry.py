"""Provider adapter registry built from the provider catalog."""

from __future__ import annotations

from collections.abc import Iterable

from alias_router.core.config import AppConfig, ProviderModel, Settings
from alias_router.core.exceptions import ConfigurationError, UnknownProviderError
from alias_router.providers.anthropic import AnthropicProvider
from alias_router.providers.base import ProviderAdapter
from alias_router.providers.gemini import GeminiProvider
from alias_router.providers.openai import OpenAIProvider
from alias_router.providers.openai_compatible import OpenAICompatibleProvider
from alias_router.providers.pricing import CostEstimator
from alias_router.providers.replicate import ReplicateProvider


class ProviderRegistry:
    """Map provider names to adapter instances, resolved once at startup."""

    _adapter_map: dict[str, type[ProviderAdapter]] = {
        "anthropic": AnthropicProvider,
        "gemini": GeminiProvider,
        "openai": OpenAIProvider,
        "openai_compatible": OpenAICompatibleProvider,
        "replicate": ReplicateProvider,
    }

    def __init__(
        self,
        config: AppConfig,
        *,
        settings: Settings | None = None,
        pricing: CostEstimator | None = None,
    ) -> None:
        self._config = config
        self.pricing = pricing or CostEstimator(config)
        self._instances: dict[str, ProviderAdapter] = {}
        for provider in config.providers:
            adapter_cls = self._adapter_map.get(provider.adapter_key)
            if adapter_cls is None:
                raise ConfigurationError(
                    f"Provider '{provider.id}' uses unknown adapter '{provider.adapter_key}'"
                )
            self._instances[provider.id] = adapter_cls(provider, self.pricing, settings)

    def providers(self) -> Iterable[ProviderModel]:
        return sorted(self._config.providers, key=lambda p: (p.tier, p.id))

    def has(self, provider_id: str) -> bool:
        return provider_id in self._instances

    def get_adapter(self, provider_id: str) -> ProviderAdapter:
        adapter = self._instances.get(provider_id)
        if adapter is None:
            raise UnknownProviderError(provider_id)
        return adapter

    def provider(self, provider_id: str) -> ProviderModel:
        return self.get_adapter(provider_id).config

    def tier(self, provider_id: str) -> int:
        return self.provider(provider_id).tier

    def is_aggregator(self, provider_id: str) -> bool:
        provider = self.provider(provider_id)
        return provider.is_aggregator or provider.tier > 1

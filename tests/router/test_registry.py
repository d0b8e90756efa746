from __future__ import annotations

import pytest

from alias_router.core.config import AppConfig, ProviderModel
from alias_router.core.exceptions import ConfigurationError, UnknownProviderError
from alias_router.providers.anthropic import AnthropicProvider
from alias_router.providers.openai_compatible import OpenAICompatibleProvider
from alias_router.router.registry import ProviderRegistry


def test_catalog_providers_get_their_adapters(catalog):
    registry = ProviderRegistry(catalog)

    assert isinstance(registry.get_adapter("anthropic"), AnthropicProvider)
    assert isinstance(registry.get_adapter("groq"), OpenAICompatibleProvider)
    assert registry.is_aggregator("openrouter")
    assert registry.is_aggregator("replicate")
    assert not registry.is_aggregator("openai")
    assert [p.id for p in registry.providers()][-2:] == ["openrouter", "replicate"]


def test_unknown_provider_lookup_raises(catalog):
    registry = ProviderRegistry(catalog)

    assert not registry.has("stability")
    with pytest.raises(UnknownProviderError):
        registry.get_adapter("stability")


def test_unknown_adapter_key_fails_at_construction():
    config = AppConfig(
        providers=[
            ProviderModel(id="mystery", name="Mystery", adapter="carrier-pigeon", base_url="x")
        ]
    )

    with pytest.raises(ConfigurationError, match="carrier-pigeon"):
        ProviderRegistry(config)

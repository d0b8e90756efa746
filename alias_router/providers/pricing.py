"""Cost estimation from the provider catalog pricing tables."""

from __future__ import annotations

from alias_router.core.config import AppConfig, ProviderPricing

DEFAULT_PER_1K_TOKENS = 0.002


class CostEstimator:
    """Look up unit prices per provider/model.

    Token-priced models cost ``tokens / 1000 * unit``. Models listed under
    ``per_request`` (image generation, async media jobs) cost a flat amount per
    call regardless of tokens.
    """

    def __init__(self, catalog: AppConfig | None = None) -> None:
        self._tables: dict[str, ProviderPricing] = {}
        for provider in catalog.providers if catalog else []:
            self._tables[provider.id] = provider.pricing

    def set_pricing(self, provider: str, pricing: ProviderPricing) -> None:
        self._tables[provider] = pricing

    def is_request_priced(self, provider: str, model: str) -> bool:
        table = self._tables.get(provider)
        if table is None:
            return False
        if model in table.per_request:
            return True
        return "default" in table.per_request and not table.per_1k_tokens

    def estimate(self, provider: str, model: str, *, tokens: int = 0, requests: int = 0) -> float:
        table = self._tables.get(provider, ProviderPricing())
        if requests and self.is_request_priced(provider, model):
            unit = table.per_request.get(model, table.per_request.get("default", 0.0))
            return unit * requests
        unit = table.per_1k_tokens.get(model, table.per_1k_tokens.get("default", DEFAULT_PER_1K_TOKENS))
        return tokens / 1000 * unit


__all__ = ["CostEstimator", "DEFAULT_PER_1K_TOKENS"]

"""Custom exception types."""

from __future__ import annotations


class AliasRouterError(Exception):
    """Base class for routing engine errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(AliasRouterError):
    """Raised when the provider catalog or an alias references something invalid."""


class UnknownProviderError(ConfigurationError):
    """Raised when no adapter is registered for a provider name."""

    def __init__(self, provider: str) -> None:
        super().__init__(f"No adapter registered for provider '{provider}'")
        self.provider = provider


class AliasValidationError(AliasRouterError):
    """Raised when an alias definition is rejected."""


class AliasNotFound(AliasRouterError):
    def __init__(self, alias_name: str) -> None:
        super().__init__(
            f"Alias '{alias_name}' not found. Configure aliases before invoking them."
        )
        self.alias_name = alias_name


class NotFound(AliasRouterError):
    """Raised when a stored record does not exist."""


class AccessDenied(AliasRouterError):
    """Raised when a caller acts on a record it does not own."""


class VaultError(AliasRouterError):
    """Raised when a credential cannot be encrypted or decrypted."""


class StorageError(AliasRouterError):
    """Raised when the datastore rejects an operation."""


class LinkBlocked(AliasRouterError):
    """A chain link was skipped before any provider call was made."""

    reason_code = "blocked"

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(message)
        self.provider = provider


class KeyMissing(LinkBlocked):
    reason_code = "key_missing"

    def __init__(self, provider: str) -> None:
        super().__init__(provider, f"No API key configured for {provider}")


class BudgetBlocked(LinkBlocked):
    reason_code = "budget_blocked"

    def __init__(self, provider: str, detail: str) -> None:
        super().__init__(provider, f"Budget reached for {provider}: {detail}")
        self.detail = detail


class RateLimited(LinkBlocked):
    reason_code = "rate_limited"

    def __init__(self, provider: str, limit: int) -> None:
        super().__init__(
            provider, f"Rate limit reached for {provider}: {limit} requests per minute"
        )
        self.limit = limit


class ScopeBlocked(LinkBlocked):
    reason_code = "scope_blocked"

    def __init__(self, provider: str, modality: str) -> None:
        super().__init__(
            provider,
            f"Key for {provider} does not allow {modality}; enable the '{modality}' scope",
        )
        self.modality = modality


class ProviderError(AliasRouterError):
    """Raised by adapters on any failed provider call."""

    def __init__(
        self,
        provider: str,
        message: str = "Provider error",
        *,
        http_status: int | None = None,
        retryable: bool | None = None,
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.http_status = http_status
        if retryable is None:
            retryable = http_status is None or http_status == 429 or http_status >= 500
        self.retryable = retryable


class ProviderTimeout(ProviderError):
    def __init__(self, provider: str, message: str = "Provider timed out") -> None:
        super().__init__(provider, message, retryable=True)


class AllProvidersExhausted(AliasRouterError):
    def __init__(self, last_reason: str | None, attempts: list[dict[str, str]]) -> None:
        super().__init__(last_reason or "All providers in chain failed")
        self.last_reason = last_reason
        self.attempts = attempts

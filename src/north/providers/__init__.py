"""Provider adapters and family selection."""

from __future__ import annotations

from north.catalog import get_model_provider
from north.errors import ConfigurationError
from north.providers.anthropic import AnthropicProvider
from north.providers.base import BaseProvider, Provider, collect_stream
from north.providers.openai import OpenAIProvider
from north.providers.openrouter import OpenRouterProvider
from north.types import ProviderFamily

_PROVIDERS: dict[ProviderFamily, type[BaseProvider]] = {
    ProviderFamily.ANTHROPIC: AnthropicProvider,
    ProviderFamily.OPENAI: OpenAIProvider,
    ProviderFamily.OPENROUTER: OpenRouterProvider,
}


def create_provider_by_type(
    family: ProviderFamily | str,
    model_id: str | None = None,
    *,
    api_key: str | None = None,
    timeout: float | None = None,
) -> Provider:
    """Create the adapter for *family*, optionally pinned to *model_id*."""
    try:
        family = ProviderFamily(family)
    except ValueError:
        supported = ", ".join(repr(f.value) for f in ProviderFamily)
        raise ConfigurationError(
            f"Unknown provider: {family!r}",
            hint=f"Supported providers: {supported}",
        ) from None
    return _PROVIDERS[family](model=model_id, api_key=api_key, timeout=timeout)


def create_provider_for_model(model_id: str, *, api_key: str | None = None) -> Provider:
    """Create the adapter that serves *model_id*."""
    return create_provider_by_type(
        get_model_provider(model_id), model_id, api_key=api_key
    )


__all__ = [
    "AnthropicProvider",
    "BaseProvider",
    "OpenAIProvider",
    "OpenRouterProvider",
    "Provider",
    "ProviderFamily",
    "collect_stream",
    "create_provider_by_type",
    "create_provider_for_model",
    "get_model_provider",
]

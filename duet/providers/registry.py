"""Provider registry.

Maps each ProviderKind to its adapter class and holds the fallback model
lists shown when discovery is unavailable.
"""

from __future__ import annotations

import httpx

from duet.providers.base import ChatProvider
from duet.providers.gemini import GeminiProvider
from duet.providers.openai import OpenAIProvider
from duet.schemas.settings import ChatSettings, ProviderConfig, ProviderKind
from duet.settings import require_config

PROVIDERS: dict[ProviderKind, type[ChatProvider]] = {
    ProviderKind.OPENAI: OpenAIProvider,
    ProviderKind.GEMINI: GeminiProvider,
}

# Shown when model discovery fails or has not been run
DEFAULT_MODELS: dict[ProviderKind, dict[str, str]] = {
    ProviderKind.OPENAI: {"gpt-3.5-turbo": "GPT-3.5-Turbo"},
    ProviderKind.GEMINI: {"gemini-pro": "Gemini Pro"},
}


def get_provider(config: ProviderConfig, *, use_sse: bool = False) -> ChatProvider:
    """Instantiate the adapter for a validated config.

    Args:
        config: Complete provider configuration.
        use_sse: Request SSE framing where the provider supports a choice
                 (Gemini only).
    """
    if config.provider is ProviderKind.GEMINI:
        return GeminiProvider(config, use_sse=use_sse)
    return PROVIDERS[config.provider](config)


def provider_for_settings(settings: ChatSettings, config: ProviderConfig) -> ChatProvider:
    """Instantiate the adapter for a config, honoring per-provider settings."""
    return get_provider(config, use_sse=settings.gemini_sse)


async def fetch_models(
    settings: ChatSettings,
    *,
    client: httpx.AsyncClient | None = None,
) -> dict[str, str]:
    """Discover the models the configured backend offers.

    Args:
        settings: Current settings; the model field may still be empty.
        client: Optional HTTP client (a short-lived one is created if omitted).

    Returns:
        Mapping of model id to display name.

    Raises:
        ConfigIncomplete: If the key or base URL needed for discovery is missing.
        TransportError: If the request fails or returns no models.
    """
    config = require_config(settings, require_model=False)
    provider = provider_for_settings(settings, config)
    if client is not None:
        return await provider.list_models(client)
    async with httpx.AsyncClient(timeout=settings.timeout) as owned:
        return await provider.list_models(owned)

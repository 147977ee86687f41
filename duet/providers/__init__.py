"""duet provider layer.

Each backend is reached through a ChatProvider adapter; nothing else in the
package knows endpoint URLs or request bodies.
"""

from duet.providers.base import ChatProvider
from duet.providers.gemini import GeminiProvider
from duet.providers.openai import OpenAIProvider
from duet.providers.registry import (
    DEFAULT_MODELS,
    PROVIDERS,
    fetch_models,
    get_provider,
    provider_for_settings,
)

__all__ = [
    "DEFAULT_MODELS",
    "PROVIDERS",
    "ChatProvider",
    "GeminiProvider",
    "OpenAIProvider",
    "fetch_models",
    "get_provider",
    "provider_for_settings",
]

"""Google Gemini adapter.

Streams from ``models/{model}:streamGenerateContent``. Without ``alt=sse``
the body is a run of JSON objects that only becomes parseable once it is
reshaped into an array; with ``alt=sse`` each object arrives on its own
``data:`` line.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from duet.errors import TransportError
from duet.providers.base import ChatProvider
from duet.schemas.messages import Message, Role
from duet.schemas.settings import ProviderConfig, ProviderKind
from duet.streaming.decoder import FrameDecoder, JSONObjectStreamDecoder, SSEFrameDecoder

logger = logging.getLogger(__name__)

GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta"

# Gemini calls the assistant "model"
_ROLE_MAP = {Role.USER: "user", Role.ASSISTANT: "model"}


class GeminiProvider(ChatProvider):
    """Adapter for the Gemini generative language API."""

    kind = ProviderKind.GEMINI

    def __init__(self, config: ProviderConfig, *, use_sse: bool = False) -> None:
        super().__init__(config)
        self._use_sse = use_sse

    @property
    def use_sse(self) -> bool:
        """Whether responses are requested with SSE framing."""
        return self._use_sse

    def build_request(
        self,
        client: httpx.AsyncClient,
        messages: list[Message],
        system_prompt: str = "",
    ) -> httpx.Request:
        body: dict[str, Any] = {
            "contents": [
                {"role": _ROLE_MAP[m.role], "parts": [{"text": m.content}]}
                for m in messages
                if m.role in _ROLE_MAP
            ],
        }
        if system_prompt:
            body["system_instruction"] = {"parts": [{"text": system_prompt}]}

        params = {"key": self._config.api_key}
        if self._use_sse:
            params["alt"] = "sse"

        return client.build_request(
            "POST",
            f"{GEMINI_API_BASE}/models/{self.model_id}:streamGenerateContent",
            params=params,
            json=body,
        )

    def new_decoder(self) -> FrameDecoder:
        if self._use_sse:
            # Gemini SSE has no [DONE] sentinel; the stream just ends
            return SSEFrameDecoder(self.kind, sentinel=None)
        return JSONObjectStreamDecoder(self.kind)

    async def list_models(self, client: httpx.AsyncClient) -> dict[str, str]:
        data = await self._get_json(
            client, f"{GEMINI_API_BASE}/models", params={"key": self._config.api_key},
        )
        entries = data.get("models") if isinstance(data, dict) else None
        models: dict[str, str] = {}
        for entry in entries or []:
            if not isinstance(entry, dict):
                continue
            name = str(entry.get("name", ""))
            methods = entry.get("supportedGenerationMethods") or []
            if "gemini" not in name or "generateContent" not in methods:
                continue
            model_id = name.split("/")[-1]
            models[model_id] = str(entry.get("displayName") or model_id)
        if not models:
            raise TransportError("The API returned no usable models")
        logger.debug("Discovered %d Gemini models", len(models))
        return models

"""OpenAI-compatible chat-completions adapter.

Streams from ``POST {base}/v1/chat/completions`` with ``stream: true``.
The response is newline-terminated ``data: {...}`` lines closed by a
``data: [DONE]`` sentinel.
"""

from __future__ import annotations

import logging

import httpx

from duet.errors import TransportError
from duet.providers.base import ChatProvider
from duet.schemas.messages import Message, Role
from duet.schemas.settings import ProviderKind
from duet.streaming.decoder import SSEFrameDecoder

logger = logging.getLogger(__name__)


class OpenAIProvider(ChatProvider):
    """Adapter for any server speaking the OpenAI chat-completions API."""

    kind = ProviderKind.OPENAI

    @property
    def base_url(self) -> str:
        return self._config.endpoint_url.strip().rstrip("/")

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._config.api_key}"}

    def build_request(
        self,
        client: httpx.AsyncClient,
        messages: list[Message],
        system_prompt: str = "",
    ) -> httpx.Request:
        payload: list[dict[str, str]] = []
        if system_prompt:
            payload.append(Message(role=Role.SYSTEM, content=system_prompt).to_openai())
        payload.extend(m.to_openai() for m in messages)

        return client.build_request(
            "POST",
            f"{self.base_url}/v1/chat/completions",
            headers=self._headers(),
            json={"model": self.model_id, "messages": payload, "stream": True},
        )

    def new_decoder(self) -> SSEFrameDecoder:
        return SSEFrameDecoder(self.kind)

    async def list_models(self, client: httpx.AsyncClient) -> dict[str, str]:
        data = await self._get_json(
            client, f"{self.base_url}/v1/models", headers=self._headers(),
        )
        entries = data.get("data") if isinstance(data, dict) else None
        models = {
            entry["id"]: entry["id"]
            for entry in entries or []
            if isinstance(entry, dict) and entry.get("id")
        }
        if not models:
            raise TransportError("The API returned no usable models")
        logger.debug("Discovered %d models at %s", len(models), self.base_url)
        return models

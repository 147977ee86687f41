"""Abstract base class for chat providers.

Defines the ChatProvider interface that each backend adapter implements.
The stream session talks to backends only through this interface: it asks
the provider to build the HTTP request, then feeds the response bytes into
the decoder the provider hands out and the extractor it names.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any

import httpx

from duet.errors import TransportError
from duet.schemas.messages import Message
from duet.schemas.settings import ProviderConfig, ProviderKind
from duet.streaming.decoder import FrameDecoder
from duet.streaming.extractor import DeltaExtractor, get_extractor

logger = logging.getLogger(__name__)


def short_error_reason(error: Exception) -> str:
    """Extract a short, user-friendly reason from a transport error."""
    if isinstance(error, httpx.TimeoutException):
        return "timeout"
    if isinstance(error, httpx.ConnectError):
        return "connection error"
    if isinstance(error, httpx.RemoteProtocolError):
        return "connection closed mid-response"
    # Fallback: first 80 chars of the error
    return (str(error) or type(error).__name__)[:80]


def error_from_response(response: httpx.Response, body: bytes) -> TransportError:
    """Build a TransportError for a non-success response.

    Both backends report failures as ``{"error": {"message": ...}}``; when
    the body has that shape the message is included.
    """
    detail = ""
    try:
        data = json.loads(body)
    except ValueError:
        data = None
    if isinstance(data, dict):
        err = data.get("error")
        if isinstance(err, dict):
            detail = str(err.get("message", ""))
        elif isinstance(err, str):
            detail = err
    message = f"HTTP Error: {response.status_code} {response.reason_phrase}".rstrip()
    if detail:
        message = f"{message}: {detail}"
    return TransportError(message, status_code=response.status_code)


class ChatProvider(ABC):
    """Interface for a backend that can stream a chat reply.

    Initialized from a validated ProviderConfig. Exposes identity, the
    request builder, the frame decoder and delta extractor for the
    provider's wire format, and model discovery.
    """

    kind: ProviderKind

    def __init__(self, config: ProviderConfig) -> None:
        self._config = config

    # ── Identity ──────────────────────────────────────────────

    @property
    def provider_id(self) -> str:
        """Provider identifier ('openai' or 'gemini')."""
        return self._config.provider.value

    @property
    def model_id(self) -> str:
        """Model identifier sent to the API."""
        return self._config.model_id

    @property
    def config(self) -> ProviderConfig:
        """The full ProviderConfig backing this provider."""
        return self._config

    # ── Streaming ─────────────────────────────────────────────

    @abstractmethod
    def build_request(
        self,
        client: httpx.AsyncClient,
        messages: list[Message],
        system_prompt: str = "",
    ) -> httpx.Request:
        """Build the streaming chat request for the given history.

        Args:
            client: Client used to build (not send) the request.
            messages: Conversation history in call order.
            system_prompt: Optional system prompt, prepended at call time.
        """

    @abstractmethod
    def new_decoder(self) -> FrameDecoder:
        """Return a fresh frame decoder for one response."""

    @property
    def extractor(self) -> DeltaExtractor:
        """Delta extractor for this provider's frames."""
        return get_extractor(self.kind)

    # ── Discovery ─────────────────────────────────────────────

    @abstractmethod
    async def list_models(self, client: httpx.AsyncClient) -> dict[str, str]:
        """Fetch available models as a mapping of id to display name.

        Raises:
            TransportError: On a non-success status, a network failure, or
                when the backend returns no usable models.
        """

    async def _get_json(
        self,
        client: httpx.AsyncClient,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        params: dict[str, str] | None = None,
    ) -> Any:
        """GET a JSON document, mapping failures to TransportError."""
        try:
            response = await client.get(url, headers=headers, params=params)
        except httpx.HTTPError as e:
            raise TransportError(
                f"Model list request failed ({short_error_reason(e)})"
            ) from e
        if response.is_error:
            raise error_from_response(response, response.content)
        try:
            return response.json()
        except ValueError as e:
            raise TransportError("Model list response was not JSON") from e

"""Stream session: one conversation, one exchange at a time.

The session owns the conversation history, the response accumulator and the
exchange state. Each user turn runs as one asyncio task that suspends at
every chunk read; cancelling that task is how an in-flight reply is
abandoned.

State machine for one exchange::

    idle -> awaiting_first_byte -> streaming -> finalizing -> committed
                     |                 |             |
                     +-----------------+-------------+-----> failed

Cancellation from any in-flight state returns the session to idle with
nothing committed.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from contextlib import aclosing
from typing import Any

import httpx

from duet.conversation import ConversationStore
from duet.errors import DuetError, EmptyResponse, SessionBusy, TransportError
from duet.providers.base import ChatProvider, error_from_response, short_error_reason
from duet.providers.registry import provider_for_settings
from duet.schemas.messages import Message, Role
from duet.schemas.streaming import SessionState, StreamChunk, TextDelta
from duet.settings import SettingsStore, require_config

logger = logging.getLogger(__name__)

# Type alias for renderer callbacks (sync or async)
UpdateListener = Callable[[StreamChunk], Any]

_IN_FLIGHT = frozenset({
    SessionState.AWAITING_FIRST_BYTE,
    SessionState.STREAMING,
    SessionState.FINALIZING,
})

_CONNECT_TIMEOUT = 10.0


class StreamSession:
    """Drives request/response exchanges for a single conversation.

    Args:
        settings: Store the settings are re-read from at every start.
        client: Optional shared HTTP client. When omitted the session
                creates one and closes it in ``aclose()``.
        on_update: Renderer callback, invoked with a StreamChunk on every
                   delta, on commit and on failure. Exceptions it raises
                   are logged and never abort the stream.
    """

    def __init__(
        self,
        settings: SettingsStore,
        *,
        client: httpx.AsyncClient | None = None,
        on_update: UpdateListener | None = None,
    ) -> None:
        self._settings = settings
        self._client = client
        self._owns_client = client is None
        self._on_update = on_update

        self._history = ConversationStore()
        self._state = SessionState.IDLE
        self._accumulator = ""
        self._delta_count = 0
        self._task: asyncio.Task[Message] | None = None

    # ── Read-only state ───────────────────────────────────────

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def history(self) -> ConversationStore:
        return self._history

    @property
    def accumulator(self) -> str:
        """Text of the reply in progress (empty between exchanges)."""
        return self._accumulator

    @property
    def is_busy(self) -> bool:
        """True while an exchange is in flight."""
        return self._state in _IN_FLIGHT

    # ── Operations ────────────────────────────────────────────

    def start(self, text: str, *, system_prompt: str | None = None) -> asyncio.Task[Message]:
        """Begin an exchange and return the task running it.

        Everything up to scheduling the task happens synchronously: the
        busy check, the settings gate, and appending the user turn. Must be
        called with an event loop running.

        Args:
            text: The user's message.
            system_prompt: Overrides the stored system prompt for this turn.

        Raises:
            SessionBusy: If another exchange is in flight.
            ValueError: If text is blank or the settings file is invalid.
            ConfigIncomplete: If the settings gate fails.
        """
        if self.is_busy:
            raise SessionBusy()
        text = text.strip()
        if not text:
            raise ValueError("Message text is empty")

        settings = self._settings.load()
        config = require_config(settings)
        provider = provider_for_settings(settings, config)
        prompt = settings.system_prompt if system_prompt is None else system_prompt

        self._history.append(Role.USER, text)
        self._accumulator = ""
        self._delta_count = 0
        self._set_state(SessionState.AWAITING_FIRST_BYTE)

        self._task = asyncio.create_task(
            self._exchange(
                provider,
                list(self._history.messages),
                prompt.strip(),
                settings.timeout,
            ),
            name=f"duet-exchange-{len(self._history)}",
        )
        return self._task

    async def submit(self, text: str, *, system_prompt: str | None = None) -> Message:
        """Run one exchange to completion and return the committed reply.

        Raises:
            SessionBusy, ValueError, ConfigIncomplete: As for ``start()``.
            TransportError: Bad status, network failure, or an undecodable
                stream end.
            EmptyResponse: The stream carried no usable text.
        """
        return await self.start(text, system_prompt=system_prompt)

    async def cancel(self) -> bool:
        """Abandon the in-flight exchange, if any.

        No further deltas are applied and nothing is committed; the user
        turn already appended stays in the history.

        Returns:
            True if an exchange was cancelled.
        """
        task = self._task
        if task is None or task.done():
            return False

        task.cancel()
        await asyncio.wait({task})
        if not task.cancelled() and task.exception() is not None:
            logger.debug("Exchange ended with %r before cancellation", task.exception())
        # A task cancelled before its first step never ran its handler
        if self.is_busy:
            self._abandon()
        return True

    async def new_chat(self) -> None:
        """Start a fresh conversation, abandoning any in-flight reply."""
        await self.cancel()
        self._history = ConversationStore()
        self._accumulator = ""
        self._delta_count = 0
        self._task = None
        self._set_state(SessionState.IDLE)

    async def aclose(self) -> None:
        """Cancel any in-flight exchange and close the owned HTTP client."""
        await self.cancel()
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> StreamSession:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # ── Exchange task ─────────────────────────────────────────

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(120.0, connect=_CONNECT_TIMEOUT),
            )
            self._owns_client = True
        return self._client

    async def _exchange(
        self,
        provider: ChatProvider,
        messages: list[Message],
        system_prompt: str,
        timeout: float,
    ) -> Message:
        client = self._get_client()
        try:
            try:
                request = provider.build_request(client, messages, system_prompt)
                request.extensions["timeout"] = httpx.Timeout(
                    timeout, connect=min(timeout, _CONNECT_TIMEOUT),
                ).as_dict()
                logger.debug(
                    "Sending %d messages to %s (%s)",
                    len(messages), provider.provider_id, provider.model_id,
                )
                response = await client.send(request, stream=True)
                try:
                    await self._consume(provider, response)
                finally:
                    await response.aclose()
            except httpx.InvalidURL as e:
                raise TransportError(
                    f"Invalid endpoint URL for {provider.provider_id}: {e}"
                ) from e
            except httpx.HTTPError as e:
                raise TransportError(
                    f"Request to {provider.provider_id} failed ({short_error_reason(e)})"
                ) from e
            return await self._finalize()
        except asyncio.CancelledError:
            self._abandon()
            raise
        except Exception as e:
            # No exchange may leave the session in flight
            await self._fail(e)
            raise

    async def _consume(self, provider: ChatProvider, response: httpx.Response) -> None:
        if response.is_error:
            body = await response.aread()
            raise error_from_response(response, body)

        self._set_state(SessionState.STREAMING)
        decoder = provider.new_decoder()
        extractor = provider.extractor

        async with aclosing(decoder.iter_frames(response.aiter_bytes())) as frames:
            async for frame in frames:
                if frame.is_end:
                    break
                delta = extractor.extract(frame)
                if delta is not None:
                    await self._apply(delta)

    async def _apply(self, delta: TextDelta) -> None:
        previous = self._accumulator
        self._accumulator = delta.text if delta.cumulative else previous + delta.text
        if self._accumulator == previous:
            return

        self._delta_count += 1
        if self._accumulator.startswith(previous):
            new_text = self._accumulator[len(previous):]
        else:
            new_text = self._accumulator
        await self._notify(
            StreamChunk(
                delta=new_text,
                accumulated=self._accumulator,
                delta_count=self._delta_count,
                state=SessionState.STREAMING,
            )
        )

    async def _finalize(self) -> Message:
        self._set_state(SessionState.FINALIZING)
        if not self._accumulator:
            raise EmptyResponse()

        message = self._history.append(Role.ASSISTANT, self._accumulator)
        self._set_state(SessionState.COMMITTED)
        logger.info(
            "Committed reply (%d chars, %d deltas)",
            len(message.content), self._delta_count,
        )
        await self._notify(
            StreamChunk(
                delta="",
                accumulated=message.content,
                delta_count=self._delta_count,
                is_complete=True,
                state=SessionState.COMMITTED,
            )
        )
        self._accumulator = ""
        return message

    async def _fail(self, error: Exception) -> None:
        self._set_state(SessionState.FAILED)
        if isinstance(error, DuetError):
            logger.warning("Exchange failed: %s", error)
        else:
            logger.error("Exchange failed unexpectedly", exc_info=error)
        partial = self._accumulator
        self._accumulator = ""
        await self._notify(
            StreamChunk(
                delta="",
                accumulated=partial,
                delta_count=self._delta_count,
                state=SessionState.FAILED,
                error=str(error),
            )
        )

    def _abandon(self) -> None:
        if not self.is_busy:
            return
        logger.debug("Exchange abandoned after %d deltas", self._delta_count)
        self._accumulator = ""
        self._set_state(SessionState.IDLE)

    # ── Helpers ───────────────────────────────────────────────

    def _set_state(self, state: SessionState) -> None:
        if state is not self._state:
            logger.debug("Session state %s -> %s", self._state, state)
        self._state = state

    async def _notify(self, chunk: StreamChunk) -> None:
        if self._on_update is None:
            return
        try:
            result = self._on_update(chunk)
            if asyncio.iscoroutine(result):
                await result
        except Exception:
            logger.exception("Update listener error (%s)", chunk.state)

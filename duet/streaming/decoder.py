"""Frame decoders: raw byte chunks in, provider frames out.

Network chunks arrive with no alignment to logical frames. Each decoder
buffers the incomplete tail across chunk boundaries and hands back only
completed frames. Decoders are single-use and owned by one session.
"""

from __future__ import annotations

import codecs
import json
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterable, AsyncIterator

from duet.errors import StreamTerminationDecodeError
from duet.schemas.settings import ProviderKind
from duet.schemas.streaming import StreamFrame

logger = logging.getLogger(__name__)

SSE_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"

_EMPTY_ARRAY = "[]"
_TOP_LEVEL_SEPARATORS = frozenset(" \t\r\n,[]")


class FrameDecoder(ABC):
    """Incremental decoder from byte chunks to StreamFrame values."""

    def __init__(self, provider: ProviderKind) -> None:
        self.provider = provider
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def _decode(self, chunk: bytes, final: bool = False) -> str:
        return self._utf8.decode(chunk, final=final)

    @abstractmethod
    def feed(self, chunk: bytes) -> list[StreamFrame]:
        """Buffer one chunk and return every frame it completed."""

    @abstractmethod
    def finish(self) -> list[StreamFrame]:
        """Flush at true end of stream (no more bytes forthcoming)."""

    async def iter_frames(
        self, chunks: AsyncIterable[bytes]
    ) -> AsyncIterator[StreamFrame]:
        """Lazily decode an async byte stream into frames.

        Each read of the next chunk is a suspension point; frames are
        yielded in wire order. ``finish()`` runs once the byte stream is
        exhausted, so a trailing unterminated frame is not lost.
        """
        async for chunk in chunks:
            for frame in self.feed(chunk):
                yield frame
        for frame in self.finish():
            yield frame


class SSEFrameDecoder(FrameDecoder):
    """Line-oriented ``data:`` decoder (OpenAI chat-completions, Gemini alt=sse).

    Lines that do not start with ``data:`` (comments, ``event:`` lines,
    blank separators) are skipped. A payload equal to the sentinel becomes
    an end marker and is never handed to a JSON parser.
    """

    def __init__(
        self,
        provider: ProviderKind,
        *,
        sentinel: str | None = DONE_SENTINEL,
    ) -> None:
        super().__init__(provider)
        self._sentinel = sentinel
        self._carry = ""
        self._ended = False

    def feed(self, chunk: bytes) -> list[StreamFrame]:
        text = self._carry + self._decode(chunk)
        lines = text.split("\n")
        # Last element is the partial line (empty when text ended on "\n")
        self._carry = lines.pop()
        return self._frames_from_lines(lines)

    def finish(self) -> list[StreamFrame]:
        tail = self._carry + self._decode(b"", final=True)
        self._carry = ""
        return self._frames_from_lines([tail]) if tail.strip() else []

    def _frames_from_lines(self, lines: list[str]) -> list[StreamFrame]:
        frames: list[StreamFrame] = []
        for raw in lines:
            if self._ended:
                break
            line = raw.strip()
            if not line.startswith(SSE_PREFIX):
                continue
            payload = line[len(SSE_PREFIX):].strip()
            if not payload:
                continue
            if self._sentinel is not None and payload == self._sentinel:
                self._ended = True
                frames.append(StreamFrame.end(self.provider))
                break
            frames.append(StreamFrame(provider=self.provider, payload=payload))
        return frames


class JSONObjectStreamDecoder(FrameDecoder):
    """Decoder for a stream of concatenated JSON objects (Gemini).

    The buffer is reshaped into a JSON array and re-parsed on every chunk.
    A parse failure only means more bytes are needed. Every successful parse
    yields one cumulative frame whose payload is the normalized array text.
    """

    def __init__(self, provider: ProviderKind = ProviderKind.GEMINI) -> None:
        super().__init__(provider)
        self._buffer = ""
        self._last_emitted = ""

    def feed(self, chunk: bytes) -> list[StreamFrame]:
        self._buffer += self._decode(chunk)
        return self._try_parse()

    def finish(self) -> list[StreamFrame]:
        self._buffer += self._decode(b"", final=True)
        normalized = normalize_object_stream(self._buffer)
        if normalized == _EMPTY_ARRAY:
            return []
        try:
            json.loads(normalized)
        except json.JSONDecodeError as e:
            raise StreamTerminationDecodeError(
                f"Response stream ended with undecodable data: {e.msg} "
                f"(line {e.lineno}, column {e.colno})"
            ) from e
        if normalized == self._last_emitted:
            return []
        self._last_emitted = normalized
        return [self._frame(normalized)]

    def _try_parse(self) -> list[StreamFrame]:
        normalized = normalize_object_stream(self._buffer)
        if normalized == _EMPTY_ARRAY:
            return []
        try:
            json.loads(normalized)
        except json.JSONDecodeError:
            logger.debug("Buffered %d chars, waiting for more data", len(self._buffer))
            return []
        if normalized == self._last_emitted:
            return []
        self._last_emitted = normalized
        return [self._frame(normalized)]

    def _frame(self, payload: str) -> StreamFrame:
        return StreamFrame(provider=self.provider, payload=payload, cumulative=True)


def normalize_object_stream(text: str) -> str:
    """Reshape concatenated JSON objects into one JSON array string.

    Accepts both a bare concatenation (``{..}{..}``) and the array form some
    servers send (``[{..},\\r\\n{..}]``, possibly still unterminated).
    Object boundaries are found by brace depth outside string literals, so
    text inside the objects is never rewritten. Anything at the top level
    other than whitespace, commas and brackets is kept as-is so that the
    result fails to parse.
    """
    pieces: list[str] = []
    depth = 0
    start = 0
    in_string = False
    escaped = False

    for i, ch in enumerate(text):
        if depth == 0:
            if ch in _TOP_LEVEL_SEPARATORS:
                continue
            if ch != "{":
                pieces.append(text[i:])
                break
            start = i
            depth = 1
        elif in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                pieces.append(text[start:i + 1])

    if depth:
        # Incomplete trailing object
        pieces.append(text[start:])
    return "[" + ",".join(pieces) + "]"

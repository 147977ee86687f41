"""Delta extraction: one decoded frame in, zero-or-one text delta out.

Each provider's wire payload is validated into an explicit optional-field
model. A field that is absent is a valid "no delta" case. A payload that is
not JSON, or does not fit the shape, is a FrameDecodeError that is logged
and swallowed here so one bad frame never aborts a stream.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, ValidationError

from duet.errors import FrameDecodeError
from duet.schemas.settings import ProviderKind
from duet.schemas.streaming import StreamFrame, TextDelta

logger = logging.getLogger(__name__)


# ── OpenAI wire shape ─────────────────────────────────────────────


class OpenAIDelta(BaseModel):
    content: str | None = None


class OpenAIChoice(BaseModel):
    delta: OpenAIDelta | None = None


class OpenAIStreamChunk(BaseModel):
    """``{"choices": [{"delta": {"content": "..."}}]}``"""

    choices: list[OpenAIChoice] = []

    def text(self) -> str:
        if not self.choices or self.choices[0].delta is None:
            return ""
        return self.choices[0].delta.content or ""


# ── Gemini wire shape ─────────────────────────────────────────────


class GeminiPart(BaseModel):
    text: str | None = None


class GeminiContent(BaseModel):
    parts: list[GeminiPart] = []


class GeminiCandidate(BaseModel):
    content: GeminiContent | None = None


class GeminiStreamChunk(BaseModel):
    """``{"candidates": [{"content": {"parts": [{"text": "..."}]}}]}``"""

    candidates: list[GeminiCandidate] = []

    def text(self) -> str:
        if not self.candidates:
            return ""
        content = self.candidates[0].content
        if content is None or not content.parts:
            return ""
        return content.parts[0].text or ""


# ── Extractors ────────────────────────────────────────────────────


def _load_json(payload: str) -> Any:
    try:
        return json.loads(payload)
    except json.JSONDecodeError as e:
        raise FrameDecodeError(f"Malformed frame: {e.msg}") from e


class DeltaExtractor(ABC):
    """Maps a frame of one provider's wire format to an optional delta."""

    provider: ProviderKind

    def extract(self, frame: StreamFrame) -> TextDelta | None:
        """Return the frame's text delta, or None when it carries none.

        Never raises for malformed payloads; those are dropped.
        """
        if frame.is_end or not frame.payload:
            return None
        try:
            return self._extract(frame)
        except FrameDecodeError as e:
            logger.debug("Skipping %s frame: %s", self.provider, e)
            return None

    @abstractmethod
    def _extract(self, frame: StreamFrame) -> TextDelta | None:
        """Provider-specific extraction; may raise FrameDecodeError."""


class OpenAIDeltaExtractor(DeltaExtractor):
    provider = ProviderKind.OPENAI

    def _extract(self, frame: StreamFrame) -> TextDelta | None:
        data = _load_json(frame.payload)
        try:
            chunk = OpenAIStreamChunk.model_validate(data)
        except ValidationError as e:
            raise FrameDecodeError(f"Unexpected chunk shape: {e.error_count()} errors") from e
        text = chunk.text()
        return TextDelta(text=text) if text else None


class GeminiDeltaExtractor(DeltaExtractor):
    """Handles both single-object SSE frames and cumulative array frames.

    For a cumulative frame the delta is the concatenated text of every
    object decoded so far, and it replaces the accumulator.
    """

    provider = ProviderKind.GEMINI

    def _extract(self, frame: StreamFrame) -> TextDelta | None:
        data = _load_json(frame.payload)
        objects = data if isinstance(data, list) else [data]
        pieces: list[str] = []
        for obj in objects:
            try:
                pieces.append(GeminiStreamChunk.model_validate(obj).text())
            except ValidationError:
                # One odd object must not hide the text of the others
                logger.debug("Skipping Gemini object with unexpected shape")
        text = "".join(pieces)
        if not text:
            return None
        return TextDelta(text=text, cumulative=frame.cumulative)


_EXTRACTORS: dict[ProviderKind, DeltaExtractor] = {
    ProviderKind.OPENAI: OpenAIDeltaExtractor(),
    ProviderKind.GEMINI: GeminiDeltaExtractor(),
}


def get_extractor(provider: ProviderKind) -> DeltaExtractor:
    """Return the extractor for a provider variant."""
    return _EXTRACTORS[provider]


def extract_delta(frame: StreamFrame) -> TextDelta | None:
    """Extract the text delta of a frame, dispatching on its provider."""
    return get_extractor(frame.provider).extract(frame)

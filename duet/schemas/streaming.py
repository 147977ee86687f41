"""Streaming schemas for real-time token delivery.

StreamFrame is what a frame decoder produces, TextDelta is what an extractor
pulls out of a frame, and StreamChunk is the update event the session hands
to the display layer.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from duet.schemas.settings import ProviderKind


class SessionState(StrEnum):
    """Lifecycle of one request/response exchange."""

    IDLE = "idle"
    AWAITING_FIRST_BYTE = "awaiting_first_byte"
    STREAMING = "streaming"
    FINALIZING = "finalizing"
    COMMITTED = "committed"
    FAILED = "failed"


class StreamFrame(BaseModel):
    """One decoded logical unit of a streamed response."""

    model_config = ConfigDict(frozen=True)

    provider: ProviderKind = Field(description="Provider whose wire format produced this frame")
    payload: str = Field(default="", description="Raw JSON text of the frame")
    is_end: bool = Field(default=False, description="True for an explicit end-of-stream marker")
    cumulative: bool = Field(
        default=False,
        description="True when the payload covers the whole response so far",
    )

    @classmethod
    def end(cls, provider: ProviderKind) -> StreamFrame:
        return cls(provider=provider, is_end=True)


class TextDelta(BaseModel):
    """Text pulled out of one frame."""

    model_config = ConfigDict(frozen=True)

    text: str = Field(description="Extracted text")
    cumulative: bool = Field(
        default=False, description="Replace the accumulator instead of appending",
    )


class StreamChunk(BaseModel):
    """A single update of streaming output for the display layer."""

    delta: str = Field(description="New text in this chunk")
    accumulated: str = Field(description="Full text accumulated so far")
    delta_count: int = Field(ge=0, description="Number of deltas applied so far")
    is_complete: bool = Field(
        default=False, description="True on the final chunk of a committed reply"
    )
    state: SessionState = Field(
        default=SessionState.STREAMING, description="Session state when emitted"
    )
    error: str = Field(default="", description="Failure text when state is failed")

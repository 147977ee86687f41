"""Streaming response normalization: frame decoders and delta extractors."""

from duet.streaming.decoder import (
    DONE_SENTINEL,
    FrameDecoder,
    JSONObjectStreamDecoder,
    SSEFrameDecoder,
    normalize_object_stream,
)
from duet.streaming.extractor import (
    DeltaExtractor,
    GeminiDeltaExtractor,
    OpenAIDeltaExtractor,
    extract_delta,
    get_extractor,
)

__all__ = [
    "DONE_SENTINEL",
    "DeltaExtractor",
    "FrameDecoder",
    "GeminiDeltaExtractor",
    "JSONObjectStreamDecoder",
    "OpenAIDeltaExtractor",
    "SSEFrameDecoder",
    "extract_delta",
    "get_extractor",
    "normalize_object_stream",
]

"""duet schema definitions.

All Pydantic v2 models shared by the streaming layer, providers and CLI.
"""

from duet.schemas.messages import Message, Role
from duet.schemas.settings import (
    ChatSettings,
    GateResult,
    ProviderConfig,
    ProviderKind,
)
from duet.schemas.streaming import (
    SessionState,
    StreamChunk,
    StreamFrame,
    TextDelta,
)

__all__ = [
    "ChatSettings",
    "GateResult",
    "Message",
    "ProviderConfig",
    "ProviderKind",
    "Role",
    "SessionState",
    "StreamChunk",
    "StreamFrame",
    "TextDelta",
]

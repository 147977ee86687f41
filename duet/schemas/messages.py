"""Message schemas for the conversation history.

Defines the role-tagged Message record that the conversation store holds
and that both providers translate into their own request shapes.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class Role(StrEnum):
    """Author of a message in the conversation."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class Message(BaseModel):
    """A single conversation turn. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    role: Role = Field(description="Who authored this turn")
    content: str = Field(description="Plain text of the turn")

    def to_openai(self) -> dict[str, str]:
        """Render as an OpenAI chat-completions message dict."""
        return {"role": self.role.value, "content": self.content}

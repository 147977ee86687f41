"""Conversation store: the ordered, role-tagged history of one chat."""

from __future__ import annotations

from collections.abc import Iterator

from duet.schemas.messages import Message, Role


class ConversationStore:
    """Append-only list of messages in call order.

    Owned by a single StreamSession, which appends the user turn on submit
    and the assistant turn on commit. "New chat" replaces the whole store
    rather than clearing it in place.
    """

    def __init__(self) -> None:
        self._messages: list[Message] = []

    def append(self, role: Role, content: str) -> Message:
        """Append a new turn and return it."""
        message = Message(role=role, content=content)
        self._messages.append(message)
        return message

    @property
    def messages(self) -> tuple[Message, ...]:
        """Snapshot of the history."""
        return tuple(self._messages)

    @property
    def last(self) -> Message | None:
        return self._messages[-1] if self._messages else None

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(tuple(self._messages))

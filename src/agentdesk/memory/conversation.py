"""Per-task conversation history kept by an agent."""

from __future__ import annotations

from typing import List

from ..llm.provider import ChatMessage


class ConversationHistory:
    """Ordered list of chat turns for the task in hand."""

    def __init__(self) -> None:
        self._items: List[ChatMessage] = []

    def add(self, role: str, content: str) -> None:
        self._items.append(ChatMessage(role=role, content=content))

    def dump(self) -> List[ChatMessage]:
        return list(self._items)

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)

"""Conversation history and long-term memory."""

from .conversation import ConversationHistory
from .store import EpisodicMemory, InMemoryMemoryStore, MemoryCategory, MemoryStore, SemanticMemory

__all__ = [
    "ConversationHistory",
    "EpisodicMemory",
    "InMemoryMemoryStore",
    "MemoryCategory",
    "MemoryStore",
    "SemanticMemory",
]

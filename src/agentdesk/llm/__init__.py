"""LLM provider interfaces."""

from .provider import (
    ChatMessage,
    ChatResponse,
    CompletionProvider,
    CompletionServiceError,
    ScriptedProvider,
    build_provider,
)

__all__ = [
    "ChatMessage",
    "ChatResponse",
    "CompletionProvider",
    "CompletionServiceError",
    "ScriptedProvider",
    "build_provider",
]

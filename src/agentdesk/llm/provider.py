"""Completion provider abstractions used by the agent runtime."""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Literal, Mapping, Optional, Protocol, Sequence, Type

from ..config import ConfigError, ModelConfig, import_string
from ..tools.base import ToolCall, ToolDefinition


class CompletionServiceError(RuntimeError):
    """Raised when the completion service cannot produce a response."""


@dataclass
class ChatMessage:
    """One turn of the conversation sent to the model."""

    role: Literal["user", "assistant"]
    content: str


@dataclass
class ChatResponse:
    """Model response normalised across providers."""

    text: str
    tool_calls: List[ToolCall] = field(default_factory=list)
    prompt_tokens: int = 0
    completion_tokens: int = 0
    model: str = ""
    stop_reason: str = "end_turn"

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


class CompletionProvider(Protocol):
    """Interface for language model providers."""

    async def chat(
        self,
        system_prompt: str,
        messages: Sequence[ChatMessage],
        tools: Optional[Sequence[ToolDefinition]] = None,
    ) -> ChatResponse:  # pragma: no cover - interface
        """Return the model's next response for the conversation."""


class ScriptedProvider:
    """Provider that replays a finite list of responses (useful for tests and dry runs)."""

    name = "scripted"

    def __init__(self, responses: Iterable[ChatResponse | Mapping[str, Any] | str], model: str = "scripted") -> None:
        self.model = model
        self._responses = iter([self._coerce(item) for item in responses])
        self._counter = itertools.count(1)
        self.calls: List[Dict[str, Any]] = []

    @classmethod
    def from_config(cls, config: ModelConfig) -> "ScriptedProvider":
        return cls(config.params.get("responses", []), model=config.model)

    def _coerce(self, item: ChatResponse | Mapping[str, Any] | str) -> ChatResponse:
        if isinstance(item, ChatResponse):
            return item
        if isinstance(item, str):
            return ChatResponse(text=item, model=self.model)
        calls = [
            ToolCall(
                id=str(call.get("id") or f"call_{index}"),
                name=str(call["name"]),
                arguments=dict(call.get("arguments", {})),
            )
            for index, call in enumerate(item.get("tool_calls", []), start=1)
        ]
        return ChatResponse(
            text=str(item.get("text", "")),
            tool_calls=calls,
            prompt_tokens=int(item.get("prompt_tokens", 0)),
            completion_tokens=int(item.get("completion_tokens", 0)),
            model=self.model,
            stop_reason="tool_use" if calls else "end_turn",
        )

    async def chat(
        self,
        system_prompt: str,
        messages: Sequence[ChatMessage],
        tools: Optional[Sequence[ToolDefinition]] = None,
    ) -> ChatResponse:
        self.calls.append(
            {
                "index": next(self._counter),
                "system_prompt": system_prompt,
                "messages": list(messages),
                "tools": [tool.name for tool in tools or []],
            }
        )
        try:
            return next(self._responses)
        except StopIteration as exc:
            raise CompletionServiceError("ScriptedProvider exhausted") from exc


def _provider_table() -> Dict[str, Type[Any]]:
    from .anthropic import AnthropicProvider
    from .ollama import OllamaProvider

    return {
        "anthropic": AnthropicProvider,
        "ollama": OllamaProvider,
        "scripted": ScriptedProvider,
    }


def build_provider(config: ModelConfig) -> CompletionProvider:
    """Construct the provider named by ``config.provider``.

    ``provider`` may also be a ``module:qualname`` path to a class exposing
    ``from_config``. Raises ``ConfigError`` for unknown providers or missing
    credentials.
    """

    table = _provider_table()
    if config.provider in table:
        provider_cls = table[config.provider]
    elif ":" in config.provider:
        provider_cls = import_string(config.provider)
    else:
        raise ConfigError(f"Unsupported LLM provider: {config.provider}")
    return provider_cls.from_config(config)

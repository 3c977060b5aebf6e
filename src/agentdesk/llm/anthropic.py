"""Anthropic Messages API provider."""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional, Sequence

import anthropic

from ..config import ConfigError, ModelConfig
from ..tools.base import ToolCall, ToolDefinition
from .provider import ChatMessage, ChatResponse, CompletionServiceError

logger = logging.getLogger(__name__)


class AnthropicProvider:
    """Calls Claude models through the official async SDK."""

    name = "anthropic"

    def __init__(
        self,
        model: str,
        *,
        api_key: str,
        max_tokens: int = 4096,
        temperature: float = 0.7,
        timeout: float = 120.0,
        client: Optional[Any] = None,
    ) -> None:
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._client = client or anthropic.AsyncAnthropic(api_key=api_key, timeout=timeout)

    @classmethod
    def from_config(cls, config: ModelConfig) -> "AnthropicProvider":
        api_key = os.environ.get(config.api_key_env)
        if not api_key:
            raise ConfigError(f"Missing API key: set {config.api_key_env} environment variable")
        return cls(
            config.model,
            api_key=api_key,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
            timeout=config.timeout,
        )

    async def chat(
        self,
        system_prompt: str,
        messages: Sequence[ChatMessage],
        tools: Optional[Sequence[ToolDefinition]] = None,
    ) -> ChatResponse:
        request: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "system": system_prompt,
            "messages": [{"role": m.role, "content": m.content} for m in messages],
        }
        if tools:
            request["tools"] = [
                {"name": t.name, "description": t.description, "input_schema": t.parameters}
                for t in tools
            ]
        try:
            response = await self._client.messages.create(**request)
        except anthropic.APIError as exc:
            raise CompletionServiceError(f"Anthropic request failed: {exc}") from exc

        texts: List[str] = []
        calls: List[ToolCall] = []
        for block in response.content:
            if block.type == "text":
                texts.append(block.text)
            elif block.type == "tool_use":
                calls.append(ToolCall(id=block.id, name=block.name, arguments=dict(block.input or {})))
        logger.debug(
            "anthropic %s: %d in / %d out tokens, %d tool calls",
            self.model,
            response.usage.input_tokens,
            response.usage.output_tokens,
            len(calls),
        )
        return ChatResponse(
            text="\n".join(texts),
            tool_calls=calls,
            prompt_tokens=response.usage.input_tokens,
            completion_tokens=response.usage.output_tokens,
            model=self.model,
            stop_reason=response.stop_reason or "end_turn",
        )

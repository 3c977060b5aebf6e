"""Provider for a locally hosted Ollama model."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Sequence

import httpx

from ..config import ModelConfig
from ..tools.base import ToolCall, ToolDefinition
from .provider import ChatMessage, ChatResponse, CompletionServiceError


class OllamaProvider:
    """Calls a locally hosted Ollama model via its HTTP chat API."""

    name = "ollama"

    def __init__(
        self,
        model: str,
        *,
        host: str = "http://localhost:11434",
        options: Dict[str, Any] | None = None,
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.model = model
        self.host = host.rstrip("/")
        self.options = options or {}
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_config(cls, config: ModelConfig) -> "OllamaProvider":
        options = dict(config.params.get("options", {}))
        options.setdefault("temperature", config.temperature)
        return cls(
            config.model,
            host=config.host or "http://localhost:11434",
            options=options,
            timeout=config.timeout,
        )

    async def chat(
        self,
        system_prompt: str,
        messages: Sequence[ChatMessage],
        tools: Optional[Sequence[ToolDefinition]] = None,
    ) -> ChatResponse:
        payload: Dict[str, Any] = {
            "model": self.model,
            "stream": False,
            "options": self.options,
            "messages": [{"role": "system", "content": system_prompt}]
            + [{"role": m.role, "content": m.content} for m in messages],
        }
        if tools:
            payload["tools"] = [
                {
                    "type": "function",
                    "function": {"name": t.name, "description": t.description, "parameters": t.parameters},
                }
                for t in tools
            ]
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(f"{self.host}/api/chat", json=payload)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as exc:
            raise CompletionServiceError(
                f"OllamaProvider error {exc.response.status_code}: {exc.response.text}"
            ) from exc
        except (httpx.HTTPError, json.JSONDecodeError) as exc:
            raise CompletionServiceError(f"OllamaProvider failed to reach {self.host}: {exc}") from exc
        if "error" in data:
            raise CompletionServiceError(f"OllamaProvider error: {data['error']}")

        message = data.get("message") or {}
        calls: List[ToolCall] = []
        for index, call in enumerate(message.get("tool_calls") or [], start=1):
            function = call.get("function", {})
            arguments = function.get("arguments") or {}
            if isinstance(arguments, str):
                arguments = json.loads(arguments or "{}")
            calls.append(ToolCall(id=f"ollama_{index}", name=function.get("name", ""), arguments=arguments))
        return ChatResponse(
            text=(message.get("content") or "").strip(),
            tool_calls=calls,
            prompt_tokens=int(data.get("prompt_eval_count", 0)),
            completion_tokens=int(data.get("eval_count", 0)),
            model=self.model,
            stop_reason=data.get("done_reason", "stop"),
        )

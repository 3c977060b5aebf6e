import json
from types import SimpleNamespace

import httpx
import pytest

from agentdesk.config import ConfigError, ModelConfig
from agentdesk.llm import ChatMessage, ChatResponse, CompletionServiceError, ScriptedProvider, build_provider
from agentdesk.llm.anthropic import AnthropicProvider
from agentdesk.llm.ollama import OllamaProvider
from agentdesk.tools.base import ToolDefinition


@pytest.mark.asyncio
async def test_scripted_provider_replays_and_records_calls():
    provider = ScriptedProvider(
        [
            {"text": "looking", "tool_calls": [{"name": "recall_memory", "arguments": {"query": "x"}}],
             "prompt_tokens": 10, "completion_tokens": 2},
            "done",
        ]
    )
    tools = [ToolDefinition(name="recall_memory", description="search")]

    first = await provider.chat("system", [ChatMessage(role="user", content="hi")], tools)
    second = await provider.chat("system", [], None)

    assert first.tool_calls[0].name == "recall_memory"
    assert first.tool_calls[0].id == "call_1"
    assert first.total_tokens == 12
    assert first.stop_reason == "tool_use"
    assert second.text == "done" and second.tool_calls == []
    assert [call["tools"] for call in provider.calls] == [["recall_memory"], []]

    with pytest.raises(CompletionServiceError):
        await provider.chat("system", [], None)


@pytest.mark.asyncio
async def test_build_provider_from_config():
    provider = build_provider(
        ModelConfig(id="s", provider="scripted", model="demo", params={"responses": ["hi"]})
    )

    response = await provider.chat("system", [], None)
    assert isinstance(provider, ScriptedProvider)
    assert response.text == "hi"
    assert response.model == "demo"


def test_build_provider_rejects_unknown_provider():
    with pytest.raises(ConfigError, match="Unsupported LLM provider"):
        build_provider(ModelConfig(id="x", provider="carrier-pigeon", model="m"))


def test_build_provider_accepts_import_path():
    provider = build_provider(
        ModelConfig(id="x", provider="agentdesk.llm.provider:ScriptedProvider", model="m")
    )
    assert isinstance(provider, ScriptedProvider)


def test_anthropic_requires_api_key(monkeypatch):
    monkeypatch.delenv("AGENTDESK_TEST_KEY", raising=False)
    config = ModelConfig(id="c", provider="anthropic", model="claude", api_key_env="AGENTDESK_TEST_KEY")

    with pytest.raises(ConfigError, match="AGENTDESK_TEST_KEY"):
        build_provider(config)


class _FakeMessages:
    def __init__(self, response):
        self.response = response
        self.requests = []

    async def create(self, **request):
        self.requests.append(request)
        return self.response


@pytest.mark.asyncio
async def test_anthropic_provider_maps_tool_use_blocks():
    response = SimpleNamespace(
        content=[
            SimpleNamespace(type="text", text="Let me check."),
            SimpleNamespace(type="tool_use", id="toolu_1", name="recall_memory", input={"query": "acme"}),
        ],
        usage=SimpleNamespace(input_tokens=30, output_tokens=7),
        stop_reason="tool_use",
    )
    messages = _FakeMessages(response)
    provider = AnthropicProvider("claude", api_key="k", client=SimpleNamespace(messages=messages))

    result = await provider.chat(
        "system",
        [ChatMessage(role="user", content="Task: x")],
        [ToolDefinition(name="recall_memory", description="search")],
    )

    assert isinstance(result, ChatResponse)
    assert result.text == "Let me check."
    assert result.tool_calls[0].id == "toolu_1"
    assert result.tool_calls[0].arguments == {"query": "acme"}
    assert (result.prompt_tokens, result.completion_tokens) == (30, 7)
    request = messages.requests[0]
    assert request["system"] == "system"
    assert request["tools"][0]["input_schema"] == {"type": "object", "properties": {}}


@pytest.mark.asyncio
async def test_ollama_provider_posts_chat_and_parses_tool_calls():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "message": {
                    "role": "assistant",
                    "content": " thinking ",
                    "tool_calls": [{"function": {"name": "current_time", "arguments": {}}}],
                },
                "prompt_eval_count": 12,
                "eval_count": 4,
                "done_reason": "stop",
            },
        )

    provider = OllamaProvider("llama3", host="http://ollama:11434/", transport=httpx.MockTransport(handler))
    result = await provider.chat(
        "be brief",
        [ChatMessage(role="user", content="hi")],
        [ToolDefinition(name="current_time", description="time")],
    )

    assert seen["url"] == "http://ollama:11434/api/chat"
    assert seen["body"]["messages"][0] == {"role": "system", "content": "be brief"}
    assert seen["body"]["tools"][0]["function"]["name"] == "current_time"
    assert result.text == "thinking"
    assert result.tool_calls[0].id == "ollama_1"
    assert result.total_tokens == 16


@pytest.mark.asyncio
async def test_ollama_http_errors_become_completion_errors():
    transport = httpx.MockTransport(lambda request: httpx.Response(500, text="model not loaded"))
    provider = OllamaProvider("llama3", transport=transport)

    with pytest.raises(CompletionServiceError, match="500"):
        await provider.chat("s", [], None)

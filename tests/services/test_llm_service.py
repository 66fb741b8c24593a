"""Unit tests for the LLM service and the OpenAI-compatible provider."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from docqa.config.settings import LLMSettings
from docqa.core.exceptions import AIModelError
from docqa.services.llm_service import (
    LLMMessage,
    LLMRequest,
    LLMService,
    OpenAICompatibleProvider,
    ToolCallRequest,
)


def completion(content=None, tool_calls=None, finish_reason="stop"):
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(
        choices=[SimpleNamespace(message=message, finish_reason=finish_reason)],
        model="test-model",
        usage=SimpleNamespace(total_tokens=42),
    )


@pytest.fixture
def provider():
    provider = OpenAICompatibleProvider(api_key="test-key", base_url="http://localhost:9999/v1", model="test-model")
    provider.client = MagicMock()
    provider.client.chat.completions.create = AsyncMock()
    return provider


def test_message_serialization():
    assistant = LLMMessage(
        role="assistant",
        content=None,
        tool_calls=[ToolCallRequest(id="call_1", name="list_dir", arguments="{}")],
    )
    tool = LLMMessage(role="tool", content="a.txt", tool_call_id="call_1")

    assert assistant.to_openai() == {
        "role": "assistant",
        "content": None,
        "tool_calls": [
            {"id": "call_1", "type": "function", "function": {"name": "list_dir", "arguments": "{}"}}
        ],
    }
    assert tool.to_openai() == {"role": "tool", "content": "a.txt", "tool_call_id": "call_1"}


@pytest.mark.asyncio
async def test_generate_plain_answer(provider):
    provider.client.chat.completions.create.return_value = completion(content="Hi")

    response = await provider.generate(LLMRequest(messages=[LLMMessage(role="user", content="hello")]))

    assert response.content == "Hi"
    assert response.tokens_used == 42
    kwargs = provider.client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "test-model"
    assert "tools" not in kwargs


@pytest.mark.asyncio
async def test_generate_with_tools(provider):
    call = SimpleNamespace(id="call_9", function=SimpleNamespace(name="read_file", arguments='{"path": "a.txt"}'))
    provider.client.chat.completions.create.return_value = completion(tool_calls=[call], finish_reason="tool_calls")
    tools = [{"type": "function", "function": {"name": "read_file", "parameters": {}}}]

    response = await provider.generate(LLMRequest(messages=[LLMMessage(role="user", content="x")], tools=tools))

    assert response.content == ""
    assert response.tool_calls == [ToolCallRequest(id="call_9", name="read_file", arguments='{"path": "a.txt"}')]
    kwargs = provider.client.chat.completions.create.call_args.kwargs
    assert kwargs["tools"] == tools
    assert kwargs["tool_choice"] == "auto"


@pytest.mark.asyncio
async def test_api_errors_become_ai_model_errors(provider):
    provider.client.chat.completions.create.side_effect = RuntimeError("503 upstream")
    service = LLMService(provider)

    with pytest.raises(AIModelError) as exc_info:
        await service.generate(LLMRequest(messages=[LLMMessage(role="user", content="x")]))

    assert exc_info.value.status_code == 502


@pytest.mark.asyncio
async def test_missing_api_key():
    service = LLMService.from_settings(LLMSettings(api_key=None))

    assert service.configured is False
    with pytest.raises(AIModelError):
        await service.generate(LLMRequest(messages=[LLMMessage(role="user", content="x")]))


def test_from_settings_uses_configured_model():
    service = LLMService.from_settings(LLMSettings(api_key="key", model="custom-model"))

    assert service.configured is True
    assert service.model == "custom-model"

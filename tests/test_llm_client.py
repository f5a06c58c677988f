"""Tests for the OpenRouter language-model client."""

import asyncio
import time
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from commerce_agent.config import settings
from commerce_agent.errors import ConfigurationError
from commerce_agent.llm import OpenRouterClient


def _completion(content: str):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(prompt_tokens=120, completion_tokens=30, total_tokens=150),
    )


@pytest.fixture
def client() -> OpenRouterClient:
    client = OpenRouterClient(api_key="test-key", model_name="test/model", timeout=2)
    client._llm_client = MagicMock()
    return client


async def test_generate_returns_content_and_usage(client) -> None:
    client._llm_client.chat.completions.create.return_value = _completion('  {"status": "complete"}  ')

    reply = await client.generate("prompt", "shoe_store", {"temperature": 0.0})

    assert reply.content == '{"status": "complete"}'
    assert reply.usage["total_tokens"] == 150
    kwargs = client._llm_client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "test/model"
    assert kwargs["temperature"] == 0.0
    assert kwargs["user"] == "shoe_store"


async def test_empty_content_raises(client) -> None:
    client._llm_client.chat.completions.create.return_value = _completion("")

    with pytest.raises(RuntimeError):
        await client.generate("prompt", "shoe_store")


async def test_slow_call_times_out(client) -> None:
    client.timeout = 0.05
    client._llm_client.chat.completions.create.side_effect = lambda **kwargs: time.sleep(0.3)

    with pytest.raises(asyncio.TimeoutError):
        await client.generate("prompt", "shoe_store")


def test_missing_api_key_is_a_configuration_error(monkeypatch) -> None:
    monkeypatch.setattr(settings, "openrouter_api_key", None)

    with pytest.raises(ConfigurationError):
        OpenRouterClient()

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock

import openai

from assistant.completion import FALLBACK_REPLY, CompletionClient


def fake_openai(reply=None, error=None):
    create = AsyncMock()
    if error is not None:
        create.side_effect = error
    else:
        message = SimpleNamespace(content=reply)
        create.return_value = SimpleNamespace(choices=[SimpleNamespace(message=message)])
    return SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create))), create


def test_disabled_without_api_key():
    client = CompletionClient(api_key=None, model="m")
    assert not client.enabled
    assert asyncio.run(client.ask("hi")) == FALLBACK_REPLY


def test_ask_returns_answer():
    client = CompletionClient(api_key="sk-test", model="m")
    client._client, create = fake_openai("  Forty-two.  ")

    assert asyncio.run(client.ask("meaning of life?")) == "Forty-two."
    kwargs = create.call_args.kwargs
    assert kwargs["model"] == "m"
    assert kwargs["messages"][-1] == {"role": "user", "content": "meaning of life?"}


def test_api_error_falls_back():
    client = CompletionClient(api_key="sk-test", model="m")
    client._client, _ = fake_openai(error=openai.OpenAIError("boom"))

    assert asyncio.run(client.ask("hi")) == FALLBACK_REPLY


def test_empty_answer_falls_back():
    client = CompletionClient(api_key="sk-test", model="m")
    client._client, _ = fake_openai(None)

    assert asyncio.run(client.ask("hi")) == FALLBACK_REPLY

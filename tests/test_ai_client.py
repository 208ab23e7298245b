"""Tests for the OpenAI-compatible AI client."""

from __future__ import annotations

import logging
from collections import deque
from types import SimpleNamespace
from typing import Any, Iterable

import httpx
import openai
import pytest

from docpilot.ai.client import AIClient, ChatResponse, ClientSettings
from docpilot.services.settings import Settings


def _completion(content: str | None) -> SimpleNamespace:
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


class _FakeCompletions:
    def __init__(self, outcomes: Iterable[Any]):
        self._outcomes = deque(outcomes)
        self.calls: list[dict[str, Any]] = []

    async def create(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        outcome = self._outcomes.popleft() if len(self._outcomes) > 1 else self._outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class _FakeOpenAI:
    def __init__(self, outcomes: Iterable[Any]):
        self.completions = _FakeCompletions(outcomes)
        self.chat = SimpleNamespace(completions=self.completions)
        self.closed = False

    async def close(self) -> None:
        self.closed = True


def _settings(**overrides: Any) -> ClientSettings:
    base = dict(
        base_url="https://example.test/v1",
        api_key="test",
        model="demo-model",
        retry_min_seconds=0.0,
        retry_max_seconds=0.0,
    )
    base.update(overrides)
    return ClientSettings(**base)


def _client(outcomes: Iterable[Any], **overrides: Any) -> tuple[AIClient, _FakeOpenAI]:
    fake = _FakeOpenAI(outcomes)
    return AIClient(_settings(**overrides), client=fake), fake  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_chat_returns_first_choice_text():
    client, fake = _client([_completion("[REPLY]你好[/REPLY]")], metadata={"app": "docpilot"})

    response = await client.chat([{"role": "user", "content": "hi"}], metadata={"turn": "1"}, max_tokens=64)

    assert response == ChatResponse.ok("[REPLY]你好[/REPLY]")
    call = fake.completions.calls[0]
    assert call["model"] == "demo-model"
    assert call["messages"] == [{"role": "user", "content": "hi"}]
    assert call["temperature"] == 0.2
    assert call["max_tokens"] == 64
    assert call["metadata"] == {"app": "docpilot", "turn": "1"}


@pytest.mark.asyncio
async def test_empty_completion_is_a_failure():
    client, _ = _client([SimpleNamespace(choices=[])])

    response = await client.chat([{"role": "user", "content": "hi"}])

    assert response.success is False
    assert response.error == "empty completion"


@pytest.mark.asyncio
async def test_transient_errors_are_retried():
    client, fake = _client([httpx.ReadTimeout("slow"), _completion("ok")])

    response = await client.chat([{"role": "user", "content": "hi"}])

    assert response.success
    assert len(fake.completions.calls) == 2


@pytest.mark.asyncio
async def test_exhausted_retries_become_failed_response():
    client, fake = _client([httpx.ConnectTimeout("down")], max_retries=2)

    response = await client.chat([{"role": "user", "content": "hi"}])

    assert response.success is False
    assert response.error == "down"
    assert len(fake.completions.calls) == 2



def _status_error(error_type: type[openai.APIStatusError], status: int, message: str) -> openai.APIStatusError:
    request = httpx.Request("POST", "https://example.test/v1/chat/completions")
    return error_type(message, response=httpx.Response(status, request=request), body=None)


@pytest.mark.asyncio
async def test_client_errors_are_not_retried():
    client, fake = _client([_status_error(openai.AuthenticationError, 401, "bad key"), _completion("unused")])

    response = await client.chat([{"role": "user", "content": "hi"}])

    assert response.success is False
    assert "bad key" in response.error
    assert len(fake.completions.calls) == 1


@pytest.mark.asyncio
async def test_server_errors_are_retried():
    client, fake = _client([_status_error(openai.InternalServerError, 503, "overloaded"), _completion("ok")])

    response = await client.chat([{"role": "user", "content": "hi"}])

    assert response == ChatResponse.ok("ok")
    assert len(fake.completions.calls) == 2

@pytest.mark.asyncio
async def test_requires_at_least_one_message():
    client, fake = _client([_completion("unused")])

    response = await client.chat([])

    assert response.success is False
    assert "At least one message" in response.error
    assert fake.completions.calls == []


@pytest.mark.asyncio
async def test_debug_logging_dumps_payload(caplog):
    client, _ = _client([_completion("ok")], debug_logging=True)

    with caplog.at_level(logging.DEBUG, logger="docpilot.ai.client"):
        await client.chat([{"role": "user", "content": "改写第一章"}])

    assert "AI prompt payload" in caplog.text
    assert "改写第一章" in caplog.text


@pytest.mark.asyncio
async def test_aclose_closes_underlying_client():
    client, fake = _client([_completion("ok")])

    await client.aclose()

    assert fake.closed


def test_client_settings_from_settings():
    settings = Settings(api_key="k", model="m", debug_logging=True)

    client_settings = ClientSettings.from_settings(settings)

    assert client_settings.model == "m"
    assert client_settings.api_key == "k"
    assert client_settings.default_headers is None
    assert client_settings.metadata is None
    assert client_settings.debug_logging is True

"""Async client for OpenAI-compatible chat endpoints.

The copilot only ever needs one non-streaming completion per request: the
intent call of a turn or one section edit. :class:`AIClient` wraps that call
with retries and reports failures as :class:`ChatResponse` values.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Mapping, Protocol, Sequence, cast

import httpx
from openai import AsyncOpenAI, APIConnectionError, APIError, APIStatusError, RateLimitError
from openai.types.chat import ChatCompletionMessageParam
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

if TYPE_CHECKING:
    from ..services.settings import Settings

__all__ = ["AIClient", "ClientSettings", "ChatResponse", "ChatService"]

LOGGER = logging.getLogger(__name__)

# Retried along with 5xx responses; other 4xx responses fail on the first attempt.
_TRANSIENT_ERRORS = (
    APIConnectionError,
    RateLimitError,
    httpx.TimeoutException,
)
_FAILURE_ERRORS = (APIError, httpx.HTTPError)


def _is_server_error(exc: BaseException) -> bool:
    return isinstance(exc, APIStatusError) and exc.status_code >= 500


@dataclass(slots=True)
class ClientSettings:
    """Connection and retry knobs taken from :class:`~docpilot.services.settings.Settings`."""

    base_url: str
    api_key: str
    model: str
    organization: str | None = None
    temperature: float | None = 0.2
    request_timeout: float | None = 90.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    default_headers: Mapping[str, str] | None = None
    metadata: Mapping[str, str] | None = None
    debug_logging: bool = False

    @classmethod
    def from_settings(cls, settings: "Settings") -> "ClientSettings":
        return cls(
            base_url=settings.base_url,
            api_key=settings.api_key,
            model=settings.model,
            organization=settings.organization,
            temperature=settings.temperature,
            request_timeout=settings.request_timeout,
            max_retries=settings.max_retries,
            retry_min_seconds=settings.retry_min_seconds,
            retry_max_seconds=settings.retry_max_seconds,
            default_headers=dict(settings.default_headers) or None,
            metadata=dict(settings.metadata) or None,
            debug_logging=settings.debug_logging,
        )


@dataclass(slots=True, frozen=True)
class ChatResponse:
    """Outcome of one chat request; failures are values, not exceptions."""

    success: bool
    content: str | None = None
    error: str | None = None

    @classmethod
    def ok(cls, content: str) -> "ChatResponse":
        return cls(success=True, content=content)

    @classmethod
    def failed(cls, error: str) -> "ChatResponse":
        return cls(success=False, error=error)


class ChatService(Protocol):
    """Single-shot text-generation service."""

    async def chat(self, messages: Sequence[Mapping[str, Any]]) -> ChatResponse:
        ...


class AIClient:
    """Retrying chat client over :class:`openai.AsyncOpenAI`."""

    def __init__(self, settings: ClientSettings, *, client: AsyncOpenAI | None = None) -> None:
        self._settings = settings
        self._client = client or AsyncOpenAI(
            api_key=settings.api_key,
            base_url=settings.base_url,
            organization=settings.organization,
            timeout=settings.request_timeout,
            default_headers=dict(settings.default_headers) if settings.default_headers else None,
        )

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    async def chat(
        self,
        messages: Iterable[Mapping[str, Any]],
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
        metadata: Mapping[str, str] | None = None,
        **extra_params: Any,
    ) -> ChatResponse:
        """Send ``messages`` and return the first choice's text.

        Transient transport failures are retried with exponential backoff.
        Once retries are exhausted the error is returned in the response.
        """

        conversation = _as_message_params(messages)
        if not conversation:
            return ChatResponse.failed("At least one message is required to start a chat")
        request = self._request(conversation, temperature, max_tokens, metadata, extra_params)
        if self._settings.debug_logging:
            LOGGER.debug("AI prompt payload:\n%s", json.dumps(request, ensure_ascii=False, indent=2, default=str))

        started = time.perf_counter()
        attempts = 0
        try:
            async for attempt in self._retrying():
                with attempt:
                    attempts += 1
                    completion = await self._client.chat.completions.create(**request)
        except _FAILURE_ERRORS as exc:
            LOGGER.warning("Chat completion failed after %s attempt(s): %s", attempts, exc)
            return ChatResponse.failed(str(exc) or exc.__class__.__name__)

        LOGGER.debug(
            "%s answered %s message(s) in %.2fs after %s attempt(s)",
            self._settings.model,
            len(conversation),
            time.perf_counter() - started,
            attempts,
        )
        text = _first_choice_text(completion)
        return ChatResponse.failed("empty completion") if text is None else ChatResponse.ok(text)

    async def aclose(self) -> None:
        """Release the HTTP connections held by the OpenAI client."""

        await self._client.close()

    def _request(
        self,
        conversation: List[ChatCompletionMessageParam],
        temperature: float | None,
        max_tokens: int | None,
        metadata: Mapping[str, str] | None,
        extra_params: Mapping[str, Any],
    ) -> Dict[str, Any]:
        request: Dict[str, Any] = {"model": self._settings.model, "messages": conversation}
        tags = {**(self._settings.metadata or {}), **(metadata or {})}
        if tags:
            request["metadata"] = tags
        if temperature is None:
            temperature = self._settings.temperature
        if temperature is not None:
            request["temperature"] = temperature
        if max_tokens is not None:
            request["max_tokens"] = max_tokens
        request.update(extra_params)
        return request

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self._settings.max_retries)),
            wait=wait_exponential(multiplier=self._settings.retry_min_seconds, max=self._settings.retry_max_seconds),
            retry=retry_if_exception_type(_TRANSIENT_ERRORS) | retry_if_exception(_is_server_error),
        )


def _as_message_params(messages: Iterable[Mapping[str, Any]]) -> List[ChatCompletionMessageParam]:
    return [cast(ChatCompletionMessageParam, dict(message)) for message in messages]


def _first_choice_text(completion: Any) -> str | None:
    choices = getattr(completion, "choices", None) or []
    if not choices:
        return None
    content = getattr(getattr(choices[0], "message", None), "content", None)
    return content if isinstance(content, str) else None

"""Conversation history and the per-document record of applied actions."""

from __future__ import annotations

import logging
import uuid
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Deque, Iterable, Mapping

from ...editor.document_model import now_ms

LOGGER = logging.getLogger(__name__)

MAX_LAST_ACTIONS = 10


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    ACTION = "action"


class ActionStatus(str, Enum):
    PENDING = "pending"
    APPLIED = "applied"
    FAILED = "failed"
    REVERTED = "reverted"


@dataclass(slots=True)
class ChatMessage:
    """One entry of the conversation shown to the user.

    Action messages keep their execution state in ``meta``: ``status``,
    ``command``, ``section_id``, ``undoable``, ``snapshot_id``,
    ``response_mode``, ``pending_result_id`` and, depending on the mode,
    preview, clarification or error details.
    """

    id: str
    role: MessageRole
    content: str
    document_id: str | None = None
    created_at_ms: int = field(default_factory=now_ms)
    meta: dict[str, Any] = field(default_factory=dict)

    @property
    def status(self) -> ActionStatus | None:
        value = self.meta.get("status")
        return ActionStatus(value) if value else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role.value,
            "content": self.content,
            "document_id": self.document_id,
            "created_at_ms": self.created_at_ms,
            "meta": dict(self.meta),
        }


@dataclass(slots=True, frozen=True)
class LastAction:
    id: str
    command: str
    scope: str
    document_id: str
    section_id: str | None = None
    section_title: str | None = None
    created_at_ms: int = field(default_factory=now_ms)


def _new_message_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


class MessageLog:
    """In-memory conversation log shared by the orchestrator and the bridge."""

    def __init__(self, *, max_last_actions: int = MAX_LAST_ACTIONS) -> None:
        self._messages: list[ChatMessage] = []
        self._index: dict[str, ChatMessage] = {}
        self._max_last_actions = max(1, max_last_actions)
        self._last_actions: dict[str, Deque[LastAction]] = {}

    def __len__(self) -> int:
        return len(self._messages)

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def add_user(self, content: str, *, document_id: str | None = None) -> ChatMessage:
        return self._append(ChatMessage(_new_message_id("msg"), MessageRole.USER, content, document_id))

    def add_assistant(
        self,
        content: str,
        *,
        document_id: str | None = None,
        meta: Mapping[str, Any] | None = None,
    ) -> ChatMessage:
        message = ChatMessage(_new_message_id("msg"), MessageRole.ASSISTANT, content, document_id, meta=dict(meta or {}))
        return self._append(message)

    def add_action(self, content: str, *, document_id: str | None, **meta: Any) -> ChatMessage:
        payload = {"status": ActionStatus.PENDING.value, "undoable": False}
        payload.update(meta)
        return self._append(ChatMessage(_new_message_id("act"), MessageRole.ACTION, content, document_id, meta=payload))

    def get(self, message_id: str | None) -> ChatMessage | None:
        if not message_id:
            return None
        return self._index.get(message_id)

    def update(self, message_id: str | None, *, content: str | None = None, **meta: Any) -> ChatMessage | None:
        message = self.get(message_id)
        if message is None:
            LOGGER.debug("Ignoring update for unknown message %s", message_id)
            return None
        if content is not None:
            message.content = content
        for key, value in meta.items():
            if isinstance(value, Enum):
                value = value.value
            message.meta[key] = value
        return message

    def set_status(self, message_id: str | None, status: ActionStatus, **meta: Any) -> ChatMessage | None:
        return self.update(message_id, status=status.value, **meta)

    def messages(self, document_id: str | None = None) -> list[ChatMessage]:
        if document_id is None:
            return list(self._messages)
        return [message for message in self._messages if message.document_id == document_id]

    def recent(self, *, since_ms: int | None = None, document_id: str | None = None) -> list[ChatMessage]:
        items: Iterable[ChatMessage] = self.messages(document_id)
        if since_ms is not None:
            items = [message for message in items if message.created_at_ms >= since_ms]
        return list(items)

    def clear(self) -> None:
        self._messages.clear()
        self._index.clear()
        self._last_actions.clear()

    def _append(self, message: ChatMessage) -> ChatMessage:
        self._messages.append(message)
        self._index[message.id] = message
        return message

    # ------------------------------------------------------------------
    # Last actions
    # ------------------------------------------------------------------

    def push_last_action(self, action: LastAction) -> None:
        bucket = self._last_actions.get(action.document_id)
        if bucket is None:
            bucket = deque(maxlen=self._max_last_actions)
            self._last_actions[action.document_id] = bucket
        bucket.append(action)

    def last_actions(self, document_id: str) -> list[LastAction]:
        """Return the most recent actions for ``document_id``, newest first."""

        return list(reversed(self._last_actions.get(document_id, ())))


__all__ = [
    "MAX_LAST_ACTIONS",
    "MessageRole",
    "ActionStatus",
    "ChatMessage",
    "LastAction",
    "MessageLog",
]

"""Per-document conversation state: focus, preferences and last-edit memory."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from ...editor.document_model import now_ms
from ..intent.commands import CopilotCommand
from ..intent.types import IntentAction

LOGGER = logging.getLogger(__name__)


class FocusScope(str, Enum):
    DOCUMENT = "document"
    SECTION = "section"


@dataclass(slots=True)
class UserPreferences:
    language: str = "zh"
    verbosity: str = "concise"


@dataclass(slots=True, frozen=True)
class LastEditContext:
    """The most recent successfully applied section edit.

    Only written after an edit succeeds so a failed attempt never becomes the
    target of a later "make it shorter" turn.
    """

    section_id: str
    action: IntentAction | None = None
    command: CopilotCommand | None = None
    section_title: str | None = None
    timestamp_ms: int = field(default_factory=now_ms)
    paragraph_index: int | None = None


@dataclass(slots=True)
class SessionState:
    document_id: str
    focus_scope: FocusScope = FocusScope.DOCUMENT
    focus_section_id: str | None = None
    focus_section_title: str | None = None
    preferences: UserPreferences = field(default_factory=UserPreferences)
    last_task: str | None = None
    last_edit: LastEditContext | None = None
    created_at_ms: int = field(default_factory=now_ms)

    @property
    def is_section_focus(self) -> bool:
        return self.focus_scope is FocusScope.SECTION and bool(self.focus_section_id)

    def focus_document(self) -> None:
        self.focus_scope = FocusScope.DOCUMENT
        self.focus_section_id = None
        self.focus_section_title = None

    def focus_section(self, section_id: str, title: str | None = None) -> None:
        self.focus_scope = FocusScope.SECTION
        self.focus_section_id = section_id
        self.focus_section_title = title

    def record_edit(self, context: LastEditContext, task: str | None = None) -> None:
        self.last_edit = context
        if task:
            self.last_task = task


class SessionStore:
    """Holds the single active :class:`SessionState`.

    Switching documents discards the previous state (and with it the last
    edit), so follow-ups never leak across documents.
    """

    def __init__(self, *, default_preferences: UserPreferences | None = None) -> None:
        self._default_preferences = default_preferences or UserPreferences()
        self._state: SessionState | None = None

    @property
    def state(self) -> SessionState | None:
        return self._state

    @property
    def document_id(self) -> str | None:
        return self._state.document_id if self._state else None

    def ensure(self, document_id: str) -> SessionState:
        state = self._state
        if state is None or state.document_id != document_id:
            state = self.reset(document_id)
        return state

    def reset(self, document_id: str | None) -> SessionState | None:
        if not document_id:
            self._state = None
            return None
        preferences = self._state.preferences if self._state else self._default_preferences
        LOGGER.debug("Starting session for document %s", document_id)
        self._state = SessionState(
            document_id=document_id,
            preferences=UserPreferences(language=preferences.language, verbosity=preferences.verbosity),
        )
        return self._state


__all__ = [
    "FocusScope",
    "UserPreferences",
    "LastEditContext",
    "SessionState",
    "SessionStore",
]

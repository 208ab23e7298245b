"""Tests for the per-document session state."""

from __future__ import annotations

from docpilot.ai.intent.commands import CopilotCommand
from docpilot.ai.orchestration.session import (
    FocusScope,
    LastEditContext,
    SessionState,
    SessionStore,
    UserPreferences,
)


def test_focus_switching():
    state = SessionState(document_id="doc-1")
    assert state.focus_scope is FocusScope.DOCUMENT
    assert not state.is_section_focus

    state.focus_section("sec-3", "目标")
    assert state.is_section_focus
    assert state.focus_section_title == "目标"

    state.focus_document()
    assert state.focus_section_id is None
    assert not state.is_section_focus


def test_record_edit_keeps_previous_task_when_none_given():
    state = SessionState(document_id="doc-1")
    state.record_edit(LastEditContext(section_id="sec-2"), task="重写章节")
    state.record_edit(LastEditContext(section_id="sec-3", command=CopilotCommand.SUMMARIZE_SECTION))

    assert state.last_edit.section_id == "sec-3"
    assert state.last_task == "重写章节"


class TestSessionStore:
    def test_ensure_reuses_state_for_same_document(self):
        store = SessionStore()

        first = store.ensure("doc-1")
        first.focus_section("sec-2")

        assert store.ensure("doc-1") is first
        assert store.document_id == "doc-1"

    def test_switching_documents_drops_last_edit_but_keeps_preferences(self):
        store = SessionStore(default_preferences=UserPreferences(language="en"))
        state = store.ensure("doc-1")
        state.preferences = UserPreferences(language="zh", verbosity="detailed")
        state.record_edit(LastEditContext(section_id="sec-2"))

        other = store.ensure("doc-2")

        assert other is not state
        assert other.last_edit is None
        assert other.preferences == UserPreferences(language="zh", verbosity="detailed")
        assert other.preferences is not state.preferences

    def test_defaults_apply_to_first_session(self):
        store = SessionStore(default_preferences=UserPreferences(language="en"))

        assert store.ensure("doc-1").preferences.language == "en"

    def test_reset_without_document_clears_state(self):
        store = SessionStore()
        store.ensure("doc-1")

        assert store.reset(None) is None
        assert store.state is None
        assert store.document_id is None

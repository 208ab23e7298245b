"""Tests for the command catalogue and compound plans."""

from __future__ import annotations

import pytest

from docpilot.ai.intent.commands import (
    COMMAND_LABELS,
    CommandScope,
    CopilotCommand,
    ResolvedCommand,
    SectionAction,
    build_action_description,
    build_context_missing_message,
    build_not_implemented_message,
    command_for_intent_action,
    command_needs_section,
    command_steps,
    is_command_implemented,
    is_compound_command,
)
from docpilot.ai.intent.types import IntentAction


def test_full_compound_plan():
    steps = command_steps(CopilotCommand.REWRITE_SECTION_WITH_HIGHLIGHT_AND_SUMMARY, {"highlight_count": 5})

    assert [step.action for step in steps] == [SectionAction.REWRITE, SectionAction.HIGHLIGHT, SectionAction.SUMMARIZE]
    assert steps[0].options == {"scope": "intro"}
    assert steps[1].options == {"mode": "sentences", "count": 5}
    assert steps[2].options == {"bullet_count": 3}


def test_summary_without_highlight():
    steps = command_steps(
        CopilotCommand.REWRITE_SECTION_WITH_HIGHLIGHT_AND_SUMMARY,
        {"highlight_key_sentences": False, "add_summary": True},
    )

    assert [step.action for step in steps] == [SectionAction.REWRITE, SectionAction.SUMMARIZE]


@pytest.mark.parametrize(
    ("command", "action", "options"),
    [
        (CopilotCommand.REWRITE_SECTION_INTRO, SectionAction.REWRITE, {"scope": "intro"}),
        (CopilotCommand.REWRITE_SECTION_CHAPTER, SectionAction.REWRITE, {"scope": "chapter"}),
        (CopilotCommand.SUMMARIZE_SECTION, SectionAction.SUMMARIZE, {}),
        (CopilotCommand.EXPAND_SECTION, SectionAction.EXPAND, {}),
        (CopilotCommand.HIGHLIGHT_KEY_TERMS, SectionAction.HIGHLIGHT, {"mode": "terms"}),
    ],
)
def test_atomic_commands_have_one_step(command, action, options):
    (step,) = command_steps(command)

    assert step.action is action
    assert step.options == options


def test_selection_and_document_commands_are_not_implemented():
    for command in (CopilotCommand.TRANSLATE_SELECTION, CopilotCommand.SUMMARIZE_DOCUMENT):
        assert not is_command_implemented(command)
        assert command_steps(command) == ()
    assert "总结文档" in build_not_implemented_message(CopilotCommand.SUMMARIZE_DOCUMENT)


def test_command_classification():
    assert is_compound_command(CopilotCommand.REWRITE_SECTION_WITH_HIGHLIGHT)
    assert not is_compound_command(CopilotCommand.REWRITE_SECTION_INTRO)
    assert command_needs_section(CopilotCommand.HIGHLIGHT_KEY_TERMS)
    assert not command_needs_section(CopilotCommand.REWRITE_SELECTION)
    assert "选中" in build_context_missing_message(CopilotCommand.REWRITE_SELECTION)
    assert "小节" in build_context_missing_message(CopilotCommand.EXPAND_SECTION)


def test_intent_actions_map_to_commands():
    assert command_for_intent_action(IntentAction.REWRITE_SECTION) is CopilotCommand.REWRITE_SECTION_INTRO
    assert command_for_intent_action(IntentAction.REWRITE_PARAGRAPH) is CopilotCommand.REWRITE_SECTION_INTRO
    assert command_for_intent_action(IntentAction.SUMMARIZE_SECTION) is CopilotCommand.SUMMARIZE_SECTION
    assert command_for_intent_action(IntentAction.HIGHLIGHT_TERMS) is CopilotCommand.HIGHLIGHT_KEY_TERMS


def test_action_description_uses_title():
    command = ResolvedCommand(
        command=CopilotCommand.SUMMARIZE_SECTION,
        scope=CommandScope.SECTION,
        document_id="doc-1",
        section_id="sec-6",
        section_title="风险",
    )

    assert build_action_description(command) == "总结章节：风险"
    assert command.label == "总结章节"
    assert not command.is_high_confidence


def test_every_section_command_runs_at_least_one_step():
    section_commands = [command for command in CopilotCommand if command_needs_section(command)]

    assert section_commands
    for command in section_commands:
        assert is_command_implemented(command)
        assert command_steps(command), command
        assert command in COMMAND_LABELS


def test_section_catalogue_only_lists_reachable_commands():
    assert {command for command in CopilotCommand if command_needs_section(command)} == {
        CopilotCommand.REWRITE_SECTION_INTRO,
        CopilotCommand.REWRITE_SECTION_CHAPTER,
        CopilotCommand.SUMMARIZE_SECTION,
        CopilotCommand.EXPAND_SECTION,
        CopilotCommand.REWRITE_SECTION_WITH_HIGHLIGHT,
        CopilotCommand.REWRITE_SECTION_WITH_HIGHLIGHT_AND_SUMMARY,
        CopilotCommand.HIGHLIGHT_KEY_TERMS,
    }

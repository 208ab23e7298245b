"""Command catalogue shared by the rule matcher and the execution bridge."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

from .types import Confidence, IntentAction, RoughKind


class CopilotCommand(str, Enum):
    # Selection level
    REWRITE_SELECTION = "rewrite_selection"
    SUMMARIZE_SELECTION = "summarize_selection"
    TRANSLATE_SELECTION = "translate_selection"
    # Section level, atomic
    REWRITE_SECTION_INTRO = "rewrite_section_intro"
    REWRITE_SECTION_CHAPTER = "rewrite_section_chapter"
    SUMMARIZE_SECTION = "summarize_section"
    EXPAND_SECTION = "expand_section"
    # Section level, compound
    REWRITE_SECTION_WITH_HIGHLIGHT = "rewrite_section_with_highlight"
    REWRITE_SECTION_WITH_HIGHLIGHT_AND_SUMMARY = "rewrite_section_with_highlight_and_summary"
    HIGHLIGHT_KEY_TERMS = "highlight_key_terms"
    # Document level
    SUMMARIZE_DOCUMENT = "summarize_document"


class CommandScope(str, Enum):
    DOCUMENT = "document"
    SECTION = "section"
    SELECTION = "selection"


class SectionAction(str, Enum):
    """Atomic operations understood by a section edit primitive."""

    REWRITE = "rewrite"
    SUMMARIZE = "summarize"
    EXPAND = "expand"
    HIGHLIGHT = "highlight"


COMMAND_LABELS: Mapping[CopilotCommand, str] = MappingProxyType(
    {
        CopilotCommand.REWRITE_SELECTION: "重写选区",
        CopilotCommand.SUMMARIZE_SELECTION: "总结选区",
        CopilotCommand.TRANSLATE_SELECTION: "翻译选区",
        CopilotCommand.REWRITE_SECTION_INTRO: "重写章节导语",
        CopilotCommand.REWRITE_SECTION_CHAPTER: "重写整章",
        CopilotCommand.SUMMARIZE_SECTION: "总结章节",
        CopilotCommand.EXPAND_SECTION: "扩写章节",
        CopilotCommand.REWRITE_SECTION_WITH_HIGHLIGHT: "改写并标记重点",
        CopilotCommand.REWRITE_SECTION_WITH_HIGHLIGHT_AND_SUMMARY: "改写、标记重点并生成摘要",
        CopilotCommand.HIGHLIGHT_KEY_TERMS: "标记重点词语",
        CopilotCommand.SUMMARIZE_DOCUMENT: "总结文档",
    }
)

_SECTION_COMMANDS = frozenset(
    {
        CopilotCommand.REWRITE_SECTION_INTRO,
        CopilotCommand.REWRITE_SECTION_CHAPTER,
        CopilotCommand.SUMMARIZE_SECTION,
        CopilotCommand.EXPAND_SECTION,
        CopilotCommand.REWRITE_SECTION_WITH_HIGHLIGHT,
        CopilotCommand.REWRITE_SECTION_WITH_HIGHLIGHT_AND_SUMMARY,
        CopilotCommand.HIGHLIGHT_KEY_TERMS,
    }
)

_SELECTION_COMMANDS = frozenset(
    {
        CopilotCommand.REWRITE_SELECTION,
        CopilotCommand.SUMMARIZE_SELECTION,
        CopilotCommand.TRANSLATE_SELECTION,
    }
)

# Selection and document commands are recognized but have no primitive yet.
_IMPLEMENTED_COMMANDS = _SECTION_COMMANDS

_COMPOUND_COMMANDS = frozenset(
    {
        CopilotCommand.REWRITE_SECTION_WITH_HIGHLIGHT,
        CopilotCommand.REWRITE_SECTION_WITH_HIGHLIGHT_AND_SUMMARY,
    }
)


def command_needs_section(command: CopilotCommand) -> bool:
    return command in _SECTION_COMMANDS


def command_needs_selection(command: CopilotCommand) -> bool:
    return command in _SELECTION_COMMANDS


def is_command_implemented(command: CopilotCommand) -> bool:
    return command in _IMPLEMENTED_COMMANDS


def is_compound_command(command: CopilotCommand) -> bool:
    return command in _COMPOUND_COMMANDS


def map_command_to_action(command: CopilotCommand) -> SectionAction | None:
    """Return the single primitive behind an atomic section command."""

    if command in (CopilotCommand.REWRITE_SECTION_INTRO, CopilotCommand.REWRITE_SECTION_CHAPTER):
        return SectionAction.REWRITE
    if command is CopilotCommand.SUMMARIZE_SECTION:
        return SectionAction.SUMMARIZE
    if command is CopilotCommand.EXPAND_SECTION:
        return SectionAction.EXPAND
    if command is CopilotCommand.HIGHLIGHT_KEY_TERMS:
        return SectionAction.HIGHLIGHT
    return None


def command_for_intent_action(action: IntentAction) -> CopilotCommand | None:
    if action in (IntentAction.REWRITE_SECTION, IntentAction.REWRITE_PARAGRAPH):
        return CopilotCommand.REWRITE_SECTION_INTRO
    if action is IntentAction.SUMMARIZE_SECTION:
        return CopilotCommand.SUMMARIZE_SECTION
    if action is IntentAction.HIGHLIGHT_TERMS:
        return CopilotCommand.HIGHLIGHT_KEY_TERMS
    if action is IntentAction.SUMMARIZE_DOCUMENT:
        return CopilotCommand.SUMMARIZE_DOCUMENT
    return None


# -----------------------------------------------------------------------------
# Resolved commands and compound plans
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ResolvedCommand:
    """A command resolved without calling the generation service."""

    command: CopilotCommand
    scope: CommandScope
    document_id: str
    section_id: str | None = None
    section_title: str | None = None
    options: Mapping[str, Any] = field(default_factory=dict)
    confidence: Confidence | None = None
    rough_kind: RoughKind | None = None

    @property
    def is_high_confidence(self) -> bool:
        return self.confidence is Confidence.HIGH

    @property
    def label(self) -> str:
        return COMMAND_LABELS.get(self.command, self.command.value)


@dataclass(slots=True, frozen=True)
class PlanStep:
    """One primitive invocation inside a compound command."""

    action: SectionAction
    options: Mapping[str, Any] = field(default_factory=dict)


def command_steps(command: CopilotCommand, options: Mapping[str, Any] | None = None) -> tuple[PlanStep, ...]:
    """Expand a section command into the ordered primitive steps it runs."""

    opts = dict(options or {})
    if command in _COMPOUND_COMMANDS:
        steps = [PlanStep(SectionAction.REWRITE, {"scope": "intro"})]
        if opts.get("highlight_key_sentences", True):
            steps.append(
                PlanStep(
                    SectionAction.HIGHLIGHT,
                    {"mode": "sentences", "count": int(opts.get("highlight_count", 3))},
                )
            )
        if command is CopilotCommand.REWRITE_SECTION_WITH_HIGHLIGHT_AND_SUMMARY or opts.get("add_summary"):
            steps.append(PlanStep(SectionAction.SUMMARIZE, {"bullet_count": int(opts.get("bullet_count", 3))}))
        return tuple(steps)
    action = map_command_to_action(command)
    if action is None:
        return ()
    step_options: dict[str, Any] = {}
    if command is CopilotCommand.REWRITE_SECTION_CHAPTER:
        step_options["scope"] = "chapter"
    elif command is CopilotCommand.REWRITE_SECTION_INTRO:
        step_options["scope"] = "intro"
    elif action is SectionAction.HIGHLIGHT:
        step_options["mode"] = "terms"
    return (PlanStep(action, step_options),)


# -----------------------------------------------------------------------------
# User-facing text
# -----------------------------------------------------------------------------


def build_action_description(resolved: ResolvedCommand) -> str:
    if resolved.section_title:
        return f"{resolved.label}：{resolved.section_title}"
    return resolved.label


def build_context_missing_message(command: CopilotCommand) -> str:
    if command_needs_section(command):
        return "当前没有聚焦到某一小节，无法执行该操作。请先将光标移动到对应的标题处。"
    if command_needs_selection(command):
        return "当前没有选中任何文本，无法执行该操作。请先选中一段内容。"
    return "无法执行该操作，请检查当前上下文。"


def build_not_implemented_message(command: CopilotCommand) -> str:
    label = COMMAND_LABELS.get(command, command.value)
    return f"「{label}」功能正在开发中，你可以先通过大纲面板的右键菜单来执行类似操作。"


__all__ = [
    "CopilotCommand",
    "CommandScope",
    "SectionAction",
    "COMMAND_LABELS",
    "command_needs_section",
    "command_needs_selection",
    "is_command_implemented",
    "is_compound_command",
    "map_command_to_action",
    "command_for_intent_action",
    "ResolvedCommand",
    "PlanStep",
    "command_steps",
    "build_action_description",
    "build_context_missing_message",
    "build_not_implemented_message",
]

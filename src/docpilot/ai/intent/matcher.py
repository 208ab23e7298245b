"""Keyword rule matcher: the cheap first tier of intent resolution.

``match_rules`` only answers when a command is obvious from keywords plus
the current focus. Anything ambiguous returns ``None`` (or a low-confidence
command) so the orchestrator can fall back to the generation service.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Mapping, Sequence

from .commands import CommandScope, CopilotCommand, ResolvedCommand, command_for_intent_action
from .followup import is_refinement, mentions_tone
from .types import Confidence, IntentAction, RoughKind

if TYPE_CHECKING:
    from ..orchestration.session import SessionState

LOGGER = logging.getLogger(__name__)

__all__ = [
    "ROUGH_KIND_KEYWORDS",
    "HIGHLIGHT_KEYWORDS",
    "SUMMARY_KEYWORDS",
    "classify",
    "wants_highlight",
    "wants_summary",
    "match_rules",
]

# Checked in insertion order; the first kind with a matching keyword wins.
ROUGH_KIND_KEYWORDS: Mapping[RoughKind, tuple[str, ...]] = {
    RoughKind.SUMMARIZE: ("总结", "概括", "总结一下", "总结本节", "summary", "summarize", "summarise"),
    RoughKind.TRANSLATE: ("翻译", "译成", "英文", "中文", "translate", "into english", "into chinese", "翻成"),
    RoughKind.REWRITE: (
        "重写",
        "改写",
        "润色",
        "优化",
        "polish",
        "rewrite",
        "make it better",
        "make it clearer",
        "更好",
        "更正式",
        "更简洁",
    ),
    RoughKind.EXPAND: ("扩写", "展开", "详细一点", "写多一点", "expand", "add more detail", "elaborate", "更详细"),
    RoughKind.HIGHLIGHT: ("标记", "高亮", "加粗", "标粗", "bold", "highlight", "mark"),
}

HIGHLIGHT_KEYWORDS: tuple[str, ...] = ("标记重点", "加粗重点", "高亮", "标记", "重点", "highlight", "mark key", "bold")
SUMMARY_KEYWORDS: tuple[str, ...] = (
    "生成摘要",
    "加摘要",
    "添加摘要",
    "总结要点",
    "add summary",
    "bullet summary",
    "bullet",
)

_CHAPTER_MODIFIERS: tuple[str, ...] = ("整章", "整个章节", "全章", "whole chapter", "this chapter")
_COMPOUND_SUMMARY_HINTS = SUMMARY_KEYWORDS


def _contains_any(text: str, keywords: Sequence[str]) -> bool:
    return any(keyword in text for keyword in keywords)


def classify(user_text: str) -> RoughKind:
    """Assign the coarse category of ``user_text``.

    Compound phrasing that asks to rewrite *and* mark key content is a
    rewrite, even though the summary or highlight keywords also appear.
    """

    text = (user_text or "").strip().lower()
    if not text:
        return RoughKind.UNKNOWN
    rewrite_words = ROUGH_KIND_KEYWORDS[RoughKind.REWRITE]
    if _contains_any(text, rewrite_words) and (
        _contains_any(text, HIGHLIGHT_KEYWORDS) or _contains_any(text, _COMPOUND_SUMMARY_HINTS)
    ):
        return RoughKind.REWRITE
    for kind, keywords in ROUGH_KIND_KEYWORDS.items():
        if _contains_any(text, keywords):
            return kind
    return RoughKind.UNKNOWN


def wants_highlight(user_text: str) -> bool:
    return _contains_any((user_text or "").lower(), HIGHLIGHT_KEYWORDS)


def wants_summary(user_text: str) -> bool:
    return _contains_any((user_text or "").lower(), SUMMARY_KEYWORDS)


def match_rules(
    user_text: str,
    state: SessionState,
    *,
    selection_text: str | None = None,
) -> ResolvedCommand | None:
    """Resolve ``user_text`` into a command from keywords and focus alone.

    Returns ``None`` when the rules cannot decide. Deterministic and free of
    side effects.
    """

    text = (user_text or "").strip().lower()
    document_id = state.document_id
    if not text or not document_id:
        return None

    rough_kind = classify(text)

    refined = _match_refinement(user_text, text, state, rough_kind)
    if refined is not None:
        return refined

    section_id = state.focus_section_id if state.is_section_focus else None
    has_selection = bool(selection_text and selection_text.strip())

    def section_command(command: CopilotCommand, options: Mapping[str, object] | None = None) -> ResolvedCommand:
        return ResolvedCommand(
            command=command,
            scope=CommandScope.SECTION,
            document_id=document_id,
            section_id=section_id,
            section_title=state.focus_section_title,
            options=dict(options or {}),
            confidence=Confidence.HIGH,
            rough_kind=rough_kind,
        )

    def selection_command(command: CopilotCommand) -> ResolvedCommand:
        return ResolvedCommand(
            command=command,
            scope=CommandScope.SELECTION,
            document_id=document_id,
            options={"selection_text": selection_text},
            confidence=Confidence.HIGH,
            rough_kind=rough_kind,
        )

    if rough_kind is RoughKind.SUMMARIZE:
        if section_id:
            return section_command(CopilotCommand.SUMMARIZE_SECTION)
        if has_selection:
            return selection_command(CopilotCommand.SUMMARIZE_SELECTION)
        return ResolvedCommand(
            command=CopilotCommand.SUMMARIZE_DOCUMENT,
            scope=CommandScope.DOCUMENT,
            document_id=document_id,
            confidence=Confidence.LOW,
            rough_kind=rough_kind,
        )

    if rough_kind is RoughKind.REWRITE:
        if section_id:
            command, options = _rewrite_command(text)
            return section_command(command, options)
        if has_selection:
            return selection_command(CopilotCommand.REWRITE_SELECTION)
        return None

    if rough_kind is RoughKind.EXPAND:
        return section_command(CopilotCommand.EXPAND_SECTION) if section_id else None

    if rough_kind is RoughKind.TRANSLATE:
        return selection_command(CopilotCommand.TRANSLATE_SELECTION) if has_selection else None

    if rough_kind is RoughKind.HIGHLIGHT:
        if section_id:
            return section_command(CopilotCommand.HIGHLIGHT_KEY_TERMS, {"highlight_only": True})
        return None

    return None


def _rewrite_command(text: str) -> tuple[CopilotCommand, dict[str, object]]:
    highlight = wants_highlight(text)
    summary = wants_summary(text)
    if highlight and summary:
        LOGGER.debug("Compound intent: rewrite + highlight + summary")
        return (
            CopilotCommand.REWRITE_SECTION_WITH_HIGHLIGHT_AND_SUMMARY,
            {"highlight_key_sentences": True, "highlight_count": 3, "add_summary": True, "bullet_count": 3},
        )
    if highlight:
        LOGGER.debug("Compound intent: rewrite + highlight")
        return (
            CopilotCommand.REWRITE_SECTION_WITH_HIGHLIGHT,
            {"highlight_key_sentences": True, "highlight_count": 3},
        )
    if summary:
        return (
            CopilotCommand.REWRITE_SECTION_WITH_HIGHLIGHT_AND_SUMMARY,
            {"highlight_key_sentences": False, "add_summary": True, "bullet_count": 3},
        )
    if _contains_any(text, _CHAPTER_MODIFIERS):
        return CopilotCommand.REWRITE_SECTION_CHAPTER, {}
    return CopilotCommand.REWRITE_SECTION_INTRO, {}


def _match_refinement(
    original_text: str,
    text: str,
    state: SessionState,
    rough_kind: RoughKind,
) -> ResolvedCommand | None:
    last_edit = state.last_edit
    if last_edit is None or not is_refinement(text):
        return None
    if state.is_section_focus and state.focus_section_id not in (None, last_edit.section_id):
        return None

    command = _command_from_last_edit(last_edit.command, last_edit.action)
    if rough_kind is RoughKind.REWRITE:
        command = CopilotCommand.REWRITE_SECTION_INTRO
    elif rough_kind is RoughKind.SUMMARIZE:
        command = CopilotCommand.SUMMARIZE_SECTION
    elif rough_kind is RoughKind.EXPAND:
        command = CopilotCommand.EXPAND_SECTION
    if mentions_tone(text):
        command = (
            CopilotCommand.REWRITE_SECTION_CHAPTER
            if command is CopilotCommand.REWRITE_SECTION_CHAPTER
            else CopilotCommand.REWRITE_SECTION_INTRO
        )
    LOGGER.debug("Refinement of last edit on %s -> %s", last_edit.section_id, command.value)
    return ResolvedCommand(
        command=command,
        scope=CommandScope.SECTION,
        document_id=state.document_id,
        section_id=last_edit.section_id,
        section_title=last_edit.section_title,
        options={"is_refinement": True, "refinement_prompt": original_text},
        confidence=Confidence.HIGH,
        rough_kind=rough_kind,
    )


def _command_from_last_edit(command: CopilotCommand | None, action: IntentAction | None) -> CopilotCommand:
    if command is not None and command not in (
        CopilotCommand.REWRITE_SECTION_WITH_HIGHLIGHT,
        CopilotCommand.REWRITE_SECTION_WITH_HIGHLIGHT_AND_SUMMARY,
    ):
        return command
    if action is not None:
        mapped = command_for_intent_action(action)
        if mapped is not None and mapped is not CopilotCommand.SUMMARIZE_DOCUMENT:
            return mapped
    return CopilotCommand.REWRITE_SECTION_INTRO

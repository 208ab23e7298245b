"""Prompt assembly for the structured intent protocol.

The system prompt tells the model who it is, what it may do, what the
document looks like and how to answer (one ``[INTENT]`` block plus one
``[REPLY]`` block). The user prompt carries the request and, when a section
is focused, that section's text trimmed to the context budget.
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from ..editor.document_model import DocumentEngine, OutlineEntry, now_ms
from .intent.types import IntentAction
from .orchestration.messages import ActionStatus, ChatMessage, MessageRole
from .orchestration.session import SessionState, UserPreferences

LOGGER = logging.getLogger(__name__)

# Approximation for mixed Chinese/English text.
CHARS_PER_TOKEN = 3
DEFAULT_CONTEXT_TOKENS = 4_096
_TRUNCATION_MARKER = "\n……（内容过长，已截断）"

_LANGUAGE_HINTS: Mapping[str, str] = {
    "zh": "请使用简体中文回复。",
    "en": "Reply in English.",
    "mixed": "回复语言跟随用户的提问语言。",
}
_VERBOSITY_HINTS: Mapping[str, str] = {
    "concise": "回复保持简洁，一到三句话即可。",
    "detailed": "回复可以详细说明你的思路和修改点。",
}
_STATUS_LABELS: Mapping[str, str] = {
    ActionStatus.APPLIED.value: "已应用",
    ActionStatus.REVERTED.value: "已撤销",
    ActionStatus.FAILED.value: "失败",
    ActionStatus.PENDING.value: "待确认",
}


def estimate_tokens(text: str | None) -> int:
    if not text:
        return 0
    return max(1, math.ceil(len(text) / CHARS_PER_TOKEN))


# -----------------------------------------------------------------------------
# Document context
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class DocContextEnvelope:
    """Serialized document context sent alongside a request."""

    document_id: str
    title: str
    outline: tuple[OutlineEntry, ...] = ()
    focus_section_id: str | None = None
    focus_title: str | None = None
    focus_text: str | None = None
    truncated: bool = False

    @property
    def has_focus(self) -> bool:
        return self.focus_section_id is not None

    def outline_lines(self) -> list[str]:
        return [f"{'  ' * max(0, entry.level - 1)}[{entry.section_id}] {entry.title}" for entry in self.outline]

    @property
    def approx_tokens(self) -> int:
        return estimate_tokens("\n".join(self.outline_lines())) + estimate_tokens(self.focus_text)


def build_context_envelope(
    engine: DocumentEngine,
    state: SessionState,
    *,
    max_tokens: int = DEFAULT_CONTEXT_TOKENS,
) -> DocContextEnvelope:
    """Collect the outline and the focused section's text for ``state``.

    The focused text is cut so the whole envelope stays within
    ``max_tokens``. An unknown focus section is dropped, not reported.
    """

    outline = tuple(engine.outline())
    focus_id = state.focus_section_id if state.is_section_focus else None
    focus_title: str | None = None
    focus_text: str | None = None
    truncated = False
    if focus_id:
        try:
            context = engine.extract_section_context(focus_id)
        except KeyError:
            LOGGER.debug("Focused section %s no longer exists", focus_id)
            focus_id = None
        else:
            focus_title = context.title
            outline_tokens = estimate_tokens("\n".join(f"[{e.section_id}] {e.title}" for e in outline))
            budget_chars = max(0, (max_tokens - outline_tokens) * CHARS_PER_TOKEN)
            focus_text = context.text
            if len(focus_text) > budget_chars:
                focus_text = focus_text[:budget_chars].rstrip() + _TRUNCATION_MARKER
                truncated = True
    return DocContextEnvelope(
        document_id=engine.document_id,
        title=engine.title,
        outline=outline,
        focus_section_id=focus_id,
        focus_title=focus_title,
        focus_text=focus_text,
        truncated=truncated,
    )


# -----------------------------------------------------------------------------
# Prompts
# -----------------------------------------------------------------------------


def build_system_prompt(
    envelope: DocContextEnvelope,
    preferences: UserPreferences | None = None,
    *,
    behavior_summary: str | None = None,
) -> str:
    prefs = preferences or UserPreferences()
    sections = [
        _role_section(),
        _capabilities_section(),
        _document_section(envelope),
        _output_format_section(),
        _preferences_section(prefs),
    ]
    if behavior_summary:
        sections.append(f"## 最近的操作\n{behavior_summary}")
    return "\n\n".join(section for section in sections if section)


def build_user_prompt(user_text: str, envelope: DocContextEnvelope | None = None) -> str:
    prompt = f"用户指令：{(user_text or '').strip()}"
    if envelope is not None and envelope.has_focus and envelope.focus_text:
        prompt += f"\n当前章节内容：\n{envelope.focus_text}"
    return prompt


def build_messages(system_prompt: str, user_prompt: str) -> list[dict[str, Any]]:
    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": user_prompt},
    ]


def build_behavior_summary(
    messages: Sequence[ChatMessage],
    *,
    window_seconds: float = 600.0,
    current_ms: int | None = None,
) -> str | None:
    """Summarize the user's recent edit actions, or ``None`` when there are none."""

    now = now_ms() if current_ms is None else current_ms
    since = now - int(window_seconds * 1000)
    actions = [m for m in messages if m.role is MessageRole.ACTION and m.created_at_ms >= since]
    if not actions:
        return None
    by_command: Counter[str] = Counter()
    by_status: dict[str, Counter[str]] = {}
    for message in actions:
        command = str(message.meta.get("command") or "unknown")
        by_command[command] += 1
        status = str(message.meta.get("status") or ActionStatus.PENDING.value)
        by_status.setdefault(command, Counter())[status] += 1
    minutes = max(1, int(window_seconds // 60))
    lines = [f"最近 {minutes} 分钟内的操作："]
    for command, count in by_command.most_common():
        details = "，".join(
            f"{_STATUS_LABELS.get(status, status)} {total}" for status, total in sorted(by_status[command].items())
        )
        lines.append(f"- {command} ×{count}（{details}）")
    reverted = sum(counter.get(ActionStatus.REVERTED.value, 0) for counter in by_status.values())
    if reverted:
        lines.append("用户撤销过部分修改，请更谨慎地改动原文。")
    return "\n".join(lines)


def _role_section() -> str:
    return (
        "你是一个长文档写作助手。用户正在编辑一篇结构化文档，"
        "你需要判断用户是想和你聊天，还是想修改文档的某个部分。"
    )


def _capabilities_section() -> str:
    actions = "\n".join(
        [
            f"- {IntentAction.REWRITE_SECTION.value}：改写某一章节",
            f"- {IntentAction.REWRITE_PARAGRAPH.value}：改写某一段落（params.paragraphRef 取 current/previous/next/nth）",
            f"- {IntentAction.SUMMARIZE_SECTION.value}：为某一章节生成摘要",
            f"- {IntentAction.SUMMARIZE_DOCUMENT.value}：总结整篇文档",
            f"- {IntentAction.HIGHLIGHT_TERMS.value}：标记章节中的关键词",
        ]
    )
    return f"## 你可以执行的操作\n{actions}"


def _document_section(envelope: DocContextEnvelope) -> str:
    lines = [f"## 当前文档\n标题：{envelope.title}"]
    outline = envelope.outline_lines()
    if outline:
        lines.append("大纲（方括号内是 sectionId）：")
        lines.extend(outline)
    else:
        lines.append("大纲：（文档没有标题结构）")
    if envelope.focus_section_id:
        lines.append(f"用户当前聚焦的章节：[{envelope.focus_section_id}] {envelope.focus_title or ''}".rstrip())
    else:
        lines.append("用户当前聚焦：整篇文档")
    return "\n".join(lines)


def _output_format_section() -> str:
    return (
        "## 输出格式\n"
        "每次回复都必须包含两个块：\n"
        "[INTENT]一行 JSON：{\"mode\": \"chat|edit\", \"action\": \"...\", "
        "\"target\": {\"scope\": \"document|section\", \"sectionId\": \"...\"}, \"params\": {}}[/INTENT]\n"
        "[REPLY]给用户看的自然语言回复[/REPLY]\n"
        "规则：\n"
        "- 只是聊天或提问时 mode 用 chat。\n"
        "- 章节类操作必须给出 sectionId，使用大纲中的 id；"
        "指用户当前聚焦的章节时用 \"current\"，无法确定时用 \"auto\"。\n"
        "- 不要编造大纲中不存在的 sectionId。"
    )


def _preferences_section(preferences: UserPreferences) -> str:
    hints = [
        _LANGUAGE_HINTS.get(preferences.language, _LANGUAGE_HINTS["zh"]),
        _VERBOSITY_HINTS.get(preferences.verbosity, _VERBOSITY_HINTS["concise"]),
    ]
    return "## 偏好\n" + "\n".join(hints)


__all__ = [
    "CHARS_PER_TOKEN",
    "DEFAULT_CONTEXT_TOKENS",
    "DocContextEnvelope",
    "estimate_tokens",
    "build_context_envelope",
    "build_system_prompt",
    "build_user_prompt",
    "build_messages",
    "build_behavior_summary",
]

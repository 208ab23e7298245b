"""Typed records produced by the matcher and the protocol parser."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Union


# -----------------------------------------------------------------------------
# Enumerations
# -----------------------------------------------------------------------------


class IntentMode(str, Enum):
    CHAT = "chat"
    EDIT = "edit"


class IntentAction(str, Enum):
    """Actions the structured protocol can name."""

    REWRITE_SECTION = "rewrite_section"
    REWRITE_PARAGRAPH = "rewrite_paragraph"
    SUMMARIZE_SECTION = "summarize_section"
    SUMMARIZE_DOCUMENT = "summarize_document"
    HIGHLIGHT_TERMS = "highlight_terms"


class TargetScope(str, Enum):
    DOCUMENT = "document"
    SECTION = "section"


class ParagraphRef(str, Enum):
    CURRENT = "current"
    PREVIOUS = "previous"
    NEXT = "next"
    NTH = "nth"


class ParseStatus(str, Enum):
    """Outcome of decoding one generation-service response."""

    OK = "ok"
    MISSING = "missing"
    MALFORMED = "malformed"
    INVALID = "invalid"


class RoughKind(str, Enum):
    """Coarse category assigned to user text before full resolution."""

    REWRITE = "rewrite"
    SUMMARIZE = "summarize"
    TRANSLATE = "translate"
    EXPAND = "expand"
    HIGHLIGHT = "highlight"
    UNKNOWN = "unknown"


class Confidence(str, Enum):
    HIGH = "high"
    LOW = "low"


# Section ids the model may emit instead of a concrete id.
SPECIAL_SECTION_IDS: frozenset[str] = frozenset({"current", "auto"})

SECTION_ACTIONS: frozenset[IntentAction] = frozenset(
    {
        IntentAction.REWRITE_SECTION,
        IntentAction.REWRITE_PARAGRAPH,
        IntentAction.SUMMARIZE_SECTION,
        IntentAction.HIGHLIGHT_TERMS,
    }
)

EXECUTABLE_ACTIONS: frozenset[IntentAction] = frozenset(
    {IntentAction.REWRITE_SECTION, IntentAction.SUMMARIZE_SECTION}
)


def is_special_section_id(value: str | None) -> bool:
    return bool(value) and value in SPECIAL_SECTION_IDS


def _frozen_params(params: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return MappingProxyType(dict(params or {}))


# -----------------------------------------------------------------------------
# Intent variants
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class IntentTarget:
    scope: TargetScope
    section_id: str | None = None

    @property
    def is_special(self) -> bool:
        return is_special_section_id(self.section_id)


@dataclass(slots=True, frozen=True)
class _IntentBase:
    mode: IntentMode
    target: IntentTarget
    params: Mapping[str, Any] = field(default_factory=lambda: _frozen_params(None))

    action: IntentAction = field(init=False, default=IntentAction.REWRITE_SECTION)

    @property
    def is_edit(self) -> bool:
        return self.mode is IntentMode.EDIT

    def to_dict(self) -> dict[str, Any]:
        target: dict[str, Any] = {"scope": self.target.scope.value}
        if self.target.section_id is not None:
            target["sectionId"] = self.target.section_id
        payload: dict[str, Any] = {"mode": self.mode.value, "action": self.action.value, "target": target}
        if self.params:
            payload["params"] = dict(self.params)
        return payload


@dataclass(slots=True, frozen=True)
class RewriteSectionIntent(_IntentBase):
    action: IntentAction = field(init=False, default=IntentAction.REWRITE_SECTION)


@dataclass(slots=True, frozen=True)
class RewriteParagraphIntent(_IntentBase):
    paragraph_ref: ParagraphRef | None = None
    paragraph_index: int | None = None
    action: IntentAction = field(init=False, default=IntentAction.REWRITE_PARAGRAPH)


@dataclass(slots=True, frozen=True)
class SummarizeSectionIntent(_IntentBase):
    action: IntentAction = field(init=False, default=IntentAction.SUMMARIZE_SECTION)


@dataclass(slots=True, frozen=True)
class SummarizeDocumentIntent(_IntentBase):
    action: IntentAction = field(init=False, default=IntentAction.SUMMARIZE_DOCUMENT)


@dataclass(slots=True, frozen=True)
class HighlightTermsIntent(_IntentBase):
    action: IntentAction = field(init=False, default=IntentAction.HIGHLIGHT_TERMS)


Intent = Union[
    RewriteSectionIntent,
    RewriteParagraphIntent,
    SummarizeSectionIntent,
    SummarizeDocumentIntent,
    HighlightTermsIntent,
]

INTENT_CLASSES: Mapping[IntentAction, type] = MappingProxyType(
    {
        IntentAction.REWRITE_SECTION: RewriteSectionIntent,
        IntentAction.REWRITE_PARAGRAPH: RewriteParagraphIntent,
        IntentAction.SUMMARIZE_SECTION: SummarizeSectionIntent,
        IntentAction.SUMMARIZE_DOCUMENT: SummarizeDocumentIntent,
        IntentAction.HIGHLIGHT_TERMS: HighlightTermsIntent,
    }
)

ACTION_LABELS: Mapping[IntentAction, str] = MappingProxyType(
    {
        IntentAction.REWRITE_SECTION: "重写章节",
        IntentAction.REWRITE_PARAGRAPH: "重写段落",
        IntentAction.SUMMARIZE_SECTION: "总结章节",
        IntentAction.SUMMARIZE_DOCUMENT: "总结文档",
        IntentAction.HIGHLIGHT_TERMS: "标记关键词",
    }
)


def is_executable(intent: Intent | None) -> bool:
    """Return True when the intent is an edit the bridge is wired to run."""

    return intent is not None and intent.mode is IntentMode.EDIT and intent.action in EXECUTABLE_ACTIONS


def describe_intent(intent: Intent) -> str:
    label = ACTION_LABELS.get(intent.action, intent.action.value)
    if intent.mode is IntentMode.CHAT:
        return f"聊天（{label}）"
    return label


# -----------------------------------------------------------------------------
# Parser output
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ModelOutput:
    """Decoded generation-service response."""

    reply_text: str
    raw_text: str
    parse_status: ParseStatus
    intent: Intent | None = None
    errors: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return self.parse_status is ParseStatus.OK


__all__ = [
    "IntentMode",
    "IntentAction",
    "TargetScope",
    "ParagraphRef",
    "ParseStatus",
    "RoughKind",
    "Confidence",
    "SPECIAL_SECTION_IDS",
    "SECTION_ACTIONS",
    "EXECUTABLE_ACTIONS",
    "is_special_section_id",
    "IntentTarget",
    "Intent",
    "RewriteSectionIntent",
    "RewriteParagraphIntent",
    "SummarizeSectionIntent",
    "SummarizeDocumentIntent",
    "HighlightTermsIntent",
    "INTENT_CLASSES",
    "ACTION_LABELS",
    "is_executable",
    "describe_intent",
    "ModelOutput",
]

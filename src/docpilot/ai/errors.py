"""Error codes and exception types for the resolution pipeline.

Every failure inside a turn is reported with one of the :class:`ErrorCode`
values. Internally the bridge and resolver raise :class:`CopilotError`
subclasses; the orchestrator converts them into result objects so nothing
escapes :meth:`ResolutionOrchestrator.run_turn`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar


# -----------------------------------------------------------------------------
# Error Code Constants
# -----------------------------------------------------------------------------

class ErrorCode:
    """Wire values for categorized turn failures."""

    # Turn guards
    NO_DOCUMENT = "no-document"
    EDITOR_NOT_READY = "editor-not-ready"

    # Generation service
    LLM_CALL_FAILED = "llm-call-failed"

    # Protocol parsing
    INTENT_MISSING = "intent-missing"
    INTENT_MALFORMED = "intent-malformed"
    INTENT_INVALID = "intent-invalid"

    # Target resolution
    UNRESOLVABLE_TARGET = "unresolvable-target"
    SECTION_NOT_FOUND = "section-not-found"

    # Execution
    EDIT_EXECUTION_FAILED = "edit-execution-failed"

    ALL: ClassVar[tuple[str, ...]] = (
        NO_DOCUMENT,
        EDITOR_NOT_READY,
        LLM_CALL_FAILED,
        INTENT_MISSING,
        INTENT_MALFORMED,
        INTENT_INVALID,
        UNRESOLVABLE_TARGET,
        SECTION_NOT_FOUND,
        EDIT_EXECUTION_FAILED,
    )


# User-facing messages shared by the orchestrator and the bridge.
NO_DOCUMENT_MESSAGE = "请先打开一个文档。"
EDITOR_NOT_READY_MESSAGE = "编辑器未就绪，请稍后重试。"
UNRESOLVABLE_TARGET_MESSAGE = (
    "我无法确定你说的是文档里的哪一部分。可以从大纲右键选择章节，或在问题里说清章节名称再试一次。"
)
SECTION_NOT_FOUND_MESSAGE = "找不到指定的章节，文档结构可能已经变化，请刷新大纲后再试。"


# -----------------------------------------------------------------------------
# Exceptions
# -----------------------------------------------------------------------------

@dataclass
class CopilotError(Exception):
    """Base exception carrying a categorized error code.

    Attributes:
        error_code: One of the :class:`ErrorCode` values.
        message: Human-readable, user-facing description.
        details: Structured diagnostic data.
    """

    error_code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        Exception.__init__(self, self.message)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"error": self.error_code, "message": self.message}
        if self.details:
            result["details"] = dict(self.details)
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


@dataclass
class UnresolvableTargetError(CopilotError):
    """No section (or paragraph) could be resolved for an edit."""

    error_code: str = field(default=ErrorCode.UNRESOLVABLE_TARGET)
    message: str = field(default=UNRESOLVABLE_TARGET_MESSAGE)
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class SectionNotFoundError(CopilotError):
    """A section id was named explicitly but is absent from the document."""

    error_code: str = field(default=ErrorCode.SECTION_NOT_FOUND)
    message: str = field(default=SECTION_NOT_FOUND_MESSAGE)
    details: dict[str, Any] = field(default_factory=dict)
    section_id: str | None = None

    def __post_init__(self) -> None:
        if self.section_id and "section_id" not in self.details:
            self.details["section_id"] = self.section_id
        super(SectionNotFoundError, self).__post_init__()


@dataclass
class EditExecutionError(CopilotError):
    """The edit primitive or the document engine failed."""

    error_code: str = field(default=ErrorCode.EDIT_EXECUTION_FAILED)
    message: str = field(default="编辑执行失败，请重试。")
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class GenerationError(CopilotError):
    """The text-generation service rejected or failed a request."""

    error_code: str = field(default=ErrorCode.LLM_CALL_FAILED)
    message: str = field(default="AI 响应失败")
    details: dict[str, Any] = field(default_factory=dict)


def diagnostic_trailer(error_code: str | None, detail: str | None) -> str:
    """Return the debug-mode suffix appended to user-facing replies."""

    if not error_code:
        return ""
    if detail:
        return f"\n\n[{error_code}] {detail}"
    return f"\n\n[{error_code}]"


__all__ = [
    "ErrorCode",
    "CopilotError",
    "UnresolvableTargetError",
    "SectionNotFoundError",
    "EditExecutionError",
    "GenerationError",
    "diagnostic_trailer",
    "NO_DOCUMENT_MESSAGE",
    "EDITOR_NOT_READY_MESSAGE",
    "UNRESOLVABLE_TARGET_MESSAGE",
    "SECTION_NOT_FOUND_MESSAGE",
]

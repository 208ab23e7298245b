"""Records exchanged between the orchestrator, the bridge and edit primitives.

Everything here is a plain dataclass. Records that are persisted inside a
pending result (``SectionActionResult`` and ``Uncertainty``) round-trip
through ``to_dict``/``from_dict``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Mapping, Protocol, Sequence

from ...editor.document_model import DocOp, DocumentEngine, SectionContext
from ..intent.commands import CopilotCommand, ResolvedCommand, SectionAction
from ..intent.types import Intent, ParseStatus

if TYPE_CHECKING:
    from .session import UserPreferences

__all__ = [
    "ResponseMode",
    "Uncertainty",
    "ClarificationChoice",
    "SectionActionRequest",
    "SectionActionResult",
    "SectionEditPrimitive",
    "StepResult",
    "ExecutionResult",
    "TurnResult",
    "summarize_steps",
]


class ResponseMode(str, Enum):
    """How an edit primitive wants its result to be completed."""

    AUTO_APPLY = "auto_apply"
    PREVIEW = "preview"
    CLARIFY = "clarify"


# -----------------------------------------------------------------------------
# Edit primitive contract
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class Uncertainty:
    """Something the primitive needs the user to decide."""

    field: str
    reason: str
    candidate_options: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {"field": self.field, "reason": self.reason, "candidate_options": list(self.candidate_options)}

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> Uncertainty:
        options = payload.get("candidate_options") or payload.get("options") or ()
        return cls(
            field=str(payload.get("field", "")),
            reason=str(payload.get("reason", "")),
            candidate_options=tuple(str(option) for option in options),
        )


@dataclass(slots=True, frozen=True)
class SectionActionResult:
    """What a primitive produced for one request.

    For ``auto_apply`` the ``doc_ops`` have already been applied by the
    primitive. For ``preview`` they are only proposed. For ``clarify`` the
    ``uncertainties`` describe what must be decided first.
    """

    success: bool
    response_mode: ResponseMode | None = None
    applied: bool = False
    doc_ops: tuple[DocOp, ...] = ()
    uncertainties: tuple[Uncertainty, ...] = ()
    preview_text: str | None = None
    original_text: str | None = None
    confidence: float | None = None
    error: str | None = None

    @classmethod
    def failure(cls, error: str) -> SectionActionResult:
        return cls(success=False, error=error)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "response_mode": self.response_mode.value if self.response_mode else None,
            "applied": self.applied,
            "doc_ops": [op.to_dict() for op in self.doc_ops],
            "uncertainties": [item.to_dict() for item in self.uncertainties],
            "preview_text": self.preview_text,
            "original_text": self.original_text,
            "confidence": self.confidence,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> SectionActionResult:
        mode = payload.get("response_mode")
        return cls(
            success=bool(payload.get("success")),
            response_mode=ResponseMode(mode) if mode else None,
            applied=bool(payload.get("applied")),
            doc_ops=tuple(DocOp.from_dict(op) for op in payload.get("doc_ops") or ()),
            uncertainties=tuple(Uncertainty.from_dict(item) for item in payload.get("uncertainties") or ()),
            preview_text=payload.get("preview_text"),
            original_text=payload.get("original_text"),
            confidence=payload.get("confidence"),
            error=payload.get("error"),
        )


@dataclass(slots=True, frozen=True)
class ClarificationChoice:
    original_result: SectionActionResult
    uncertainty: Uncertainty
    user_choice: str


@dataclass(slots=True)
class SectionActionRequest:
    """One invocation of an edit primitive against a single section."""

    action: SectionAction
    engine: DocumentEngine
    section_id: str
    context: SectionContext
    options: Mapping[str, Any] = field(default_factory=dict)
    user_text: str = ""
    paragraph_id: str | None = None
    clarification: ClarificationChoice | None = None
    preferences: UserPreferences | None = None

    @property
    def document_id(self) -> str:
        return self.engine.document_id


class SectionEditPrimitive(Protocol):
    """Computes (and for ``auto_apply`` applies) one section edit."""

    async def run(self, request: SectionActionRequest) -> SectionActionResult:
        ...


# -----------------------------------------------------------------------------
# Bridge and turn results
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class StepResult:
    """Outcome of one primitive step inside a compound plan."""

    action: SectionAction
    success: bool
    response_mode: ResponseMode | None = None
    snapshot_id: str | None = None
    pending_result_id: str | None = None
    error: str | None = None
    skipped: bool = False

    @property
    def marker(self) -> str:
        if self.skipped:
            return "⏭"
        if not self.success:
            return "❌"
        if self.response_mode is ResponseMode.AUTO_APPLY:
            return "✅"
        return "⏳"


@dataclass(slots=True, frozen=True)
class ExecutionResult:
    success: bool
    message: str = ""
    response_mode: ResponseMode | None = None
    applied: bool = False
    doc_ops: tuple[DocOp, ...] = ()
    uncertainties: tuple[Uncertainty, ...] = ()
    error: str | None = None
    error_code: str | None = None
    command: CopilotCommand | None = None
    section_id: str | None = None
    snapshot_id: str | None = None
    pending_result_id: str | None = None
    action_message_id: str | None = None
    steps: tuple[StepResult, ...] = ()

    @property
    def is_pending(self) -> bool:
        return self.pending_result_id is not None


@dataclass(slots=True, frozen=True)
class TurnResult:
    """What :meth:`ResolutionOrchestrator.run_turn` hands back to the UI.

    ``reply_text`` is always populated. ``executed`` is true only when an
    edit was dispatched and succeeded (applied, previewed or awaiting a
    clarification).
    """

    reply_text: str
    executed: bool = False
    intent: Intent | None = None
    command: ResolvedCommand | None = None
    edit_result: ExecutionResult | None = None
    parse_status: ParseStatus | None = None
    error_code: str | None = None
    error_message: str | None = None
    section_id: str | None = None

    @property
    def ok(self) -> bool:
        return self.error_code is None

    @classmethod
    def failure(cls, error_code: str, message: str, *, reply_text: str | None = None, **extra: Any) -> TurnResult:
        return cls(reply_text=reply_text or message, error_code=error_code, error_message=message, **extra)


def summarize_steps(steps: Sequence[StepResult]) -> str:
    return "\n".join(f"{index}. {step.action.value}: {step.marker}" for index, step in enumerate(steps, start=1))

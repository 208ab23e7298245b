"""Intent recognition: keyword rules, structural references, and the model protocol."""

from .commands import (
    COMMAND_LABELS,
    CommandScope,
    CopilotCommand,
    PlanStep,
    ResolvedCommand,
    SectionAction,
    command_steps,
    is_command_implemented,
    is_compound_command,
    map_command_to_action,
)
from .followup import is_follow_up, is_refinement
from .matcher import classify, match_rules
from .protocol import FALLBACK_REPLY, build_intent, parse_output
from .structure import (
    MatchReason,
    ParagraphReference,
    SectionMatch,
    infer_paragraph_ref,
    resolve_section_by_user_text,
)
from .types import (
    Confidence,
    HighlightTermsIntent,
    Intent,
    IntentAction,
    IntentMode,
    IntentTarget,
    ModelOutput,
    ParagraphRef,
    ParseStatus,
    RewriteParagraphIntent,
    RewriteSectionIntent,
    RoughKind,
    SummarizeDocumentIntent,
    SummarizeSectionIntent,
    TargetScope,
    describe_intent,
    is_executable,
    is_special_section_id,
)

__all__ = [
    "COMMAND_LABELS",
    "CommandScope",
    "CopilotCommand",
    "PlanStep",
    "ResolvedCommand",
    "SectionAction",
    "command_steps",
    "is_command_implemented",
    "is_compound_command",
    "map_command_to_action",
    "is_follow_up",
    "is_refinement",
    "classify",
    "match_rules",
    "FALLBACK_REPLY",
    "build_intent",
    "parse_output",
    "MatchReason",
    "ParagraphReference",
    "SectionMatch",
    "infer_paragraph_ref",
    "resolve_section_by_user_text",
    "Confidence",
    "HighlightTermsIntent",
    "Intent",
    "IntentAction",
    "IntentMode",
    "IntentTarget",
    "ModelOutput",
    "ParagraphRef",
    "ParseStatus",
    "RewriteParagraphIntent",
    "RewriteSectionIntent",
    "RoughKind",
    "SummarizeDocumentIntent",
    "SummarizeSectionIntent",
    "TargetScope",
    "describe_intent",
    "is_executable",
    "is_special_section_id",
]

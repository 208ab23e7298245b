"""Turn orchestration: session state, the execution bridge and its stores."""

from .session import FocusScope, LastEditContext, SessionState, SessionStore, UserPreferences
from .messages import ActionStatus, ChatMessage, LastAction, MessageLog, MessageRole
from .pending import PendingMode, PendingResult, PendingResultRegistry
from .snapshots import EditSnapshot, SnapshotStore
from .section_guard import SectionBusyError, SectionCommandGuard
from .types import (
    ClarificationChoice,
    ExecutionResult,
    ResponseMode,
    SectionActionRequest,
    SectionActionResult,
    SectionEditPrimitive,
    StepResult,
    TurnResult,
    Uncertainty,
)

# Facade
from .bridge import ExecutionBridge, command_from_intent
from .orchestrator import OrchestratorConfig, ResolutionOrchestrator

__all__ = [
    "FocusScope",
    "LastEditContext",
    "SessionState",
    "SessionStore",
    "UserPreferences",
    "ActionStatus",
    "ChatMessage",
    "LastAction",
    "MessageLog",
    "MessageRole",
    "PendingMode",
    "PendingResult",
    "PendingResultRegistry",
    "EditSnapshot",
    "SnapshotStore",
    "SectionBusyError",
    "SectionCommandGuard",
    "ClarificationChoice",
    "ExecutionResult",
    "ResponseMode",
    "SectionActionRequest",
    "SectionActionResult",
    "SectionEditPrimitive",
    "StepResult",
    "TurnResult",
    "Uncertainty",
    "ExecutionBridge",
    "command_from_intent",
    "OrchestratorConfig",
    "ResolutionOrchestrator",
]

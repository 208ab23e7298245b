"""Resolution orchestrator: the single entry point for a user turn.

A turn walks ``RuleMatching -> (Executing | ProtocolPath -> ParsingOutput ->
(Executing | ChatReturn))``. Cheap keyword rules run first; only when they
are inconclusive is the generation service asked for a structured intent.
Every failure is reported in the returned :class:`TurnResult`; nothing is
raised across :meth:`ResolutionOrchestrator.run_turn`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, Callable, Mapping, Sequence

from ...editor.document_model import DocumentEngine, OutlineEntry, find_outline_entry
from ...services.settings import LANGUAGE_CHOICES, VERBOSITY_CHOICES
from ...utils.logging import turn_logging
from .. import prompts
from ..client import ChatService
from ..errors import (
    EDITOR_NOT_READY_MESSAGE,
    NO_DOCUMENT_MESSAGE,
    CopilotError,
    ErrorCode,
    GenerationError,
    SectionNotFoundError,
    UnresolvableTargetError,
    diagnostic_trailer,
)
from ..intent.commands import CommandScope, CopilotCommand, ResolvedCommand
from ..intent.followup import is_follow_up
from ..intent.matcher import match_rules
from ..intent.protocol import parse_output
from ..intent.structure import MatchReason, infer_paragraph_ref, resolve_section_by_user_text
from ..intent.types import Intent, IntentMode, ParagraphRef, ParseStatus, describe_intent, is_executable
from .bridge import ExecutionBridge, command_from_intent
from .messages import LastAction, MessageLog
from .pending import PendingMode
from .section_guard import SectionCommandGuard
from .session import FocusScope, LastEditContext, SessionState, SessionStore, UserPreferences
from .types import ExecutionResult, ResponseMode, SectionEditPrimitive, TurnResult

if TYPE_CHECKING:
    from ...services.settings import Settings

__all__ = ["OrchestratorConfig", "ResolutionOrchestrator", "LLM_FAILURE_TEMPLATE"]

LOGGER = logging.getLogger(__name__)

LLM_FAILURE_TEMPLATE = "抱歉，AI 响应失败：{error}"

_PARSE_ERROR_CODES: Mapping[ParseStatus, str] = {
    ParseStatus.MISSING: ErrorCode.INTENT_MISSING,
    ParseStatus.MALFORMED: ErrorCode.INTENT_MALFORMED,
    ParseStatus.INVALID: ErrorCode.INTENT_INVALID,
}

# Structural matches strong enough to override the current focus.
_STRONG_MATCHES = frozenset({MatchReason.INDEX, MatchReason.EXACT_TITLE, MatchReason.PARTIAL_TITLE})


@dataclass(slots=True, frozen=True)
class OrchestratorConfig:
    """Tunables for the orchestrator.

    Attributes:
        max_clarify_depth: Clarification rounds allowed per action.
        max_context_tokens: Budget for the document context envelope.
        behavior_window_seconds: Look-back window of the behavior summary.
        debug_logging: Append ``[code] detail`` trailers to failed replies.
    """

    max_clarify_depth: int = 3
    max_context_tokens: int = 4_096
    behavior_window_seconds: float = 600.0
    debug_logging: bool = False

    @classmethod
    def from_settings(cls, settings: "Settings") -> "OrchestratorConfig":
        return cls(
            max_clarify_depth=settings.max_clarify_depth,
            max_context_tokens=settings.max_context_tokens,
            behavior_window_seconds=settings.behavior_window_seconds,
            debug_logging=settings.debug_logging,
        )


class ResolutionOrchestrator:
    """Coordinates rule matching, the intent protocol and the execution bridge."""

    def __init__(
        self,
        chat_service: ChatService,
        primitive: SectionEditPrimitive,
        engine_provider: Callable[[], DocumentEngine | None],
        *,
        config: OrchestratorConfig | None = None,
        preferences: UserPreferences | None = None,
    ) -> None:
        self._chat = chat_service
        self._engine_provider = engine_provider
        self._config = config or OrchestratorConfig()
        self._sessions = SessionStore(default_preferences=preferences)
        self._document_id: str | None = None
        self._turn_count = 0
        self.messages = MessageLog()
        self.guard = SectionCommandGuard()
        self.bridge = ExecutionBridge(
            primitive,
            engine_provider,
            messages=self.messages,
            guard=self.guard,
            max_clarify_depth=self._config.max_clarify_depth,
        )

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    @property
    def config(self) -> OrchestratorConfig:
        return self._config

    @property
    def session(self) -> SessionState | None:
        return self._sessions.state

    @property
    def document_id(self) -> str | None:
        return self._document_id

    def set_document(self, document_id: str | None) -> SessionState | None:
        """Switch the active document.

        The previous session (focus, last task, last edit) is discarded.
        Pending previews stay in the registry so they can still be applied
        or cancelled.
        """

        if document_id == self._document_id and self._sessions.state is not None:
            return self._sessions.state
        self._document_id = document_id or None
        return self._sessions.reset(self._document_id)

    def set_focus(self, scope: FocusScope | str, section_id: str | None = None) -> SessionState:
        state = self._require_session()
        scope = FocusScope(scope)
        if scope is FocusScope.DOCUMENT or not section_id:
            state.focus_document()
            return state
        title = None
        engine = self._engine_provider()
        if engine is not None:
            entry = find_outline_entry(engine.outline(), section_id)
            if entry is None:
                raise SectionNotFoundError(section_id=section_id)
            title = entry.title
        state.focus_section(section_id, title)
        return state

    def set_preferences(self, *, language: str | None = None, verbosity: str | None = None) -> UserPreferences:
        state = self._require_session()
        if language is not None:
            if language not in LANGUAGE_CHOICES:
                raise ValueError(f"Unsupported language: {language}")
            state.preferences.language = language
        if verbosity is not None:
            if verbosity not in VERBOSITY_CHOICES:
                raise ValueError(f"Unsupported verbosity: {verbosity}")
            state.preferences.verbosity = verbosity
        return state.preferences

    def _require_session(self) -> SessionState:
        if not self._document_id:
            raise CopilotError(ErrorCode.NO_DOCUMENT, NO_DOCUMENT_MESSAGE)
        return self._sessions.ensure(self._document_id)

    # ------------------------------------------------------------------
    # Turn
    # ------------------------------------------------------------------

    async def run_turn(self, user_text: str, *, selection_text: str | None = None) -> TurnResult:
        document_id = self._document_id
        if not document_id:
            return self._finish(TurnResult.failure(ErrorCode.NO_DOCUMENT, NO_DOCUMENT_MESSAGE), None)
        engine = self._engine_provider()
        if engine is None:
            return self._finish(TurnResult.failure(ErrorCode.EDITOR_NOT_READY, EDITOR_NOT_READY_MESSAGE), None)

        state = self._sessions.ensure(document_id)
        text = (user_text or "").strip()
        self.messages.add_user(text, document_id=document_id)
        self._turn_count += 1
        with turn_logging(document_id, self._turn_count):
            LOGGER.debug("Turn started: %r", text)
            try:
                result = await self._resolve_turn(text, engine, state, selection_text)
            except CopilotError as exc:
                result = TurnResult.failure(exc.error_code, exc.message)
            except Exception as exc:
                LOGGER.exception("Unexpected failure while resolving turn")
                result = TurnResult.failure(ErrorCode.EDIT_EXECUTION_FAILED, f"操作失败：{exc}")
            return self._finish(result, document_id)

    async def _resolve_turn(
        self,
        text: str,
        engine: DocumentEngine,
        state: SessionState,
        selection_text: str | None,
    ) -> TurnResult:
        rule = match_rules(text, state, selection_text=selection_text)
        if rule is not None and rule.is_high_confidence:
            LOGGER.debug("Rule match: %s on %s", rule.command.value, rule.section_id)
            rule = self._retarget_refinement(rule, text, engine)
            paragraph_id: str | None = None
            # "这段" in a selection command names the selection, not a paragraph.
            if rule.scope is not CommandScope.SELECTION:
                try:
                    paragraph_id = self._resolve_paragraph(engine, rule.section_id, text, None)
                except CopilotError as exc:
                    return TurnResult.failure(exc.error_code, exc.message, command=rule)
            result = await self.bridge.execute(
                rule,
                user_text=text,
                paragraph_id=paragraph_id,
                preferences=state.preferences,
            )
            return self._after_execution(state, engine, result, command=rule, intent=None, paragraph_id=paragraph_id)

        return await self._protocol_path(text, engine, state)

    async def _protocol_path(self, text: str, engine: DocumentEngine, state: SessionState) -> TurnResult:
        envelope = prompts.build_context_envelope(engine, state, max_tokens=self._config.max_context_tokens)
        behavior = self._behavior_summary(state.document_id)
        system_prompt = prompts.build_system_prompt(envelope, state.preferences, behavior_summary=behavior)
        messages = prompts.build_messages(system_prompt, prompts.build_user_prompt(text, envelope))

        output = parse_output(await self._request_intent(messages))
        if not output.ok:
            detail = "; ".join(output.errors) or output.parse_status.value
            LOGGER.debug("Degrading turn to chat (%s): %s", output.parse_status.value, detail)
            return TurnResult(
                reply_text=output.reply_text,
                executed=False,
                parse_status=output.parse_status,
                error_code=_PARSE_ERROR_CODES[output.parse_status],
                error_message=detail,
            )

        intent = output.intent
        if intent is None or intent.mode is IntentMode.CHAT or not is_executable(intent):
            if intent is not None and intent.mode is IntentMode.EDIT:
                LOGGER.debug("Intent %s is not wired for execution", describe_intent(intent))
            return TurnResult(reply_text=output.reply_text, intent=intent, parse_status=output.parse_status)

        try:
            section_id = self.resolve_edit_target(intent, text, engine=engine, state=state)
            paragraph_id = self._resolve_paragraph(engine, section_id, text, intent.params)
        except CopilotError as exc:
            return TurnResult.failure(exc.error_code, exc.message, intent=intent, parse_status=output.parse_status)

        entry = find_outline_entry(engine.outline(), section_id)
        command = command_from_intent(
            intent,
            document_id=engine.document_id,
            section_id=section_id,
            section_title=entry.title if entry else None,
        )
        if command is None:
            return TurnResult(reply_text=output.reply_text, intent=intent, parse_status=output.parse_status)
        result = await self.bridge.execute(
            command,
            user_text=text,
            paragraph_id=paragraph_id,
            preferences=state.preferences,
        )
        turn = self._after_execution(state, engine, result, command=command, intent=intent, paragraph_id=paragraph_id)
        reply = f"{output.reply_text}\n\n{turn.reply_text}" if result.success else turn.reply_text
        return replace(turn, reply_text=reply, parse_status=output.parse_status)

    async def _request_intent(self, messages: Sequence[Mapping[str, Any]]) -> str | None:
        try:
            response = await self._chat.chat(messages)
        except Exception as exc:
            LOGGER.warning("Generation service raised: %s", exc)
            error = str(exc) or exc.__class__.__name__
        else:
            if response.success:
                return response.content
            error = response.error or "unknown error"
        raise GenerationError(message=LLM_FAILURE_TEMPLATE.format(error=error), details={"error": error})

    def _after_execution(
        self,
        state: SessionState,
        engine: DocumentEngine,
        result: ExecutionResult,
        *,
        command: ResolvedCommand,
        intent: Intent | None,
        paragraph_id: str | None,
    ) -> TurnResult:
        if not result.success:
            return TurnResult(
                reply_text=result.message,
                executed=False,
                intent=intent,
                command=command,
                edit_result=result,
                error_code=result.error_code or ErrorCode.EDIT_EXECUTION_FAILED,
                error_message=result.error or result.message,
                section_id=result.section_id,
            )
        state.last_task = command.command.value
        if result.applied and result.section_id:
            state.record_edit(
                LastEditContext(
                    section_id=result.section_id,
                    action=intent.action if intent is not None else None,
                    command=command.command,
                    section_title=command.section_title,
                    paragraph_index=_paragraph_index(engine, result.section_id, paragraph_id),
                )
            )
        return TurnResult(
            reply_text=result.message,
            executed=True,
            intent=intent,
            command=command,
            edit_result=result,
            section_id=result.section_id,
        )

    def _finish(self, result: TurnResult, document_id: str | None) -> TurnResult:
        if result.error_code and self._config.debug_logging:
            result = replace(result, reply_text=result.reply_text + diagnostic_trailer(result.error_code, result.error_message))
        if result.error_code:
            LOGGER.info("Turn finished with %s: %s", result.error_code, result.error_message)
        self.messages.add_assistant(
            result.reply_text,
            document_id=document_id,
            meta={"error_code": result.error_code, "executed": result.executed},
        )
        return result

    def _behavior_summary(self, document_id: str) -> str | None:
        try:
            return prompts.build_behavior_summary(
                self.messages.messages(document_id),
                window_seconds=self._config.behavior_window_seconds,
            )
        except Exception as exc:
            LOGGER.debug("Behavior summary unavailable: %s", exc)
            return None

    # ------------------------------------------------------------------
    # Target resolution
    # ------------------------------------------------------------------

    def resolve_edit_target(
        self,
        intent: Intent,
        user_text: str,
        *,
        engine: DocumentEngine,
        state: SessionState,
    ) -> str:
        """Pick the section an executable intent applies to.

        Priority: an explicit id present in the outline, a positional or
        titled reference in the text, the focused section, the last edited
        section for follow-up phrasing, a title merely mentioned in the text.

        Raises:
            SectionNotFoundError: an explicit id is absent and nothing else matched.
            UnresolvableTargetError: no candidate at all.
        """

        outline: Sequence[OutlineEntry] = engine.outline()
        known = {entry.section_id for entry in outline}
        explicit = intent.target.section_id if not intent.target.is_special else None
        if explicit and explicit in known:
            return explicit

        last_section = state.last_edit.section_id if state.last_edit else state.focus_section_id
        match = resolve_section_by_user_text(user_text, outline, last_section_id=last_section)
        if match.found and match.reason in _STRONG_MATCHES:
            return match.section_id  # type: ignore[return-value]

        if state.is_section_focus and state.focus_section_id in known:
            return state.focus_section_id  # type: ignore[return-value]

        last_edit = state.last_edit
        if last_edit is not None and last_edit.section_id in known and is_follow_up(user_text):
            LOGGER.debug("Follow-up resolves to last edited section %s", last_edit.section_id)
            return last_edit.section_id

        if match.found:
            return match.section_id  # type: ignore[return-value]

        if explicit:
            raise SectionNotFoundError(section_id=explicit)
        raise UnresolvableTargetError(details={"text": user_text})

    def _retarget_refinement(self, rule: ResolvedCommand, text: str, engine: DocumentEngine) -> ResolvedCommand:
        if not rule.options.get("is_refinement"):
            return rule
        match = resolve_section_by_user_text(text, engine.outline(), last_section_id=rule.section_id)
        if match.found and match.reason in _STRONG_MATCHES and match.section_id != rule.section_id:
            entry = find_outline_entry(engine.outline(), match.section_id)
            return replace(rule, section_id=match.section_id, section_title=entry.title if entry else None)
        return rule

    @staticmethod
    def _resolve_paragraph(
        engine: DocumentEngine,
        section_id: str | None,
        text: str,
        params: Mapping[str, Any] | None,
    ) -> str | None:
        params = params or {}
        reference = infer_paragraph_ref(text)
        ref = reference.ref if reference else None
        index = reference.index if reference else None
        if ref is None and params.get("paragraphRef"):
            ref = ParagraphRef(params["paragraphRef"])
            index = params.get("paragraphIndex")
        if ref is None:
            return None
        if not section_id:
            raise UnresolvableTargetError(details={"paragraph_ref": ref.value})
        try:
            paragraphs = engine.extract_section_context(section_id).subtree_paragraphs
        except KeyError as exc:
            raise SectionNotFoundError(section_id=section_id) from exc
        ids = [p.id for p in paragraphs]

        if ref is ParagraphRef.NTH:
            if index is None or not 1 <= int(index) <= len(ids):
                raise UnresolvableTargetError(details={"paragraph_ref": ref.value, "index": index})
            return ids[int(index) - 1]

        current = engine.current_paragraph_id()
        if current is None or current not in ids:
            raise UnresolvableTargetError(details={"paragraph_ref": ref.value})
        position = ids.index(current)
        if ref is ParagraphRef.PREVIOUS:
            position -= 1
        elif ref is ParagraphRef.NEXT:
            position += 1
        if not 0 <= position < len(ids):
            raise UnresolvableTargetError(details={"paragraph_ref": ref.value})
        return ids[position]

    # ------------------------------------------------------------------
    # UI entry points
    # ------------------------------------------------------------------

    def apply_preview_result(self, pending_id: str) -> bool:
        pending = self.bridge.registry.get(pending_id)
        if pending is None or pending.response_mode is not PendingMode.PREVIEW:
            return False
        meta = dict(pending.meta)
        applied = self.bridge.apply_preview(pending_id)
        state = self._sessions.state
        if applied and state is not None and state.document_id == pending.document_id:
            command = _command_or_none(meta.get("command"))
            state.record_edit(
                LastEditContext(
                    section_id=pending.section_id,
                    command=command,
                    section_title=meta.get("section_title"),
                ),
                task=command.value if command else None,
            )
        return applied

    def cancel_preview_result(self, pending_id: str) -> bool:
        return self.bridge.cancel_preview(pending_id)

    async def resolve_clarification(self, pending_id: str, choice: str) -> ExecutionResult:
        state = self._sessions.state
        pending = self.bridge.registry.get(pending_id)
        result = await self.bridge.resolve_clarification(
            pending_id,
            choice,
            preferences=state.preferences if state else None,
        )
        if (
            result.success
            and result.applied
            and result.response_mode is ResponseMode.AUTO_APPLY
            and state is not None
            and pending is not None
            and state.document_id == pending.document_id
        ):
            state.record_edit(
                LastEditContext(section_id=pending.section_id, command=result.command),
                task=result.command.value if result.command else None,
            )
        return result

    def undo_action(self, message_id: str) -> bool:
        undone = self.bridge.undo(message_id)
        state = self._sessions.state
        message = self.messages.get(message_id)
        if undone and state is not None and state.last_edit is not None and message is not None:
            if message.meta.get("section_id") == state.last_edit.section_id:
                state.last_edit = None
        return undone

    def history(self, document_id: str | None = None) -> list[LastAction]:
        target = document_id or self._document_id
        if not target:
            return []
        return self.messages.last_actions(target)


def _paragraph_index(engine: DocumentEngine, section_id: str, paragraph_id: str | None) -> int | None:
    if not paragraph_id:
        return None
    try:
        ids = [p.id for p in engine.extract_section_context(section_id).subtree_paragraphs]
    except KeyError:
        return None
    return ids.index(paragraph_id) if paragraph_id in ids else None


def _command_or_none(value: Any) -> CopilotCommand | None:
    try:
        return CopilotCommand(value) if value else None
    except ValueError:
        return None

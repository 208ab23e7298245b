"""Execution bridge: turns resolved commands into section edits.

The bridge owns the three completion shapes of an edit:

``auto_apply``
    The primitive already mutated the document. The action message is
    marked applied and becomes undoable through its snapshot.
``preview``
    The proposed :class:`DocOp` list is parked in the
    :class:`PendingResultRegistry` until :meth:`ExecutionBridge.apply_preview`
    or :meth:`ExecutionBridge.cancel_preview` is called.
``clarify``
    The primitive's question is parked until
    :meth:`ExecutionBridge.resolve_clarification` re-runs the primitive with
    the user's choice. Re-entry is bounded by ``max_clarify_depth``.

No method here raises to its caller; failures come back as
:class:`ExecutionResult` values (or ``False``) and are mirrored onto the
action message.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, Mapping

from ...editor.document_model import DocumentEngine, SectionContext
from ..errors import EDITOR_NOT_READY_MESSAGE, SECTION_NOT_FOUND_MESSAGE, ErrorCode
from ..intent.commands import (
    CommandScope,
    CopilotCommand,
    PlanStep,
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
from ..intent.types import SECTION_ACTIONS, Confidence, Intent
from .messages import ActionStatus, ChatMessage, LastAction, MessageLog
from .pending import PendingMode, PendingResult, PendingResultRegistry, new_pending_id
from .section_guard import SectionCommandGuard
from .session import UserPreferences
from .snapshots import SnapshotStore
from .types import (
    ClarificationChoice,
    ExecutionResult,
    ResponseMode,
    SectionActionRequest,
    SectionActionResult,
    SectionEditPrimitive,
    StepResult,
    summarize_steps,
)

LOGGER = logging.getLogger(__name__)

EngineProvider = Callable[[], "DocumentEngine | None"]

AUTO_APPLIED_MESSAGE = "✅ 已自动应用到文档，可随时撤销。"
AUTO_APPLIED_NO_UNDO_MESSAGE = "✅ 已自动应用到文档。"
PREVIEW_MESSAGE = "已生成修改预览，请确认是否应用。"
CANCELLED_MESSAGE = "已取消本次修改。"
SECTION_BUSY_MESSAGE = "另一个章节操作正在进行中，请稍后再试。"
CLARIFY_LIMIT_MESSAGE = "多次澄清后仍无法确定修改方式，请换个说法再试一次。"
DEFAULT_MAX_CLARIFY_DEPTH = 3


def command_from_intent(
    intent: Intent,
    *,
    document_id: str,
    section_id: str | None,
    section_title: str | None = None,
) -> ResolvedCommand | None:
    """Map a validated intent onto the command catalogue."""

    command = command_for_intent_action(intent.action)
    if command is None:
        return None
    scope = CommandScope.SECTION if intent.action in SECTION_ACTIONS else CommandScope.DOCUMENT
    return ResolvedCommand(
        command=command,
        scope=scope,
        document_id=document_id,
        section_id=section_id,
        section_title=section_title,
        options=dict(intent.params),
        confidence=Confidence.HIGH,
    )


@dataclass(slots=True)
class _ActionContext:
    """Everything needed to finish an action after the primitive returns."""

    resolved: ResolvedCommand
    action: SectionAction
    options: Mapping[str, Any]
    message: ChatMessage
    snapshot_id: str | None
    user_text: str = ""
    paragraph_id: str | None = None


class ExecutionBridge:
    """Runs section commands through a :class:`SectionEditPrimitive`."""

    def __init__(
        self,
        primitive: SectionEditPrimitive,
        engine_provider: EngineProvider,
        *,
        registry: PendingResultRegistry | None = None,
        snapshots: SnapshotStore | None = None,
        messages: MessageLog | None = None,
        guard: SectionCommandGuard | None = None,
        max_clarify_depth: int = DEFAULT_MAX_CLARIFY_DEPTH,
    ) -> None:
        self._primitive = primitive
        self._engine_provider = engine_provider
        self.registry = registry if registry is not None else PendingResultRegistry()
        self.snapshots = snapshots if snapshots is not None else SnapshotStore()
        self.messages = messages if messages is not None else MessageLog()
        self.guard = guard if guard is not None else SectionCommandGuard()
        self._max_clarify_depth = max(1, max_clarify_depth)

    # ------------------------------------------------------------------
    # Execute
    # ------------------------------------------------------------------

    async def execute(
        self,
        target: ResolvedCommand | Intent,
        *,
        section_id: str | None = None,
        user_text: str = "",
        paragraph_id: str | None = None,
        preferences: UserPreferences | None = None,
    ) -> ExecutionResult:
        engine = self._engine_provider()
        if engine is None:
            return ExecutionResult(False, EDITOR_NOT_READY_MESSAGE, error_code=ErrorCode.EDITOR_NOT_READY)

        resolved = self._coerce_command(target, engine, section_id)
        if resolved is None:
            return ExecutionResult(
                False,
                "无法识别要执行的操作。",
                error="unknown action",
                error_code=ErrorCode.EDIT_EXECUTION_FAILED,
            )
        command = resolved.command
        if command_needs_section(command) and not resolved.section_id:
            text = build_context_missing_message(command)
            return ExecutionResult(
                False, text, error=text, error_code=ErrorCode.UNRESOLVABLE_TARGET, command=command
            )
        if not is_command_implemented(command):
            text = build_not_implemented_message(command)
            return ExecutionResult(
                False, text, error=text, error_code=ErrorCode.EDIT_EXECUTION_FAILED, command=command
            )

        section = resolved.section_id or ""
        try:
            context = engine.extract_section_context(section)
        except KeyError:
            return ExecutionResult(
                False,
                SECTION_NOT_FOUND_MESSAGE,
                error=f"unknown section {section}",
                error_code=ErrorCode.SECTION_NOT_FOUND,
                command=command,
                section_id=section,
            )
        if resolved.section_title is None:
            resolved = replace(resolved, section_title=context.title)

        if not self.guard.try_acquire(section, label=command.value):
            return ExecutionResult(
                False,
                SECTION_BUSY_MESSAGE,
                error="section busy",
                error_code=ErrorCode.EDIT_EXECUTION_FAILED,
                command=command,
                section_id=section,
            )
        message: ChatMessage | None = None
        snapshot_id: str | None = None
        try:
            message = self.messages.add_action(
                build_action_description(resolved),
                document_id=engine.document_id,
                command=command.value,
                section_id=section,
                section_title=resolved.section_title,
            )
            if is_compound_command(command):
                return await self._run_plan(engine, resolved, context, message, user_text, preferences)
            steps = command_steps(command, resolved.options)
            step = steps[0]
            snapshot_id = self._capture(engine, section)
            action = _ActionContext(
                resolved=resolved,
                action=step.action,
                options=_merge_options(resolved.options, step),
                message=message,
                snapshot_id=snapshot_id,
                user_text=user_text,
                paragraph_id=paragraph_id,
            )
            result = await self._primitive.run(self._build_request(engine, context, action, preferences))
            return self._handle_result(engine, action, result, depth=0)
        except Exception as exc:
            LOGGER.exception("Section command %s failed", command.value)
            error = str(exc) or exc.__class__.__name__
            self._roll_back(engine, snapshot_id)
            if message is not None:
                self.messages.set_status(message.id, ActionStatus.FAILED, error=error, undoable=False)
            return ExecutionResult(
                False,
                f"操作失败：{error}",
                error=error,
                error_code=ErrorCode.EDIT_EXECUTION_FAILED,
                command=command,
                section_id=section,
                action_message_id=message.id if message else None,
            )
        finally:
            self.guard.release()

    async def _run_plan(
        self,
        engine: DocumentEngine,
        resolved: ResolvedCommand,
        context: SectionContext,
        message: ChatMessage,
        user_text: str,
        preferences: UserPreferences | None,
    ) -> ExecutionResult:
        section = resolved.section_id or ""
        plan = command_steps(resolved.command, resolved.options)
        steps: list[StepResult] = []
        first_snapshot: str | None = None
        pending_id: str | None = None
        stopped_mode: ResponseMode | None = None
        failure: str | None = None

        for index, step in enumerate(plan):
            if failure is not None or stopped_mode is not None:
                steps.append(StepResult(step.action, success=False, skipped=True))
                continue
            snapshot_id = self._capture(engine, section)
            if index == 0:
                first_snapshot = snapshot_id
            action = _ActionContext(
                resolved=resolved,
                action=step.action,
                options=_merge_options(resolved.options, step),
                message=message,
                snapshot_id=snapshot_id,
                user_text=user_text,
            )
            try:
                if index:
                    context = engine.extract_section_context(section)
                result = await self._primitive.run(self._build_request(engine, context, action, preferences))
            except Exception as exc:
                LOGGER.exception("Step %d (%s) of %s failed", index + 1, step.action.value, resolved.command.value)
                result = SectionActionResult.failure(str(exc) or exc.__class__.__name__)
            mode = result.response_mode or ResponseMode.AUTO_APPLY
            if result.success and mode is ResponseMode.CLARIFY and not result.uncertainties:
                result = SectionActionResult.failure("clarify result without a question")
            if not result.success:
                failure = result.error or "unknown error"
                # Undo only this step; earlier applied steps stay under the plan snapshot.
                self._roll_back(engine, snapshot_id)
                steps.append(StepResult(step.action, False, error=failure))
                continue
            if mode is ResponseMode.AUTO_APPLY:
                if index:
                    self.snapshots.discard(snapshot_id)
                    snapshot_id = None
                steps.append(StepResult(step.action, True, mode, snapshot_id=snapshot_id))
                continue
            pending = self._park(engine, action, result, mode, depth=0)
            pending_id = pending.id
            stopped_mode = mode
            steps.append(StepResult(step.action, True, mode, snapshot_id=snapshot_id, pending_result_id=pending.id))

        summary = summarize_steps(steps)
        any_applied = any(s.success and s.response_mode is ResponseMode.AUTO_APPLY for s in steps)
        meta: dict[str, Any] = {
            "steps": [
                {"action": s.action.value, "success": s.success, "skipped": s.skipped, "snapshot_id": s.snapshot_id}
                for s in steps
            ],
            "snapshot_id": first_snapshot if any_applied else None,
            "undoable": bool(first_snapshot and any_applied),
        }
        if failure is not None:
            self.messages.set_status(message.id, ActionStatus.FAILED, error=failure, **meta)
            return ExecutionResult(
                False,
                f"复合操作未全部完成：\n{summary}",
                error=failure,
                error_code=ErrorCode.EDIT_EXECUTION_FAILED,
                command=resolved.command,
                section_id=section,
                snapshot_id=meta["snapshot_id"],
                action_message_id=message.id,
                steps=tuple(steps),
            )
        if stopped_mode is not None:
            self.messages.update(message.id, **meta)
            return ExecutionResult(
                True,
                f"复合操作等待确认：\n{summary}",
                response_mode=stopped_mode,
                applied=any_applied,
                command=resolved.command,
                section_id=section,
                snapshot_id=meta["snapshot_id"],
                pending_result_id=pending_id,
                action_message_id=message.id,
                steps=tuple(steps),
            )
        self.messages.set_status(message.id, ActionStatus.APPLIED, response_mode=ResponseMode.AUTO_APPLY, **meta)
        self._push_last_action(resolved, message)
        return ExecutionResult(
            True,
            f"已完成复合操作：\n{summary}",
            response_mode=ResponseMode.AUTO_APPLY,
            applied=True,
            command=resolved.command,
            section_id=section,
            snapshot_id=meta["snapshot_id"],
            action_message_id=message.id,
            steps=tuple(steps),
        )

    # ------------------------------------------------------------------
    # Response modes
    # ------------------------------------------------------------------

    def _handle_result(
        self,
        engine: DocumentEngine,
        action: _ActionContext,
        result: SectionActionResult,
        *,
        depth: int,
    ) -> ExecutionResult:
        resolved = action.resolved
        message = action.message
        base: dict[str, Any] = {
            "command": resolved.command,
            "section_id": resolved.section_id,
            "action_message_id": message.id,
        }
        if not result.success:
            error = result.error or "unknown error"
            self.messages.set_status(message.id, ActionStatus.FAILED, error=error, undoable=False)
            self._roll_back(engine, action.snapshot_id)
            return ExecutionResult(
                False,
                f"操作失败：{error}",
                error=error,
                error_code=ErrorCode.EDIT_EXECUTION_FAILED,
                **base,
            )

        mode = result.response_mode or ResponseMode.AUTO_APPLY
        if mode is ResponseMode.AUTO_APPLY:
            undoable = action.snapshot_id is not None
            self.messages.set_status(
                message.id,
                ActionStatus.APPLIED,
                response_mode=mode,
                snapshot_id=action.snapshot_id,
                undoable=undoable,
            )
            self._push_last_action(resolved, message)
            return ExecutionResult(
                True,
                AUTO_APPLIED_MESSAGE if undoable else AUTO_APPLIED_NO_UNDO_MESSAGE,
                response_mode=mode,
                applied=True,
                doc_ops=result.doc_ops,
                snapshot_id=action.snapshot_id,
                **base,
            )

        if mode is ResponseMode.CLARIFY:
            if not result.uncertainties:
                return self._fail_action(action, "clarify result without a question", base)
            if depth >= self._max_clarify_depth:
                LOGGER.warning("Clarify depth %d reached for section %s", depth, resolved.section_id)
                return self._fail_action(action, CLARIFY_LIMIT_MESSAGE, base)
            pending = self._park(engine, action, result, mode, depth=depth)
            first = result.uncertainties[0]
            return ExecutionResult(
                True,
                _clarify_prompt(first.reason, first.candidate_options),
                response_mode=mode,
                uncertainties=result.uncertainties,
                snapshot_id=action.snapshot_id,
                pending_result_id=pending.id,
                **base,
            )

        pending = self._park(engine, action, result, mode, depth=depth)
        return ExecutionResult(
            True,
            PREVIEW_MESSAGE,
            response_mode=mode,
            doc_ops=result.doc_ops,
            uncertainties=result.uncertainties,
            snapshot_id=action.snapshot_id,
            pending_result_id=pending.id,
            **base,
        )

    def _fail_action(self, action: _ActionContext, error: str, base: Mapping[str, Any]) -> ExecutionResult:
        self.messages.set_status(action.message.id, ActionStatus.FAILED, error=error, undoable=False)
        self.snapshots.discard(action.snapshot_id)
        return ExecutionResult(False, error, error=error, error_code=ErrorCode.EDIT_EXECUTION_FAILED, **base)

    def _park(
        self,
        engine: DocumentEngine,
        action: _ActionContext,
        result: SectionActionResult,
        mode: ResponseMode,
        *,
        depth: int,
    ) -> PendingResult:
        pending_mode = PendingMode.CLARIFY if mode is ResponseMode.CLARIFY else PendingMode.PREVIEW
        resolved = action.resolved
        payload = result.to_dict()
        payload["_meta"] = {
            "command": resolved.command.value,
            "section_action": action.action.value,
            "document_id": engine.document_id,
            "options": dict(action.options),
            "scope": resolved.scope.value,
            "section_title": resolved.section_title,
            "snapshot_id": action.snapshot_id,
            "user_text": action.user_text,
            "paragraph_id": action.paragraph_id,
        }
        pending = self.registry.add(
            PendingResult(
                id=new_pending_id(pending_mode),
                section_id=resolved.section_id or "",
                response_mode=pending_mode,
                serialized_result=json.dumps(payload, ensure_ascii=False, default=str),
                document_id=engine.document_id,
                related_message_id=action.message.id,
                clarify_depth=depth,
            )
        )
        meta: dict[str, Any] = {"response_mode": mode, "pending_result_id": pending.id}
        if pending_mode is PendingMode.PREVIEW:
            meta.update(preview_text=result.preview_text, original_text=result.original_text)
        else:
            first = result.uncertainties[0]
            meta.update(
                clarify_field=first.field,
                clarify_question=first.reason,
                clarify_options=list(first.candidate_options),
            )
        self.messages.update(action.message.id, **meta)
        return pending

    # ------------------------------------------------------------------
    # Pending results
    # ------------------------------------------------------------------

    def apply_preview(self, pending_id: str) -> bool:
        """Apply a parked preview. The entry is removed whatever the outcome."""

        pending = self.registry.get(pending_id)
        if pending is None or pending.response_mode is not PendingMode.PREVIEW:
            LOGGER.debug("No preview registered under %s", pending_id)
            return False
        if self.guard.is_running:
            LOGGER.warning("Cannot apply preview %s while a section command is running", pending_id)
            return False
        self.registry.remove(pending_id)
        message_id = pending.related_message_id
        engine = self._engine_provider()
        if engine is None or engine.document_id != pending.document_id:
            self.messages.set_status(message_id, ActionStatus.FAILED, error="document is no longer open")
            self._discard_pending_snapshot(pending)
            return False
        try:
            payload = pending.decode()
            result = SectionActionResult.from_dict(payload)
            applied = engine.apply_mutation(result.doc_ops)
            error = None if applied else "mutation rejected by the editor"
        except (ValueError, KeyError, TypeError) as exc:
            LOGGER.warning("Preview %s could not be applied: %s", pending_id, exc)
            error = str(exc) or exc.__class__.__name__
        except Exception as exc:
            LOGGER.exception("Editor failed while applying preview %s", pending_id)
            error = str(exc) or exc.__class__.__name__
        if error is not None:
            self.messages.set_status(message_id, ActionStatus.FAILED, error=error)
            self._roll_back(engine, self._pending_snapshot_id(pending))
            return False

        meta = payload.get("_meta") or {}
        snapshot_id = meta.get("snapshot_id")
        # A paused plan keeps the snapshot taken before its first step.
        message = self.messages.get(message_id)
        plan_snapshot = message.meta.get("snapshot_id") if message is not None else None
        if plan_snapshot and plan_snapshot != snapshot_id and plan_snapshot in self.snapshots:
            self.snapshots.discard(snapshot_id)
            snapshot_id = plan_snapshot
        self.messages.set_status(
            message_id,
            ActionStatus.APPLIED,
            snapshot_id=snapshot_id,
            undoable=bool(snapshot_id and snapshot_id in self.snapshots),
        )
        self.messages.push_last_action(
            LastAction(
                id=message_id or pending.id,
                command=str(meta.get("command", "")),
                scope=str(meta.get("scope", CommandScope.SECTION.value)),
                document_id=pending.document_id,
                section_id=pending.section_id,
                section_title=meta.get("section_title"),
            )
        )
        return True

    def cancel_preview(self, pending_id: str) -> bool:
        """Drop a parked preview without touching the document.

        Returns ``False`` for unknown ids, so calling it twice is harmless.
        """

        pending = self.registry.remove(pending_id)
        if pending is None:
            return False
        self.messages.set_status(pending.related_message_id, ActionStatus.REVERTED, undoable=False)
        self.messages.add_assistant(CANCELLED_MESSAGE, document_id=pending.document_id)
        self._discard_pending_snapshot(pending)
        return True

    async def resolve_clarification(
        self,
        pending_id: str,
        choice: str,
        *,
        preferences: UserPreferences | None = None,
    ) -> ExecutionResult:
        pending = self.registry.get(pending_id)
        if pending is None or pending.response_mode is not PendingMode.CLARIFY:
            return ExecutionResult(
                False,
                "这个澄清问题已经失效。",
                error=f"no clarification {pending_id}",
                error_code=ErrorCode.EDIT_EXECUTION_FAILED,
            )
        self.registry.remove(pending_id)
        engine = self._engine_provider()
        if engine is None:
            return ExecutionResult(False, EDITOR_NOT_READY_MESSAGE, error_code=ErrorCode.EDITOR_NOT_READY)

        message = self.messages.get(pending.related_message_id) or self.messages.add_action(
            "澄清后继续修改", document_id=pending.document_id
        )
        try:
            payload = pending.decode()
            meta = payload.get("_meta") or {}
            original = SectionActionResult.from_dict(payload)
            context = engine.extract_section_context(pending.section_id)
        except (ValueError, KeyError) as exc:
            self.messages.set_status(message.id, ActionStatus.FAILED, error=str(exc))
            return ExecutionResult(
                False,
                SECTION_NOT_FOUND_MESSAGE,
                error=str(exc),
                error_code=ErrorCode.SECTION_NOT_FOUND,
                section_id=pending.section_id,
                action_message_id=message.id,
            )

        resolved = ResolvedCommand(
            command=_command_value(meta.get("command")),
            scope=CommandScope(meta.get("scope") or CommandScope.SECTION.value),
            document_id=pending.document_id,
            section_id=pending.section_id,
            section_title=meta.get("section_title"),
            options=dict(meta.get("options") or {}),
            confidence=Confidence.HIGH,
        )
        action = _ActionContext(
            resolved=resolved,
            action=SectionAction(meta.get("section_action") or SectionAction.REWRITE.value),
            options=dict(meta.get("options") or {}),
            message=message,
            snapshot_id=meta.get("snapshot_id"),
            user_text=str(meta.get("user_text") or ""),
            paragraph_id=meta.get("paragraph_id"),
        )
        uncertainty = original.uncertainties[0] if original.uncertainties else None
        if uncertainty is None:
            return self._fail_action(action, "clarification has no question", {"section_id": pending.section_id})
        clarification = ClarificationChoice(original_result=original, uncertainty=uncertainty, user_choice=choice)

        if not self.guard.try_acquire(pending.section_id, label="clarify"):
            self.registry.add(pending)
            return ExecutionResult(
                False,
                SECTION_BUSY_MESSAGE,
                error="section busy",
                error_code=ErrorCode.EDIT_EXECUTION_FAILED,
                section_id=pending.section_id,
            )
        try:
            request = self._build_request(engine, context, action, preferences, clarification=clarification)
            result = await self._primitive.run(request)
            return self._handle_result(engine, action, result, depth=pending.clarify_depth + 1)
        except Exception as exc:
            LOGGER.exception("Clarification %s failed", pending_id)
            self._roll_back(engine, action.snapshot_id)
            return self._fail_action(action, str(exc) or exc.__class__.__name__, {"section_id": pending.section_id})
        finally:
            self.guard.release()

    # ------------------------------------------------------------------
    # Undo
    # ------------------------------------------------------------------

    def undo(self, message_id: str) -> bool:
        """Restore the snapshot taken before an applied action."""

        message = self.messages.get(message_id)
        if message is None or not message.meta.get("undoable"):
            return False
        snapshot_id = message.meta.get("snapshot_id")
        engine = self._engine_provider()
        if engine is None or not snapshot_id:
            return False
        if not self.snapshots.restore(engine, snapshot_id):
            return False
        self.messages.set_status(message_id, ActionStatus.REVERTED, undoable=False)
        return True

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _capture(self, engine: DocumentEngine, section_id: str) -> str | None:
        try:
            return self.snapshots.capture(engine, section_id).id
        except Exception as exc:
            LOGGER.warning("Snapshot capture failed for section %s; undo disabled: %s", section_id, exc)
            return None

    def _roll_back(self, engine: DocumentEngine, snapshot_id: str | None) -> None:
        """Put the section back as captured and drop the snapshot either way."""

        if snapshot_id is None:
            return
        try:
            if not self.snapshots.restore(engine, snapshot_id):
                LOGGER.warning("Snapshot %s could not be restored", snapshot_id)
        except Exception:
            LOGGER.exception("Restoring snapshot %s failed", snapshot_id)
        self.snapshots.discard(snapshot_id)

    @staticmethod
    def _pending_snapshot_id(pending: PendingResult) -> str | None:
        try:
            return pending.meta.get("snapshot_id")
        except ValueError:
            return None

    def _discard_pending_snapshot(self, pending: PendingResult) -> None:
        self.snapshots.discard(self._pending_snapshot_id(pending))

    def _push_last_action(self, resolved: ResolvedCommand, message: ChatMessage) -> None:
        self.messages.push_last_action(
            LastAction(
                id=message.id,
                command=resolved.command.value,
                scope=resolved.scope.value,
                document_id=resolved.document_id,
                section_id=resolved.section_id,
                section_title=resolved.section_title,
            )
        )

    @staticmethod
    def _build_request(
        engine: DocumentEngine,
        context: SectionContext,
        action: _ActionContext,
        preferences: UserPreferences | None,
        *,
        clarification: ClarificationChoice | None = None,
    ) -> SectionActionRequest:
        return SectionActionRequest(
            action=action.action,
            engine=engine,
            section_id=context.section_id,
            context=context,
            options=dict(action.options),
            user_text=action.user_text,
            paragraph_id=action.paragraph_id,
            clarification=clarification,
            preferences=preferences,
        )

    @staticmethod
    def _coerce_command(
        target: ResolvedCommand | Intent,
        engine: DocumentEngine,
        section_id: str | None,
    ) -> ResolvedCommand | None:
        if isinstance(target, ResolvedCommand):
            if section_id and section_id != target.section_id:
                return replace(target, section_id=section_id, section_title=None)
            return target
        explicit = target.target.section_id if not target.target.is_special else None
        return command_from_intent(target, document_id=engine.document_id, section_id=section_id or explicit)


def _merge_options(options: Mapping[str, Any], step: PlanStep) -> dict[str, Any]:
    merged = dict(options)
    merged.update(step.options)
    return merged


def _command_value(value: Any) -> CopilotCommand:
    return CopilotCommand(value) if value else CopilotCommand.REWRITE_SECTION_INTRO


def _clarify_prompt(question: str, options: tuple[str, ...]) -> str:
    text = question or "需要你补充一些信息。"
    if options:
        choices = "\n".join(f"{index}. {option}" for index, option in enumerate(options, start=1))
        text = f"{text}\n{choices}"
    return text


__all__ = [
    "ExecutionBridge",
    "command_from_intent",
    "AUTO_APPLIED_MESSAGE",
    "PREVIEW_MESSAGE",
    "CANCELLED_MESSAGE",
    "SECTION_BUSY_MESSAGE",
    "CLARIFY_LIMIT_MESSAGE",
]

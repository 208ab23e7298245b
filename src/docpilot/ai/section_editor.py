"""Section edit primitive backed by the generation service.

The model is asked for a small JSON document describing the edit. The
editor validates it, turns it into :class:`DocOp` records against the
section's paragraph ids and decides the response mode:

* ``auto_apply`` results are applied to the engine before returning;
* results whose confidence is below ``auto_apply_confidence`` are downgraded
  to ``preview``;
* ``clarify`` results carry the model's uncertainties.
"""

from __future__ import annotations

import json
import logging
import re
from json import JSONDecodeError
from typing import Any, Mapping, Sequence

import jsonschema

from ..editor.document_model import DocOp, DocOpKind, Paragraph
from .client import ChatService
from .errors import EditExecutionError
from .intent.commands import SectionAction
from .intent.protocol import format_schema_path, strip_code_fences
from .orchestration.types import (
    ClarificationChoice,
    ResponseMode,
    SectionActionRequest,
    SectionActionResult,
    Uncertainty,
)

LOGGER = logging.getLogger(__name__)

DEFAULT_AUTO_APPLY_CONFIDENCE = 0.7

EDIT_RESPONSE_SCHEMA: Mapping[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["responseMode"],
    "properties": {
        "responseMode": {"enum": [mode.value for mode in ResponseMode]},
        "confidence": {"type": "number", "minimum": 0, "maximum": 1},
        "paragraphs": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["text"],
                "properties": {"id": {"type": ["string", "null"]}, "text": {"type": "string"}},
            },
        },
        "summary": {"type": "array", "items": {"type": "string"}},
        "terms": {"type": "array", "items": {"type": "string", "minLength": 1}},
        "uncertainties": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["field", "reason"],
                "properties": {
                    "field": {"type": "string"},
                    "reason": {"type": "string"},
                    "options": {"type": "array", "items": {"type": "string"}},
                },
            },
        },
    },
}

_VALIDATOR = jsonschema.Draft202012Validator(EDIT_RESPONSE_SCHEMA)
_JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)

_ACTION_INSTRUCTIONS: Mapping[SectionAction, str] = {
    SectionAction.REWRITE: "改写下面的段落，保持原意，让表达更清晰流畅。",
    SectionAction.EXPAND: "扩写下面的段落，补充细节和例子，但不要偏离主题。",
    SectionAction.SUMMARIZE: "为下面的章节生成要点摘要，放在 summary 数组中，每条一句话。",
    SectionAction.HIGHLIGHT: "找出下面章节中最关键的内容，放在 terms 数组中，必须是原文中逐字出现的片段。",
}


class SectionEditError(EditExecutionError):
    """The model's answer could not be turned into an edit."""


class LLMSectionEditor:
    """:class:`SectionEditPrimitive` that asks a :class:`ChatService` for the edit."""

    def __init__(
        self,
        chat_service: ChatService,
        *,
        auto_apply_confidence: float = DEFAULT_AUTO_APPLY_CONFIDENCE,
    ) -> None:
        self._chat = chat_service
        self._auto_apply_confidence = auto_apply_confidence

    async def run(self, request: SectionActionRequest) -> SectionActionResult:
        targets = self._target_paragraphs(request)
        if not targets:
            return SectionActionResult.failure(f"章节 {request.section_id} 没有可编辑的段落")

        messages = self.build_messages(request, targets)
        response = await self._chat.chat(messages)
        if not response.success or not response.content:
            return SectionActionResult.failure(response.error or "AI 没有返回内容")

        try:
            payload = self.parse_response(response.content)
            ops = self.build_doc_ops(request, targets, payload)
        except SectionEditError as exc:
            LOGGER.warning("Section edit response rejected: %s", exc)
            return SectionActionResult.failure(exc.message)

        mode = ResponseMode(payload["responseMode"])
        confidence = payload.get("confidence")
        uncertainties = tuple(Uncertainty.from_dict(item) for item in payload.get("uncertainties") or ())
        original_text = "\n\n".join(p.text for p in targets)
        preview_text = self._render_preview(request, targets, ops)

        if mode is ResponseMode.CLARIFY:
            if request.clarification is not None and ops:
                # A resolved clarification must not loop back into the same question.
                mode = ResponseMode.PREVIEW
            else:
                if not uncertainties:
                    uncertainties = (Uncertainty(field="instruction", reason="需要更多信息才能继续修改。"),)
                return SectionActionResult(
                    success=True,
                    response_mode=ResponseMode.CLARIFY,
                    uncertainties=uncertainties,
                    original_text=original_text,
                    confidence=confidence,
                )

        if not ops:
            return SectionActionResult.failure("AI 没有给出任何修改")

        if mode is ResponseMode.AUTO_APPLY and confidence is not None and confidence < self._auto_apply_confidence:
            LOGGER.debug("Downgrading auto_apply to preview (confidence %.2f)", confidence)
            mode = ResponseMode.PREVIEW

        applied = False
        if mode is ResponseMode.AUTO_APPLY:
            if not request.engine.apply_mutation(ops):
                return SectionActionResult.failure("文档修改未能完全应用")
            applied = True

        return SectionActionResult(
            success=True,
            response_mode=mode,
            applied=applied,
            doc_ops=tuple(ops),
            uncertainties=uncertainties,
            preview_text=preview_text,
            original_text=original_text,
            confidence=confidence,
        )

    # ------------------------------------------------------------------
    # Prompting
    # ------------------------------------------------------------------

    def build_messages(self, request: SectionActionRequest, targets: Sequence[Paragraph]) -> list[dict[str, Any]]:
        instruction = _ACTION_INSTRUCTIONS[request.action]
        options = dict(request.options)
        if request.action is SectionAction.SUMMARIZE:
            instruction += f"摘要不超过 {int(options.get('bullet_count', 3))} 条。"
        if request.action is SectionAction.HIGHLIGHT:
            unit = "句子" if options.get("mode") == "sentences" else "关键词"
            instruction += f"请挑选不超过 {int(options.get('count', 5))} 个{unit}。"
        system = (
            "你是一个文档编辑助手，只输出一个 JSON 对象，不要输出其他内容。\n"
            "字段：responseMode（auto_apply/preview/clarify），confidence（0 到 1），"
            "paragraphs（[{id, text}]，id 必须是给出的段落 id；新增段落 id 为 null），"
            "summary（字符串数组），terms（字符串数组），"
            "uncertainties（[{field, reason, options}]，仅在 clarify 时给出）。\n"
            "改动很有把握时用 auto_apply，改动较大时用 preview，指令含糊无法下手时用 clarify。"
        )
        lines = [f"任务：{instruction}", f"章节：{request.context.title}"]
        if request.user_text:
            lines.append(f"用户原话：{request.user_text}")
        if options.get("is_refinement") and options.get("refinement_prompt"):
            lines.append(f"这是对上一次修改的调整：{options['refinement_prompt']}")
        if request.preferences is not None and request.preferences.language == "en":
            lines.append("Write the new text in English.")
        lines.append("段落：")
        lines.extend(json.dumps(p.to_dict(), ensure_ascii=False) for p in targets)
        if request.clarification is not None:
            lines.append(self._clarification_note(request.clarification))
        return [
            {"role": "system", "content": system},
            {"role": "user", "content": "\n".join(lines)},
        ]

    @staticmethod
    def _clarification_note(choice: ClarificationChoice) -> str:
        question = choice.uncertainty.reason or choice.uncertainty.field
        return (
            f"之前你询问了「{question}」，用户的选择是：{choice.user_choice}。"
            "请直接按这个选择完成修改，不要再次请求澄清。"
        )

    # ------------------------------------------------------------------
    # Response handling
    # ------------------------------------------------------------------

    @staticmethod
    def parse_response(content: str) -> dict[str, Any]:
        body = strip_code_fences(content)
        if not body.startswith("{"):
            match = _JSON_OBJECT_RE.search(body)
            body = match.group(0) if match else body
        try:
            payload = json.loads(body)
        except JSONDecodeError as exc:
            raise SectionEditError(message=f"无法解析 AI 返回的 JSON：{exc.msg}") from exc
        if not isinstance(payload, dict):
            raise SectionEditError(message="AI 返回的不是 JSON 对象")
        issues = []
        for issue in _VALIDATOR.iter_errors(payload):
            path = format_schema_path(issue.absolute_path)
            issues.append(f"{path}: {issue.message}" if path else issue.message)
        if issues:
            raise SectionEditError(message="AI 返回的 JSON 不符合约定：" + "; ".join(issues))
        return payload

    def build_doc_ops(
        self,
        request: SectionActionRequest,
        targets: Sequence[Paragraph],
        payload: Mapping[str, Any],
    ) -> list[DocOp]:
        if request.action is SectionAction.SUMMARIZE:
            return self._summary_ops(request, payload)
        if request.action is SectionAction.HIGHLIGHT:
            return self._highlight_ops(targets, payload)
        return self._rewrite_ops(targets, payload)

    def _rewrite_ops(self, targets: Sequence[Paragraph], payload: Mapping[str, Any]) -> list[DocOp]:
        by_id = {p.id: p for p in targets}
        ops: list[DocOp] = []
        additions: list[str] = []
        for item in payload.get("paragraphs") or ():
            text = str(item.get("text", "")).strip()
            paragraph_id = item.get("id")
            if paragraph_id:
                if paragraph_id not in by_id:
                    raise SectionEditError(message=f"AI 引用了不属于本节的段落 {paragraph_id}")
                if text and text != by_id[paragraph_id].text:
                    ops.append(DocOp(DocOpKind.REPLACE, paragraph_id, text))
                elif not text:
                    ops.append(DocOp(DocOpKind.DELETE, paragraph_id))
            elif text:
                additions.append(text)
        if additions:
            deleted = {op.paragraph_id for op in ops if op.kind is DocOpKind.DELETE}
            anchor = next((p.id for p in reversed(targets) if p.id not in deleted), None)
            if anchor is None:
                raise SectionEditError(message="AI 删除了全部段落却没有给出替换内容")
            # New paragraphs go after the last surviving target as a single block.
            ops.append(DocOp(DocOpKind.INSERT_AFTER, anchor, "\n\n".join(additions)))
        return ops

    @staticmethod
    def _summary_ops(request: SectionActionRequest, payload: Mapping[str, Any]) -> list[DocOp]:
        bullets = [str(item).strip() for item in payload.get("summary") or () if str(item).strip()]
        limit = int(request.options.get("bullet_count", len(bullets) or 3))
        bullets = bullets[: max(1, limit)]
        if not bullets:
            return []
        paragraphs = request.context.own_paragraphs or request.context.subtree_paragraphs
        anchor = paragraphs[-1].id
        text = "\n".join(f"- {bullet}" for bullet in bullets)
        return [DocOp(DocOpKind.INSERT_AFTER, anchor, f"**摘要**\n{text}")]

    @staticmethod
    def _highlight_ops(targets: Sequence[Paragraph], payload: Mapping[str, Any]) -> list[DocOp]:
        terms = [str(term).strip() for term in payload.get("terms") or () if str(term).strip()]
        ops: list[DocOp] = []
        for paragraph in targets:
            text = paragraph.text
            for term in terms:
                text = _bold_first(text, term)
            if text != paragraph.text:
                ops.append(DocOp(DocOpKind.REPLACE, paragraph.id, text))
        return ops

    @staticmethod
    def _target_paragraphs(request: SectionActionRequest) -> tuple[Paragraph, ...]:
        context = request.context
        if request.paragraph_id:
            return tuple(p for p in context.subtree_paragraphs if p.id == request.paragraph_id)
        if request.action is SectionAction.REWRITE and request.options.get("scope") == "intro":
            return context.own_paragraphs or context.subtree_paragraphs
        return context.subtree_paragraphs

    @staticmethod
    def _render_preview(
        request: SectionActionRequest,
        targets: Sequence[Paragraph],
        ops: Sequence[DocOp],
    ) -> str:
        texts = {p.id: p.text for p in targets}
        order = [p.id for p in targets]
        for op in ops:
            if op.kind is DocOpKind.REPLACE:
                texts[op.paragraph_id] = op.text or ""
            elif op.kind is DocOpKind.DELETE:
                texts.pop(op.paragraph_id, None)
                order = [pid for pid in order if pid != op.paragraph_id]
            elif op.kind is DocOpKind.INSERT_AFTER:
                key = f"+{len(texts)}"
                texts[key] = op.text or ""
                position = order.index(op.paragraph_id) + 1 if op.paragraph_id in order else len(order)
                order.insert(position, key)
        return "\n\n".join(texts[pid] for pid in order if texts.get(pid))


def _bold_first(text: str, term: str) -> str:
    marked = f"**{term}**"
    if marked in text:
        return text
    index = text.find(term)
    if index < 0:
        return text
    return text[:index] + marked + text[index + len(term) :]


__all__ = ["LLMSectionEditor", "SectionEditError", "EDIT_RESPONSE_SCHEMA", "DEFAULT_AUTO_APPLY_CONFIDENCE"]

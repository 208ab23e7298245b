"""Shared test helpers and stub classes.

Import from here instead of duplicating fakes in individual test files.
"""

from __future__ import annotations

import json
from collections import deque
from typing import Any, Callable, Iterable, Mapping, Sequence

from docpilot.ai.client import ChatResponse
from docpilot.ai.orchestration.types import (
    ResponseMode,
    SectionActionRequest,
    SectionActionResult,
    Uncertainty,
)
from docpilot.editor.document_model import DocOp, DocOpKind
from docpilot.editor.markdown_document import MarkdownDocument

# Outline: sec-1 is the document title, sec-2/3/4/6/7 are the five chapters,
# sec-5 is a subsection of sec-4.
SAMPLE_MARKDOWN = """# 项目说明书

## 背景

本项目旨在改进长文档的编辑体验。

目前的工具难以处理结构化内容。

## 目标

提供基于自然语言的章节级编辑能力。

## 方案设计

系统由意图识别和执行两部分组成。

### 数据流

用户输入先经过规则匹配，再交给模型。

## 风险

模型输出可能不稳定。

## 结论

方案可行，建议尽快落地。
"""


def make_document(document_id: str = "doc-1") -> MarkdownDocument:
    return MarkdownDocument.from_markdown(SAMPLE_MARKDOWN, document_id=document_id)


def intent_reply(payload: Mapping[str, Any] | str, reply: str = "好的，我来处理。") -> str:
    body = payload if isinstance(payload, str) else json.dumps(payload, ensure_ascii=False)
    return f"[INTENT]{body}[/INTENT]\n[REPLY]{reply}[/REPLY]"


def rewrite_intent(section_id: str | None, *, reply: str = "好的，我来改写。") -> str:
    target: dict[str, Any] = {"scope": "section"}
    if section_id is not None:
        target["sectionId"] = section_id
    return intent_reply({"mode": "edit", "action": "rewrite_section", "target": target}, reply)


class FakeChatService:
    """Chat service returning queued responses and recording every request."""

    def __init__(self, responses: Iterable[ChatResponse | str | Exception] = ()) -> None:
        self._responses: deque[ChatResponse | str | Exception] = deque(responses)
        self.calls: list[list[dict[str, Any]]] = []

    def queue(self, *responses: ChatResponse | str | Exception) -> None:
        self._responses.extend(responses)

    async def chat(self, messages: Sequence[Mapping[str, Any]]) -> ChatResponse:
        self.calls.append([dict(message) for message in messages])
        if not self._responses:
            raise AssertionError("FakeChatService ran out of responses")
        response = self._responses.popleft()
        if isinstance(response, Exception):
            raise response
        if isinstance(response, str):
            return ChatResponse.ok(response)
        return response


ResultFactory = Callable[[SectionActionRequest], SectionActionResult]


class FakePrimitive:
    """Edit primitive replaying scripted results.

    ``auto_apply`` results are applied to the request's engine so the
    document reflects what a real primitive would have done.
    """

    def __init__(self, results: Iterable[SectionActionResult | ResultFactory | Exception] = ()) -> None:
        self._results: deque[SectionActionResult | ResultFactory | Exception] = deque(results)
        self.requests: list[SectionActionRequest] = []

    def queue(self, *results: SectionActionResult | ResultFactory | Exception) -> None:
        self._results.extend(results)

    async def run(self, request: SectionActionRequest) -> SectionActionResult:
        self.requests.append(request)
        if not self._results:
            raise AssertionError("FakePrimitive ran out of results")
        item = self._results.popleft()
        if isinstance(item, Exception):
            raise item
        result = item(request) if callable(item) else item
        if result.success and result.response_mode is ResponseMode.AUTO_APPLY and result.doc_ops:
            request.engine.apply_mutation(result.doc_ops)
        return result


def replace_op(paragraph_id: str, text: str) -> DocOp:
    return DocOp(DocOpKind.REPLACE, paragraph_id, text)


def auto_applied(*ops: DocOp) -> SectionActionResult:
    return SectionActionResult(success=True, response_mode=ResponseMode.AUTO_APPLY, applied=True, doc_ops=ops)


def rewrite_first_paragraph(text: str = "改写后的内容。") -> ResultFactory:
    """Factory that rewrites the first paragraph of whatever section was requested."""

    def factory(request: SectionActionRequest) -> SectionActionResult:
        first = request.context.subtree_paragraphs[0]
        return auto_applied(replace_op(first.id, text))

    return factory


def preview_of(*ops: DocOp, preview_text: str = "预览内容") -> SectionActionResult:
    return SectionActionResult(
        success=True,
        response_mode=ResponseMode.PREVIEW,
        doc_ops=ops,
        preview_text=preview_text,
        original_text="原文",
    )


def clarify(question: str = "你希望改成什么语气？", options: Sequence[str] = ("正式", "轻松")) -> SectionActionResult:
    return SectionActionResult(
        success=True,
        response_mode=ResponseMode.CLARIFY,
        uncertainties=(Uncertainty(field="tone", reason=question, candidate_options=tuple(options)),),
    )


def paragraph_text(document: MarkdownDocument, paragraph_id: str) -> str:
    for paragraph in document.paragraphs:
        if paragraph.id == paragraph_id:
            return paragraph.text
    raise KeyError(paragraph_id)

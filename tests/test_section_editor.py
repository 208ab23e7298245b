"""Tests for the model-backed section edit primitive."""

from __future__ import annotations

import json
from typing import Any

import pytest

from docpilot.ai.client import ChatResponse
from docpilot.ai.errors import ErrorCode
from docpilot.ai.intent.commands import SectionAction
from docpilot.ai.orchestration.session import UserPreferences
from docpilot.ai.orchestration.types import (
    ClarificationChoice,
    ResponseMode,
    SectionActionRequest,
    SectionActionResult,
    Uncertainty,
)
from docpilot.ai.section_editor import LLMSectionEditor, SectionEditError
from docpilot.editor.document_model import DocOpKind
from docpilot.editor.markdown_document import MarkdownDocument

from tests.helpers import FakeChatService, make_document, paragraph_text


def _reply(**payload: Any) -> str:
    return json.dumps(payload, ensure_ascii=False)


def _request(
    document: MarkdownDocument,
    action: SectionAction = SectionAction.REWRITE,
    section_id: str = "sec-2",
    **extra: Any,
) -> SectionActionRequest:
    return SectionActionRequest(
        action=action,
        engine=document,
        section_id=section_id,
        context=document.extract_section_context(section_id),
        **extra,
    )


@pytest.fixture
def document():
    return make_document()


@pytest.fixture
def chat():
    return FakeChatService()


@pytest.fixture
def editor(chat):
    return LLMSectionEditor(chat)


class TestRewrite:
    @pytest.mark.asyncio
    async def test_confident_rewrite_is_applied(self, editor, chat, document):
        chat.queue(_reply(responseMode="auto_apply", confidence=0.9, paragraphs=[{"id": "p-1", "text": "新的背景。"}]))

        result = await editor.run(_request(document, user_text="改得正式一点"))

        assert result.success and result.applied
        assert result.response_mode is ResponseMode.AUTO_APPLY
        assert [(op.kind, op.paragraph_id) for op in result.doc_ops] == [(DocOpKind.REPLACE, "p-1")]
        assert paragraph_text(document, "p-1") == "新的背景。"
        prompt = chat.calls[0][1]["content"]
        assert "用户原话：改得正式一点" in prompt
        assert '"id": "p-2"' in prompt

    @pytest.mark.asyncio
    async def test_low_confidence_is_downgraded_to_preview(self, editor, chat, document):
        chat.queue(_reply(responseMode="auto_apply", confidence=0.5, paragraphs=[{"id": "p-1", "text": "新的背景。"}]))

        result = await editor.run(_request(document))

        assert result.response_mode is ResponseMode.PREVIEW
        assert result.applied is False
        assert paragraph_text(document, "p-1") == "本项目旨在改进长文档的编辑体验。"
        assert result.preview_text == "新的背景。\n\n目前的工具难以处理结构化内容。"
        assert result.original_text.startswith("本项目旨在")

    @pytest.mark.asyncio
    async def test_threshold_is_configurable(self, chat, document):
        editor = LLMSectionEditor(chat, auto_apply_confidence=0.4)
        chat.queue(_reply(responseMode="auto_apply", confidence=0.5, paragraphs=[{"id": "p-1", "text": "新的背景。"}]))

        result = await editor.run(_request(document))

        assert result.applied

    @pytest.mark.asyncio
    async def test_intro_scope_only_offers_own_paragraphs(self, editor, chat, document):
        chat.queue(_reply(responseMode="auto_apply", paragraphs=[{"id": "p-5", "text": "越界修改"}]))

        result = await editor.run(_request(document, section_id="sec-4", options={"scope": "intro"}))

        assert result.success is False
        assert "p-5" in result.error
        assert '"id": "p-5"' not in chat.calls[0][1]["content"]

    @pytest.mark.asyncio
    async def test_paragraph_target(self, editor, chat, document):
        chat.queue(_reply(responseMode="preview", paragraphs=[{"id": "p-2", "text": "新的第二段。"}]))

        result = await editor.run(_request(document, paragraph_id="p-2"))

        assert result.response_mode is ResponseMode.PREVIEW
        assert '"id": "p-1"' not in chat.calls[0][1]["content"]

    @pytest.mark.asyncio
    async def test_new_paragraphs_follow_last_target(self, editor, chat, document):
        chat.queue(_reply(responseMode="auto_apply", paragraphs=[{"id": None, "text": "补充的结论。"}]))

        result = await editor.run(_request(document, SectionAction.EXPAND, "sec-7"))

        (op,) = result.doc_ops
        assert op.kind is DocOpKind.INSERT_AFTER
        assert op.paragraph_id == "p-7"
        assert [p.text for p in document.extract_section_context("sec-7").subtree_paragraphs][-1] == "补充的结论。"

    @pytest.mark.asyncio
    async def test_unchanged_text_is_not_an_edit(self, editor, chat, document):
        chat.queue(_reply(responseMode="auto_apply", paragraphs=[{"id": "p-6", "text": "模型输出可能不稳定。"}]))

        result = await editor.run(_request(document, section_id="sec-6"))

        assert result.success is False
        assert result.error == "AI 没有给出任何修改"

    @pytest.mark.asyncio
    async def test_refinement_and_language_hints(self, editor, chat, document):
        chat.queue(_reply(responseMode="preview", paragraphs=[{"id": "p-6", "text": "Outputs may vary."}]))

        await editor.run(
            _request(
                document,
                section_id="sec-6",
                options={"is_refinement": True, "refinement_prompt": "再改短一点"},
                preferences=UserPreferences(language="en"),
            )
        )

        prompt = chat.calls[0][1]["content"]
        assert "这是对上一次修改的调整：再改短一点" in prompt
        assert "Write the new text in English." in prompt


class TestSummaryAndHighlight:
    @pytest.mark.asyncio
    async def test_summary_is_inserted_after_own_paragraphs(self, editor, chat, document):
        chat.queue(_reply(responseMode="auto_apply", summary=["要点一", " ", "要点二", "要点三"]))

        result = await editor.run(_request(document, SectionAction.SUMMARIZE, "sec-4", options={"bullet_count": 2}))

        (op,) = result.doc_ops
        assert op.kind is DocOpKind.INSERT_AFTER
        assert op.paragraph_id == "p-4"
        assert op.text == "**摘要**\n- 要点一\n- 要点二"
        assert "摘要不超过 2 条" in chat.calls[0][1]["content"]
        ids = [p.id for p in document.extract_section_context("sec-4").subtree_paragraphs]
        assert ids == ["p-4", "p-8", "p-5"]

    @pytest.mark.asyncio
    async def test_highlight_bolds_first_occurrence(self, editor, chat, document):
        chat.queue(_reply(responseMode="auto_apply", terms=["不稳定", "不存在的词"]))

        result = await editor.run(
            _request(document, SectionAction.HIGHLIGHT, "sec-6", options={"mode": "sentences", "count": 3})
        )

        assert result.applied
        assert paragraph_text(document, "p-6") == "模型输出可能**不稳定**。"
        assert "请挑选不超过 3 个句子" in chat.calls[0][1]["content"]


class TestClarify:
    @pytest.mark.asyncio
    async def test_model_question_is_returned(self, editor, chat, document):
        chat.queue(
            _reply(
                responseMode="clarify",
                uncertainties=[{"field": "tone", "reason": "要什么语气？", "options": ["正式", "轻松"]}],
            )
        )

        result = await editor.run(_request(document))

        assert result.response_mode is ResponseMode.CLARIFY
        assert result.uncertainties == (Uncertainty("tone", "要什么语气？", ("正式", "轻松")),)
        assert result.doc_ops == ()

    @pytest.mark.asyncio
    async def test_clarify_without_question_gets_default(self, editor, chat, document):
        chat.queue(_reply(responseMode="clarify"))

        result = await editor.run(_request(document))

        assert result.uncertainties[0].field == "instruction"

    @pytest.mark.asyncio
    async def test_answered_clarification_becomes_preview(self, editor, chat, document):
        question = Uncertainty("tone", "要什么语气？", ("正式", "轻松"))
        original = SectionActionResult(success=True, response_mode=ResponseMode.CLARIFY, uncertainties=(question,))
        choice = ClarificationChoice(original_result=original, uncertainty=question, user_choice="正式")
        chat.queue(
            _reply(
                responseMode="clarify",
                paragraphs=[{"id": "p-1", "text": "正式的背景。"}],
                uncertainties=[{"field": "length", "reason": "要多长？"}],
            )
        )

        result = await editor.run(_request(document, clarification=choice))

        assert result.response_mode is ResponseMode.PREVIEW
        assert result.doc_ops[0].text == "正式的背景。"
        assert "用户的选择是：正式" in chat.calls[0][1]["content"]


class TestFailures:
    @pytest.mark.asyncio
    async def test_chat_failure(self, editor, chat, document):
        chat.queue(ChatResponse.failed("rate limited"))

        result = await editor.run(_request(document))

        assert result.success is False
        assert result.error == "rate limited"

    @pytest.mark.asyncio
    async def test_section_without_paragraphs_skips_the_model(self, editor, chat):
        document = MarkdownDocument.from_markdown("# 空章节\n", document_id="doc-empty")

        result = await editor.run(_request(document, section_id="sec-1"))

        assert result.success is False
        assert chat.calls == []

    @pytest.mark.asyncio
    async def test_invalid_payload(self, editor, chat, document):
        chat.queue(_reply(responseMode="maybe"))

        result = await editor.run(_request(document))

        assert result.success is False
        assert "responseMode" in result.error


class TestParseResponse:
    def test_accepts_fenced_or_wrapped_json(self):
        fenced = LLMSectionEditor.parse_response('```json\n{"responseMode": "preview"}\n```')
        wrapped = LLMSectionEditor.parse_response('结果如下：{"responseMode": "clarify"} 谢谢')

        assert fenced == {"responseMode": "preview"}
        assert wrapped == {"responseMode": "clarify"}

    @pytest.mark.parametrize("content", ["不是 JSON", "[1, 2]", '{"confidence": 2}'])
    def test_rejects_bad_content(self, content):
        with pytest.raises(SectionEditError):
            LLMSectionEditor.parse_response(content)

    def test_errors_carry_the_execution_failure_code(self):
        with pytest.raises(SectionEditError) as excinfo:
            LLMSectionEditor.parse_response("不是 JSON")

        assert excinfo.value.error_code == ErrorCode.EDIT_EXECUTION_FAILED
        assert excinfo.value.message.startswith("无法解析 AI 返回的 JSON")

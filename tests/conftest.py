"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from docpilot.ai.orchestration.orchestrator import OrchestratorConfig, ResolutionOrchestrator
from docpilot.editor.markdown_document import MarkdownDocument

from tests.helpers import FakeChatService, FakePrimitive, make_document


@pytest.fixture
def document() -> MarkdownDocument:
    return make_document()


@pytest.fixture
def chat() -> FakeChatService:
    return FakeChatService()


@pytest.fixture
def primitive() -> FakePrimitive:
    return FakePrimitive()


@pytest.fixture
def orchestrator(chat: FakeChatService, primitive: FakePrimitive, document: MarkdownDocument) -> ResolutionOrchestrator:
    orchestrator = ResolutionOrchestrator(chat, primitive, lambda: document, config=OrchestratorConfig())
    orchestrator.set_document(document.document_id)
    return orchestrator


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    for name in (
        "DOCPILOT_API_KEY",
        "DOCPILOT_BASE_URL",
        "DOCPILOT_MODEL",
        "DOCPILOT_LANGUAGE",
        "DOCPILOT_VERBOSITY",
        "DOCPILOT_DEBUG_LOGGING",
        "DOCPILOT_MAX_CLARIFY_DEPTH",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("DOCPILOT_LOG_DIR", str(tmp_path / "logs"))

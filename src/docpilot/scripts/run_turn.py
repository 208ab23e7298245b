"""CLI helper that runs a single copilot turn against a Markdown file."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Sequence

from ..ai.client import AIClient, ClientSettings
from ..ai.orchestration.orchestrator import OrchestratorConfig, ResolutionOrchestrator
from ..ai.orchestration.session import FocusScope, UserPreferences
from ..ai.section_editor import LLMSectionEditor
from ..editor.markdown_document import MarkdownDocument
from ..services.settings import SettingsStore, redact_secret
from ..utils.logging import setup_logging

LOGGER = logging.getLogger(__name__)


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Send one instruction to the document copilot.")
    parser.add_argument("text", help="Instruction to run, e.g. '把第二章改得更正式一些'.")
    parser.add_argument("--file", type=Path, required=True, help="Markdown document to operate on.")
    parser.add_argument("--section", help="Focus this section id before running the turn.")
    parser.add_argument("--settings", type=Path, help="Alternate settings.json path.")
    parser.add_argument("--model", help="Override the configured model for this run.")
    parser.add_argument("--write", action="store_true", help="Write the edited document back to --file.")
    parser.add_argument("--debug", action="store_true", help="Verbose logging and diagnostic reply trailers.")
    args = parser.parse_args(argv)

    if not args.file.exists():
        print(f"File not found: {args.file}", file=sys.stderr)
        return 1

    overrides = {"debug_logging": True} if args.debug else {}
    if args.model:
        overrides["model"] = args.model
    settings = SettingsStore(args.settings).load(overrides=overrides)
    setup_logging(logging.DEBUG if settings.debug_logging else logging.WARNING)
    LOGGER.info("Model %s at %s, api key %s", settings.model, settings.base_url, redact_secret(settings.api_key) or "unset")

    document = MarkdownDocument.from_markdown(
        args.file.read_text(encoding="utf-8"),
        document_id=args.file.stem,
        title=args.file.stem,
    )
    if args.section:
        try:
            document.extract_section_context(args.section)
        except KeyError:
            print(f"Unknown section: {args.section}", file=sys.stderr)
            return 1

    reply = asyncio.run(_run(settings, document, args.text, args.section))
    print(reply)

    if args.write:
        args.file.write_text(document.to_markdown(), encoding="utf-8")
    return 0


async def _run(settings, document: MarkdownDocument, text: str, section_id: str | None) -> str:
    client = AIClient(ClientSettings.from_settings(settings))
    try:
        orchestrator = ResolutionOrchestrator(
            client,
            LLMSectionEditor(client, auto_apply_confidence=settings.auto_apply_confidence),
            lambda: document,
            config=OrchestratorConfig.from_settings(settings),
            preferences=UserPreferences(language=settings.language, verbosity=settings.verbosity),
        )
        orchestrator.set_document(document.document_id)
        if section_id:
            orchestrator.set_focus(FocusScope.SECTION, section_id)
        result = await orchestrator.run_turn(text)
        if result.edit_result is not None and result.edit_result.pending_result_id:
            # Non-interactive: accept previews so --write has something to persist.
            orchestrator.apply_preview_result(result.edit_result.pending_result_id)
        return result.reply_text
    finally:
        await client.aclose()


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())

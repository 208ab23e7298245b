"""In-memory :class:`DocumentEngine` backed by a Markdown text.

Headings become outline sections (``sec-N``); every other blank-line
separated block becomes a paragraph (``p-N``). The engine is small on
purpose: it lets the CLI and the tests drive the pipeline end to end.
"""

from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass, replace
from typing import Iterable, Sequence

from .document_model import (
    DocOp,
    DocOpKind,
    MutationReport,
    OutlineEntry,
    Paragraph,
    SectionContext,
)

LOGGER = logging.getLogger(__name__)

_HEADING_RE = re.compile(r"^(#{1,6})\s+(.*?)\s*#*\s*$")
_LIST_RE = re.compile(r"^\s*(?:[-*+]|\d+[.)])\s+")


@dataclass(slots=True)
class _Block:
    id: str
    kind: str
    text: str
    level: int = 0

    @property
    def is_heading(self) -> bool:
        return self.kind == "heading"


class MarkdownDocument:
    """Mutable Markdown document exposing the :class:`DocumentEngine` protocol."""

    def __init__(self, blocks: Iterable[_Block] = (), *, document_id: str | None = None, title: str | None = None) -> None:
        self._blocks: list[_Block] = list(blocks)
        self._document_id = document_id or uuid.uuid4().hex
        self._title = title
        self._cursor: str | None = None
        self._next_paragraph = 1 + sum(1 for b in self._blocks if not b.is_heading)
        self.last_report = MutationReport()

    # ------------------------------------------------------------------
    # Construction / rendering
    # ------------------------------------------------------------------
    @classmethod
    def from_markdown(cls, text: str, *, document_id: str | None = None, title: str | None = None) -> MarkdownDocument:
        blocks: list[_Block] = []
        section_no = 0
        paragraph_no = 0
        buffer: list[str] = []

        def flush() -> None:
            nonlocal paragraph_no
            if not buffer:
                return
            paragraph_no += 1
            body = "\n".join(buffer).strip()
            kind = "list" if _LIST_RE.match(buffer[0]) else "paragraph"
            blocks.append(_Block(id=f"p-{paragraph_no}", kind=kind, text=body))
            buffer.clear()

        for line in (text or "").splitlines():
            heading = _HEADING_RE.match(line)
            if heading:
                flush()
                section_no += 1
                blocks.append(
                    _Block(
                        id=f"sec-{section_no}",
                        kind="heading",
                        text=heading.group(2).strip(),
                        level=len(heading.group(1)),
                    )
                )
            elif not line.strip():
                flush()
            else:
                buffer.append(line)
        flush()
        return cls(blocks, document_id=document_id, title=title)

    def to_markdown(self) -> str:
        parts = []
        for block in self._blocks:
            if block.is_heading:
                parts.append(f"{'#' * block.level} {block.text}")
            else:
                parts.append(block.text)
        return "\n\n".join(parts) + ("\n" if parts else "")

    # ------------------------------------------------------------------
    # DocumentEngine protocol
    # ------------------------------------------------------------------
    @property
    def document_id(self) -> str:
        return self._document_id

    @property
    def title(self) -> str:
        if self._title:
            return self._title
        for block in self._blocks:
            if block.is_heading and block.level == 1:
                return block.text
        return "未命名文档"

    def outline(self) -> list[OutlineEntry]:
        entries: list[OutlineEntry] = []
        stack: list[_Block] = []
        for block in self._blocks:
            if not block.is_heading:
                continue
            while stack and stack[-1].level >= block.level:
                stack.pop()
            parent_id = stack[-1].id if stack else None
            entries.append(OutlineEntry(section_id=block.id, title=block.text, level=block.level, parent_id=parent_id))
            stack.append(block)
        return entries

    def extract_section_context(self, section_id: str) -> SectionContext:
        start = self._heading_index(section_id)
        heading = self._blocks[start]
        own: list[Paragraph] = []
        subtree: list[Paragraph] = []
        in_own = True
        for block in self._blocks[start + 1 :]:
            if block.is_heading:
                if block.level <= heading.level:
                    break
                in_own = False
                continue
            paragraph = Paragraph(id=block.id, text=block.text, kind=block.kind)
            subtree.append(paragraph)
            if in_own:
                own.append(paragraph)
        return SectionContext(
            section_id=heading.id,
            title=heading.text,
            level=heading.level,
            own_paragraphs=tuple(own),
            subtree_paragraphs=tuple(subtree),
        )

    def apply_mutation(self, ops: Sequence[DocOp]) -> bool:
        """Apply ``ops`` as one batch.

        Ops are applied in order, so an op may target a paragraph inserted
        earlier in the batch. If any op names an unknown paragraph the
        document is left exactly as it was.
        """

        saved_blocks = [replace(block) for block in self._blocks]
        saved_next = self._next_paragraph
        report = MutationReport()
        for op in ops:
            index = self._paragraph_index(op.paragraph_id)
            if index is None:
                report.skipped.append(op.paragraph_id)
                continue
            if op.kind is DocOpKind.REPLACE:
                self._blocks[index].text = op.text or ""
            elif op.kind is DocOpKind.INSERT_AFTER:
                new_id = op.new_paragraph_id or self._allocate_paragraph_id()
                self._blocks.insert(index + 1, _Block(id=new_id, kind="paragraph", text=op.text or ""))
            elif op.kind is DocOpKind.DELETE:
                del self._blocks[index]
            report.applied += 1
        if report.skipped:
            LOGGER.warning("Rejected mutation batch; unknown paragraphs: %s", report.skipped)
            self._blocks = saved_blocks
            self._next_paragraph = saved_next
            report.applied = 0
        self.last_report = report
        return not report.skipped

    def restore_paragraphs(self, section_id: str, paragraphs: Sequence[Paragraph]) -> bool:
        """Put a section's paragraphs back to a captured state.

        Captured paragraphs keep their ids; paragraphs created after the
        capture are dropped and deleted ones are re-inserted after their
        captured predecessor.
        """

        try:
            current = self.extract_section_context(section_id)
        except KeyError:
            LOGGER.warning("Cannot restore unknown section %s", section_id)
            return False
        captured_ids = {p.id for p in paragraphs}
        for paragraph in current.subtree_paragraphs:
            if paragraph.id not in captured_ids:
                index = self._paragraph_index(paragraph.id)
                if index is not None:
                    del self._blocks[index]

        anchor = self._heading_index(section_id)
        for paragraph in paragraphs:
            index = self._paragraph_index(paragraph.id)
            if index is None:
                self._blocks.insert(anchor + 1, _Block(id=paragraph.id, kind=paragraph.kind, text=paragraph.text))
                anchor += 1
            else:
                self._blocks[index].text = paragraph.text
                anchor = index
        return True

    def current_paragraph_id(self) -> str | None:
        return self._cursor

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def set_cursor(self, paragraph_id: str | None) -> None:
        if paragraph_id is not None and self._paragraph_index(paragraph_id) is None:
            raise KeyError(paragraph_id)
        self._cursor = paragraph_id

    @property
    def paragraphs(self) -> list[Paragraph]:
        return [Paragraph(id=b.id, text=b.text, kind=b.kind) for b in self._blocks if not b.is_heading]

    def _heading_index(self, section_id: str) -> int:
        for index, block in enumerate(self._blocks):
            if block.is_heading and block.id == section_id:
                return index
        raise KeyError(section_id)

    def _paragraph_index(self, paragraph_id: str) -> int | None:
        for index, block in enumerate(self._blocks):
            if not block.is_heading and block.id == paragraph_id:
                return index
        return None

    def _allocate_paragraph_id(self) -> str:
        existing = {b.id for b in self._blocks}
        while True:
            candidate = f"p-{self._next_paragraph}"
            self._next_paragraph += 1
            if candidate not in existing:
                return candidate


__all__ = ["MarkdownDocument"]

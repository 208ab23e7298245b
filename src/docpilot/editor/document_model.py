"""Dataclasses and protocols describing the structured document being edited.

The resolution pipeline never owns the document representation. It talks to
an editor through :class:`DocumentEngine`, reads sections as
:class:`SectionContext` records and hands proposed changes back as
:class:`DocOp` lists.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Protocol, Sequence, runtime_checkable


def now_ms() -> int:
    """Return the current wall-clock time in milliseconds."""

    return int(time.time() * 1000)


# -----------------------------------------------------------------------------
# Document structure
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class Paragraph:
    """A block-level paragraph (or list item) inside a section."""

    id: str
    text: str
    kind: str = "paragraph"

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "text": self.text, "kind": self.kind}

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> Paragraph:
        return cls(
            id=str(payload["id"]),
            text=str(payload.get("text", "")),
            kind=str(payload.get("kind", "paragraph")),
        )


@dataclass(slots=True, frozen=True)
class OutlineEntry:
    """One heading in the document outline.

    Attributes:
        section_id: Stable identifier of the heading block.
        title: Heading text.
        level: Heading depth (1 is a chapter).
        parent_id: Id of the enclosing section, if any.
    """

    section_id: str
    title: str
    level: int = 1
    parent_id: str | None = None


@dataclass(slots=True, frozen=True)
class SectionContext:
    """Paragraphs belonging to one section.

    ``own_paragraphs`` stop at the first child heading while
    ``subtree_paragraphs`` include every nested subsection.
    """

    section_id: str
    title: str
    level: int = 1
    own_paragraphs: tuple[Paragraph, ...] = ()
    subtree_paragraphs: tuple[Paragraph, ...] = ()

    @property
    def text(self) -> str:
        return "\n\n".join(p.text for p in self.subtree_paragraphs if p.text)

    @property
    def char_count(self) -> int:
        return sum(len(p.text) for p in self.subtree_paragraphs)


# -----------------------------------------------------------------------------
# Mutations
# -----------------------------------------------------------------------------


class DocOpKind(str, Enum):
    """Kinds of paragraph-level mutation."""

    REPLACE = "replace"
    INSERT_AFTER = "insert_after"
    DELETE = "delete"


@dataclass(slots=True, frozen=True)
class DocOp:
    """A single paragraph mutation proposed by an edit primitive."""

    kind: DocOpKind
    paragraph_id: str
    text: str | None = None
    new_paragraph_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"kind": self.kind.value, "paragraph_id": self.paragraph_id}
        if self.text is not None:
            payload["text"] = self.text
        if self.new_paragraph_id is not None:
            payload["new_paragraph_id"] = self.new_paragraph_id
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> DocOp:
        text = payload.get("text")
        new_id = payload.get("new_paragraph_id")
        return cls(
            kind=DocOpKind(payload["kind"]),
            paragraph_id=str(payload["paragraph_id"]),
            text=None if text is None else str(text),
            new_paragraph_id=None if new_id is None else str(new_id),
        )


@dataclass(slots=True)
class MutationReport:
    """Outcome of applying a batch of :class:`DocOp` records."""

    applied: int = 0
    skipped: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.applied > 0 and not self.skipped


# -----------------------------------------------------------------------------
# Engine protocol
# -----------------------------------------------------------------------------


@runtime_checkable
class DocumentEngine(Protocol):
    """Capabilities the pipeline needs from an editor.

    ``extract_section_context`` raises :class:`KeyError` for unknown section
    ids; the other methods report failure through their return values.
    """

    @property
    def document_id(self) -> str:
        ...

    @property
    def title(self) -> str:
        ...

    def outline(self) -> Sequence[OutlineEntry]:
        ...

    def extract_section_context(self, section_id: str) -> SectionContext:
        ...

    def apply_mutation(self, ops: Sequence[DocOp]) -> bool:
        ...

    def restore_paragraphs(self, section_id: str, paragraphs: Sequence[Paragraph]) -> bool:
        ...

    def current_paragraph_id(self) -> str | None:
        ...


def find_outline_entry(outline: Sequence[OutlineEntry], section_id: str | None) -> OutlineEntry | None:
    if not section_id:
        return None
    for entry in outline:
        if entry.section_id == section_id:
            return entry
    return None


__all__ = [
    "now_ms",
    "Paragraph",
    "OutlineEntry",
    "SectionContext",
    "DocOpKind",
    "DocOp",
    "MutationReport",
    "DocumentEngine",
    "find_outline_entry",
]

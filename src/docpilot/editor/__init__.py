"""Document model protocols and the in-memory Markdown engine."""

from .document_model import (
    DocOp,
    DocOpKind,
    DocumentEngine,
    OutlineEntry,
    Paragraph,
    SectionContext,
)
from .markdown_document import MarkdownDocument

__all__ = [
    "DocOp",
    "DocOpKind",
    "DocumentEngine",
    "OutlineEntry",
    "Paragraph",
    "SectionContext",
    "MarkdownDocument",
]
